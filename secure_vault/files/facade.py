"""File operations that sit on top of the encryption and session core.

Every call checks for a live session and records activity. Uploads can be
encrypted with fresh per-file key material; the key string is handed back
to the caller once and the plaintext checksum is kept with the metadata so
later decrypts can be checked independently of the cipher.
"""

import mimetypes
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from ..auth.audit import AuditLog, LogCategory
from ..auth.session import Session, SessionManager
from ..crypto.checksum import ChecksumService
from ..crypto.engine import EncryptionEngine
from ..exceptions import (
    DecryptionError,
    FileNotFoundInVaultError,
    InvalidCredentialsError,
    MalformedKeyError,
    StorageError,
    ValidationError,
)
from ..storage import PersistenceBackend
from ..utils.logging import get_logger
from .models import (
    EncryptionInfo,
    FileCategory,
    FileMetadata,
    SortField,
    generate_file_id,
)

logger = get_logger(__name__)

FILES_KEY = "files"

EDITABLE_FIELDS = {"name", "tags", "is_favorite", "is_shared"}


@dataclass
class UploadResult:
    """Outcome of an upload.

    key_material is set only for encrypted uploads and is the one time the
    key is handed out without a password check.
    """

    metadata: FileMetadata
    key_material: Optional[str] = None

    def __repr__(self) -> str:
        return f"UploadResult(metadata={self.metadata!r})"


@dataclass
class DecryptionResult:
    """Outcome of a decrypt attempt, safe to show to the user."""

    success: bool
    data: Optional[bytes] = None
    error: Optional[str] = None
    checksum_ok: bool = False
    name: Optional[str] = None
    mime_type: Optional[str] = None


class VaultFacade:
    """
    File CRUD gated by the session manager.

    Usage:
        vault = VaultFacade(manager)
        result = vault.upload("report.pdf", data)
        print(result.key_material)  # shown once

        outcome = vault.decrypt(result.metadata.id, user_supplied_key)
        if outcome.success:
            ...
    """

    def __init__(
        self,
        sessions: SessionManager,
        backend: Optional[PersistenceBackend] = None,
        engine: Optional[EncryptionEngine] = None,
        checksums: Optional[ChecksumService] = None,
        audit: Optional[AuditLog] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the facade.

        Args:
            sessions: Session manager used to gate every call
            backend: Where metadata and content live (default: the session backend)
            engine: Encryption engine
            checksums: Checksum service
            audit: Audit trail (default: the session manager's)
            clock: Returns the current time (injectable for tests)
        """
        self.sessions = sessions
        self.backend = backend or sessions.backend
        self.engine = engine or EncryptionEngine(chunk_size=sessions.settings.crypto.chunk_size)
        self.checksums = checksums or ChecksumService()
        self.audit = audit if audit is not None else sessions.audit
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()

    # Internal helpers

    def _require_user(self) -> Session:
        session = self.sessions.require_session()
        self.sessions.touch()
        return session

    def _audit(self, level: str, message: str, user: Optional[str] = None, **details) -> None:
        if self.audit is None:
            return
        try:
            getattr(self.audit, level)(LogCategory.FILE, message, user=user, details=details)
        except Exception as e:
            logger.warning("Audit logging failed: %s", e)

    def _load_all(self) -> list[FileMetadata]:
        return [FileMetadata.from_dict(data) for data in self.backend.load(FILES_KEY, [])]

    def _save_all(self, files: list[FileMetadata]) -> None:
        self.backend.save(FILES_KEY, [f.to_dict() for f in files])

    def _find(self, files: list[FileMetadata], file_id: str) -> int:
        for index, item in enumerate(files):
            if item.id == file_id:
                return index
        raise FileNotFoundInVaultError(file_id)

    def _commit(self, metadata: FileMetadata, content: bytes) -> None:
        """Store content then metadata; undo the content if metadata fails."""
        self.backend.write_blob(metadata.content_key, content)
        try:
            with self._lock:
                files = self._load_all()
                files.insert(0, metadata)
                self._save_all(files)
        except StorageError:
            self.backend.delete_blob(metadata.content_key)
            raise

    def _new_metadata(
        self,
        name: str,
        size: int,
        session: Session,
        tags: Iterable[str],
        mime_type: Optional[str],
    ) -> FileMetadata:
        name = name.strip() if name else ""
        if not name:
            raise ValidationError("File name is required")
        now = self._clock()
        guessed = mimetypes.guess_type(name)[0]
        return FileMetadata(
            id=generate_file_id(),
            name=name,
            extension=FileMetadata.extension_of(name),
            size=size,
            mime_type=mime_type or guessed or "application/octet-stream",
            created=now,
            modified=now,
            created_by=session.email,
            modified_by=session.email,
            tags=_clean_tags(tags),
        )

    # Upload and decrypt

    def upload(
        self,
        name: str,
        data: bytes,
        encrypt: bool = True,
        tags: Iterable[str] = (),
        mime_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Add a file to the vault.

        Args:
            name: File name
            data: File content
            encrypt: Encrypt with fresh key material
            tags: Initial tags
            mime_type: Content type (guessed from the name if not provided)

        Returns:
            UploadResult with the key material for encrypted uploads

        Raises:
            AuthenticationRequiredError / SessionExpiredError: If not logged in
            ValidationError: If the name is empty
        """
        session = self._require_user()
        metadata = self._new_metadata(name, len(data), session, tags, mime_type)

        key_material = None
        if encrypt:
            payload = self.engine.encrypt(data)
            key_material = payload.key_material
            metadata.checksum = payload.checksum
            metadata.encryption = EncryptionInfo(
                algorithm=payload.algorithm,
                checksum=payload.checksum,
                key_material=payload.key_material,
            )
            content = payload.ciphertext
        else:
            metadata.checksum = self.checksums.digest(data)
            content = bytes(data)

        self._commit(metadata, content)
        self._audit(
            "info",
            f"File uploaded: {metadata.name}",
            user=session.email,
            file_id=metadata.id,
            encrypted=encrypt,
        )
        return UploadResult(metadata=metadata, key_material=key_material)

    def upload_path(
        self,
        path: Path,
        encrypt: bool = True,
        tags: Iterable[str] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> UploadResult:
        """
        Add a file from disk, streaming it through the cipher.

        If cancel_event is set before the upload finishes, nothing is stored.

        Raises:
            OperationCancelledError: If cancel_event was set
        """
        session = self._require_user()
        path = Path(path)
        metadata = self._new_metadata(path.name, path.stat().st_size, session, tags, None)

        key_material = None
        with tempfile.TemporaryDirectory() as tmp_dir:
            if encrypt:
                staged = Path(tmp_dir) / "payload.enc"
                payload = self.engine.encrypt_file(path, staged, cancel_event=cancel_event)
                key_material = payload.key_material
                metadata.checksum = payload.checksum
                metadata.encryption = EncryptionInfo(
                    algorithm=payload.algorithm,
                    checksum=payload.checksum,
                    key_material=payload.key_material,
                )
                content = staged.read_bytes()
            else:
                content = path.read_bytes()
                metadata.checksum = self.checksums.digest(content)

        self._commit(metadata, content)
        self._audit(
            "info",
            f"File uploaded: {metadata.name}",
            user=session.email,
            file_id=metadata.id,
            encrypted=encrypt,
        )
        return UploadResult(metadata=metadata, key_material=key_material)

    def decrypt(self, file_id: str, key_material: str) -> DecryptionResult:
        """
        Decrypt a stored file and check it against the stored checksum.

        Failures come back as a DecryptionResult with a message that does not
        say which part of the input was wrong.

        Raises:
            AuthenticationRequiredError / SessionExpiredError: If not logged in
            FileNotFoundInVaultError: If the file id is unknown
        """
        session = self._require_user()
        metadata = self.get(file_id)

        if not metadata.is_encrypted:
            return DecryptionResult(success=False, error="This file is not encrypted")

        ciphertext = self.read_content(file_id)

        try:
            plaintext = self.engine.decrypt(ciphertext, key_material)
        except MalformedKeyError as e:
            self._audit("warning", "Decryption failed: malformed key", user=session.email, file_id=file_id)
            return DecryptionResult(success=False, error=str(e))
        except DecryptionError as e:
            self._audit("warning", "Decryption failed", user=session.email, file_id=file_id)
            return DecryptionResult(success=False, error=str(e))

        if not self.checksums.verify(plaintext, metadata.encryption.checksum):
            self._audit("error", "Checksum mismatch after decryption", user=session.email, file_id=file_id)
            return DecryptionResult(
                success=False,
                error="Decrypted content does not match the stored checksum",
                checksum_ok=False,
            )

        self._audit("info", f"File decrypted: {metadata.name}", user=session.email, file_id=file_id)
        return DecryptionResult(
            success=True,
            data=plaintext,
            checksum_ok=True,
            name=metadata.name,
            mime_type=metadata.mime_type,
        )

    def reveal_key(self, file_id: str, password: str) -> str:
        """
        Return a file's stored key material after re-checking the password.

        Raises:
            InvalidCredentialsError: If the password is wrong
            ValidationError: If the file has no stored key
        """
        session = self._require_user()
        if not self.sessions.verify_credentials(session.email, password):
            self._audit("warning", "Key reveal rejected: wrong password", user=session.email, file_id=file_id)
            raise InvalidCredentialsError()

        metadata = self.get(file_id)
        if not metadata.encryption or not metadata.encryption.key_material:
            raise ValidationError("No stored key for this file")

        self._audit("security", "Encryption key revealed", user=session.email, file_id=file_id)
        return metadata.encryption.key_material

    def read_content(self, file_id: str) -> bytes:
        """Return stored content (ciphertext for encrypted files)."""
        self._require_user()
        content = self.backend.read_blob(f"file_{file_id}")
        if content is None:
            raise FileNotFoundInVaultError(file_id)
        return content

    # Metadata CRUD

    def get(self, file_id: str) -> FileMetadata:
        """Get file metadata by id."""
        self._require_user()
        files = self._load_all()
        return files[self._find(files, file_id)]

    def list_files(
        self,
        query: str = "",
        category: Optional[Union[FileCategory, str]] = None,
        sort_by: Union[SortField, str] = SortField.NAME,
        sort_order: str = "asc",
    ) -> list[FileMetadata]:
        """
        List files with optional search, category filter and sorting.

        Args:
            query: Case-insensitive match on name or tags
            category: favorites, shared or encrypted
            sort_by: name, date (modified) or size
            sort_order: "asc" or "desc"

        Returns:
            Matching files
        """
        self._require_user()
        files = self._load_all()

        if category is not None:
            category = FileCategory(category)
            if category == FileCategory.FAVORITES:
                files = [f for f in files if f.is_favorite]
            elif category == FileCategory.SHARED:
                files = [f for f in files if f.is_shared]
            elif category == FileCategory.ENCRYPTED:
                files = [f for f in files if f.is_encrypted]

        if query:
            files = [f for f in files if f.matches(query)]

        sort_by = SortField(sort_by)
        if sort_order not in ("asc", "desc"):
            raise ValidationError(f"Invalid sort order: {sort_order!r}")

        sort_keys = {
            SortField.NAME: lambda f: f.name.lower(),
            SortField.DATE: lambda f: f.modified,
            SortField.SIZE: lambda f: f.size,
        }
        return sorted(files, key=sort_keys[sort_by], reverse=sort_order == "desc")

    def update(self, file_id: str, **changes) -> FileMetadata:
        """
        Change editable metadata fields (name, tags, is_favorite, is_shared).

        Raises:
            ValidationError: If a field is not editable
        """
        session = self._require_user()
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with self._lock:
            files = self._load_all()
            index = self._find(files, file_id)
            item = files[index]

            if "name" in changes:
                name = (changes["name"] or "").strip()
                if not name:
                    raise ValidationError("File name is required")
                item.name = name
                item.extension = FileMetadata.extension_of(name)
            if "tags" in changes:
                item.tags = _clean_tags(changes["tags"])
            if "is_favorite" in changes:
                item.is_favorite = bool(changes["is_favorite"])
            if "is_shared" in changes:
                item.is_shared = bool(changes["is_shared"])

            item.modified = self._clock()
            item.modified_by = session.email
            self._save_all(files)
            return item

    def toggle_favorite(self, file_id: str) -> FileMetadata:
        """Flip the favorite flag."""
        return self.update(file_id, is_favorite=not self.get(file_id).is_favorite)

    def toggle_shared(self, file_id: str) -> FileMetadata:
        """Flip the shared flag."""
        metadata = self.update(file_id, is_shared=not self.get(file_id).is_shared)
        self._audit(
            "info",
            f"File {'shared' if metadata.is_shared else 'unshared'}: {metadata.name}",
            user=metadata.modified_by,
            file_id=file_id,
        )
        return metadata

    def add_tag(self, file_id: str, tag: str) -> FileMetadata:
        """Add a tag if it is not already present."""
        tags = self.get(file_id).tags
        return self.update(file_id, tags=[*tags, tag])

    def remove_tag(self, file_id: str, tag: str) -> FileMetadata:
        """Remove a tag if present."""
        tags = self.get(file_id).tags
        return self.update(file_id, tags=[t for t in tags if t != tag])

    def delete(self, file_id: str) -> bool:
        """
        Remove a file and its content.

        Returns:
            True if the file existed
        """
        session = self._require_user()
        with self._lock:
            files = self._load_all()
            remaining = [f for f in files if f.id != file_id]
            if len(remaining) == len(files):
                return False
            self._save_all(remaining)
        self.backend.delete_blob(f"file_{file_id}")
        self._audit("info", "File deleted", user=session.email, file_id=file_id)
        return True


def _clean_tags(tags: Iterable[str]) -> list[str]:
    """Strip whitespace, drop empties and duplicates, keep order."""
    result: list[str] = []
    for tag in tags:
        tag = str(tag).strip()
        if tag and tag not in result:
            result.append(tag)
    return result
