"""Data models for vault files.

Only metadata lives here. File content (plaintext or ciphertext) is stored
as a blob next to it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Any, Optional

from ..exceptions import ValidationError


class FileCategory(Enum):
    """Filters offered by the file list."""

    FAVORITES = "favorites"
    SHARED = "shared"
    ENCRYPTED = "encrypted"


class SortField(Enum):
    """Fields the file list can be sorted by."""

    NAME = "name"
    DATE = "date"
    SIZE = "size"


def generate_file_id() -> str:
    """Generate a short unique file id (e.g., "file-1a2b3c4d")."""
    return f"file-{uuid.uuid4().hex[:8]}"


def format_file_size(size: int) -> str:
    """Format a byte count for display."""
    if size < 1024:
        return f"{size} bytes"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.2f} MB"
    return f"{size / (1024 * 1024 * 1024):.2f} GB"


def _parse_time(value: Any, name: str) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name} timestamp: {value!r}")


@dataclass
class EncryptionInfo:
    """Encryption fields stored with an encrypted file.

    Attributes:
        algorithm: Cipher tag, e.g. "AES-256-GCM"
        checksum: SHA-256 of the plaintext
        key_material: Key string, kept so the owner can reveal it after
            re-entering their password
    """

    algorithm: str
    checksum: str
    key_material: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = {"algorithm": self.algorithm, "checksum": self.checksum}
        if self.key_material:
            result["key_material"] = self.key_material
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EncryptionInfo":
        if not isinstance(data, dict) or not data.get("algorithm") or not data.get("checksum"):
            raise ValidationError("Encryption info needs an algorithm and a checksum")
        return cls(
            algorithm=data["algorithm"],
            checksum=data["checksum"],
            key_material=data.get("key_material"),
        )

    def __repr__(self) -> str:
        return f"EncryptionInfo(algorithm={self.algorithm!r}, checksum={self.checksum!r})"


@dataclass
class FileMetadata:
    """Metadata for one file in the vault.

    Attributes:
        id: Unique identifier (e.g., "file-1a2b3c4d")
        name: Original file name
        extension: Lowercase extension without the dot
        size: Plaintext size in bytes
        mime_type: Content type
        created: Upload time
        modified: Last metadata change
        created_by: Email of the uploader
        modified_by: Email of the last editor
        is_favorite: Marked as favorite
        is_shared: Marked as shared
        tags: Free-form tags
        checksum: SHA-256 of the plaintext
        encryption: Present only for encrypted files
    """

    id: str
    name: str
    size: int
    created: datetime
    modified: datetime
    extension: str = ""
    mime_type: str = "application/octet-stream"
    created_by: Optional[str] = None
    modified_by: Optional[str] = None
    is_favorite: bool = False
    is_shared: bool = False
    tags: list[str] = field(default_factory=list)
    checksum: Optional[str] = None
    encryption: Optional[EncryptionInfo] = None

    @property
    def is_encrypted(self) -> bool:
        return self.encryption is not None

    @property
    def size_formatted(self) -> str:
        return format_file_size(self.size)

    @property
    def content_key(self) -> str:
        """Blob name holding this file's content."""
        return f"file_{self.id}"

    @staticmethod
    def extension_of(name: str) -> str:
        return PurePath(name).suffix.lstrip(".").lower()

    def matches(self, query: str) -> bool:
        """Case-insensitive match on name or any tag."""
        query = query.lower()
        return query in self.name.lower() or any(query in tag.lower() for tag in self.tags)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        result = {
            "id": self.id,
            "name": self.name,
            "extension": self.extension,
            "size": self.size,
            "mime_type": self.mime_type,
            "created": self.created.isoformat(),
            "modified": self.modified.isoformat(),
            "is_favorite": self.is_favorite,
            "is_shared": self.is_shared,
            "is_encrypted": self.is_encrypted,
            "tags": list(self.tags),
        }
        if self.created_by:
            result["created_by"] = self.created_by
        if self.modified_by:
            result["modified_by"] = self.modified_by
        if self.checksum:
            result["checksum"] = self.checksum
        if self.encryption:
            result["encryption"] = self.encryption.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileMetadata":
        """
        Create from dictionary, validating the shape.

        Raises:
            ValidationError: If required fields are missing or inconsistent
        """
        if not isinstance(data, dict):
            raise ValidationError("File metadata must be a mapping")

        for key in ("id", "name", "size", "created", "modified"):
            if key not in data:
                raise ValidationError(f"File metadata is missing '{key}'")

        size = data["size"]
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise ValidationError(f"Invalid file size: {size!r}")

        encryption = None
        if data.get("encryption") is not None:
            encryption = EncryptionInfo.from_dict(data["encryption"])
        if data.get("is_encrypted") and encryption is None:
            raise ValidationError("File is marked encrypted but has no encryption info")

        tags = data.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValidationError("Tags must be a list of strings")

        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            size=size,
            created=_parse_time(data["created"], "created"),
            modified=_parse_time(data["modified"], "modified"),
            extension=data.get("extension") or cls.extension_of(str(data["name"])),
            mime_type=data.get("mime_type") or "application/octet-stream",
            created_by=data.get("created_by"),
            modified_by=data.get("modified_by"),
            is_favorite=bool(data.get("is_favorite", False)),
            is_shared=bool(data.get("is_shared", False)),
            tags=list(tags),
            checksum=data.get("checksum"),
            encryption=encryption,
        )
