"""Per-file symmetric encryption.

Uses AES-256-GCM from the cryptography library. Every call to encrypt()
draws a new key and nonce, so no two files share key material.

Ciphertext format (in memory and on disk):
    [encrypted body] [tag (16 bytes)]

The streaming file methods produce exactly the same bytes as encrypt() for
the same key material, so a file encrypted on disk can be decrypted in
memory and vice versa.
"""

import hashlib
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import DecryptionError, EncryptionError, OperationCancelledError
from ..utils.logging import get_logger
from . import checksum
from .key_material import KeyMaterial, decode

logger = get_logger(__name__)

ALGORITHM = "AES-256-GCM"
TAG_SIZE = 16  # 128-bit authentication tag
CHUNK_SIZE = 64 * 1024  # 64KB chunks


@dataclass
class EncryptedPayload:
    """Result of encrypting one file."""

    ciphertext: bytes
    algorithm: str
    key_material: str
    checksum: str  # Digest of the plaintext, not the ciphertext

    def __repr__(self) -> str:
        return (
            f"EncryptedPayload(algorithm={self.algorithm!r}, "
            f"ciphertext=<{len(self.ciphertext)} bytes>, checksum={self.checksum!r})"
        )


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError()


class EncryptionEngine:
    """
    Encrypts and decrypts file content with fresh key material per file.

    Usage:
        engine = EncryptionEngine()
        payload = engine.encrypt(data)
        # store payload.ciphertext, show payload.key_material to the user once
        data = engine.decrypt(payload.ciphertext, payload.key_material)
    """

    algorithm = ALGORITHM

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        """
        Initialize the engine.

        Args:
            chunk_size: Read size for the streaming file methods
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    def encrypt(self, plaintext: bytes) -> EncryptedPayload:
        """
        Encrypt data under newly generated key material.

        Args:
            plaintext: Data to encrypt (may be empty)

        Returns:
            EncryptedPayload with ciphertext, key material string and checksum

        Raises:
            EntropySourceError: If no secure randomness is available
        """
        return self.encrypt_with(plaintext, KeyMaterial.generate())

    def encrypt_with(self, plaintext: bytes, material: KeyMaterial) -> EncryptedPayload:
        """
        Encrypt data under the given key material.

        Deterministic for a fixed key, IV and plaintext. Never reuse key
        material across different plaintexts.
        """
        try:
            ciphertext = AESGCM(material.key).encrypt(material.iv, bytes(plaintext), None)
        except (TypeError, ValueError) as e:
            raise EncryptionError(f"AES-GCM encryption failed: {e}")

        return EncryptedPayload(
            ciphertext=ciphertext,
            algorithm=self.algorithm,
            key_material=material.encode(),
            checksum=checksum.digest(plaintext),
        )

    def decrypt(self, ciphertext: bytes, key_material: str) -> bytes:
        """
        Decrypt data.

        The checksum is not verified here; callers compare
        checksum.digest(result) with the stored value themselves.

        Args:
            ciphertext: Data produced by encrypt()
            key_material: Key material string returned by encrypt()

        Returns:
            Decrypted plaintext

        Raises:
            MalformedKeyError: If the key material cannot be parsed
            DecryptionError: If the key is wrong or the data is corrupted
        """
        material = decode(key_material)
        try:
            return AESGCM(material.key).decrypt(material.iv, bytes(ciphertext), None)
        except (InvalidTag, ValueError):
            raise DecryptionError()

    def encrypt_file(
        self,
        source_path: Path,
        dest_path: Path,
        cancel_event: Optional[threading.Event] = None,
        material: Optional[KeyMaterial] = None,
    ) -> EncryptedPayload:
        """
        Encrypt a file to disk in chunks.

        The output is written to a temporary file next to dest_path and only
        moved into place once encryption has finished.

        Args:
            source_path: File to encrypt
            dest_path: Destination for the ciphertext
            cancel_event: Set from another thread to abort
            material: Key material (generated if not provided)

        Returns:
            EncryptedPayload with an empty ciphertext field (data is on disk)

        Raises:
            OperationCancelledError: If cancel_event was set
        """
        material = material or KeyMaterial.generate()
        encryptor = Cipher(algorithms.AES(material.key), modes.GCM(material.iv)).encryptor()
        hasher = hashlib.new(checksum.ALGORITHM)

        def write(outfile):
            with open(source_path, "rb") as infile:
                while True:
                    _check_cancelled(cancel_event)
                    chunk = infile.read(self.chunk_size)
                    if not chunk:
                        break
                    hasher.update(chunk)
                    outfile.write(encryptor.update(chunk))
            _check_cancelled(cancel_event)
            outfile.write(encryptor.finalize())
            outfile.write(encryptor.tag)

        self._atomic_write(Path(dest_path), write)
        logger.debug("Encrypted %s -> %s", source_path, dest_path)

        return EncryptedPayload(
            ciphertext=b"",
            algorithm=self.algorithm,
            key_material=material.encode(),
            checksum=hasher.hexdigest(),
        )

    def decrypt_file(
        self,
        source_path: Path,
        dest_path: Path,
        key_material: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Decrypt a file to disk in chunks.

        Nothing is written to dest_path unless the authentication tag
        verifies.

        Args:
            source_path: Encrypted file
            dest_path: Destination for the plaintext
            key_material: Key material string
            cancel_event: Set from another thread to abort

        Returns:
            Checksum of the decrypted plaintext

        Raises:
            MalformedKeyError: If the key material cannot be parsed
            DecryptionError: If the key is wrong or the file is corrupted
            OperationCancelledError: If cancel_event was set
        """
        material = decode(key_material)
        source_path = Path(source_path)

        body_size = source_path.stat().st_size - TAG_SIZE
        if body_size < 0:
            raise DecryptionError()

        decryptor = Cipher(algorithms.AES(material.key), modes.GCM(material.iv)).decryptor()
        hasher = hashlib.new(checksum.ALGORITHM)

        def write(outfile):
            with open(source_path, "rb") as infile:
                remaining = body_size
                while remaining > 0:
                    _check_cancelled(cancel_event)
                    chunk = infile.read(min(self.chunk_size, remaining))
                    if not chunk:
                        raise DecryptionError()
                    remaining -= len(chunk)
                    plaintext = decryptor.update(chunk)
                    hasher.update(plaintext)
                    outfile.write(plaintext)
                tag = infile.read(TAG_SIZE)
            _check_cancelled(cancel_event)
            try:
                tail = decryptor.finalize_with_tag(tag)
            except (InvalidTag, ValueError):
                raise DecryptionError()
            hasher.update(tail)
            outfile.write(tail)

        self._atomic_write(Path(dest_path), write)
        logger.debug("Decrypted %s -> %s", source_path, dest_path)
        return hasher.hexdigest()

    @staticmethod
    def _atomic_write(dest_path: Path, write) -> None:
        """Run write(fileobj) against a temp file and rename it over dest_path."""
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=dest_path.parent, prefix=f".{dest_path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as outfile:
                write(outfile)
            os.replace(tmp_name, dest_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


# Module-level convenience functions

_default_engine: Optional[EncryptionEngine] = None


def get_engine() -> EncryptionEngine:
    """Get a shared engine configured from settings."""
    global _default_engine
    if _default_engine is None:
        from ..config import get_settings

        _default_engine = EncryptionEngine(chunk_size=get_settings().crypto.chunk_size)
    return _default_engine


def encrypt(plaintext: Union[bytes, bytearray]) -> EncryptedPayload:
    """Encrypt data with fresh key material."""
    return get_engine().encrypt(bytes(plaintext))


def decrypt(ciphertext: bytes, key_material: str) -> bytes:
    """Decrypt data with a key material string."""
    return get_engine().decrypt(ciphertext, key_material)
