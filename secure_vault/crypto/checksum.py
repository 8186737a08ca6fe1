"""Content checksums for integrity verification.

Checksums are SHA-256 digests of file content rendered as lowercase hex.
Encrypted files carry the checksum of their plaintext so a successful
decrypt can be checked against what was originally uploaded.
"""

import hashlib
import secrets
from pathlib import Path
from typing import BinaryIO


ALGORITHM = "sha256"

# Default chunk size for reading large files (8 MB)
DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024


def digest(data: bytes) -> str:
    """
    Calculate the SHA-256 digest of bytes.

    Args:
        data: Bytes to hash

    Returns:
        Lowercase hexadecimal digest
    """
    return hashlib.sha256(data).hexdigest()


def digest_stream(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """
    Calculate the digest of a binary stream.

    Args:
        stream: Binary file-like object, read to the end
        chunk_size: Size of chunks to read

    Returns:
        Lowercase hexadecimal digest
    """
    hasher = hashlib.new(ALGORITHM)

    while chunk := stream.read(chunk_size):
        hasher.update(chunk)

    return hasher.hexdigest()


def digest_file(file_path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """
    Calculate the digest of a file on disk.

    Args:
        file_path: Path to the file
        chunk_size: Size of chunks to read

    Returns:
        Lowercase hexadecimal digest
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    with open(file_path, "rb") as f:
        return digest_stream(f, chunk_size)


def verify_checksum(data: bytes, expected: str) -> bool:
    """Check that data matches an expected hex digest."""
    expected = expected.strip().lower()
    if not expected.isascii():
        return False
    return secrets.compare_digest(digest(data), expected)


class ChecksumService:
    """Object form of the checksum functions, for injection into collaborators."""

    algorithm = ALGORITHM

    def digest(self, data: bytes) -> str:
        return digest(data)

    def digest_file(self, file_path: Path) -> str:
        return digest_file(file_path)

    def verify(self, data: bytes, expected: str) -> bool:
        return verify_checksum(data, expected)
