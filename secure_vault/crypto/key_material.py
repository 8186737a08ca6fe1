"""Key material for per-file encryption.

Each encrypted file gets its own random AES-256 key and GCM nonce. The pair
travels as one user-copyable string:

    <base64 key>.<base64 iv>

The user saves this string when the file is uploaded; it is the only way to
decrypt the file again.
"""

import base64
import binascii
import os
from dataclasses import dataclass

from ..exceptions import EntropySourceError, MalformedKeyError

KEY_SIZE = 32  # 256 bits for AES-256
IV_SIZE = 12  # 96 bits for AES-GCM
SEPARATOR = "."


def random_bytes(size: int) -> bytes:
    """Read from the OS CSPRNG, failing loudly if it is unavailable."""
    try:
        return os.urandom(size)
    except (NotImplementedError, OSError) as e:
        raise EntropySourceError(f"Secure random source unavailable: {e}")


@dataclass(frozen=True)
class KeyMaterial:
    """A (key, iv) pair used for exactly one encryption."""

    key: bytes
    iv: bytes

    def __post_init__(self):
        if len(self.key) != KEY_SIZE:
            raise MalformedKeyError(f"Key must be {KEY_SIZE} bytes, got {len(self.key)}")
        if len(self.iv) != IV_SIZE:
            raise MalformedKeyError(f"IV must be {IV_SIZE} bytes, got {len(self.iv)}")

    @classmethod
    def generate(cls) -> "KeyMaterial":
        """Generate a fresh random key and IV."""
        return cls(key=random_bytes(KEY_SIZE), iv=random_bytes(IV_SIZE))

    def encode(self) -> str:
        return encode(self)

    def __repr__(self) -> str:
        return "KeyMaterial(key=<redacted>, iv=<redacted>)"


def encode(material: KeyMaterial) -> str:
    """
    Encode key material as a single transportable string.

    Args:
        material: Key and IV

    Returns:
        "<base64 key>.<base64 iv>"
    """
    key_b64 = base64.b64encode(material.key).decode("ascii")
    iv_b64 = base64.b64encode(material.iv).decode("ascii")
    return f"{key_b64}{SEPARATOR}{iv_b64}"


def _decode_segment(segment: str, name: str) -> bytes:
    if not segment:
        raise MalformedKeyError(f"Missing {name} segment")
    try:
        return base64.b64decode(segment, validate=True)
    except (binascii.Error, ValueError):
        raise MalformedKeyError(f"The {name} segment is not valid base64")


def decode(value: str) -> KeyMaterial:
    """
    Parse a key-material string.

    Args:
        value: String produced by encode(), possibly with surrounding whitespace

    Returns:
        KeyMaterial

    Raises:
        MalformedKeyError: If the string is not exactly two valid base64
            segments of the expected key and IV lengths
    """
    if not isinstance(value, str):
        raise MalformedKeyError("Key material must be a string")

    key_part, separator, iv_part = value.strip().partition(SEPARATOR)
    if not separator:
        raise MalformedKeyError("The key does not contain the initialization vector")

    # A second separator lands in iv_part and fails base64 validation
    key = _decode_segment(key_part, "key")
    iv = _decode_segment(iv_part, "IV")

    if len(key) != KEY_SIZE or len(iv) != IV_SIZE:
        raise MalformedKeyError("Key material has the wrong length")

    return KeyMaterial(key=key, iv=iv)
