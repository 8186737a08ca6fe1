"""File encryption for SecureVault.

Usage:
    from secure_vault.crypto import EncryptionEngine, digest

    engine = EncryptionEngine()
    payload = engine.encrypt(data)
    # payload.key_material is shown to the user exactly once

    plaintext = engine.decrypt(payload.ciphertext, user_supplied_key)
    if digest(plaintext) != stored_checksum:
        ...  # content differs from what was uploaded
"""

from .checksum import (
    ChecksumService,
    digest,
    digest_file,
    digest_stream,
    verify_checksum,
)
from .engine import (
    ALGORITHM,
    EncryptedPayload,
    EncryptionEngine,
    decrypt,
    encrypt,
    get_engine,
)
from .key_material import (
    IV_SIZE,
    KEY_SIZE,
    KeyMaterial,
    decode as decode_key_material,
    encode as encode_key_material,
)

__all__ = [
    # Checksums
    "ChecksumService",
    "digest",
    "digest_file",
    "digest_stream",
    "verify_checksum",
    # Key material
    "KeyMaterial",
    "KEY_SIZE",
    "IV_SIZE",
    "encode_key_material",
    "decode_key_material",
    # Engine
    "ALGORITHM",
    "EncryptedPayload",
    "EncryptionEngine",
    "get_engine",
    "encrypt",
    "decrypt",
]
