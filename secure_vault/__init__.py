"""SecureVault - encrypted file vault core.

Per-file AES-256-GCM encryption with user-held key material, and an
account/session layer with optional TOTP multi-factor authentication.
"""

__version__ = "0.1.0"

from .auth import SessionManager, create_session_manager
from .crypto import EncryptionEngine, KeyMaterial, digest
from .files import VaultFacade

__all__ = [
    "__version__",
    "EncryptionEngine",
    "KeyMaterial",
    "digest",
    "SessionManager",
    "create_session_manager",
    "VaultFacade",
]
