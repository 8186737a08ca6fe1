"""Configuration for SecureVault."""

from .settings import (
    CryptoConfig,
    MFAConfig,
    SessionConfig,
    Settings,
    StorageConfig,
    configure,
    get_settings,
)

__all__ = [
    "Settings",
    "CryptoConfig",
    "SessionConfig",
    "MFAConfig",
    "StorageConfig",
    "get_settings",
    "configure",
]
