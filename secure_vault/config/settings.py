"""Configuration settings for SecureVault."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

# NOTE: load_dotenv() is called in CLI main.py for faster module imports


@dataclass
class CryptoConfig:
    """Configuration for file encryption and password hashing."""

    pbkdf2_iterations: int = 480_000  # OWASP 2023 recommendation
    salt_size: int = 32  # 256 bits
    chunk_size: int = 64 * 1024  # 64KB chunks for file streaming


@dataclass
class SessionConfig:
    """Configuration for the session lifecycle."""

    session_lifetime_minutes: int = 30  # Sliding, renewed on activity
    inactivity_timeout_minutes: int = 10  # 0 = no inactivity check
    pending_mfa_timeout_minutes: int = 5
    touch_persist_interval_seconds: int = 30
    min_password_length: int = 8


@dataclass
class MFAConfig:
    """Configuration for TOTP multi-factor authentication."""

    issuer: str = "SecureVault"
    digits: int = 6
    step_seconds: int = 30
    valid_window: int = 1  # Steps accepted either side of now
    secret_bytes: int = 20


@dataclass
class StorageConfig:
    """Configuration for the persistence backend."""

    backend: str = "yaml"  # "yaml" or "memory"
    data_dir: Path = field(default_factory=lambda: Path.home() / ".secure_vault")
    audit_max_entries: int = 1000


@dataclass
class Settings:
    """Main settings container."""

    crypto: CryptoConfig = field(default_factory=CryptoConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    mfa: MFAConfig = field(default_factory=MFAConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create settings from environment variables.

        Environment variables:
            SECURE_VAULT_SESSION_LIFETIME: Sliding session lifetime in minutes
            SECURE_VAULT_INACTIVITY_TIMEOUT: Inactivity timeout in minutes (0 disables)
            SECURE_VAULT_PBKDF2_ITERATIONS: Password hashing iteration count
            SECURE_VAULT_MFA_ISSUER: Issuer shown in authenticator apps
            SECURE_VAULT_STORAGE: Persistence backend ("yaml" or "memory")
            SECURE_VAULT_DATA_DIR: Directory for the YAML backend
            SECURE_VAULT_LOG_LEVEL: Log level
            SECURE_VAULT_LOG_FILE: Optional log file
        """
        settings = cls()

        if lifetime := os.getenv("SECURE_VAULT_SESSION_LIFETIME"):
            settings.session.session_lifetime_minutes = int(lifetime)

        if timeout := os.getenv("SECURE_VAULT_INACTIVITY_TIMEOUT"):
            settings.session.inactivity_timeout_minutes = int(timeout)

        if iterations := os.getenv("SECURE_VAULT_PBKDF2_ITERATIONS"):
            settings.crypto.pbkdf2_iterations = int(iterations)

        if issuer := os.getenv("SECURE_VAULT_MFA_ISSUER"):
            settings.mfa.issuer = issuer

        if backend := os.getenv("SECURE_VAULT_STORAGE"):
            settings.storage.backend = backend.lower()

        if data_dir := os.getenv("SECURE_VAULT_DATA_DIR"):
            settings.storage.data_dir = Path(data_dir)

        if log_level := os.getenv("SECURE_VAULT_LOG_LEVEL"):
            settings.log_level = log_level

        if log_file := os.getenv("SECURE_VAULT_LOG_FILE"):
            settings.log_file = Path(log_file)

        return settings


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def configure(settings: Optional[Settings]) -> None:
    """Set the global settings instance (None reloads from the environment)."""
    global _settings
    _settings = settings
