"""Utility modules for SecureVault."""

from .logging import (
    RedactSecretsFilter,
    console,
    get_logger,
    redact,
    setup_logging,
)


__all__ = [
    "setup_logging",
    "get_logger",
    "console",
    "RedactSecretsFilter",
    "redact",
]
