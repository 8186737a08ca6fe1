"""Persistence backends for SecureVault."""

from typing import Optional

from ..config import Settings, get_settings
from .backend import MemoryBackend, PersistenceBackend
from .yaml_backend import YamlFileBackend


def create_backend(settings: Optional[Settings] = None) -> PersistenceBackend:
    """
    Create the backend selected in settings.

    Args:
        settings: Settings to read (uses global settings if not provided)

    Returns:
        A PersistenceBackend instance
    """
    settings = settings or get_settings()
    kind = settings.storage.backend

    if kind == "memory":
        return MemoryBackend()
    if kind == "yaml":
        return YamlFileBackend(settings.storage.data_dir)

    raise ValueError(f"Unknown storage backend: {kind!r}")


__all__ = [
    "PersistenceBackend",
    "MemoryBackend",
    "YamlFileBackend",
    "create_backend",
]
