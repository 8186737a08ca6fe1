"""Persistence interface shared by the credential store, sessions and files.

The core never knows where records live. One backend is chosen at startup
and injected into every component that persists state.

Records are plain data (dicts, lists, strings, numbers, booleans) addressed
by key. Blobs are raw bytes addressed by name and hold file content.
"""

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional


class PersistenceBackend(ABC):
    """Key-value persistence for records and binary blobs."""

    @abstractmethod
    def load(self, key: str, default: Any = None) -> Any:
        """Return the record stored under key, or default."""

    @abstractmethod
    def save(self, key: str, value: Any) -> None:
        """Store a record under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a record. Returns True if it existed."""

    @abstractmethod
    def read_blob(self, name: str) -> Optional[bytes]:
        """Return blob content, or None if missing."""

    @abstractmethod
    def write_blob(self, name: str, data: bytes) -> None:
        """Store blob content, replacing any previous content."""

    @abstractmethod
    def delete_blob(self, name: str) -> bool:
        """Remove a blob. Returns True if it existed."""


class MemoryBackend(PersistenceBackend):
    """In-process backend. State is lost when the process exits."""

    def __init__(self):
        self._records: dict[str, Any] = {}
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.RLock()

    def load(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._records:
                return default
            # Copies keep callers from mutating stored state in place
            return copy.deepcopy(self._records[key])

    def save(self, key: str, value: Any) -> None:
        with self._lock:
            self._records[key] = copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def read_blob(self, name: str) -> Optional[bytes]:
        with self._lock:
            return self._blobs.get(name)

    def write_blob(self, name: str, data: bytes) -> None:
        with self._lock:
            self._blobs[name] = bytes(data)

    def delete_blob(self, name: str) -> bool:
        with self._lock:
            return self._blobs.pop(name, None) is not None
