"""File-based persistence using YAML records.

Layout:
    data_dir/accounts.yaml   - one YAML file per record key
    data_dir/session.yaml
    data_dir/blobs/<name>.bin - raw file content
"""

import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

import yaml

from ..exceptions import StorageError
from ..utils.logging import get_logger
from .backend import PersistenceBackend

logger = get_logger(__name__)

BLOB_DIR = "blobs"

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_name(name: str) -> str:
    if not _SAFE_NAME.match(name) or name.startswith("."):
        raise StorageError(f"Invalid storage key: {name!r}")
    return name


def _atomic_write(path: Path, data: bytes) -> None:
    """Write to a temp file in the same directory, then rename over path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class YamlFileBackend(PersistenceBackend):
    """Persists records as YAML files and blobs as raw files in a directory."""

    def __init__(self, data_dir: Path):
        """Initialize storage rooted at data_dir.

        Args:
            data_dir: Directory holding the vault's records and blobs
        """
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

    def ensure_data_dir(self) -> None:
        """Create the data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def record_path(self, key: str) -> Path:
        """Get path to a record file."""
        return self.data_dir / f"{_check_name(key)}.yaml"

    def blob_path(self, name: str) -> Path:
        """Get path to a blob file."""
        return self.data_dir / BLOB_DIR / f"{_check_name(name)}.bin"

    def load(self, key: str, default: Any = None) -> Any:
        path = self.record_path(key)
        with self._lock:
            if not path.exists():
                return default
            try:
                with open(path, encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                raise StorageError(f"Failed to read {key}: {e}")
        return default if data is None else data

    def save(self, key: str, value: Any) -> None:
        path = self.record_path(key)
        text = yaml.safe_dump(
            value,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        with self._lock:
            try:
                _atomic_write(path, text.encode("utf-8"))
            except OSError as e:
                raise StorageError(f"Failed to write {key}: {e}")

    def delete(self, key: str) -> bool:
        path = self.record_path(key)
        with self._lock:
            if path.exists():
                path.unlink()
                return True
            return False

    def read_blob(self, name: str) -> Optional[bytes]:
        path = self.blob_path(name)
        with self._lock:
            if not path.exists():
                return None
            return path.read_bytes()

    def write_blob(self, name: str, data: bytes) -> None:
        path = self.blob_path(name)
        with self._lock:
            try:
                _atomic_write(path, bytes(data))
            except OSError as e:
                raise StorageError(f"Failed to write blob {name}: {e}")

    def delete_blob(self, name: str) -> bool:
        path = self.blob_path(name)
        with self._lock:
            if path.exists():
                path.unlink()
                return True
            return False
