"""Audit trail for security-relevant events.

Entries are kept newest-first in the persistence backend and mirrored to the
"secure_vault.audit" logger. Writing an entry is best-effort: a failing
backend is reported through logging and never blocks the operation that
produced the event.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from ..storage import PersistenceBackend
from ..utils.logging import get_logger

logger = get_logger("secure_vault.audit")

AUDIT_KEY = "audit_log"
MAX_ENTRIES = 1000


class LogLevel(Enum):
    """Severity of an audit entry."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    SECURITY = "SECURITY"


class LogCategory(Enum):
    """Area an audit entry belongs to."""

    AUTH = "Authentication"
    FILE = "File Operation"
    SECURITY = "Security"
    SYSTEM = "System"


_PY_LEVELS = {
    LogLevel.INFO: 20,
    LogLevel.WARNING: 30,
    LogLevel.ERROR: 40,
    LogLevel.SECURITY: 30,
}


@dataclass
class AuditEntry:
    """A single audit record."""

    timestamp: datetime
    level: LogLevel
    category: LogCategory
    message: str
    user: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        result = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "category": self.category.value,
            "message": self.message,
        }
        if self.user:
            result["user"] = self.user
        if self.details:
            result["details"] = self.details
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEntry":
        """Create from dictionary."""
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            level=LogLevel(data["level"]),
            category=LogCategory(data["category"]),
            message=data["message"],
            user=data.get("user"),
            details=data.get("details") or {},
        )


class AuditLog:
    """Append-only, size-capped audit trail."""

    def __init__(
        self,
        backend: PersistenceBackend,
        max_entries: int = MAX_ENTRIES,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.backend = backend
        self.max_entries = max_entries
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record(
        self,
        level: LogLevel,
        category: LogCategory,
        message: str,
        user: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> Optional[AuditEntry]:
        """
        Add an entry to the trail.

        Returns:
            The stored entry, or None if the backend failed
        """
        entry = AuditEntry(
            timestamp=self._clock(),
            level=level,
            category=category,
            message=message,
            user=user,
            details=dict(details or {}),
        )
        logger.log(_PY_LEVELS[level], "[%s] %s (user=%s)", category.value, message, user or "-")

        try:
            entries = self.backend.load(AUDIT_KEY, [])
            entries.insert(0, entry.to_dict())
            del entries[self.max_entries:]
            self.backend.save(AUDIT_KEY, entries)
        except Exception as e:
            logger.warning("Failed to persist audit entry: %s", e)
            return None

        return entry

    def info(self, category: LogCategory, message: str, **kwargs) -> Optional[AuditEntry]:
        return self.record(LogLevel.INFO, category, message, **kwargs)

    def warning(self, category: LogCategory, message: str, **kwargs) -> Optional[AuditEntry]:
        return self.record(LogLevel.WARNING, category, message, **kwargs)

    def error(self, category: LogCategory, message: str, **kwargs) -> Optional[AuditEntry]:
        return self.record(LogLevel.ERROR, category, message, **kwargs)

    def security(self, category: LogCategory, message: str, **kwargs) -> Optional[AuditEntry]:
        return self.record(LogLevel.SECURITY, category, message, **kwargs)

    def entries(
        self,
        level: Optional[LogLevel] = None,
        category: Optional[LogCategory] = None,
        limit: Optional[int] = None,
    ) -> list[AuditEntry]:
        """
        Read entries newest-first, optionally filtered.

        Args:
            level: Only entries with this level
            category: Only entries in this category
            limit: Maximum number of entries

        Returns:
            List of AuditEntry
        """
        results = []
        for data in self.backend.load(AUDIT_KEY, []):
            entry = AuditEntry.from_dict(data)
            if level is not None and entry.level != level:
                continue
            if category is not None and entry.category != category:
                continue
            results.append(entry)
            if limit is not None and len(results) >= limit:
                break
        return results

    def clear(self) -> None:
        """Remove all entries."""
        self.backend.delete(AUDIT_KEY)
