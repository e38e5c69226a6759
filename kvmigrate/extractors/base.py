"""Base local store interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime

from ..models.record import RawLocalRecord


@dataclass
class ExtractionResult:
    """Snapshot of the local keys matched by a predicate."""
    pattern: str
    records: List[Tuple[str, RawLocalRecord]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_matched(self) -> int:
        return len(self.records) + len(self.skipped) + len(self.errors)

    @property
    def success(self) -> bool:
        """Check if every matched key could be read."""
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "pattern": self.pattern,
            "keys": [key for key, _ in self.records],
            "total_matched": self.total_matched,
            "skipped": self.skipped,
            "errors": self.errors,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class LocalStore(ABC):
    """
    Client-side key/value store holding serialized strings.

    Implementations must treat ``remove`` of a missing key as a no-op.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the raw value of ``key``, or None when absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key`` if present."""
        pass

    @abstractmethod
    def list_keys(self) -> List[str]:
        """Return the keys currently present."""
        pass

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
