"""Record models for migration data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union
from datetime import datetime, timezone


@dataclass(frozen=True)
class SinglePayload:
    """A local value holding one JSON object (or scalar)."""
    data: Any

    @property
    def items(self) -> List[Any]:
        return [self.data]

    def __len__(self) -> int:
        return 1


@dataclass(frozen=True)
class ManyPayload:
    """A local value holding a non-empty JSON array."""
    items: Tuple[Any, ...]

    @property
    def data(self) -> List[Any]:
        return list(self.items)

    def __len__(self) -> int:
        return len(self.items)


RawLocalRecord = Union[SinglePayload, ManyPayload]


def utc_isoformat(value: datetime) -> str:
    """Render a datetime as an ISO-8601 UTC string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


@dataclass(frozen=True)
class TransformedRow:
    """A destination row ready to be upserted."""
    table: str
    owner_field: str
    owner_id: str
    payload_field: str
    payload: Any
    last_modified: datetime
    record_id_field: Optional[str] = None
    record_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)
    source_key: str = ""
    index: Optional[int] = None  # Position inside an array payload

    @property
    def conflict_target(self) -> Tuple[str, ...]:
        if self.record_id_field:
            return (self.owner_field, self.record_id_field)
        return (self.owner_field,)

    def to_row(self) -> Dict[str, Any]:
        """Build the column dict sent to the remote store."""
        row = {
            self.owner_field: self.owner_id,
            self.payload_field: self.payload,
            "last_modified": utc_isoformat(self.last_modified),
        }
        if self.record_id_field:
            row[self.record_id_field] = self.record_id
        row.update(self.extra)
        return row


@dataclass
class KeyResult:
    """Outcome of migrating a single local key."""
    key: str
    migrated: int = 0
    errors: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    removed: bool = False

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "key": self.key,
            "migrated": self.migrated,
            "errors": self.errors,
            "skipped": self.skipped,
            "removed": self.removed,
        }
