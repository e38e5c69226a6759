"""Base upsert client interface for the remote store."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence
from enum import Enum
import logging

from ..models.record import TransformedRow

logger = logging.getLogger(__name__)


class RemoteErrorKind(str, Enum):
    """Classes of remote failure the orchestrator can tell apart."""
    CONSTRAINT_VIOLATION = "constraint_violation"
    CONNECTIVITY = "connectivity"
    TIMEOUT = "timeout"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = (RemoteErrorKind.CONNECTIVITY, RemoteErrorKind.TIMEOUT)


@dataclass
class RemoteError:
    """A structured failure reported by the remote store."""
    kind: RemoteErrorKind
    message: str
    code: Optional[str] = None  # SQLSTATE or API error code
    status_code: Optional[int] = None
    details: Optional[Dict[str, Any]] = None

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} (code {self.code})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }


@dataclass
class UpsertResult:
    """Result of upserting one row."""
    table: str
    success: bool = False
    row: Dict[str, Any] = field(default_factory=dict)
    error: Optional[RemoteError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class SelectResult:
    """Result of reading at most one row."""
    table: str
    row: Optional[Dict[str, Any]] = None
    error: Optional[RemoteError] = None

    @property
    def found(self) -> bool:
        return self.row is not None


class BaseUpsertClient(ABC):
    """
    Base class for remote store clients.

    Clients write rows with an explicit conflict target so that repeated
    writes of the same logical row overwrite rather than duplicate.
    Failures are returned as RemoteError values instead of being raised.
    """

    @abstractmethod
    def upsert(
        self,
        table: str,
        row: Dict[str, Any],
        on_conflict: Sequence[str]
    ) -> UpsertResult:
        """
        Insert ``row`` or overwrite the row sharing its conflict-target values.

        Args:
            table: Destination table
            row: Column values to write
            on_conflict: Columns of the unique constraint to resolve against

        Returns:
            UpsertResult indicating success/failure
        """
        pass

    @abstractmethod
    def select_single(
        self,
        table: str,
        filters: Dict[str, Any],
        columns: str = "*"
    ) -> SelectResult:
        """
        Read the single row whose columns equal ``filters``.

        A missing row is not an error: the result has ``row=None``.
        """
        pass

    def upsert_row(self, row: TransformedRow) -> UpsertResult:
        """Upsert a transformed row using its own conflict target."""
        data = row.to_row()
        try:
            return self.upsert(row.table, data, row.conflict_target)
        except Exception as e:
            logger.error(f"Unexpected failure writing to {row.table}: {e}")
            return UpsertResult(
                table=row.table,
                success=False,
                row=data,
                error=RemoteError(kind=RemoteErrorKind.UNKNOWN, message=str(e)),
            )

    def validate_connection(self) -> bool:
        """Validate the connection to the remote store."""
        return True
