"""In-memory remote store with upsert semantics."""

import copy
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .base import (
    BaseUpsertClient,
    RemoteError,
    RemoteErrorKind,
    SelectResult,
    UpsertResult,
)

logger = logging.getLogger(__name__)


class InMemoryUpsertClient(BaseUpsertClient):
    """
    Remote store kept in process memory.

    Used for dry runs and tests. When unique constraints are declared for a
    table, an upsert must name one of them as its conflict target, as
    PostgreSQL requires for ``ON CONFLICT``.
    """

    def __init__(
        self,
        unique_constraints: Optional[Dict[str, Sequence[Sequence[str]]]] = None,
        available: bool = True
    ):
        self.available = available
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        self._constraints: Dict[str, List[Tuple[str, ...]]] = {
            table: [tuple(cols) for cols in constraints]
            for table, constraints in (unique_constraints or {}).items()
        }

    def declare_unique(self, table: str, *columns: str) -> None:
        """Declare a unique constraint on ``table``."""
        self._constraints.setdefault(table, []).append(tuple(columns))

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """Copies of the rows currently stored in ``table``."""
        return copy.deepcopy(self._tables.get(table, []))

    def _matches_constraint(self, table: str, on_conflict: Tuple[str, ...]) -> bool:
        constraints = self._constraints.get(table)
        if not constraints:
            return True
        return any(set(c) == set(on_conflict) for c in constraints)

    def upsert(
        self,
        table: str,
        row: Dict[str, Any],
        on_conflict: Sequence[str]
    ) -> UpsertResult:
        """Insert or overwrite a row keyed by the conflict-target columns."""
        if not self.available:
            return UpsertResult(
                table=table,
                row=row,
                error=RemoteError(kind=RemoteErrorKind.CONNECTIVITY, message="Remote store unavailable"),
            )

        target = tuple(on_conflict)
        if not self._matches_constraint(table, target):
            return UpsertResult(
                table=table,
                row=row,
                error=RemoteError(
                    kind=RemoteErrorKind.CONSTRAINT_VIOLATION,
                    message="there is no unique or exclusion constraint matching the ON CONFLICT specification",
                    code="42P10",
                ),
            )

        missing = [col for col in target if row.get(col) is None]
        if missing:
            return UpsertResult(
                table=table,
                row=row,
                error=RemoteError(
                    kind=RemoteErrorKind.CONSTRAINT_VIOLATION,
                    message=f"null value in conflict column(s): {', '.join(missing)}",
                    code="23502",
                ),
            )

        stored = self._tables.setdefault(table, [])
        for existing in stored:
            if all(existing.get(col) == row[col] for col in target):
                existing.update(copy.deepcopy(row))
                logger.debug(f"Updated row in {table} for {target}")
                return UpsertResult(table=table, success=True, row=row)

        stored.append(copy.deepcopy(row))
        logger.debug(f"Inserted row into {table}")
        return UpsertResult(table=table, success=True, row=row)

    def select_single(
        self,
        table: str,
        filters: Dict[str, Any],
        columns: str = "*"
    ) -> SelectResult:
        """Return the first row whose columns equal ``filters``."""
        if not self.available:
            return SelectResult(
                table=table,
                error=RemoteError(kind=RemoteErrorKind.CONNECTIVITY, message="Remote store unavailable"),
            )

        for row in self._tables.get(table, []):
            if all(row.get(col) == value for col, value in filters.items()):
                if columns == "*":
                    return SelectResult(table=table, row=copy.deepcopy(row))
                wanted = [c.strip() for c in columns.split(",")]
                return SelectResult(table=table, row={c: copy.deepcopy(row.get(c)) for c in wanted})

        return SelectResult(table=table)

    def validate_connection(self) -> bool:
        return self.available
