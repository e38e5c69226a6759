"""Remote "migration done" flag, one row per identity."""

import logging
from typing import Optional
from datetime import datetime, timezone

from ..loaders.base import BaseUpsertClient
from ..models.migration import CompletionFlag
from ..models.record import utc_isoformat

logger = logging.getLogger(__name__)

DEFAULT_FLAG_TABLE = "user_settings"
DEFAULT_FLAG_KEY = "migration_localstorage_done"


class CompletionFlagStore:
    """
    Reads and writes the completion flag row.

    The row is ``{user_id, key, value, last_modified}`` with a unique
    constraint on ``(user_id, key)``. There is no lock around check-then-run:
    two concurrent runs may both see the flag unset, which is safe because
    every write they make is an idempotent upsert. The flag is only ever
    written as true.
    """

    def __init__(
        self,
        client: BaseUpsertClient,
        table: str = DEFAULT_FLAG_TABLE,
        flag_key: str = DEFAULT_FLAG_KEY,
        owner_field: str = "user_id"
    ):
        self.client = client
        self.table = table
        self.flag_key = flag_key
        self.owner_field = owner_field

    @property
    def conflict_target(self):
        return (self.owner_field, "key")

    def get_flag(self, identity_id: Optional[str]) -> Optional[CompletionFlag]:
        """Read the flag row; None when missing, unreadable, or no identity."""
        if not identity_id:
            return None

        try:
            result = self.client.select_single(
                self.table,
                {self.owner_field: identity_id, "key": self.flag_key},
                columns="value,last_modified",
            )
        except Exception as e:
            logger.error(f"Error checking migration status: {e}")
            return None

        if result.error:
            logger.error(f"Error checking migration status: {result.error}")
            return None

        if not result.found:
            return None

        return CompletionFlag.from_row(identity_id, result.row)

    def is_complete(self, identity_id: Optional[str]) -> bool:
        """True only when the flag row exists and holds true."""
        flag = self.get_flag(identity_id)
        return flag is not None and flag.value

    def mark_complete(self, identity_id: str, now: Optional[datetime] = None) -> bool:
        """
        Upsert the flag to true.

        Returns:
            True if the write was confirmed
        """
        now = now or datetime.now(timezone.utc)
        try:
            result = self.client.upsert(
                self.table,
                {
                    self.owner_field: identity_id,
                    "key": self.flag_key,
                    "value": True,
                    "last_modified": utc_isoformat(now),
                },
                self.conflict_target,
            )
        except Exception as e:
            logger.error(f"Failed to mark migration as complete: {e}")
            return False

        if not result.success:
            logger.error(f"Failed to mark migration as complete: {result.error}")
            return False

        logger.info("Migration marked as complete")
        return True
