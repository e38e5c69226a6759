"""Reads and decodes local store values for migration."""

import json
import logging
from typing import Callable, Optional
from datetime import datetime, timezone

from .base import LocalStore, ExtractionResult
from ..errors import PayloadDecodeError
from ..models.record import RawLocalRecord, SinglePayload, ManyPayload

logger = logging.getLogger(__name__)


def parse_payload(raw: Optional[str], key: str = "") -> Optional[RawLocalRecord]:
    """
    Decode a raw local value into a single or array payload.

    Returns None for absent or empty values (missing key, blank string,
    ``null``, ``[]``, ``{}``). Raises PayloadDecodeError for invalid JSON.
    """
    if raw is None or not raw.strip():
        return None

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise PayloadDecodeError(key, str(e))

    if data is None or data in ("", [], {}):
        return None

    if isinstance(data, list):
        return ManyPayload(tuple(data))

    return SinglePayload(data)


class LocalStoreReader:
    """
    Reader over a LocalStore.

    Handles:
    - Exact key reads
    - Predicate-based discovery over a snapshot of the key list
    - Safe removal of migrated keys
    """

    def __init__(self, store: LocalStore):
        self.store = store

    def read_exact(self, key: str) -> Optional[RawLocalRecord]:
        """Read one key; None when it is absent or holds empty data."""
        return parse_payload(self.store.get(key), key)

    def read_matching(
        self,
        matcher: Callable[[str], bool],
        pattern: str = ""
    ) -> ExtractionResult:
        """
        Read every key accepted by ``matcher``.

        The key list is copied before any value is read, so concurrent changes
        to the store cannot disturb the iteration. Keys that disappear or hold
        empty data are reported as skipped; malformed values as errors.
        """
        result = ExtractionResult(pattern=pattern)
        result.started_at = datetime.now(timezone.utc)

        keys = [key for key in list(self.store.list_keys()) if matcher(key)]

        for key in keys:
            try:
                record = self.read_exact(key)
            except PayloadDecodeError as e:
                result.errors.append({"key": key, "message": e.reason})
                logger.error(f"Could not decode {key}: {e.reason}")
                continue

            if record is None:
                result.skipped.append(key)
                continue

            result.records.append((key, record))

        result.completed_at = datetime.now(timezone.utc)
        logger.debug(f"Matched {result.total_matched} keys for {pattern or 'predicate'}")
        return result

    def remove(self, key: str) -> None:
        """Delete a key; missing keys are ignored."""
        self.store.remove(key)
