"""Transformation engine for converting local payloads into destination rows."""

import logging
from typing import Any, Callable, Dict, List, Optional, Union
from datetime import datetime

from ..errors import TransformError
from ..models.mapping import (
    TransformType,
    MappingEntry,
    DynamicMappingEntry,
    identity,
)
from ..models.record import (
    ManyPayload,
    RawLocalRecord,
    TransformedRow,
)

logger = logging.getLogger(__name__)

AnyMappingEntry = Union[MappingEntry, DynamicMappingEntry]


class TransformEngine:
    """
    Engine for turning decoded local payloads into destination rows.

    Supports:
    - Built-in transformation functions
    - Custom transformation functions registered by name
    - One row per array item for static entries
    - Key-derived identifying fields for dynamic entries

    Transforms are pure: the modification timestamp is supplied by the caller.
    """

    def __init__(self):
        """Initialize the transform engine."""
        self._custom_transforms: Dict[str, Callable[[Any], Any]] = {}
        self._builtin_transforms = self._register_builtin_transforms()

    def _register_builtin_transforms(self) -> Dict[str, Callable[[Any], Any]]:
        """Register all built-in transformation functions."""
        return {
            TransformType.IDENTITY.value: identity,
            TransformType.DROP_NULLS.value: self._transform_drop_nulls,
        }

    def register_transform(self, name: str, func: Callable[[Any], Any]) -> None:
        """Register a custom transformation function."""
        self._custom_transforms[name] = func

    def resolve(self, name: str) -> Callable[[Any], Any]:
        """Look up a transform by name; custom transforms shadow built-ins."""
        func = self._custom_transforms.get(name) or self._builtin_transforms.get(name)
        if func is None:
            raise ValueError(f"Unknown transform: {name}")
        return func

    @property
    def available_transforms(self) -> List[str]:
        return sorted(set(self._builtin_transforms) | set(self._custom_transforms))

    def transform(
        self,
        record: RawLocalRecord,
        entry: AnyMappingEntry,
        owner_id: str,
        key: str,
        modified_at: datetime
    ) -> List[TransformedRow]:
        """
        Transform one local payload into destination rows.

        Args:
            record: Decoded payload of ``key``
            entry: Mapping entry the key belongs to
            owner_id: Id of the migrating identity
            key: Local key the payload was read from
            modified_at: Timestamp written as ``last_modified``

        Returns:
            One row per array item when the entry expands arrays,
            otherwise exactly one row.

        Raises:
            TransformError: if the entry's transform raises, or two items
                resolve to the same record id
        """
        expand = isinstance(record, ManyPayload) and entry.expand_arrays
        items = list(record.items) if expand else [record.data]

        extra: Dict[str, Any] = {}
        if isinstance(entry, DynamicMappingEntry):
            extra = entry.extra_fields(key)

        rows = []
        seen_ids: Dict[str, int] = {}
        for index, item in enumerate(items):
            try:
                payload = entry.transform(item)
            except Exception as e:
                raise TransformError(key, str(e), index if expand else None) from e

            rows.append(TransformedRow(
                table=entry.table,
                owner_field=entry.owner_field,
                owner_id=owner_id,
                payload_field=entry.payload_field,
                payload=payload,
                last_modified=modified_at,
                record_id_field=entry.record_id_field,
                record_id=self._record_id(entry, key, item, index),
                extra=dict(extra),
                source_key=key,
                index=index if expand else None,
            ))

            record_id = rows[-1].record_id
            if record_id is not None:
                if record_id in seen_ids:
                    raise TransformError(
                        key,
                        f"duplicate {entry.record_id_field} {record_id!r} (also item {seen_ids[record_id]})",
                        index,
                    )
                seen_ids[record_id] = index

        return rows

    def _record_id(
        self,
        entry: AnyMappingEntry,
        key: str,
        item: Any,
        index: int
    ) -> Optional[str]:
        """Value written to the entry's record id column."""
        if isinstance(entry, DynamicMappingEntry):
            return key

        if not entry.record_id_field:
            return None

        if isinstance(item, dict):
            value = item.get(entry.record_id_source)
            if value is not None and value != "":
                return str(value)

        # Positional ids keep re-runs pointed at the same rows. The key prefix
        # keeps them apart from ids taken from the payload.
        return f"{key}:{index}"

    # Built-in transform functions

    def _transform_drop_nulls(self, payload: Any) -> Any:
        """Remove top-level keys whose value is null."""
        if not isinstance(payload, dict):
            return payload
        return {k: v for k, v in payload.items() if v is not None}
