"""Mapping models describing how local keys land in remote tables."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class TransformType(str, Enum):
    """Built-in payload transforms that mapping files can reference by name."""
    IDENTITY = "identity"
    DROP_NULLS = "drop_nulls"


def identity(payload: Any) -> Any:
    """Return the payload unchanged."""
    return payload


@dataclass(frozen=True)
class PrefixMatcher:
    """Key predicate matching every key that starts with ``prefix``.

    Keys listed in ``also`` match as well, even without the prefix.
    """
    prefix: str
    also: Tuple[str, ...] = ()

    def __call__(self, key: str) -> bool:
        return key.startswith(self.prefix) or key in self.also

    @property
    def label(self) -> str:
        return f"{self.prefix}*"


@dataclass(frozen=True)
class KeySuffixExtractor:
    """
    Derive a sub-entity id from a dynamic key name.

    ``bmc-42`` with prefix ``bmc-`` yields ``"42"``. Keys in ``exclude``,
    keys without the prefix, and keys that are only the prefix yield None.
    """
    prefix: str
    exclude: Tuple[str, ...] = ()

    def __call__(self, key: str) -> Optional[str]:
        if key in self.exclude or not key.startswith(self.prefix):
            return None
        suffix = key[len(self.prefix):]
        return suffix or None


@dataclass(frozen=True)
class MappingEntry:
    """One migratable local key and the table it is written to."""
    key: str
    table: str
    payload_field: str
    owner_field: str = "user_id"
    record_id_field: Optional[str] = None
    record_id_source: str = "id"
    transform: Callable[[Any], Any] = field(default=identity, compare=False)
    expand_arrays: bool = True

    @property
    def conflict_target(self) -> Tuple[str, ...]:
        """Columns the destination's unique constraint is declared on."""
        if self.record_id_field:
            return (self.owner_field, self.record_id_field)
        return (self.owner_field,)

    @property
    def label(self) -> str:
        return self.key

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "key": self.key,
            "table": self.table,
            "owner_field": self.owner_field,
            "payload_field": self.payload_field,
            "record_id_field": self.record_id_field,
            "record_id_source": self.record_id_source,
            "expand_arrays": self.expand_arrays,
            "conflict_target": list(self.conflict_target),
        }


@dataclass(frozen=True)
class DynamicMappingEntry:
    """
    A family of local keys discovered by predicate rather than by name.

    Every matched key becomes exactly one row. The full key name is written to
    ``key_field``, which together with ``owner_field`` forms the conflict
    target. When ``suffix_field`` is set, ``suffix_extractor`` derives its
    value from the key name.
    """
    pattern: str
    matcher: Callable[[str], bool]
    table: str
    payload_field: str
    key_field: str
    owner_field: str = "user_id"
    suffix_field: Optional[str] = None
    suffix_extractor: Optional[Callable[[str], Optional[str]]] = None
    transform: Callable[[Any], Any] = field(default=identity, compare=False)

    # Dynamic rows are addressed by key, so arrays are never split.
    expand_arrays = False
    record_id_source = None

    @property
    def record_id_field(self) -> str:
        return self.key_field

    @property
    def conflict_target(self) -> Tuple[str, ...]:
        return (self.owner_field, self.key_field)

    @property
    def label(self) -> str:
        return self.pattern

    def extra_fields(self, key: str) -> Dict[str, Any]:
        """Identifying fields derived from the key name itself."""
        if not self.suffix_field or self.suffix_extractor is None:
            return {}
        suffix = self.suffix_extractor(key)
        if suffix is None:
            return {}
        return {self.suffix_field: suffix}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "pattern": self.pattern,
            "table": self.table,
            "owner_field": self.owner_field,
            "payload_field": self.payload_field,
            "key_field": self.key_field,
            "suffix_field": self.suffix_field,
            "conflict_target": list(self.conflict_target),
        }


# Mapping file models

class MappingEntryConfig(BaseModel):
    key: str = Field(min_length=1)
    table: str = Field(min_length=1)
    payload_field: str = Field(min_length=1)
    owner_field: str = Field(default="user_id", min_length=1)
    record_id_field: Optional[str] = None
    record_id_source: str = "id"
    transform: str = TransformType.IDENTITY.value
    expand_arrays: bool = True

    @field_validator("record_id_field")
    @classmethod
    def _blank_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    def to_entry(self, resolve: Callable[[str], Callable[[Any], Any]]) -> MappingEntry:
        return MappingEntry(
            key=self.key,
            table=self.table,
            payload_field=self.payload_field,
            owner_field=self.owner_field,
            record_id_field=self.record_id_field,
            record_id_source=self.record_id_source,
            transform=resolve(self.transform),
            expand_arrays=self.expand_arrays,
        )


class DynamicMappingConfig(BaseModel):
    prefix: str = Field(min_length=1)
    also: List[str] = Field(default_factory=list)
    table: str = Field(min_length=1)
    payload_field: str = Field(min_length=1)
    key_field: str = Field(min_length=1)
    owner_field: str = Field(default="user_id", min_length=1)
    suffix_field: Optional[str] = None
    suffix_exclude: List[str] = Field(default_factory=list)
    transform: str = TransformType.IDENTITY.value

    def to_entry(self, resolve: Callable[[str], Callable[[Any], Any]]) -> DynamicMappingEntry:
        matcher = PrefixMatcher(self.prefix, tuple(self.also))
        extractor = None
        if self.suffix_field:
            extractor = KeySuffixExtractor(self.prefix, tuple(self.suffix_exclude))
        return DynamicMappingEntry(
            pattern=matcher.label,
            matcher=matcher,
            table=self.table,
            payload_field=self.payload_field,
            key_field=self.key_field,
            owner_field=self.owner_field,
            suffix_field=self.suffix_field,
            suffix_extractor=extractor,
            transform=resolve(self.transform),
        )


class MappingFileConfig(BaseModel):
    mappings: List[MappingEntryConfig] = Field(default_factory=list)
    dynamic: Optional[DynamicMappingConfig] = None
