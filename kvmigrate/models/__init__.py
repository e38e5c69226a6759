"""Data models for the migration engine."""

from .mapping import (
    TransformType,
    PrefixMatcher,
    KeySuffixExtractor,
    MappingEntry,
    DynamicMappingEntry,
    MappingEntryConfig,
    DynamicMappingConfig,
    MappingFileConfig,
)
from .migration import (
    MigrationConfig,
    MigrationResult,
    MigrationStatus,
    MigrationStatusReport,
    CompletionFlag,
)
from .record import (
    SinglePayload,
    ManyPayload,
    RawLocalRecord,
    TransformedRow,
    KeyResult,
)

__all__ = [
    "TransformType",
    "PrefixMatcher",
    "KeySuffixExtractor",
    "MappingEntry",
    "DynamicMappingEntry",
    "MappingEntryConfig",
    "DynamicMappingConfig",
    "MappingFileConfig",
    "MigrationConfig",
    "MigrationResult",
    "MigrationStatus",
    "MigrationStatusReport",
    "CompletionFlag",
    "SinglePayload",
    "ManyPayload",
    "RawLocalRecord",
    "TransformedRow",
    "KeyResult",
]
