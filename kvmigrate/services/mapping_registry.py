"""Registry of local key to remote table mappings."""

import json
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from pydantic import ValidationError

from .transformer import TransformEngine
from ..errors import ConfigurationError
from ..models.mapping import (
    MappingEntry,
    DynamicMappingEntry,
    MappingFileConfig,
    PrefixMatcher,
    KeySuffixExtractor,
)

logger = logging.getLogger(__name__)


class MappingRegistry:
    """
    Ordered, immutable set of mapping entries.

    Holds the static entries (one local key each) and at most one dynamic
    entry whose keys are discovered by predicate. Order only affects log
    output; entries are migrated independently.
    """

    def __init__(
        self,
        entries: Iterable[MappingEntry] = (),
        dynamic_entry: Optional[DynamicMappingEntry] = None
    ):
        self._entries = tuple(entries)
        self._by_key = {entry.key: entry for entry in self._entries}
        self._dynamic_entry = dynamic_entry

    @property
    def entries(self):
        return self._entries

    @property
    def dynamic_entry(self) -> Optional[DynamicMappingEntry]:
        return self._dynamic_entry

    def __iter__(self) -> Iterator[MappingEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[MappingEntry]:
        """Get the static entry for an exact key."""
        return self._by_key.get(key)

    def entry_for(self, key: str) -> Optional[Union[MappingEntry, DynamicMappingEntry]]:
        """Find the entry that would migrate ``key``, static entries first."""
        entry = self.get(key)
        if entry is not None:
            return entry
        if self._dynamic_entry is not None and self._dynamic_entry.matcher(key):
            return self._dynamic_entry
        return None

    def validate(self) -> List[str]:
        """
        Check the registry for entries that would collide.

        Returns:
            List of validation error messages
        """
        errors = []
        seen = set()

        for entry in self._entries:
            if entry.key in seen:
                errors.append(f"Duplicate mapping for key {entry.key}")
            seen.add(entry.key)

            if self._dynamic_entry is not None and self._dynamic_entry.matcher(entry.key):
                errors.append(
                    f"Key {entry.key} is also matched by dynamic family {self._dynamic_entry.pattern}"
                )

        targets: Dict[str, tuple] = {}
        all_entries: List[Union[MappingEntry, DynamicMappingEntry]] = list(self._entries)
        if self._dynamic_entry is not None:
            all_entries.append(self._dynamic_entry)

        for entry in all_entries:
            previous = targets.setdefault(entry.table, entry.conflict_target)
            if previous != entry.conflict_target:
                errors.append(
                    f"Table {entry.table} is written with conflict targets "
                    f"{previous} and {entry.conflict_target}"
                )

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "mappings": [entry.to_dict() for entry in self._entries],
            "dynamic": self._dynamic_entry.to_dict() if self._dynamic_entry else None,
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        transformer: Optional[TransformEngine] = None
    ) -> "MappingRegistry":
        """
        Build a registry from a mapping file's contents.

        Transforms are referenced by name and resolved through ``transformer``.

        Raises:
            ConfigurationError: if the data is invalid or entries collide
        """
        transformer = transformer or TransformEngine()

        try:
            config = MappingFileConfig.model_validate(data)
            entries = [item.to_entry(transformer.resolve) for item in config.mappings]
            dynamic = config.dynamic.to_entry(transformer.resolve) if config.dynamic else None
        except ValidationError as e:
            raise ConfigurationError(f"Invalid mapping configuration: {e}")
        except ValueError as e:
            raise ConfigurationError(str(e))

        registry = cls(entries, dynamic)
        errors = registry.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))

        logger.info(f"Loaded {len(entries)} mappings" + (f" and dynamic family {dynamic.pattern}" if dynamic else ""))
        return registry

    @classmethod
    def from_json_file(
        cls,
        file_path: str,
        transformer: Optional[TransformEngine] = None
    ) -> "MappingRegistry":
        """Load a registry from a JSON mapping file."""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data, transformer)


BMC_PREFIX = "bmc-"

DEFAULT_MAPPINGS = (
    MappingEntry(
        key="ideaVault",
        table="ideas",
        payload_field="idea_data",
        record_id_field="id",
    ),
    MappingEntry(
        key="mvp_studio_projects",
        table="mvp_studio_projects",
        payload_field="project_data",
        record_id_field="project_id",
    ),
    MappingEntry(
        key="builder-blueprint-history",
        table="builder_context",
        payload_field="context_data",
        record_id_field="project_id",
    ),
    MappingEntry(
        key="ideaforge_ideas",
        table="ideaforge_data",
        payload_field="idea_data",
        record_id_field="idea_id",
    ),
    MappingEntry(
        key="public_feedback_ideas",
        table="public_feedback_ideas",
        payload_field="feedback_data",
        record_id_field="id",
    ),
    MappingEntry(
        key="notificationPreferences",
        table="notification_preferences",
        payload_field="preferences",
        record_id_field="id",
    ),
    MappingEntry(
        key="chat-notification-preferences",
        table="chat_notification_preferences",
        payload_field="preferences",
        record_id_field="id",
    ),
)

# Business model canvases are stored as bmc-<ideaId>, plus one shared bmc-canvas.
BMC_MAPPING = DynamicMappingEntry(
    pattern=f"{BMC_PREFIX}*",
    matcher=PrefixMatcher(BMC_PREFIX),
    table="bmc_canvas_data",
    payload_field="canvas_data",
    key_field="canvas_id",
    suffix_field="idea_id",
    suffix_extractor=KeySuffixExtractor(BMC_PREFIX, exclude=("bmc-canvas",)),
)


def default_registry() -> MappingRegistry:
    """The application's built-in mapping table."""
    return MappingRegistry(DEFAULT_MAPPINGS, BMC_MAPPING)
