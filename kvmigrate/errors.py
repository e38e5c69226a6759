"""Exceptions raised inside the migration engine."""

from typing import Optional


class MigrationError(Exception):
    """Base class for migration errors."""


class ConfigurationError(MigrationError):
    """Invalid mapping or runtime configuration."""


class PayloadDecodeError(MigrationError):
    """A local value could not be parsed as JSON."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Malformed payload for {key}: {reason}")


class TransformError(MigrationError):
    """A mapping's transform raised while converting a payload."""

    def __init__(self, key: str, reason: str, index: Optional[int] = None):
        self.key = key
        self.reason = reason
        self.index = index
        where = f"item {index} of {key}" if index is not None else key
        super().__init__(f"Transform failed for {where}: {reason}")
