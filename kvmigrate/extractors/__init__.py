"""Local key/value stores and the reader used to extract their values."""

from .base import LocalStore, ExtractionResult
from .reader import LocalStoreReader, parse_payload
from .stores import InMemoryLocalStore, JsonFileLocalStore

__all__ = [
    "LocalStore",
    "ExtractionResult",
    "LocalStoreReader",
    "parse_payload",
    "InMemoryLocalStore",
    "JsonFileLocalStore",
]
