"""Remote store clients."""

from .base import (
    BaseUpsertClient,
    RemoteError,
    RemoteErrorKind,
    SelectResult,
    UpsertResult,
)
from .memory_loader import InMemoryUpsertClient
from .postgrest_loader import PostgRESTClient

__all__ = [
    "BaseUpsertClient",
    "RemoteError",
    "RemoteErrorKind",
    "SelectResult",
    "UpsertResult",
    "InMemoryUpsertClient",
    "PostgRESTClient",
]
