"""Service layer for the migration engine."""

from .mapping_registry import MappingRegistry, default_registry
from .transformer import TransformEngine
from .completion_flag import CompletionFlagStore
from .identity import (
    Identity,
    IdentityProvider,
    StaticIdentityProvider,
    PostgRESTAuthIdentityProvider,
)

__all__ = [
    "MappingRegistry",
    "default_registry",
    "TransformEngine",
    "CompletionFlagStore",
    "Identity",
    "IdentityProvider",
    "StaticIdentityProvider",
    "PostgRESTAuthIdentityProvider",
]
