"""
Core authorization primitives.

Permission types, canonicalization, the checker/ingestor registry,
capability compilation and the capability cache.
"""

from .types import PermissionType, INGESTIBLE_TYPES
from .canonical import KeyBuilder, canonical_json, key_from_identity, normalize
from .registry import PermissionRegistry
from .cache import CapabilityCache

__all__ = [
    # Types
    "PermissionType",
    "INGESTIBLE_TYPES",
    # Canonicalization
    "KeyBuilder",
    "canonical_json",
    "key_from_identity",
    "normalize",
    # Dispatch and caching
    "PermissionRegistry",
    "CapabilityCache",
]
