"""Persistence boundary for concrete permissions, assignments, tags and routes."""

from .base import Repository
from .permissions import (
    PermissionRepository,
    InMemoryPermissionRepository,
    ConcretePermissionRepository,
    UpsertOutcome,
)

__all__ = [
    "Repository",
    "PermissionRepository",
    "InMemoryPermissionRepository",
    "ConcretePermissionRepository",
    "UpsertOutcome",
]
