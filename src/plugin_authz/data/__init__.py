"""
Data layer for plugin authorization.

Contains the permission models, the upsert DTOs built from manifest rules,
and the repositories that persist them.
"""

from .models import (
    TimeWindow,
    WindowType,
    AssignmentSource,
    ConcretePermission,
    PluginPermission,
    PermissionTag,
    PluginPermissionTag,
    PermissionTagItem,
    PluginRoutePermission,
    RouteStatus,
    AssignmentMorph,
)
from .dto import UpsertDto, DTO_CLASSES
from .repos import PermissionRepository, InMemoryPermissionRepository, UpsertOutcome

__all__ = [
    "TimeWindow",
    "WindowType",
    "AssignmentSource",
    "ConcretePermission",
    "PluginPermission",
    "PermissionTag",
    "PluginPermissionTag",
    "PermissionTagItem",
    "PluginRoutePermission",
    "RouteStatus",
    "AssignmentMorph",
    "UpsertDto",
    "DTO_CLASSES",
    "PermissionRepository",
    "InMemoryPermissionRepository",
    "UpsertOutcome",
]
