"""Data models for concrete permissions, assignments, tags and routes."""

from .permissions import (
    WindowType,
    TimeWindow,
    AssignmentSource,
    ConcretePermission,
    DbPermission,
    FilePermission,
    NotificationPermission,
    ModulePermission,
    NetworkPermission,
    CodecPermission,
    CONCRETE_MODELS,
    PluginPermission,
    PermissionTag,
    PluginPermissionTag,
    PermissionTagItem,
    RouteStatus,
    PluginRoutePermission,
    AssignmentMorph,
)

__all__ = [
    "WindowType",
    "TimeWindow",
    "AssignmentSource",
    "ConcretePermission",
    "DbPermission",
    "FilePermission",
    "NotificationPermission",
    "ModulePermission",
    "NetworkPermission",
    "CodecPermission",
    "CONCRETE_MODELS",
    "PluginPermission",
    "PermissionTag",
    "PluginPermissionTag",
    "PermissionTagItem",
    "RouteStatus",
    "PluginRoutePermission",
    "AssignmentMorph",
]
