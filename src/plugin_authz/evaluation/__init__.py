"""Decisions: request types, checkers, listing and the permission service."""

from .result import Result, MorphRef
from .requests import (
    PermissionRequest,
    DbRequest,
    FileRequest,
    NotifyRequest,
    ModuleRequest,
    NetworkRequest,
    CodecRequest,
    RouteWriteRequest,
    request_from_dict,
)
from .checkers import (
    PermissionChecker,
    DbChecker,
    FileChecker,
    NotificationChecker,
    ModuleChecker,
    NetworkChecker,
    CodecChecker,
    RouteChecker,
    default_checkers,
)
from .listing import PermissionList, PermissionListItem, PermissionListOptions, PermissionLister
from .service import PermissionService

__all__ = [
    # Results
    "Result",
    "MorphRef",
    # Requests
    "PermissionRequest",
    "DbRequest",
    "FileRequest",
    "NotifyRequest",
    "ModuleRequest",
    "NetworkRequest",
    "CodecRequest",
    "RouteWriteRequest",
    "request_from_dict",
    # Checkers
    "PermissionChecker",
    "DbChecker",
    "FileChecker",
    "NotificationChecker",
    "ModuleChecker",
    "NetworkChecker",
    "CodecChecker",
    "RouteChecker",
    "default_checkers",
    # Listing
    "PermissionList",
    "PermissionListItem",
    "PermissionListOptions",
    "PermissionLister",
    # Service
    "PermissionService",
]
