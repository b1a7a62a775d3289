"""
Permission Models

Concrete (deduplicated) permission rows per resource type, plugin
assignments (direct and tag-mediated), tags and route approvals.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, Field

from ...core.types import PermissionType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WindowType(str, Enum):
    """Kind of expiry window"""
    UNTIL = "until"  # absolute instant
    TTL = "ttl"      # duration from the assignment's start


class TimeWindow(BaseModel):
    """Optional expiry constraint on an assignment or tag pivot."""
    limited: bool = False
    type: Optional[WindowType] = None
    value: Optional[str] = None

    @classmethod
    def until(cls, instant: datetime | str) -> "TimeWindow":
        value = instant.isoformat() if isinstance(instant, datetime) else str(instant)
        return cls(limited=True, type=WindowType.UNTIL, value=value)

    @classmethod
    def ttl(cls, duration: int | str) -> "TimeWindow":
        return cls(limited=True, type=WindowType.TTL, value=str(duration))


class AssignmentSource(str, Enum):
    """Where a compiled capability came from"""
    DIRECT = "direct"
    TAG = "tag"


# =============================================================================
# Concrete permission rows
# =============================================================================

class ConcretePermission(BaseModel):
    """Base for all concrete rows; natural_key is unique per type."""
    id: int = 0
    natural_key: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    permission_type: ClassVar[PermissionType] = PermissionType.DB


class DbPermission(ConcretePermission):
    permission_type: ClassVar[PermissionType] = PermissionType.DB

    model: Optional[str] = None
    table: Optional[str] = None
    readable_columns: Optional[list[str]] = None  # None = unconstrained
    writable_columns: Optional[list[str]] = None
    permissions: dict[str, bool] = Field(default_factory=dict)


class FilePermission(ConcretePermission):
    permission_type: ClassVar[PermissionType] = PermissionType.FILE

    base_dir: str = ""
    paths: list[str] = Field(default_factory=list)
    follow_symlinks: bool = False
    permissions: dict[str, bool] = Field(default_factory=dict)


class NotificationPermission(ConcretePermission):
    permission_type: ClassVar[PermissionType] = PermissionType.NOTIFICATION

    channels: list[str] = Field(default_factory=list)
    templates_allowed: Optional[list[str]] = None
    recipients_allowed: Optional[list[str]] = None
    permissions: dict[str, bool] = Field(default_factory=dict)


class ModulePermission(ConcretePermission):
    permission_type: ClassVar[PermissionType] = PermissionType.MODULE

    module: str = ""
    module_alias: Optional[str] = None
    module_docs: Optional[str] = None
    apis: list[str] = Field(default_factory=list)
    permissions: dict[str, bool] = Field(default_factory=dict)


class NetworkPermission(ConcretePermission):
    permission_type: ClassVar[PermissionType] = PermissionType.NETWORK

    hosts: list[str] = Field(default_factory=list)
    methods: list[str] = Field(default_factory=list)
    schemes: Optional[list[str]] = None
    ports: Optional[list[int]] = None
    paths: Optional[list[str]] = None
    headers_allowed: Optional[list[str]] = None
    ips_allowed: Optional[list[str]] = None
    auth_via_host_secret: bool = True
    access: bool = True
    label: Optional[str] = None


class CodecPermission(ConcretePermission):
    permission_type: ClassVar[PermissionType] = PermissionType.CODEC

    module: str = "codec"
    allowed: Optional[dict[str, Any]] = None  # {"methods", "groups", "options"}
    access: bool = True


CONCRETE_MODELS: dict[PermissionType, type[ConcretePermission]] = {
    PermissionType.DB: DbPermission,
    PermissionType.FILE: FilePermission,
    PermissionType.NOTIFICATION: NotificationPermission,
    PermissionType.MODULE: ModulePermission,
    PermissionType.NETWORK: NetworkPermission,
    PermissionType.CODEC: CodecPermission,
}


# =============================================================================
# Assignments, tags, routes
# =============================================================================

class PluginPermission(BaseModel):
    """Direct plugin -> concrete row assignment."""
    id: int = 0
    plugin_id: int
    permission_type: PermissionType
    permission_id: int
    active: bool = True
    window: Optional[TimeWindow] = None
    conditions: Optional[dict[str, Any]] = None
    constraints: Optional[dict[str, Any]] = None
    audit: Optional[dict[str, Any]] = None
    actions: list[str] = Field(default_factory=list)
    justification: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class PermissionTag(BaseModel):
    """Named bundle of permission items grantable as a unit."""
    id: int = 0
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class PluginPermissionTag(BaseModel):
    """Plugin <-> tag pivot; carries the window and active state for all tag items."""
    id: int = 0
    plugin_id: int
    tag_id: int
    active: bool = True
    window: Optional[TimeWindow] = None
    created_at: datetime = Field(default_factory=_utcnow)


class PermissionTagItem(BaseModel):
    """Concrete row inside a tag; carries conditions/constraints/audit per item."""
    id: int = 0
    tag_id: int
    permission_type: PermissionType
    permission_id: int
    conditions: Optional[dict[str, Any]] = None
    constraints: Optional[dict[str, Any]] = None
    audit: Optional[dict[str, Any]] = None


class RouteStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PluginRoutePermission(BaseModel):
    """Install-time approval for a plugin route."""
    id: int = 0
    plugin_id: int
    route_id: str
    status: RouteStatus = RouteStatus.PENDING
    guard: Optional[str] = None
    meta: Optional[dict[str, Any]] = None
    approved_at: Optional[datetime] = None


class AssignmentMorph(BaseModel):
    """
    One plugin -> (type, id) link as seen by the capability compiler.

    Direct morphs carry their own window/conditions/audit; tag morphs take the
    window and active state from the tag pivot and the rest from the tag item.
    """
    type: PermissionType
    id: int
    source: AssignmentSource = AssignmentSource.DIRECT
    active: bool = True
    window: Optional[TimeWindow] = None
    conditions: Optional[dict[str, Any]] = None
    constraints: Optional[dict[str, Any]] = None
    audit: Optional[dict[str, Any]] = None
    assignment_id: Optional[int] = None
    tag_id: Optional[int] = None
    tag_name: Optional[str] = None
    started_at: Optional[datetime] = None
