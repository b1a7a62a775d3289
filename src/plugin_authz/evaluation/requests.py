"""
Request DTOs

One request type per permission type. Each knows its permission type, a
terse resource summary for the audit trail, and a dict round-trip.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar, Dict, List, Optional

from ..core.types import PermissionType


@dataclass
class PermissionRequest:
    permission_type: ClassVar[PermissionType]

    def resource_summary(self) -> str:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.permission_type.value, **asdict(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PermissionRequest":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class DbRequest(PermissionRequest):
    permission_type: ClassVar[PermissionType] = PermissionType.DB

    action: str
    model: Optional[str] = None
    table: Optional[str] = None
    columns: Optional[List[str]] = None

    def resource_summary(self) -> str:
        target = self.model or self.table or "?"
        cols = f"[{','.join(self.columns)}]" if self.columns else ""
        return f"db:{self.action} {target}{cols}"


@dataclass
class FileRequest(PermissionRequest):
    permission_type: ClassVar[PermissionType] = PermissionType.FILE

    action: str
    path: str
    base_dir: Optional[str] = None

    def resource_summary(self) -> str:
        return f"file:{self.action} {self.path}"


@dataclass
class NotifyRequest(PermissionRequest):
    permission_type: ClassVar[PermissionType] = PermissionType.NOTIFICATION

    channel: str
    action: str = "send"
    template: Optional[str] = None
    recipient: Optional[str] = None

    def resource_summary(self) -> str:
        return f"notify:{self.action} {self.channel}"


@dataclass
class ModuleRequest(PermissionRequest):
    permission_type: ClassVar[PermissionType] = PermissionType.MODULE

    module: str
    api: str
    action: str = "call"

    def resource_summary(self) -> str:
        return f"module: {self.module}::{self.api}"


@dataclass
class NetworkRequest(PermissionRequest):
    permission_type: ClassVar[PermissionType] = PermissionType.NETWORK

    method: str
    url: str
    headers: Dict[str, Any] = field(default_factory=dict)

    def resource_summary(self) -> str:
        url = self.url.split("://", 1)[-1].split("?", 1)[0]
        return f"net:{self.method.upper()} {url}"


@dataclass
class CodecRequest(PermissionRequest):
    permission_type: ClassVar[PermissionType] = PermissionType.CODEC

    method: str
    options: Dict[str, Any] = field(default_factory=dict)

    def resource_summary(self) -> str:
        return f"codec:{self.method}"


@dataclass
class RouteWriteRequest(PermissionRequest):
    permission_type: ClassVar[PermissionType] = PermissionType.ROUTE

    route_id: str
    guard: Optional[str] = None

    def resource_summary(self) -> str:
        return f"route:{self.route_id}"


REQUEST_CLASSES: Dict[PermissionType, type] = {
    PermissionType.DB: DbRequest,
    PermissionType.FILE: FileRequest,
    PermissionType.NOTIFICATION: NotifyRequest,
    PermissionType.MODULE: ModuleRequest,
    PermissionType.NETWORK: NetworkRequest,
    PermissionType.CODEC: CodecRequest,
    PermissionType.ROUTE: RouteWriteRequest,
}


def request_from_dict(data: Dict[str, Any]) -> PermissionRequest:
    """Rebuild a request from to_dict() output; "type" selects the class."""
    permission_type = PermissionType.coerce(data["type"])
    return REQUEST_CLASSES[permission_type].from_dict(data)
