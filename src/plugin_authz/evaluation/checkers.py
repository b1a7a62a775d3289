"""
Permission Checkers

One checker per permission type. A checker fetches the plugin's capability
map, walks the entries of its type in ascending concrete id, skips entries
whose window or conditions do not hold, and runs the type's matcher.
The first matching entry allows; otherwise the last specific reason denies.

Route is the exception: it consults install-time approval records instead
of the capability map.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from ..core.compiler import CapabilityEntry, CapabilityMap
from ..core.types import PermissionType
from ..data.repos.permissions import PermissionRepository
from ..data.models.permissions import RouteStatus
from ..matchers.codec import ALLOWED_CLASSES_OPTION, CodecGuard
from ..matchers.columns import ColumnPolicy
from ..matchers.host import DEFAULT_PORTS, HostMatcher
from ..matchers.path import PathMatcher
from ..policy.conditions import ConditionsEvaluator
from ..policy.time_window import TimeWindowEvaluator
from .requests import (
    CodecRequest,
    DbRequest,
    FileRequest,
    ModuleRequest,
    NetworkRequest,
    NotifyRequest,
    PermissionRequest,
    RouteWriteRequest,
)
from .result import MorphRef, Result

logger = logging.getLogger(__name__)

CapabilitySource = Callable[[int], Awaitable[CapabilityMap]]


@dataclass
class Match:
    """Matcher outcome for one capability entry."""
    ok: bool
    reason: Optional[str] = None
    terminal: bool = False
    context: Optional[Dict[str, Any]] = None

    @classmethod
    def allow(cls, **context: Any) -> "Match":
        return cls(ok=True, context=context or None)

    @classmethod
    def reject(cls, reason: str, terminal: bool = False, **context: Any) -> "Match":
        return cls(ok=False, reason=reason, terminal=terminal, context=context or None)


class PermissionChecker(ABC):
    """Base checker over compiled capability entries."""

    permission_type: ClassVar[PermissionType]
    request_class: ClassVar[type]

    def __init__(
        self,
        capabilities: CapabilitySource,
        conditions: Optional[ConditionsEvaluator] = None,
        windows: Optional[TimeWindowEvaluator] = None,
    ):
        """
        Args:
            capabilities: Coroutine returning the (cached or rebuilt) capability map
            conditions: Evaluator for entry conditions
            windows: Evaluator for entry time windows
        """
        self.capabilities = capabilities
        self.conditions = conditions or ConditionsEvaluator()
        self.windows = windows or TimeWindowEvaluator()

    def type(self) -> PermissionType:
        return self.permission_type

    async def check(
        self,
        plugin_id: int,
        request: PermissionRequest,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        if not isinstance(request, self.request_class):
            return Result.deny("unknown_request_type")

        invalid = self.validate(request)
        if invalid:
            return Result.deny(invalid)

        ctx = {**(context or {}), "plugin_id": plugin_id}
        capabilities = await self.capabilities(plugin_id)
        entries = capabilities.for_type(self.permission_type)
        if not entries:
            return Result.deny("no_capability")

        reason = None
        for entry in entries:
            if not self.windows.is_active(entry.window, entry.started_at):
                reason = "window_inactive"
                continue
            if not self.conditions.matches(entry.conditions, ctx):
                reason = "conditions_not_met"
                continue

            match = self.match(entry, request, ctx)
            ref = MorphRef(type=self.permission_type.value, id=entry.id)
            if match.ok:
                return Result.allow(ref, context={
                    "source": entry.source.value,
                    "tag_id": entry.tag_id,
                    **(match.context or {}),
                })
            logger.debug(
                f"Plugin {plugin_id}: {self.permission_type.value}#{entry.id} rejected ({match.reason})"
            )
            if match.terminal:
                return Result.deny(match.reason, context={"id": entry.id, **(match.context or {})})
            reason = match.reason

        return Result.deny(reason or "no_match")

    def validate(self, request: Any) -> Optional[str]:
        """Request-level validation; a returned reason denies before any entry is tried."""
        return None

    @abstractmethod
    def match(self, entry: CapabilityEntry, request: Any, context: Dict[str, Any]) -> Match:
        """Decide one entry against the request."""


def _flag(permissions: Dict[str, bool], action: str) -> bool:
    return bool((permissions or {}).get(action.lower()))


# =============================================================================
# Resource checkers
# =============================================================================

class DbChecker(PermissionChecker):
    permission_type = PermissionType.DB
    request_class = DbRequest

    def __init__(self, *args, columns: Optional[ColumnPolicy] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.columns = columns or ColumnPolicy()

    def validate(self, request: DbRequest) -> Optional[str]:
        if not request.model and not request.table:
            return "missing_target"
        return None

    def match(self, entry: CapabilityEntry, request: DbRequest, context: Dict[str, Any]) -> Match:
        row = entry.row
        if not _flag(row.permissions, request.action):
            return Match.reject("action_not_permitted")
        if request.model and row.model and request.model != row.model:
            return Match.reject("model_mismatch")
        if request.table and row.table and request.table != row.table:
            return Match.reject("table_mismatch")

        decision = self.columns.check(
            request.action,
            request.columns,
            {"all": row.readable_columns, "writable": row.writable_columns},
        )
        if not decision.ok:
            return Match.reject(decision.reason, **decision.diff)
        return Match.allow()


class FileChecker(PermissionChecker):
    permission_type = PermissionType.FILE
    request_class = FileRequest

    def __init__(self, *args, paths: Optional[PathMatcher] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.paths = paths or PathMatcher()

    def match(self, entry: CapabilityEntry, request: FileRequest, context: Dict[str, Any]) -> Match:
        row = entry.row
        if not _flag(row.permissions, request.action):
            return Match.reject("action_not_permitted")
        if request.base_dir and (
            self.paths.normalize_root(request.base_dir) != self.paths.normalize_root(row.base_dir)
        ):
            return Match.reject("base_dir_mismatch")

        result = self.paths.match(row.base_dir, request.path, row.paths, row.follow_symlinks)
        if not result.ok:
            return Match.reject(result.reason)
        return Match.allow(path=result.normalized, pattern=result.matched)


class NotificationChecker(PermissionChecker):
    permission_type = PermissionType.NOTIFICATION
    request_class = NotifyRequest

    def match(self, entry: CapabilityEntry, request: NotifyRequest, context: Dict[str, Any]) -> Match:
        row = entry.row
        if not _flag(row.permissions, request.action):
            return Match.reject("action_not_permitted")
        if request.channel not in row.channels:
            return Match.reject("channel_not_allowed")
        if request.template and row.templates_allowed and request.template not in row.templates_allowed:
            return Match.reject("template_not_allowed")
        if request.recipient and row.recipients_allowed and request.recipient not in row.recipients_allowed:
            return Match.reject("recipient_not_allowed")
        return Match.allow()


class ModuleChecker(PermissionChecker):
    permission_type = PermissionType.MODULE
    request_class = ModuleRequest

    def match(self, entry: CapabilityEntry, request: ModuleRequest, context: Dict[str, Any]) -> Match:
        row = entry.row
        if not _flag(row.permissions, request.action):
            return Match.reject("action_not_permitted")
        if request.module not in (row.module, row.module_alias):
            return Match.reject("module_mismatch")
        if row.apis and request.api not in row.apis:
            return Match.reject("api_not_allowed")
        return Match.allow()


@dataclass
class _Target:
    method: str
    scheme: str
    host: str
    port: int
    path: str


def parse_target(method: str, url: str) -> Optional[_Target]:
    """Split a request URL; scheme defaults to https, port to the scheme default."""
    raw = url.strip()
    if "://" not in raw:
        raw = "https://" + raw.lstrip("/")
    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError:
        return None
    if not parts.hostname:
        return None
    scheme = (parts.scheme or "https").lower()
    return _Target(
        method=method.upper(),
        scheme=scheme,
        host=parts.hostname.lower(),
        port=port if port is not None else DEFAULT_PORTS.get(scheme, 80),
        path=parts.path or "/",
    )


class NetworkChecker(PermissionChecker):
    permission_type = PermissionType.NETWORK
    request_class = NetworkRequest

    def __init__(self, *args, hosts: Optional[HostMatcher] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.hosts = hosts or HostMatcher()

    def validate(self, request: NetworkRequest) -> Optional[str]:
        return None if parse_target(request.method, request.url) else "invalid_url"

    def match(self, entry: CapabilityEntry, request: NetworkRequest, context: Dict[str, Any]) -> Match:
        row = entry.row
        t = parse_target(request.method, request.url)
        if not row.access:
            return Match.reject("network_access_disabled")
        if not self.hosts.method_matches(t.method, row.methods):
            return Match.reject("method_not_allowed")
        if not self.hosts.scheme_matches(t.scheme, row.schemes):
            return Match.reject("scheme_not_allowed")
        if not self.hosts.host_matches(t.host, row.hosts):
            return Match.reject("host_not_allowed")
        if not self.hosts.port_matches(t.port, row.ports, t.scheme):
            return Match.reject("port_not_allowed")
        if not self.hosts.path_matches(t.path, row.paths):
            return Match.reject("path_not_allowed")
        if row.headers_allowed is not None and request.headers:
            allowed = {h.lower() for h in row.headers_allowed}
            extra = sorted(h for h in request.headers if h.lower() not in allowed)
            if extra:
                return Match.reject("header_not_allowed", headers=extra)
        return Match.allow(host=t.host, auth_via_host_secret=row.auth_via_host_secret)


class CodecChecker(PermissionChecker):
    permission_type = PermissionType.CODEC
    request_class = CodecRequest

    def __init__(
        self,
        *args,
        guard: Optional[CodecGuard] = None,
        groups: Optional[Dict[str, List[str]]] = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.guard = guard or CodecGuard()
        self.groups = groups or {}

    def allowed_methods(self, allowed: Optional[Dict[str, Any]]) -> Optional[set]:
        """Explicit methods plus group members; None means any method (only for "*")."""
        if not isinstance(allowed, dict):
            return set()
        methods = allowed.get("methods")
        if methods == "*":
            return None
        resolved = {str(m).lower() for m in (methods or [])}
        for group in allowed.get("groups") or []:
            resolved.update(str(m).lower() for m in self.groups.get(group, []))
        return resolved

    def match(self, entry: CapabilityEntry, request: CodecRequest, context: Dict[str, Any]) -> Match:
        row = entry.row
        if not row.access:
            return Match.reject("codec_access_disabled")
        methods = self.allowed_methods(row.allowed)
        if methods is not None and request.method.lower() not in methods:
            return Match.reject("method_not_allowed")

        decision = self.guard.validate_concrete_for(request.method, row.allowed)
        if not decision.ok:
            return Match.reject(decision.reason, terminal=True)
        if decision.allowed_classes:
            wanted = (request.options or {}).get("class")
            if wanted and not self.guard.class_allowed(str(wanted), decision.allowed_classes):
                return Match.reject("class_not_allowed", terminal=True)
            return Match.allow(**{ALLOWED_CLASSES_OPTION: decision.allowed_classes})
        return Match.allow()


class RouteChecker(PermissionChecker):
    """Checks install-time route approvals; no capability entries involved."""

    permission_type = PermissionType.ROUTE
    request_class = RouteWriteRequest

    def __init__(self, repository: PermissionRepository, conditions: Optional[ConditionsEvaluator] = None):
        super().__init__(capabilities=None, conditions=conditions)
        self.repository = repository

    async def check(
        self,
        plugin_id: int,
        request: PermissionRequest,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        if not isinstance(request, RouteWriteRequest):
            return Result.deny("unknown_request_type")
        record = await self.repository.route_permission(plugin_id, request.route_id)
        if record is None:
            return Result.deny("route_not_declared")
        if record.status != RouteStatus.APPROVED:
            return Result.deny("route_not_approved", context={"status": record.status.value})
        guard = request.guard if request.guard is not None else (context or {}).get("guard")
        if record.guard and record.guard != guard:
            return Result.deny("guard_mismatch")
        return Result.allow(MorphRef(type="route", id=record.id), context={"route_id": record.route_id})

    def match(self, entry: CapabilityEntry, request: Any, context: Dict[str, Any]) -> Match:
        return Match.reject("route_not_declared")


def default_checkers(
    capabilities: CapabilitySource,
    repository: PermissionRepository,
    conditions: Optional[ConditionsEvaluator] = None,
    windows: Optional[TimeWindowEvaluator] = None,
    guard: Optional[CodecGuard] = None,
    codec_groups: Optional[Dict[str, List[str]]] = None,
) -> Iterable[PermissionChecker]:
    shared = {"conditions": conditions, "windows": windows}
    return [
        DbChecker(capabilities, **shared),
        FileChecker(capabilities, **shared),
        NotificationChecker(capabilities, **shared),
        ModuleChecker(capabilities, **shared),
        NetworkChecker(capabilities, **shared),
        CodecChecker(capabilities, guard=guard, groups=codec_groups, **shared),
        RouteChecker(repository, conditions=conditions),
    ]
