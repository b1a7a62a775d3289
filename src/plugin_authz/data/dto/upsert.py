"""
Upsert DTOs

One DTO per ingestible permission type. A DTO maps a normalized manifest
rule onto the concrete row's attributes, split into identity fields (hashed
into the natural key, never changed under a key) and mutable fields
(updated in place on re-ingestion).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Union

from ...core.canonical import (
    canon_bool_map,
    canon_list,
    canon_list_or_none,
    canon_ports,
    key_from_identity,
    normalize,
)
from ...core.types import PermissionType
from ...errors import InvalidRuleError
from ...matchers.path import collapse_dot_segments
from ..models.permissions import (
    CodecPermission,
    ConcretePermission,
    DbPermission,
    FilePermission,
    ModulePermission,
    NetworkPermission,
    NotificationPermission,
)


def _target(rule: dict[str, Any]) -> dict[str, Any]:
    target = rule.get("target") or {}
    if not isinstance(target, dict):
        raise InvalidRuleError("rule target must be a mapping")
    return target


def _actions(rule: dict[str, Any]) -> list[str]:
    return canon_list(rule.get("actions") or [], case="lower")


def _flags(actions: list[str], known: tuple[str, ...]) -> dict[str, bool]:
    return canon_bool_map({a: True for a in actions}, known)


def _optional_list(value: Any) -> Optional[list[Any]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


class UpsertDto(ABC):
    """Base for per-type upsert DTOs."""

    permission_type: ClassVar[PermissionType]
    model_class: ClassVar[type[ConcretePermission]]

    @classmethod
    @abstractmethod
    def from_rule(cls, rule: dict[str, Any]) -> "UpsertDto":
        """Build the DTO from a normalized manifest rule."""

    @abstractmethod
    def identity(self) -> dict[str, Any]:
        """Canonicalized identity attributes."""

    def mutable(self) -> dict[str, Any]:
        """Attributes that may change without creating a new row."""
        return {}

    def identity_fields(self) -> tuple[str, ...]:
        return tuple(self.identity())

    def mutable_fields(self) -> tuple[str, ...]:
        return tuple(self.mutable())

    def attributes(self) -> dict[str, Any]:
        return {**self.identity(), **self.mutable()}

    def natural_key(self) -> str:
        return key_from_identity(self.identity())


@dataclass(frozen=True)
class DbUpsertDto(UpsertDto):
    permission_type: ClassVar[PermissionType] = PermissionType.DB
    model_class: ClassVar[type[ConcretePermission]] = DbPermission
    ACTIONS: ClassVar[tuple[str, ...]] = (
        "select", "insert", "update", "delete", "truncate", "grouped_queries",
    )

    model: Optional[str]
    table: Optional[str]
    readable_columns: Optional[list[str]] = None
    writable_columns: Optional[list[str]] = None
    permissions: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_rule(cls, rule: dict[str, Any]) -> "DbUpsertDto":
        t = _target(rule)
        model = t.get("model")
        table = t.get("table")
        if not model and not table:
            raise InvalidRuleError("db rule needs a target model or table")
        return cls(
            model=str(model) if model else None,
            table=str(table) if table else None,
            readable_columns=_optional_list(t.get("columns")),
            writable_columns=_optional_list(t.get("writable")),
            permissions=_flags(_actions(rule), cls.ACTIONS),
        )

    def identity(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "table": self.table,
            "readable_columns": canon_list_or_none(self.readable_columns),
            "writable_columns": canon_list_or_none(self.writable_columns),
            "permissions": canon_bool_map(self.permissions, self.ACTIONS),
        }


@dataclass(frozen=True)
class FileUpsertDto(UpsertDto):
    permission_type: ClassVar[PermissionType] = PermissionType.FILE
    model_class: ClassVar[type[ConcretePermission]] = FilePermission
    ACTIONS: ClassVar[tuple[str, ...]] = (
        "read", "write", "append", "delete", "mkdir", "rmdir", "list",
    )

    base_dir: str
    paths: list[str]
    follow_symlinks: bool = False
    permissions: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_rule(cls, rule: dict[str, Any]) -> "FileUpsertDto":
        t = _target(rule)
        base_dir = str(t.get("base_dir") or "").strip()
        if not base_dir:
            raise InvalidRuleError("file rule needs a target base_dir")
        return cls(
            base_dir=collapse_dot_segments(base_dir) or "/",
            paths=list(_optional_list(t.get("paths")) or []),
            follow_symlinks=bool(t.get("follow_symlinks", False)),
            permissions=_flags(_actions(rule), cls.ACTIONS),
        )

    def identity(self) -> dict[str, Any]:
        return {
            "base_dir": self.base_dir,
            "paths": canon_list(self.paths),
            "follow_symlinks": self.follow_symlinks,
            "permissions": canon_bool_map(self.permissions, self.ACTIONS),
        }


@dataclass(frozen=True)
class NotificationUpsertDto(UpsertDto):
    permission_type: ClassVar[PermissionType] = PermissionType.NOTIFICATION
    model_class: ClassVar[type[ConcretePermission]] = NotificationPermission
    ACTIONS: ClassVar[tuple[str, ...]] = ("send", "receive")

    channels: list[str]
    templates_allowed: Optional[list[str]] = None
    recipients_allowed: Optional[list[str]] = None
    permissions: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_rule(cls, rule: dict[str, Any]) -> "NotificationUpsertDto":
        t = _target(rule)
        channels = canon_list(_optional_list(t.get("channels") or t.get("channel")))
        if not channels:
            raise InvalidRuleError("notification rule needs at least one channel")
        return cls(
            channels=channels,
            templates_allowed=_optional_list(t.get("templates")),
            recipients_allowed=_optional_list(t.get("recipients")),
            permissions=_flags(_actions(rule), cls.ACTIONS),
        )

    def identity(self) -> dict[str, Any]:
        return {
            "channels": canon_list(self.channels),
            "templates_allowed": canon_list_or_none(self.templates_allowed),
            "recipients_allowed": canon_list_or_none(self.recipients_allowed),
            "permissions": canon_bool_map(self.permissions, self.ACTIONS),
        }


@dataclass(frozen=True)
class ModuleUpsertDto(UpsertDto):
    permission_type: ClassVar[PermissionType] = PermissionType.MODULE
    model_class: ClassVar[type[ConcretePermission]] = ModulePermission
    ACTIONS: ClassVar[tuple[str, ...]] = ("call", "publish", "subscribe")

    module: str
    apis: list[str]
    permissions: dict[str, bool] = field(default_factory=dict)
    module_alias: Optional[str] = None
    module_docs: Optional[str] = None

    @classmethod
    def from_rule(cls, rule: dict[str, Any]) -> "ModuleUpsertDto":
        t = _target(rule)
        module = str(t.get("plugin_fqcn") or t.get("plugin") or t.get("module") or "").strip()
        if not module:
            raise InvalidRuleError("module rule needs a target plugin/module")
        actions = _actions(rule) or ["call"]
        return cls(
            module=module,
            apis=list(_optional_list(t.get("apis")) or []),
            permissions=_flags(actions, cls.ACTIONS),
            module_alias=t.get("plugin_alias") or t.get("alias"),
            module_docs=t.get("plugin_docs") or t.get("docs"),
        )

    def identity(self) -> dict[str, Any]:
        return {
            "module": self.module,
            "apis": canon_list(self.apis),
            "permissions": canon_bool_map(self.permissions, self.ACTIONS),
        }

    def mutable(self) -> dict[str, Any]:
        return {"module_alias": self.module_alias, "module_docs": self.module_docs}


@dataclass(frozen=True)
class NetworkUpsertDto(UpsertDto):
    permission_type: ClassVar[PermissionType] = PermissionType.NETWORK
    model_class: ClassVar[type[ConcretePermission]] = NetworkPermission

    hosts: list[str]
    methods: list[str] = field(default_factory=list)
    schemes: Optional[list[str]] = None
    ports: Optional[list[int]] = None
    paths: Optional[list[str]] = None
    headers_allowed: Optional[list[str]] = None
    ips_allowed: Optional[list[str]] = None
    auth_via_host_secret: bool = True
    access: bool = True
    label: Optional[str] = None

    @classmethod
    def from_rule(cls, rule: dict[str, Any]) -> "NetworkUpsertDto":
        t = _target(rule)
        hosts = _optional_list(t.get("hosts")) or []
        if not canon_list(hosts):
            raise InvalidRuleError("network rule needs at least one host")
        actions = _actions(rule)
        return cls(
            hosts=list(hosts),
            methods=list(_optional_list(t.get("methods")) or []),
            schemes=_optional_list(t.get("schemes")),
            ports=_optional_list(t.get("ports")),
            paths=_optional_list(t.get("paths")),
            headers_allowed=_optional_list(t.get("headers_allowed")),
            ips_allowed=_optional_list(t.get("ips_allowed")),
            auth_via_host_secret=bool(t.get("auth_via_host_secret", True)),
            access=not actions or "request" in actions,
            label=rule.get("label"),
        )

    def identity(self) -> dict[str, Any]:
        return {
            "hosts": canon_list(self.hosts, case="lower"),
            "methods": canon_list(self.methods, case="upper"),
            "schemes": canon_list_or_none(self.schemes, case="lower"),
            "ports": canon_ports(self.ports),
            "paths": canon_list_or_none(self.paths),
            "headers_allowed": canon_list_or_none(self.headers_allowed, case="lower"),
            "ips_allowed": canon_list_or_none(self.ips_allowed),
            "auth_via_host_secret": self.auth_via_host_secret,
            "access": self.access,
        }

    def mutable(self) -> dict[str, Any]:
        return {"label": self.label}


@dataclass(frozen=True)
class CodecUpsertDto(UpsertDto):
    permission_type: ClassVar[PermissionType] = PermissionType.CODEC
    model_class: ClassVar[type[ConcretePermission]] = CodecPermission

    allowed: Optional[dict[str, Any]]
    access: bool = True
    module: str = "codec"

    @classmethod
    def from_rule(cls, rule: dict[str, Any]) -> "CodecUpsertDto":
        source = dict(rule)
        source.update(rule.get("target") or {})

        methods: Union[str, list[str], None] = source.get("resolved_methods", source.get("methods"))
        groups = source.get("groups")
        options = source.get("options")
        allowed = None
        if methods is not None or groups is not None or options is not None:
            allowed = {
                "methods": "*" if methods == "*" else _optional_list(methods),
                "groups": _optional_list(groups),
                "options": dict(options) if isinstance(options, dict) else None,
            }
        actions = _actions(rule)
        return cls(allowed=allowed, access=not actions or "invoke" in actions)

    def identity(self) -> dict[str, Any]:
        allowed = None
        if self.allowed is not None:
            methods = self.allowed.get("methods")
            allowed = {
                "methods": "*" if methods == "*" else canon_list_or_none(methods),
                "groups": canon_list_or_none(self.allowed.get("groups")),
                "options": normalize(self.allowed.get("options")),
            }
        return {"module": self.module, "allowed": allowed, "access": self.access}


DTO_CLASSES: dict[PermissionType, type[UpsertDto]] = {
    PermissionType.DB: DbUpsertDto,
    PermissionType.FILE: FileUpsertDto,
    PermissionType.NOTIFICATION: NotificationUpsertDto,
    PermissionType.MODULE: ModuleUpsertDto,
    PermissionType.NETWORK: NetworkUpsertDto,
    PermissionType.CODEC: CodecUpsertDto,
}
