"""
Permission Repository

The persistence boundary consumed by the authorization core, plus an
in-memory implementation.

The in-memory store is content addressed: each concrete table holds a
unique index on natural_key, and every upsert runs as one transaction
(lookup-or-insert, identity verification, mutable update, assignment upsert)
that is rolled back as a whole on failure.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, Optional

from ...core.canonical import canonical_json
from ...core.types import PermissionType
from ...errors import DuplicateNaturalKeyError, PersistenceError
from ..dto.upsert import UpsertDto
from ..models.permissions import (
    CONCRETE_MODELS,
    AssignmentMorph,
    AssignmentSource,
    ConcretePermission,
    PermissionTag,
    PermissionTagItem,
    PluginPermission,
    PluginPermissionTag,
    PluginRoutePermission,
    RouteStatus,
    TimeWindow,
)
from .base import Repository

logger = logging.getLogger(__name__)

ASSIGNMENT_META_KEYS = ("active", "window", "conditions", "constraints", "audit", "actions", "justification")


@dataclass
class UpsertOutcome:
    """Result of upsert_for_plugin"""
    concrete_id: int
    concrete_type: str
    created: bool
    assigned: bool
    assignment_id: int
    warning: Optional[str] = None


class PermissionRepository(ABC):
    """Persistence contract for concrete rows, assignments, tags and route approvals."""

    @abstractmethod
    async def get_direct_morphs(self, plugin_id: int) -> list[AssignmentMorph]:
        """All direct assignments of a plugin, active or not."""

    @abstractmethod
    async def get_tag_morphs(self, plugin_id: int) -> list[AssignmentMorph]:
        """Items of every tag actively attached to the plugin."""

    @abstractmethod
    async def fetch_concrete_by_type(
        self, permission_type: PermissionType, ids: Iterable[int]
    ) -> dict[int, ConcretePermission]:
        """Batch fetch concrete rows of one type, keyed by id."""

    @abstractmethod
    async def ensure_plugin_assignment(
        self,
        plugin_id: int,
        permission_type: PermissionType,
        permission_id: int,
        meta: Optional[dict[str, Any]] = None,
    ) -> PluginPermission:
        """Create or update the plugin -> (type, id) assignment."""

    @abstractmethod
    async def upsert_for_plugin(
        self, plugin_id: int, dto: UpsertDto, meta: Optional[dict[str, Any]] = None
    ) -> UpsertOutcome:
        """Idempotent concrete upsert by natural key plus assignment, atomically."""

    @abstractmethod
    async def deactivate_plugin_permission(
        self, plugin_id: int, permission_type: PermissionType, permission_id: int
    ) -> bool:
        """Soft-deactivate a direct assignment; False if absent or already inactive."""

    @abstractmethod
    async def route_permission(self, plugin_id: int, route_id: str) -> Optional[PluginRoutePermission]:
        """Install-time approval record for a plugin route."""

    # Tags and route approvals
    @abstractmethod
    async def create_tag(self, name: str, description: Optional[str] = None) -> PermissionTag:
        pass

    @abstractmethod
    async def add_tag_item(
        self,
        tag_id: int,
        permission_type: PermissionType,
        permission_id: int,
        conditions: Optional[dict[str, Any]] = None,
        constraints: Optional[dict[str, Any]] = None,
        audit: Optional[dict[str, Any]] = None,
    ) -> PermissionTagItem:
        pass

    @abstractmethod
    async def attach_tag(
        self,
        plugin_id: int,
        tag_id: int,
        window: Optional[TimeWindow] = None,
        active: bool = True,
    ) -> PluginPermissionTag:
        pass

    @abstractmethod
    async def detach_tag(self, plugin_id: int, tag_id: int) -> bool:
        pass

    @abstractmethod
    async def record_route_approval(
        self,
        plugin_id: int,
        route_id: str,
        status: RouteStatus = RouteStatus.APPROVED,
        guard: Optional[str] = None,
        meta: Optional[dict[str, Any]] = None,
    ) -> PluginRoutePermission:
        pass


# =============================================================================
# In-memory tables
# =============================================================================

class ConcretePermissionRepository(Repository[ConcretePermission]):
    """One concrete table with a unique natural_key index."""

    def __init__(self, permission_type: PermissionType):
        super().__init__()
        self.permission_type = permission_type
        self._model_class = CONCRETE_MODELS[permission_type]
        self._by_natural_key: dict[str, int] = {}

    @property
    def table_name(self) -> str:
        return f"{self.permission_type.value}_permissions"

    @property
    def model_class(self) -> type[ConcretePermission]:
        return self._model_class

    async def get_by_natural_key(self, natural_key: str) -> Optional[ConcretePermission]:
        id = self._by_natural_key.get(natural_key)
        return self._in_memory_store.get(id) if id is not None else None

    async def create(self, entity: ConcretePermission) -> ConcretePermission:
        if not entity.natural_key:
            raise PersistenceError(f"{self.table_name}: natural_key is required")
        if entity.natural_key in self._by_natural_key:
            raise DuplicateNaturalKeyError(self.permission_type.value, entity.natural_key)
        stored = await super().create(entity)
        self._by_natural_key[stored.natural_key] = stored.id
        return stored

    def snapshot(self) -> tuple:
        return (*super().snapshot(), dict(self._by_natural_key))

    def restore(self, snapshot: tuple) -> None:
        store, next_id, index = snapshot
        super().restore((store, next_id))
        self._by_natural_key = dict(index)


class PluginPermissionRepository(Repository[PluginPermission]):
    @property
    def table_name(self) -> str:
        return "plugin_permissions"

    @property
    def model_class(self) -> type[PluginPermission]:
        return PluginPermission

    async def find(
        self, plugin_id: int, permission_type: PermissionType, permission_id: int
    ) -> Optional[PluginPermission]:
        for row in self._in_memory_store.values():
            if (
                row.plugin_id == plugin_id
                and row.permission_type == permission_type
                and row.permission_id == permission_id
            ):
                return row
        return None


class PermissionTagRepository(Repository[PermissionTag]):
    @property
    def table_name(self) -> str:
        return "permission_tags"

    @property
    def model_class(self) -> type[PermissionTag]:
        return PermissionTag


class PluginPermissionTagRepository(Repository[PluginPermissionTag]):
    @property
    def table_name(self) -> str:
        return "plugin_permission_tags"

    @property
    def model_class(self) -> type[PluginPermissionTag]:
        return PluginPermissionTag


class PermissionTagItemRepository(Repository[PermissionTagItem]):
    @property
    def table_name(self) -> str:
        return "permission_tag_items"

    @property
    def model_class(self) -> type[PermissionTagItem]:
        return PermissionTagItem


class RoutePermissionRepository(Repository[PluginRoutePermission]):
    @property
    def table_name(self) -> str:
        return "plugin_route_permissions"

    @property
    def model_class(self) -> type[PluginRoutePermission]:
        return PluginRoutePermission


def _assignment_updates(meta: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Only keys present in meta are applied to the assignment."""
    updates: dict[str, Any] = {}
    for key in ASSIGNMENT_META_KEYS:
        if not meta or key not in meta:
            continue
        value = meta[key]
        if key == "active":
            value = bool(value)
        elif key == "window":
            value = TimeWindow.model_validate(value) if value is not None else None
        elif key == "actions":
            value = list(value or [])
        updates[key] = value
    return updates


class InMemoryPermissionRepository(PermissionRepository):
    """
    In-memory permission store.

    Concurrency: a store-wide write lock makes each transaction atomic with
    respect to every other writer, so concurrent upserts of the same rule
    create one row. Readers never take locks.
    """

    def __init__(self):
        self.concrete: dict[PermissionType, ConcretePermissionRepository] = {
            t: ConcretePermissionRepository(t) for t in CONCRETE_MODELS
        }
        self.assignments = PluginPermissionRepository()
        self.tags = PermissionTagRepository()
        self.plugin_tags = PluginPermissionTagRepository()
        self.tag_items = PermissionTagItemRepository()
        self.routes = RoutePermissionRepository()

        self._write_lock = asyncio.Lock()

    def _tables(self) -> list[Repository]:
        return [
            *self.concrete.values(),
            self.assignments,
            self.tags,
            self.plugin_tags,
            self.tag_items,
            self.routes,
        ]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """All-or-nothing write scope over every table."""
        async with self._write_lock:
            snapshots = [(t, t.snapshot()) for t in self._tables()]
            try:
                yield
            except BaseException:
                for table, snap in snapshots:
                    table.restore(snap)
                logger.debug("Transaction rolled back")
                raise

    def _concrete_table(self, permission_type: PermissionType) -> ConcretePermissionRepository:
        try:
            return self.concrete[PermissionType.coerce(permission_type)]
        except (KeyError, ValueError):
            raise PersistenceError(f"No concrete table for type '{permission_type}'")

    # Reads
    async def get_direct_morphs(self, plugin_id: int) -> list[AssignmentMorph]:
        rows = await self.assignments.list(filters={"plugin_id": plugin_id})
        return [
            AssignmentMorph(
                type=r.permission_type,
                id=r.permission_id,
                source=AssignmentSource.DIRECT,
                active=r.active,
                window=r.window if r.window and r.window.limited else None,
                conditions=r.conditions,
                constraints=r.constraints,
                audit=r.audit,
                assignment_id=r.id,
                started_at=r.created_at,
            )
            for r in rows
        ]

    async def get_tag_morphs(self, plugin_id: int) -> list[AssignmentMorph]:
        pivots = await self.plugin_tags.list(filters={"plugin_id": plugin_id, "active": True})
        if not pivots:
            return []
        morphs: list[AssignmentMorph] = []
        for pivot in pivots:
            tag = await self.tags.get(pivot.tag_id)
            items = await self.tag_items.list(filters={"tag_id": pivot.tag_id})
            for item in items:
                morphs.append(AssignmentMorph(
                    type=item.permission_type,
                    id=item.permission_id,
                    source=AssignmentSource.TAG,
                    active=True,
                    window=pivot.window if pivot.window and pivot.window.limited else None,
                    conditions=item.conditions,
                    constraints=item.constraints,
                    audit=item.audit,
                    tag_id=pivot.tag_id,
                    tag_name=tag.name if tag else None,
                    started_at=pivot.created_at,
                ))
        return morphs

    async def fetch_concrete_by_type(
        self, permission_type: PermissionType, ids: Iterable[int]
    ) -> dict[int, ConcretePermission]:
        table = self._concrete_table(permission_type)
        out: dict[int, ConcretePermission] = {}
        for id in sorted({int(i) for i in ids}):
            row = await table.get(id)
            if row is not None:
                out[id] = row
        return out

    async def route_permission(self, plugin_id: int, route_id: str) -> Optional[PluginRoutePermission]:
        rows = await self.routes.list(filters={"plugin_id": plugin_id, "route_id": route_id})
        return rows[0] if rows else None

    # Writes
    async def ensure_plugin_assignment(
        self,
        plugin_id: int,
        permission_type: PermissionType,
        permission_id: int,
        meta: Optional[dict[str, Any]] = None,
    ) -> PluginPermission:
        async with self.transaction():
            return await self._ensure_assignment(
                plugin_id, PermissionType.coerce(permission_type), permission_id, meta
            )

    async def _ensure_assignment(
        self,
        plugin_id: int,
        permission_type: PermissionType,
        permission_id: int,
        meta: Optional[dict[str, Any]],
    ) -> PluginPermission:
        updates = _assignment_updates(meta)
        existing = await self.assignments.find(plugin_id, permission_type, permission_id)
        if existing is None:
            return await self.assignments.create(PluginPermission(
                plugin_id=plugin_id,
                permission_type=permission_type,
                permission_id=permission_id,
                **updates,
            ))
        if not updates:
            return existing
        return await self.assignments.update(existing.id, **updates)

    async def upsert_for_plugin(
        self, plugin_id: int, dto: UpsertDto, meta: Optional[dict[str, Any]] = None
    ) -> UpsertOutcome:
        permission_type = dto.permission_type
        natural_key = dto.natural_key()
        attrs = dto.attributes()
        table = self._concrete_table(permission_type)

        async with self.transaction():
            concrete = await table.get_by_natural_key(natural_key)
            created = False
            warning = None

            if concrete is None:
                concrete = await table.create(
                    table.model_class(natural_key=natural_key, **attrs)
                )
                created = True
                logger.info(
                    f"Created {permission_type.value} permission #{concrete.id} "
                    f"({natural_key[:12]})"
                )
            else:
                mismatches = [
                    k for k in dto.identity_fields()
                    if canonical_json(attrs.get(k)) != canonical_json(getattr(concrete, k, None))
                ]
                if mismatches:
                    warning = "attribute_mismatch_for_natural_key: " + ", ".join(mismatches)
                    logger.warning(
                        f"{permission_type.value} #{concrete.id}: {warning}"
                    )
                to_update = {k: attrs[k] for k in dto.mutable_fields() if k in attrs}
                changed = {
                    k: v for k, v in to_update.items() if getattr(concrete, k, None) != v
                }
                if changed:
                    concrete = await table.update(concrete.id, **changed)

            assignment = await self._ensure_assignment(
                plugin_id, permission_type, concrete.id, meta
            )

        return UpsertOutcome(
            concrete_id=concrete.id,
            concrete_type=permission_type.value,
            created=created,
            assigned=assignment.id > 0,
            assignment_id=assignment.id,
            warning=warning,
        )

    async def deactivate_plugin_permission(
        self, plugin_id: int, permission_type: PermissionType, permission_id: int
    ) -> bool:
        async with self.transaction():
            row = await self.assignments.find(
                plugin_id, PermissionType.coerce(permission_type), permission_id
            )
            if row is None or not row.active:
                return False
            await self.assignments.update(row.id, active=False)
        logger.info(
            f"Deactivated plugin {plugin_id} -> {permission_type}#{permission_id}"
        )
        return True

    async def create_tag(self, name: str, description: Optional[str] = None) -> PermissionTag:
        async with self.transaction():
            return await self.tags.create(PermissionTag(name=name, description=description))

    async def add_tag_item(
        self,
        tag_id: int,
        permission_type: PermissionType,
        permission_id: int,
        conditions: Optional[dict[str, Any]] = None,
        constraints: Optional[dict[str, Any]] = None,
        audit: Optional[dict[str, Any]] = None,
    ) -> PermissionTagItem:
        async with self.transaction():
            if await self.tags.get(tag_id) is None:
                raise PersistenceError(f"Unknown tag #{tag_id}")
            return await self.tag_items.create(PermissionTagItem(
                tag_id=tag_id,
                permission_type=PermissionType.coerce(permission_type),
                permission_id=permission_id,
                conditions=conditions,
                constraints=constraints,
                audit=audit,
            ))

    async def attach_tag(
        self,
        plugin_id: int,
        tag_id: int,
        window: Optional[TimeWindow] = None,
        active: bool = True,
    ) -> PluginPermissionTag:
        async with self.transaction():
            if await self.tags.get(tag_id) is None:
                raise PersistenceError(f"Unknown tag #{tag_id}")
            existing = await self.plugin_tags.list(filters={"plugin_id": plugin_id, "tag_id": tag_id})
            window = TimeWindow.model_validate(window) if window is not None else None
            if existing:
                return await self.plugin_tags.update(existing[0].id, window=window, active=active)
            return await self.plugin_tags.create(PluginPermissionTag(
                plugin_id=plugin_id, tag_id=tag_id, window=window, active=active,
            ))

    async def detach_tag(self, plugin_id: int, tag_id: int) -> bool:
        async with self.transaction():
            rows = await self.plugin_tags.list(filters={"plugin_id": plugin_id, "tag_id": tag_id, "active": True})
            if not rows:
                return False
            await self.plugin_tags.update(rows[0].id, active=False)
            return True

    async def record_route_approval(
        self,
        plugin_id: int,
        route_id: str,
        status: RouteStatus = RouteStatus.APPROVED,
        guard: Optional[str] = None,
        meta: Optional[dict[str, Any]] = None,
    ) -> PluginRoutePermission:
        status = RouteStatus(status)
        approved_at = datetime.now(timezone.utc) if status == RouteStatus.APPROVED else None
        async with self.transaction():
            existing = await self.routes.list(filters={"plugin_id": plugin_id, "route_id": route_id})
            if existing:
                return await self.routes.update(
                    existing[0].id, status=status, guard=guard, meta=meta, approved_at=approved_at,
                )
            return await self.routes.create(PluginRoutePermission(
                plugin_id=plugin_id,
                route_id=route_id,
                status=status,
                guard=guard,
                meta=meta,
                approved_at=approved_at,
            ))
