"""
Permission Listing

Read model of everything a plugin has been granted: direct and tag sources
merged per (type, concrete id), each item annotated with whether it is
required by the manifest and whether it is effective right now.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..core.types import PermissionType
from ..data.models.permissions import AssignmentMorph, AssignmentSource, ConcretePermission
from ..data.repos.permissions import PermissionRepository
from ..policy.conditions import is_truthy
from ..policy.time_window import TimeWindowEvaluator

logger = logging.getLogger(__name__)


@dataclass
class PermissionListOptions:
    """Filters; None leaves an axis unfiltered."""
    type: Optional[str] = None
    required_only: bool = False
    active_only: bool = False
    source: Optional[str] = None  # "direct" | "tag"
    tag_id: Optional[int] = None


@dataclass
class PermissionListItem:
    type: str
    concrete_id: int
    natural_key: Optional[str]
    presentation: str
    effective_actions: List[str]
    concrete: Optional[Dict[str, Any]]
    sources_direct: List[Dict[str, Any]] = field(default_factory=list)
    sources_tags: List[Dict[str, Any]] = field(default_factory=list)
    required: bool = False
    active_effective: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "concrete_id": self.concrete_id,
            "natural_key": self.natural_key,
            "presentation": self.presentation,
            "effective_actions": list(self.effective_actions),
            "concrete": self.concrete,
            "sources": {"direct": self.sources_direct, "tags": self.sources_tags},
            "required": self.required,
            "active_effective": self.active_effective,
        }


@dataclass
class PermissionList:
    items: List[PermissionListItem]
    summary: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"items": [i.to_dict() for i in self.items], "summary": self.summary}


def present(row: Optional[ConcretePermission], permission_type: PermissionType) -> str:
    """Short human-readable label for a concrete row."""
    if row is None:
        return f"{permission_type.value}: <missing>"
    t = permission_type
    if t is PermissionType.DB:
        return f"db: {row.model or row.table}"
    if t is PermissionType.FILE:
        return f"file: {row.base_dir} ({', '.join(row.paths) or '-'})"
    if t is PermissionType.NOTIFICATION:
        return f"notify: {', '.join(row.channels)}"
    if t is PermissionType.MODULE:
        apis = ", ".join(row.apis) if row.apis else "*"
        return f"module: {row.module_alias or row.module}::{apis}"
    if t is PermissionType.NETWORK:
        methods = ",".join(row.methods) or "*"
        return row.label or f"net: {methods} {', '.join(row.hosts)}"
    if t is PermissionType.CODEC:
        methods = (row.allowed or {}).get("methods") or "*"
        return f"codec: {methods if isinstance(methods, str) else ', '.join(methods)}"
    return t.value


def effective_actions(row: Optional[ConcretePermission], permission_type: PermissionType) -> List[str]:
    if row is None:
        return []
    permissions = getattr(row, "permissions", None)
    if isinstance(permissions, dict):
        return sorted(k for k, v in permissions.items() if v)
    if permission_type is PermissionType.NETWORK:
        return ["request"] if row.access else []
    if permission_type is PermissionType.CODEC:
        return ["invoke"] if row.access else []
    return []


class PermissionLister:
    def __init__(self, repository: PermissionRepository, windows: Optional[TimeWindowEvaluator] = None):
        self.repository = repository
        self.windows = windows or TimeWindowEvaluator()

    async def list(self, plugin_id: int, options: Optional[PermissionListOptions] = None) -> PermissionList:
        options = options or PermissionListOptions()
        direct = await self.repository.get_direct_morphs(plugin_id)
        via_tags = await self.repository.get_tag_morphs(plugin_id)

        grouped: Dict[Tuple[PermissionType, int], List[AssignmentMorph]] = {}
        for morph in [*direct, *via_tags]:
            grouped.setdefault((morph.type, morph.id), []).append(morph)

        rows: Dict[PermissionType, Dict[int, ConcretePermission]] = {}
        for t in {k[0] for k in grouped}:
            if t.ingestible:
                rows[t] = await self.repository.fetch_concrete_by_type(t, [k[1] for k in grouped if k[0] == t])

        items = [
            self._item(t, id, morphs, rows.get(t, {}).get(id))
            for (t, id), morphs in sorted(grouped.items(), key=lambda kv: (kv[0][0].value, kv[0][1]))
        ]
        summary = self._summary(items)
        return PermissionList(items=[i for i in items if self._keep(i, options)], summary=summary)

    def _item(
        self,
        permission_type: PermissionType,
        id: int,
        morphs: List[AssignmentMorph],
        row: Optional[ConcretePermission],
    ) -> PermissionListItem:
        item = PermissionListItem(
            type=permission_type.value,
            concrete_id=id,
            natural_key=row.natural_key if row else None,
            presentation=present(row, permission_type),
            effective_actions=effective_actions(row, permission_type),
            concrete=row.model_dump(mode="json") if row else None,
        )
        for morph in morphs:
            window_active = self.windows.is_active(morph.window, morph.started_at)
            source = {
                "active": morph.active,
                "window": morph.window.model_dump(mode="json") if morph.window else None,
                "window_active": window_active,
            }
            if morph.source is AssignmentSource.DIRECT:
                item.sources_direct.append({"assignment_id": morph.assignment_id, **source})
                if is_truthy((morph.constraints or {}).get("required")):
                    item.required = True
            else:
                item.sources_tags.append({"tag_id": morph.tag_id, "tag_name": morph.tag_name, **source})
            if morph.active and window_active and row is not None:
                item.active_effective = True
        return item

    @staticmethod
    def _keep(item: PermissionListItem, options: PermissionListOptions) -> bool:
        if options.type and item.type != PermissionType.coerce(options.type).value:
            return False
        if options.required_only and not item.required:
            return False
        if options.active_only and not item.active_effective:
            return False
        if options.source == "direct" and not item.sources_direct:
            return False
        if options.source == "tag" and not item.sources_tags:
            return False
        if options.tag_id is not None and not any(s["tag_id"] == options.tag_id for s in item.sources_tags):
            return False
        return True

    @staticmethod
    def _summary(items: List[PermissionListItem]) -> Dict[str, Any]:
        by_type: Dict[str, int] = {}
        for i in items:
            by_type[i.type] = by_type.get(i.type, 0) + 1
        required = [i for i in items if i.required]
        active = sum(1 for i in items if i.active_effective)
        return {
            "by_type": by_type,
            "total": len(items),
            "active": active,
            "inactive": len(items) - active,
            "required_total": len(required),
            "required_satisfied": sum(1 for i in required if i.active_effective),
            "required_pending": sum(1 for i in required if not i.active_effective),
        }
