"""
Capability Compiler

Builds a plugin's effective capability map from two independent sources,
direct assignments and tag items, keeping provenance on every entry.

Merge rules:
- entries are keyed by (type, concrete id); a direct assignment replaces a
  tag-derived entry for the same row
- inactive assignments are dropped
- entries whose time window is not currently active are dropped; expired
  direct assignments are additionally reported so the caller can deactivate
  them
- entries within a type are ordered by ascending concrete id
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..data.models.permissions import (
    AssignmentMorph,
    AssignmentSource,
    ConcretePermission,
    TimeWindow,
)
from ..data.repos.permissions import PermissionRepository
from ..policy.time_window import TimeWindowEvaluator
from .canonical import KeyBuilder
from .types import PermissionType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilityEntry:
    """One compiled grant with the row it points at and where it came from."""
    type: PermissionType
    id: int
    row: ConcretePermission
    source: AssignmentSource
    conditions: Optional[Dict[str, Any]] = None
    constraints: Optional[Dict[str, Any]] = None
    audit: Optional[Dict[str, Any]] = None
    window: Optional[TimeWindow] = None
    started_at: Optional[datetime] = None
    assignment_id: Optional[int] = None
    tag_id: Optional[int] = None
    tag_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.id,
            "source": self.source.value,
            "row": self.row.model_dump(mode="json", exclude={"created_at", "updated_at"}),
            "conditions": self.conditions,
            "constraints": self.constraints,
            "audit": self.audit,
            "window": self.window.model_dump(mode="json") if self.window else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "assignment_id": self.assignment_id,
            "tag_id": self.tag_id,
            "tag_name": self.tag_name,
        }


@dataclass
class CapabilityMap:
    """Immutable-by-convention snapshot of a plugin's capabilities."""
    plugin_id: int
    entries: Dict[PermissionType, Tuple[CapabilityEntry, ...]] = field(default_factory=dict)
    etag: str = ""
    compiled_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def for_type(self, permission_type: PermissionType) -> Tuple[CapabilityEntry, ...]:
        return self.entries.get(PermissionType.coerce(permission_type), ())

    def all_entries(self) -> List[CapabilityEntry]:
        return [e for t in PermissionType for e in self.entries.get(t, ())]

    def to_dict(self) -> Dict[str, Any]:
        return {
            t.value: [e.to_dict() for e in entries]
            for t, entries in self.entries.items()
        }

    def __len__(self) -> int:
        return sum(len(v) for v in self.entries.values())


@dataclass
class CompileOutcome:
    capabilities: CapabilityMap
    expired: List[AssignmentMorph] = field(default_factory=list)


class CapabilityCompiler:
    """Compiles capability maps from a PermissionRepository."""

    def __init__(
        self,
        repository: PermissionRepository,
        windows: Optional[TimeWindowEvaluator] = None,
    ):
        self.repository = repository
        self.windows = windows or TimeWindowEvaluator()

    async def compile(self, plugin_id: int, now: Optional[datetime] = None) -> CompileOutcome:
        direct = await self.repository.get_direct_morphs(plugin_id)
        via_tags = await self.repository.get_tag_morphs(plugin_id)

        merged: Dict[Tuple[PermissionType, int], AssignmentMorph] = {}
        expired: List[AssignmentMorph] = []

        for morph in via_tags:
            if not morph.active:
                continue
            if not self.windows.is_active(morph.window, morph.started_at, now):
                continue
            merged.setdefault((morph.type, morph.id), morph)

        for morph in direct:
            if not morph.active:
                continue
            if not self.windows.is_active(morph.window, morph.started_at, now):
                expired.append(morph)
                continue
            merged[(morph.type, morph.id)] = morph

        by_type: Dict[PermissionType, List[AssignmentMorph]] = {}
        for (t, _), morph in merged.items():
            if not t.ingestible:
                continue
            by_type.setdefault(t, []).append(morph)

        entries: Dict[PermissionType, Tuple[CapabilityEntry, ...]] = {}
        for t, morphs in by_type.items():
            rows = await self.repository.fetch_concrete_by_type(t, [m.id for m in morphs])
            compiled = []
            for morph in sorted(morphs, key=lambda m: m.id):
                row = rows.get(morph.id)
                if row is None:
                    logger.debug(f"Plugin {plugin_id}: {t.value}#{morph.id} has no concrete row")
                    continue
                compiled.append(CapabilityEntry(
                    type=t,
                    id=morph.id,
                    row=row,
                    source=morph.source,
                    conditions=morph.conditions,
                    constraints=morph.constraints,
                    audit=morph.audit,
                    window=morph.window,
                    started_at=morph.started_at,
                    assignment_id=morph.assignment_id,
                    tag_id=morph.tag_id,
                    tag_name=morph.tag_name,
                ))
            if compiled:
                entries[t] = tuple(compiled)

        capabilities = CapabilityMap(plugin_id=plugin_id, entries=entries)
        capabilities.etag = KeyBuilder.from_capabilities(capabilities.to_dict())
        logger.debug(
            f"Compiled {len(capabilities)} capabilities for plugin {plugin_id} "
            f"({len(expired)} expired)"
        )
        return CompileOutcome(capabilities=capabilities, expired=expired)
