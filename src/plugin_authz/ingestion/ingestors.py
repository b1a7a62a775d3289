"""
Per-Type Ingestors

Each ingestor turns one normalized manifest rule into an upsert DTO and hands
it to the repository's idempotent upsert. Re-ingesting the same rule yields
created=False, assigned=True and never a second row.
"""

import logging
from typing import Any, ClassVar, Dict, List, Optional

from ..core.types import PermissionType
from ..data.dto.upsert import (
    CodecUpsertDto,
    DbUpsertDto,
    FileUpsertDto,
    ModuleUpsertDto,
    NetworkUpsertDto,
    NotificationUpsertDto,
    UpsertDto,
)
from ..data.repos.permissions import PermissionRepository
from .results import RuleIngestResult

logger = logging.getLogger(__name__)

# Rule keys copied onto the plugin assignment
RULE_META_KEYS = ("conditions", "constraints", "audit", "justification")


def assignment_meta(rule: Dict[str, Any], extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Assignment meta derived from a rule.

    Rule values are authoritative on re-ingestion; ``extra`` is merged on top,
    with its "constraints" combined key by key.
    """
    meta: Dict[str, Any] = {k: rule.get(k) for k in RULE_META_KEYS}
    meta["actions"] = list(rule.get("actions") or [])
    for key, value in (extra or {}).items():
        if key == "constraints" and isinstance(value, dict):
            meta["constraints"] = {**(meta.get("constraints") or {}), **value}
        else:
            meta[key] = value
    return meta


class BaseIngestor:
    """Ingestor driven by an UpsertDto class."""

    dto_class: ClassVar[type[UpsertDto]]

    def type(self) -> PermissionType:
        return self.dto_class.permission_type

    def build_dto(self, rule: Dict[str, Any]) -> UpsertDto:
        return self.dto_class.from_rule(rule)

    async def ingest(
        self,
        plugin_id: int,
        rule: Dict[str, Any],
        repository: PermissionRepository,
        meta: Optional[Dict[str, Any]] = None,
    ) -> RuleIngestResult:
        dto = self.build_dto(rule)
        outcome = await repository.upsert_for_plugin(plugin_id, dto, assignment_meta(rule, meta))
        natural_key = dto.natural_key()

        logger.debug(
            f"Ingested {self.type().value} rule for plugin {plugin_id}: "
            f"#{outcome.concrete_id} created={outcome.created}"
        )
        return RuleIngestResult(
            type=self.type().value,
            natural_key=natural_key,
            concrete_id=outcome.concrete_id,
            concrete_type=outcome.concrete_type,
            created=outcome.created,
            assigned=outcome.assigned,
            warning=outcome.warning,
        )


class DbIngestor(BaseIngestor):
    dto_class = DbUpsertDto


class FileIngestor(BaseIngestor):
    dto_class = FileUpsertDto


class NotificationIngestor(BaseIngestor):
    dto_class = NotificationUpsertDto


class ModuleIngestor(BaseIngestor):
    dto_class = ModuleUpsertDto


class NetworkIngestor(BaseIngestor):
    dto_class = NetworkUpsertDto


class CodecIngestor(BaseIngestor):
    """Codec rules may name method groups; resolve them against the group catalog."""

    dto_class = CodecUpsertDto

    def __init__(self, groups: Optional[Dict[str, List[str]]] = None):
        self.groups = groups or {}

    def build_dto(self, rule: Dict[str, Any]) -> UpsertDto:
        target = rule.get("target") or {}
        if "resolved_methods" not in rule and "resolved_methods" not in target:
            groups = target.get("groups", rule.get("groups"))
            methods = target.get("methods", rule.get("methods"))
            if groups and methods != "*":
                resolved = set(methods or [])
                for group in groups:
                    resolved.update(self.groups.get(group, []))
                rule = {**rule, "resolved_methods": sorted(resolved)}
        return super().build_dto(rule)


def default_ingestors(codec_groups: Optional[Dict[str, List[str]]] = None) -> List[BaseIngestor]:
    return [
        DbIngestor(),
        FileIngestor(),
        NotificationIngestor(),
        ModuleIngestor(),
        NetworkIngestor(),
        CodecIngestor(codec_groups),
    ]
