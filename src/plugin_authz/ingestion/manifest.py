"""
Manifest Normalization and Ingestion

A plugin manifest declares two buckets of rules:

```yaml
required_permissions:
  - type: network
    actions: [request]
    target:
      hosts: ["*.example.com"]
      methods: [GET]
      paths: ["/**"]
optional_permissions:
  - type: notify
    actions: [send]
    target: {channels: [mail]}
```

Rules are normalized (aliases, casing, sorted unique lists) and ingested
one by one; a failing rule is recorded in the summary and never stops its
siblings.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..core.canonical import canon_list, canon_ports, canonical_json
from ..core.registry import PermissionRegistry
from ..core.types import PermissionType
from ..data.repos.permissions import PermissionRepository
from ..errors import InvalidRuleError, UnknownPermissionTypeError
from .results import IngestSummary

logger = logging.getLogger(__name__)

BUCKETS = ("required_permissions", "optional_permissions")

# target list fields and their case folding, per type
_TARGET_LISTS: Dict[PermissionType, Dict[str, Optional[str]]] = {
    PermissionType.DB: {"columns": None, "writable": None},
    PermissionType.FILE: {"paths": None},
    PermissionType.NETWORK: {
        "methods": "upper",
        "hosts": "lower",
        "schemes": "lower",
        "paths": None,
        "headers_allowed": "lower",
        "ips_allowed": None,
    },
    PermissionType.NOTIFICATION: {"channels": None, "templates": None, "recipients": None},
    PermissionType.MODULE: {"apis": None},
    PermissionType.CODEC: {"resolved_methods": None, "groups": None},
}


class ManifestNormalizer:
    """Deterministic rewrite of manifest rules prior to ingestion."""

    def normalize(self, manifest: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
        out: Dict[str, List[Dict[str, Any]]] = {}
        for bucket in BUCKETS:
            rules = [self.normalize_rule(r) for r in (manifest.get(bucket) or [])]
            out[bucket] = sorted(rules, key=self.sort_key)
        return out

    def normalize_rule(self, rule: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(rule, dict):
            raise InvalidRuleError("rule must be a mapping")
        raw_type = rule.get("type")
        if not raw_type:
            raise InvalidRuleError("rule has no type")
        try:
            permission_type = PermissionType.coerce(raw_type)
        except ValueError:
            raise UnknownPermissionTypeError(str(raw_type), role="ingestor")

        normalized = dict(rule)
        normalized["type"] = permission_type.value
        normalized["actions"] = canon_list(rule.get("actions") or [], case="lower")

        target = dict(rule.get("target") or {})
        for key, case in _TARGET_LISTS.get(permission_type, {}).items():
            if target.get(key) is not None:
                target[key] = canon_list(_as_list(target[key]), case=case)

        if permission_type is PermissionType.NETWORK:
            if not target.get("schemes"):
                target["schemes"] = ["https"]
            if target.get("ports") is not None:
                target["ports"] = canon_ports(
                    p for p in _as_list(target["ports"]) if isinstance(p, int)
                )
        elif permission_type is PermissionType.CODEC:
            methods = target.get("methods")
            if methods is not None and methods != "*":
                target["methods"] = canon_list(_as_list(methods))

        normalized["target"] = target
        return normalized

    @staticmethod
    def sort_key(rule: Dict[str, Any]) -> Tuple[str, str, str]:
        actions = rule.get("actions") or [""]
        return (str(rule.get("type")), canonical_json(rule.get("target") or {}), str(actions[0]))


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


class ManifestIngestor:
    """Ingests both manifest buckets for one plugin."""

    def __init__(
        self,
        registry: PermissionRegistry,
        repository: PermissionRepository,
        normalizer: Optional[ManifestNormalizer] = None,
    ):
        self.registry = registry
        self.repository = repository
        self.normalizer = normalizer or ManifestNormalizer()

    async def ingest(
        self,
        plugin_id: int,
        manifest: Dict[str, Any],
        meta: Optional[Dict[str, Any]] = None,
    ) -> IngestSummary:
        summary = IngestSummary()

        for bucket in BUCKETS:
            required = bucket == "required_permissions"
            pending: List[Tuple[str, Dict[str, Any]]] = []

            for i, rule in enumerate(manifest.get(bucket) or []):
                path = f"$.{bucket}[{i}]"
                try:
                    pending.append((path, self.normalizer.normalize_rule(rule)))
                except Exception as e:
                    logger.warning(f"Plugin {plugin_id}: {path} rejected: {e}")
                    summary.fail(path, str(e))

            pending.sort(key=lambda p: self.normalizer.sort_key(p[1]))

            for path, rule in pending:
                rule_meta = {**(meta or {}), "constraints": {"required": required}}
                try:
                    ingestor = self.registry.ingestor_for(rule["type"])
                    if ingestor is None:
                        raise UnknownPermissionTypeError(rule["type"], role="ingestor")
                    result = await ingestor.ingest(plugin_id, rule, self.repository, rule_meta)
                except Exception as e:
                    logger.warning(f"Plugin {plugin_id}: {path} failed: {e}", exc_info=True)
                    summary.fail(path, str(e))
                    continue
                result.path = path
                summary.add(result)

        logger.info(
            f"Ingested manifest for plugin {plugin_id}: created={summary.created} "
            f"linked={summary.linked} failed={summary.failed}"
        )
        return summary
