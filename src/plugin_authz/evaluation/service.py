"""
Permission Service

Facade over ingestion, capability compilation and caching, decisions and
audit. Decisions never raise: every fault resolves to a deny Result with a
specific reason. Audit emission is best-effort at each call site here.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..audit.emitter import AuditEmitter
from ..audit.records import AuditAction
from ..core.cache import CapabilityCache
from ..core.compiler import CapabilityCompiler, CapabilityEntry, CapabilityMap
from ..core.registry import PermissionRegistry
from ..core.types import PermissionType
from ..data.models.permissions import (
    AssignmentMorph,
    PermissionTag,
    PermissionTagItem,
    PluginPermissionTag,
    PluginRoutePermission,
    RouteStatus,
    TimeWindow,
)
from ..data.repos.permissions import PermissionRepository
from ..errors import UnknownPermissionTypeError
from ..ingestion.manifest import ManifestIngestor, ManifestNormalizer
from ..ingestion.results import IngestSummary, RuleIngestResult
from ..policy.time_window import TimeWindowEvaluator
from .listing import PermissionList, PermissionLister, PermissionListOptions
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
from .result import Result

logger = logging.getLogger(__name__)

DEFAULT_CHECK_TIMEOUT = 2.0


class PermissionService:
    """
    Entry point for the host application.

    Usage:
        service = build_permission_service()
        await service.ingest_manifest(plugin_id, manifest)
        result = await service.can_network(plugin_id, "GET", "https://api.example.com/x")
    """

    def __init__(
        self,
        repository: PermissionRepository,
        registry: PermissionRegistry,
        cache: Optional[CapabilityCache] = None,
        audit: Optional[AuditEmitter] = None,
        windows: Optional[TimeWindowEvaluator] = None,
        normalizer: Optional[ManifestNormalizer] = None,
        check_timeout: float = DEFAULT_CHECK_TIMEOUT,
    ):
        self.repository = repository
        self.registry = registry
        self.cache = cache or CapabilityCache()
        self.audit = audit or AuditEmitter()
        self.windows = windows or TimeWindowEvaluator()
        self.normalizer = normalizer or ManifestNormalizer()
        self.check_timeout = check_timeout

        self.compiler = CapabilityCompiler(repository, self.windows)
        self.manifests = ManifestIngestor(registry, repository, self.normalizer)
        self.lister = PermissionLister(repository, self.windows)

    # =========================================================================
    # Ingestion
    # =========================================================================

    async def ingest_manifest(self, plugin_id: int, manifest: Dict[str, Any]) -> IngestSummary:
        """Ingest both manifest buckets; per-rule failures land in the summary."""
        summary = await self.manifests.ingest(plugin_id, manifest)
        self.invalidate_cache(plugin_id)

        for item in summary.items:
            self._emit_audit(
                plugin_id,
                item.type,
                AuditAction.INGEST,
                f"{item.type}#{item.concrete_id}",
                context={"item": item.to_dict()},
                reason=item.warning,
            )
        return summary

    async def upsert(
        self,
        plugin_id: int,
        rule: Dict[str, Any],
        meta: Optional[Dict[str, Any]] = None,
    ) -> RuleIngestResult:
        """
        Ingest a single rule outside a manifest.

        Unlike manifest ingestion, errors (invalid rule, persistence) propagate.
        """
        normalized = self.normalizer.normalize_rule(rule)
        ingestor = self.registry.ingestor_for(normalized["type"])
        if ingestor is None:
            raise UnknownPermissionTypeError(normalized["type"], role="ingestor")

        result = await ingestor.ingest(plugin_id, normalized, self.repository, meta)
        self.invalidate_cache(plugin_id)
        self._emit_audit(
            plugin_id,
            result.type,
            AuditAction.INGEST,
            f"{result.type}#{result.concrete_id}",
            context={"item": result.to_dict()},
            reason=result.warning,
        )
        return result

    async def deactivate(self, plugin_id: int, permission_type: Any, permission_id: int) -> bool:
        changed = await self.repository.deactivate_plugin_permission(
            plugin_id, PermissionType.coerce(permission_type), permission_id
        )
        self.invalidate_cache(plugin_id)
        if changed:
            self._emit_audit(
                plugin_id,
                PermissionType.coerce(permission_type).value,
                AuditAction.DEACTIVATE,
                f"{PermissionType.coerce(permission_type).value}#{permission_id}",
                reason="manual",
            )
        return changed

    # =========================================================================
    # Capability cache
    # =========================================================================

    async def warm_cache(self, plugin_id: int) -> CapabilityMap:
        """Compile and cache the plugin's capabilities, deactivating expired direct grants."""
        outcome = await self.compiler.compile(plugin_id)
        for morph in outcome.expired:
            await self._deactivate_expired(plugin_id, morph)

        capabilities = outcome.capabilities
        self.cache.put(plugin_id, capabilities, etag=capabilities.etag)
        logger.info(
            f"Warmed capability cache for plugin {plugin_id}: "
            f"{len(capabilities)} entries, etag {capabilities.etag[:12]}"
        )
        return capabilities

    async def get_capabilities(self, plugin_id: int) -> CapabilityMap:
        capabilities = self.cache.get(plugin_id)
        if capabilities is None:
            capabilities = await self.warm_cache(plugin_id)
        return capabilities

    def invalidate_cache(self, plugin_id: int) -> None:
        self.cache.invalidate(plugin_id)

    def etag(self, plugin_id: int) -> Optional[str]:
        return self.cache.etag(plugin_id)

    async def _deactivate_expired(self, plugin_id: int, morph: AssignmentMorph) -> None:
        resource = f"{morph.type.value}#{morph.id}"
        try:
            await self.repository.deactivate_plugin_permission(plugin_id, morph.type, morph.id)
        except Exception as e:
            logger.warning(f"Plugin {plugin_id}: failed to deactivate expired {resource}: {e}")
            self._emit_audit(
                plugin_id, morph.type.value, AuditAction.DEACTIVATE, resource,
                context={"error": str(e)},
                reason="expired_deactivation_failed",
                tags=["expiry", "auto-deactivate"],
            )
            return

        logger.info(f"Plugin {plugin_id}: auto-deactivated expired {resource}")
        self._emit_audit(
            plugin_id, morph.type.value, AuditAction.DEACTIVATE, resource,
            context={"window": morph.window.model_dump(mode="json") if morph.window else None},
            reason="expired",
            tags=["expiry", "auto-deactivate"],
        )

    # =========================================================================
    # Decisions
    # =========================================================================

    async def can(
        self,
        plugin_id: int,
        request: PermissionRequest,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        """Decide one request. Never raises; faults deny."""
        if not isinstance(request, PermissionRequest):
            logger.warning(f"Plugin {plugin_id}: unrecognised request {type(request).__name__}")
            return Result.deny("unknown_request_type")

        permission_type = request.permission_type
        try:
            checker = self.registry.checker_for(permission_type)
        except UnknownPermissionTypeError:
            result = Result.deny("checker_unavailable")
        else:
            try:
                result = await asyncio.wait_for(
                    checker.check(plugin_id, request, context),
                    timeout=self.check_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Plugin {plugin_id}: {permission_type.value} check timed out "
                    f"after {self.check_timeout}s"
                )
                result = Result.deny("check_timeout")
            except Exception:
                logger.exception(f"Plugin {plugin_id}: {permission_type.value} check failed")
                result = Result.deny("evaluation_error")

        self._audit_decision(plugin_id, request, context, result)
        return result

    async def can_db(
        self,
        plugin_id: int,
        action: str,
        model: Optional[str] = None,
        table: Optional[str] = None,
        columns: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        return await self.can(plugin_id, DbRequest(action=action, model=model, table=table, columns=columns), context)

    async def can_file(
        self,
        plugin_id: int,
        action: str,
        path: str,
        base_dir: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        return await self.can(plugin_id, FileRequest(action=action, path=path, base_dir=base_dir), context)

    async def can_notify(
        self,
        plugin_id: int,
        channel: str,
        action: str = "send",
        template: Optional[str] = None,
        recipient: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        request = NotifyRequest(channel=channel, action=action, template=template, recipient=recipient)
        return await self.can(plugin_id, request, context)

    async def can_module(
        self,
        plugin_id: int,
        module: str,
        api: str,
        action: str = "call",
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        return await self.can(plugin_id, ModuleRequest(module=module, api=api, action=action), context)

    async def can_network(
        self,
        plugin_id: int,
        method: str,
        url: str,
        headers: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        return await self.can(plugin_id, NetworkRequest(method=method, url=url, headers=headers or {}), context)

    async def can_codec(
        self,
        plugin_id: int,
        method: str,
        options: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        return await self.can(plugin_id, CodecRequest(method=method, options=options or {}), context)

    async def can_route_write(
        self,
        plugin_id: int,
        route_id: str,
        guard: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result:
        return await self.can(plugin_id, RouteWriteRequest(route_id=route_id, guard=guard), context)

    # =========================================================================
    # Listing, tags, routes
    # =========================================================================

    async def list_permissions(
        self, plugin_id: int, options: Optional[PermissionListOptions] = None
    ) -> PermissionList:
        return await self.lister.list(plugin_id, options)

    async def create_tag(self, name: str, description: Optional[str] = None) -> PermissionTag:
        return await self.repository.create_tag(name, description)

    async def add_tag_item(
        self,
        tag_id: int,
        permission_type: Any,
        permission_id: int,
        conditions: Optional[Dict[str, Any]] = None,
        constraints: Optional[Dict[str, Any]] = None,
        audit: Optional[Dict[str, Any]] = None,
        affected_plugins: Iterable[int] = (),
    ) -> PermissionTagItem:
        """Add a row to a tag; plugins already holding the tag should be passed for invalidation."""
        item = await self.repository.add_tag_item(
            tag_id, PermissionType.coerce(permission_type), permission_id,
            conditions=conditions, constraints=constraints, audit=audit,
        )
        for plugin_id in affected_plugins:
            self.invalidate_cache(plugin_id)
        return item

    async def assign_tag(
        self,
        plugin_id: int,
        tag_id: int,
        window: Optional[TimeWindow] = None,
    ) -> PluginPermissionTag:
        pivot = await self.repository.attach_tag(plugin_id, tag_id, window=window, active=True)
        self.invalidate_cache(plugin_id)
        return pivot

    async def revoke_tag(self, plugin_id: int, tag_id: int) -> bool:
        revoked = await self.repository.detach_tag(plugin_id, tag_id)
        self.invalidate_cache(plugin_id)
        return revoked

    async def record_route_approval(
        self,
        plugin_id: int,
        route_id: str,
        status: RouteStatus = RouteStatus.APPROVED,
        guard: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> PluginRoutePermission:
        return await self.repository.record_route_approval(plugin_id, route_id, status, guard, meta)

    # =========================================================================
    # Audit
    # =========================================================================

    def _audit_decision(
        self,
        plugin_id: int,
        request: PermissionRequest,
        context: Optional[Dict[str, Any]],
        result: Result,
    ) -> None:
        """Record one decision; any failure while building or writing it is only logged."""
        try:
            audit_options = self._matched_audit_options(plugin_id, result)
            self.audit.record(
                plugin_id,
                request.permission_type.value,
                AuditAction.ALLOW if result.allowed else AuditAction.DENY,
                request.resource_summary(),
                context={
                    "request": request.to_dict(),
                    "context": context or {},
                    "result": result.to_dict(),
                },
                reason=result.reason,
                redact_fields=audit_options.get("redact_fields"),
                tags=audit_options.get("tags"),
            )
        except Exception as e:
            logger.warning(f"Decision audit failed for plugin {plugin_id}: {e}")

    def _matched_audit_options(self, plugin_id: int, result: Result) -> Dict[str, Any]:
        """Audit blob of the entry that allowed the request, from the cached map."""
        if not result.matched or result.matched.type == PermissionType.ROUTE.value:
            return {}
        capabilities = self.cache.get(plugin_id)
        if capabilities is None:
            return {}
        entry: Optional[CapabilityEntry] = next(
            (e for e in capabilities.for_type(result.matched.type) if e.id == result.matched.id),
            None,
        )
        audit = (entry.audit if entry else None) or {}
        return {
            "redact_fields": [str(f).lower() for f in audit.get("redact_fields") or []],
            "tags": list(audit.get("tags") or []),
        }

    def _emit_audit(self, plugin_id: int, type: str, action: AuditAction, resource: str, **kwargs) -> None:
        try:
            self.audit.record(plugin_id, type, action, resource, **kwargs)
        except Exception as e:
            logger.warning(f"Audit emission failed for plugin {plugin_id} ({resource}): {e}")
