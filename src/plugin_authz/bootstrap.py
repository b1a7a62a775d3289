"""
Bootstrap for the Permission Service

Wires configuration, repository, registry, cache, evaluators and audit into
a ready PermissionService. Checkers and ingestors are registered explicitly
per permission type.
"""

import logging
from typing import Any, Callable, Dict, Optional

from .audit.emitter import AuditEmitter
from .audit.redactor import Redactor
from .audit.sinks import AuditSink, InMemoryAuditSink, LoggingAuditSink
from .config.schema import AuthzConfig
from .core.cache import CapabilityCache
from .core.registry import PermissionRegistry
from .data.repos.permissions import InMemoryPermissionRepository, PermissionRepository
from .evaluation.checkers import default_checkers
from .evaluation.service import PermissionService
from .ingestion.ingestors import default_ingestors
from .matchers.codec import CodecGuard
from .policy.conditions import ConditionsEvaluator
from .policy.time_window import TimeWindowEvaluator

logger = logging.getLogger(__name__)


def build_audit_sink(config: AuthzConfig) -> AuditSink:
    if config.audit.sink == "log":
        return LoggingAuditSink()
    return InMemoryAuditSink()


def build_permission_service(
    config: Optional[AuthzConfig] = None,
    repository: Optional[PermissionRepository] = None,
    env_provider: Optional[Callable[[], str]] = None,
    settings_provider: Optional[Callable[[int], Dict[str, Any]]] = None,
    audit_sink: Optional[AuditSink] = None,
) -> PermissionService:
    """
    Build a PermissionService from configuration.

    Args:
        config: Engine configuration (default: AuthzConfig())
        repository: Permission store (default: a fresh in-memory store)
        env_provider: Current environment name; defaults to conditions.environment
        settings_provider: Plugin settings lookup for setting_link conditions
        audit_sink: Overrides the sink selected by audit.sink
    """
    config = config or AuthzConfig()
    config.validate()
    repository = repository or InMemoryPermissionRepository()

    environment = config.conditions.environment
    conditions = ConditionsEvaluator(
        env_provider=env_provider or (lambda: environment),
        settings_provider=settings_provider,
    )
    windows = TimeWindowEvaluator()

    audit = AuditEmitter(
        redactor=Redactor(mask=config.audit.mask, heuristic_keys=config.audit.heuristic_keys),
        sink=audit_sink or build_audit_sink(config),
        enabled=config.audit.enabled,
    )

    registry = PermissionRegistry(disabled_types=config.registry.disabled_types)
    service = PermissionService(
        repository=repository,
        registry=registry,
        cache=CapabilityCache(
            ttl_seconds=config.cache.ttl_seconds,
            max_entries=config.cache.max_entries,
        ),
        audit=audit,
        windows=windows,
        check_timeout=config.checks.timeout_seconds,
    )

    for checker in default_checkers(
        service.get_capabilities,
        repository,
        conditions=conditions,
        windows=windows,
        guard=CodecGuard(config.codec.guarded_methods),
        codec_groups=config.codec.groups,
    ):
        registry.register_checker(checker)
    for ingestor in default_ingestors(config.codec.groups):
        registry.register_ingestor(ingestor)

    logger.info(
        f"Permission service ready: checkers={[t.value for t in registry.types()]} "
        f"audit_sink={type(audit.sink).__name__}"
    )
    return service
