"""
Plugin Authorization Engine

Capability-based ALLOW/DENY decisions for plugin access to host resources:
database, filesystem, network, notifications, host modules, codecs and
routes. Manifest rules are ingested into deduplicated concrete permissions,
compiled per plugin from direct and tag grants, and matched per request.
"""

__version__ = "0.1.0"

from .core.types import PermissionType
from .errors import (
    AuthzError,
    ConfigurationError,
    UnknownPermissionTypeError,
    InvalidRuleError,
    PersistenceError,
    DuplicateNaturalKeyError,
)
from .config import AuthzConfig, load_config
from .evaluation import (
    Result,
    MorphRef,
    DbRequest,
    FileRequest,
    NotifyRequest,
    ModuleRequest,
    NetworkRequest,
    CodecRequest,
    RouteWriteRequest,
    PermissionListOptions,
    PermissionService,
)
from .ingestion import IngestSummary, RuleIngestResult
from .bootstrap import build_permission_service

__all__ = [
    "__version__",
    "PermissionType",
    # Errors
    "AuthzError",
    "ConfigurationError",
    "UnknownPermissionTypeError",
    "InvalidRuleError",
    "PersistenceError",
    "DuplicateNaturalKeyError",
    # Configuration
    "AuthzConfig",
    "load_config",
    # Decisions
    "Result",
    "MorphRef",
    "DbRequest",
    "FileRequest",
    "NotifyRequest",
    "ModuleRequest",
    "NetworkRequest",
    "CodecRequest",
    "RouteWriteRequest",
    "PermissionListOptions",
    "PermissionService",
    # Ingestion
    "IngestSummary",
    "RuleIngestResult",
    # Wiring
    "build_permission_service",
]
