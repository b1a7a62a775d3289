"""
Authorization Engine Configuration Schema

Defines the configuration structure for the plugin authorization engine.
All configuration can be specified via authz.yaml or programmatically.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..audit.redactor import DEFAULT_HEURISTIC_KEYS, DEFAULT_MASK
from ..core.types import PermissionType
from ..errors import ConfigurationError
from ..matchers.codec import DEFAULT_GUARDED_METHODS

_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off")


def parse_bool(value: Any, key: str) -> bool:
    """Booleans from YAML or interpolated strings; anything unrecognised is an error."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")


@dataclass
class CacheConfig:
    """Capability cache settings"""
    ttl_seconds: float = 300  # 0 = no expiry
    max_entries: int = 1024


@dataclass
class CheckConfig:
    """Decision-time settings"""
    timeout_seconds: float = 2.0


@dataclass
class AuditConfig:
    """Audit trail settings"""
    enabled: bool = True
    mask: str = DEFAULT_MASK
    heuristic_keys: List[str] = field(default_factory=lambda: list(DEFAULT_HEURISTIC_KEYS))
    sink: str = "memory"  # "memory" or "log"


@dataclass
class ConditionsConfig:
    """Default inputs for condition evaluation"""
    environment: str = "production"


@dataclass
class CodecConfig:
    """Codec primitives requiring a class allow-list, and named method groups"""
    guarded_methods: List[str] = field(default_factory=lambda: list(DEFAULT_GUARDED_METHODS))
    groups: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class RegistryConfig:
    """Types whose checker is withheld (decisions on them deny)"""
    disabled_types: List[str] = field(default_factory=list)


@dataclass
class AuthzConfig:
    """
    Central configuration for the authorization engine.

    Example authz.yaml:
    ```yaml
    cache:
      ttl_seconds: 300
      max_entries: 1024
    checks:
      timeout_seconds: 2.0
    audit:
      enabled: true
      sink: log
    conditions:
      environment: "${APP_ENV:-production}"
    codec:
      guarded_methods: [unserialize]
      groups:
        json: [json_encode, json_decode]
    registry:
      disabled_types: []
    ```
    """
    cache: CacheConfig = field(default_factory=CacheConfig)
    checks: CheckConfig = field(default_factory=CheckConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    conditions: ConditionsConfig = field(default_factory=ConditionsConfig)
    codec: CodecConfig = field(default_factory=CodecConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)

    # Additional metadata
    metadata: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Raise ConfigurationError on values the engine cannot run with"""
        if self.cache.ttl_seconds < 0:
            raise ConfigurationError("cache.ttl_seconds must be >= 0")
        if self.cache.max_entries < 1:
            raise ConfigurationError("cache.max_entries must be >= 1")
        if self.checks.timeout_seconds <= 0:
            raise ConfigurationError("checks.timeout_seconds must be > 0")
        if self.audit.sink not in ("memory", "log"):
            raise ConfigurationError(f"Unknown audit sink '{self.audit.sink}'")
        for t in self.registry.disabled_types:
            try:
                PermissionType.coerce(t)
            except ValueError:
                raise ConfigurationError(f"Unknown permission type '{t}' in registry.disabled_types")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthzConfig":
        """Create AuthzConfig from dictionary (e.g., parsed YAML)"""
        try:
            cache_data = data.get("cache") or {}
            cache = CacheConfig(
                ttl_seconds=float(cache_data.get("ttl_seconds", 300)),
                max_entries=int(cache_data.get("max_entries", 1024)),
            )

            checks_data = data.get("checks") or {}
            checks = CheckConfig(
                timeout_seconds=float(checks_data.get("timeout_seconds", 2.0)),
            )

            audit_data = data.get("audit") or {}
            audit = AuditConfig(
                enabled=parse_bool(audit_data.get("enabled", True), "audit.enabled"),
                mask=str(audit_data.get("mask", DEFAULT_MASK)),
                heuristic_keys=list(audit_data.get("heuristic_keys", DEFAULT_HEURISTIC_KEYS)),
                sink=str(audit_data.get("sink", "memory")),
            )

            conditions_data = data.get("conditions") or {}
            conditions = ConditionsConfig(
                environment=str(conditions_data.get("environment", "production")),
            )

            codec_data = data.get("codec") or {}
            codec = CodecConfig(
                guarded_methods=list(codec_data.get("guarded_methods", DEFAULT_GUARDED_METHODS)),
                groups={
                    str(k): [str(m) for m in (v or [])]
                    for k, v in (codec_data.get("groups") or {}).items()
                },
            )

            registry_data = data.get("registry") or {}
            registry = RegistryConfig(
                disabled_types=[str(t) for t in registry_data.get("disabled_types") or []],
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        config = cls(
            cache=cache,
            checks=checks,
            audit=audit,
            conditions=conditions,
            codec=codec,
            registry=registry,
            metadata=data.get("metadata") or {},
        )
        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (for serialization)"""
        return {
            "cache": {
                "ttl_seconds": self.cache.ttl_seconds,
                "max_entries": self.cache.max_entries,
            },
            "checks": {"timeout_seconds": self.checks.timeout_seconds},
            "audit": {
                "enabled": self.audit.enabled,
                "mask": self.audit.mask,
                "heuristic_keys": list(self.audit.heuristic_keys),
                "sink": self.audit.sink,
            },
            "conditions": {"environment": self.conditions.environment},
            "codec": {
                "guarded_methods": list(self.codec.guarded_methods),
                "groups": {k: list(v) for k, v in self.codec.groups.items()},
            },
            "registry": {"disabled_types": list(self.registry.disabled_types)},
            "metadata": self.metadata,
        }
