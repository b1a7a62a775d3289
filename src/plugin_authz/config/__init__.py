"""
Authorization Engine Configuration Module

Provides centralized configuration management for the engine.
"""

from .schema import (
    AuthzConfig,
    CacheConfig,
    CheckConfig,
    AuditConfig,
    ConditionsConfig,
    CodecConfig,
    RegistryConfig,
)
from .loader import load_config, load_config_from_file, create_default_config, interpolate_env_vars

__all__ = [
    "AuthzConfig",
    "CacheConfig",
    "CheckConfig",
    "AuditConfig",
    "ConditionsConfig",
    "CodecConfig",
    "RegistryConfig",
    "load_config",
    "load_config_from_file",
    "create_default_config",
    "interpolate_env_vars",
]
