"""
Authorization Engine Configuration Loader

Reads authz.yaml, substitutes environment variables and builds an AuthzConfig.

Environment Variable Interpolation:
- ${VAR_NAME} - Required variable, raises error if not set
- ${VAR_NAME:-default} - Optional variable with default value

Example:
```yaml
conditions:
  environment: "${APP_ENV:-production}"
cache:
  ttl_seconds: "${AUTHZ_CACHE_TTL:-300}"
```

AUTHZ_CONFIG, when set, names the file to load ahead of the search paths.
"""

import os
import re
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional, Union
import logging

import yaml

from .schema import AuthzConfig

logger = logging.getLogger(__name__)

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')

CONFIG_FILENAME = "authz.yaml"
CONFIG_ENV_VAR = "AUTHZ_CONFIG"

_HEADER = """\
# Plugin Authorization Engine Configuration
# Environment variables can be used: ${VAR_NAME} or ${VAR_NAME:-default}
#
# cache.ttl_seconds: 0 disables expiry of compiled capability maps
# checks.timeout_seconds: decisions deny with check_timeout past this
# audit.sink: memory | log
# registry.disabled_types: decisions on these types deny with checker_unavailable

"""


def interpolate_env_vars(value: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """
    Recursively substitute ${VAR} references in strings, dicts and lists.

    Args:
        value: Parsed YAML value
        environ: Variable source (default: os.environ)

    Raises:
        KeyError: If a variable without a default is not set
    """
    env = os.environ if environ is None else environ

    if isinstance(value, dict):
        return {k: interpolate_env_vars(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate_env_vars(item, env) for item in value]
    if not isinstance(value, str):
        return value

    def resolve(match: re.Match) -> str:
        name, default = match.group(1), match.group(2)
        if name in env:
            return env[name]
        if default is not None:
            return default
        raise KeyError(
            f"Environment variable '{name}' is required but not set. "
            f"Set it or provide a default: ${{{name}:-default}}"
        )

    return ENV_VAR_PATTERN.sub(resolve, value)


def load_config_from_file(
    config_path: Union[str, Path],
    interpolate: bool = True,
) -> AuthzConfig:
    """
    Load engine configuration from a YAML file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        KeyError: If required environment variable is not set
        yaml.YAMLError: If YAML is malformed
        ConfigurationError: If values are invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading authorization config from {config_path}")
    raw = yaml.safe_load(config_path.read_text()) or {}

    if interpolate:
        try:
            raw = interpolate_env_vars(raw)
        except KeyError as e:
            logger.error(f"Configuration error in {config_path}: {e}")
            raise

    return AuthzConfig.from_dict(raw)


def config_search_paths(working_dir: Optional[Union[str, Path]] = None) -> Iterator[Path]:
    """Candidate files in lookup order: working_dir first, then the current directory."""
    roots = [Path(working_dir)] if working_dir else []
    roots.append(Path.cwd())
    for root in roots:
        yield root / CONFIG_FILENAME
        yield root / "config" / CONFIG_FILENAME


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    working_dir: Optional[Union[str, Path]] = None,
) -> AuthzConfig:
    """
    Load engine configuration with sensible defaults.

    Search order:
    1. Explicit config_path, then $AUTHZ_CONFIG
    2. authz.yaml, then config/authz.yaml in working_dir
    3. The same two paths in the current directory
    4. Default configuration
    """
    explicit = config_path or os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        return load_config_from_file(explicit)

    for path in config_search_paths(working_dir):
        if path.exists():
            logger.info(f"Found authorization config at {path}")
            return load_config_from_file(path)

    logger.info(f"No {CONFIG_FILENAME} found, using default configuration")
    return AuthzConfig()


def create_default_config(output_path: Optional[Union[str, Path]] = None) -> Path:
    """
    Write a starter authz.yaml holding the default configuration.

    The environment entry is written as ${APP_ENV:-production} so deployments
    can switch it without editing the file.
    """
    output_path = Path(output_path) if output_path else Path(CONFIG_FILENAME)

    data = AuthzConfig().to_dict()
    data.pop("metadata", None)
    data["conditions"]["environment"] = "${APP_ENV:-production}"

    output_path.write_text(_HEADER + yaml.safe_dump(data, sort_keys=False, default_flow_style=False))
    logger.info(f"Created default authorization config at {output_path}")
    return output_path
