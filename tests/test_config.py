"""
Test Configuration Loading

YAML loading, environment interpolation, validation and search order.
"""

import pytest

from plugin_authz.config import AuthzConfig, create_default_config, load_config
from plugin_authz.config.loader import interpolate_env_vars, load_config_from_file
from plugin_authz.errors import ConfigurationError


class TestInterpolation:
    """Test suite for ${VAR} / ${VAR:-default} substitution"""

    def test_set_variable_wins_over_default(self, monkeypatch):
        monkeypatch.setenv("AUTHZ_ENV", "staging")
        assert interpolate_env_vars({"env": "${AUTHZ_ENV:-production}"}) == {"env": "staging"}

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("AUTHZ_ENV", raising=False)
        assert interpolate_env_vars(["${AUTHZ_ENV:-production}", 5]) == ["production", 5]

    def test_required_variable_missing(self, monkeypatch):
        monkeypatch.delenv("AUTHZ_REQUIRED", raising=False)
        with pytest.raises(KeyError):
            interpolate_env_vars("${AUTHZ_REQUIRED}")


class TestLoadConfig:
    """Test suite for load_config_from_file / load_config"""

    def test_yaml_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AUTHZ_CACHE_TTL", "60")
        path = tmp_path / "authz.yaml"
        path.write_text(
            "cache:\n"
            "  ttl_seconds: \"${AUTHZ_CACHE_TTL:-300}\"\n"
            "audit:\n"
            "  sink: log\n"
            "codec:\n"
            "  groups:\n"
            "    json: [json_encode, json_decode]\n"
            "registry:\n"
            "  disabled_types: [codec]\n"
        )

        config = load_config_from_file(path)

        assert config.cache.ttl_seconds == 60.0
        assert config.cache.max_entries == 1024
        assert config.audit.sink == "log"
        assert config.codec.groups == {"json": ["json_encode", "json_decode"]}
        assert config.registry.disabled_types == ["codec"]

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "authz.yaml"
        path.write_text("")
        assert load_config_from_file(path).to_dict() == AuthzConfig().to_dict()

    @pytest.mark.parametrize("value, expected", [
        ("false", False), ("no", False), ("0", False), ("TRUE", True), ("on", True),
    ])
    def test_interpolated_booleans(self, tmp_path, monkeypatch, value, expected):
        monkeypatch.setenv("AUTHZ_AUDIT", value)
        path = tmp_path / "authz.yaml"
        path.write_text("audit:\n  enabled: \"${AUTHZ_AUDIT:-true}\"\n")

        assert load_config_from_file(path).audit.enabled is expected

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "nope.yaml")

    @pytest.mark.parametrize("body", [
        "audit:\n  sink: kafka\n",
        "cache:\n  ttl_seconds: -1\n",
        "checks:\n  timeout_seconds: 0\n",
        "registry:\n  disabled_types: [telepathy]\n",
        "cache:\n  max_entries: lots\n",
        "audit:\n  enabled: maybe\n",
    ])
    def test_invalid_values_rejected(self, tmp_path, body):
        path = tmp_path / "authz.yaml"
        path.write_text(body)
        with pytest.raises(ConfigurationError):
            load_config_from_file(path)

    def test_config_env_var_names_the_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("checks:\n  timeout_seconds: 0.5\n")
        monkeypatch.setenv("AUTHZ_CONFIG", str(path))

        assert load_config().checks.timeout_seconds == 0.5

    def test_interpolation_with_explicit_environ(self):
        assert interpolate_env_vars({"env": "${STAGE}"}, environ={"STAGE": "qa"}) == {"env": "qa"}

    def test_search_order(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AUTHZ_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        assert load_config().to_dict() == AuthzConfig().to_dict()

        project = tmp_path / "project"
        (project / "config").mkdir(parents=True)
        (project / "config" / "authz.yaml").write_text("conditions:\n  environment: nested\n")
        assert load_config(working_dir=project).conditions.environment == "nested"

        (project / "authz.yaml").write_text("conditions:\n  environment: top\n")
        assert load_config(working_dir=project).conditions.environment == "top"

    def test_default_config_round_trip(self, tmp_path, monkeypatch):
        monkeypatch.delenv("APP_ENV", raising=False)
        path = create_default_config(tmp_path / "authz.yaml")

        assert "${APP_ENV:-production}" in path.read_text()
        config = load_config(path)

        assert config.conditions.environment == "production"
        assert config.codec.guarded_methods == ["unserialize"]
        assert AuthzConfig.from_dict(config.to_dict()).to_dict() == config.to_dict()
