"""
Conditions Evaluator

Runtime gating of a capability entry:
- guard:        exact equality with context["guard"]
- env:          {"allow": [...], "deny": [...]} against the resolved environment
- setting_link: a named plugin setting that must be truthy

An absent key imposes no constraint on that axis.
"""

import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

EnvProvider = Callable[[], str]
SettingsProvider = Callable[[int], dict[str, Any]]

_FALSY = (None, False, 0, "0", "")


def is_truthy(value: Any) -> bool:
    """Conservative truthiness: None, False, 0, "0" and "" are off, everything else on."""
    return not any(value is f or (type(value) is type(f) and value == f) for f in _FALSY)


def _string_list(value: Any) -> Optional[list[str]]:
    if not isinstance(value, (list, tuple)):
        return None
    return list(dict.fromkeys(str(v) for v in value))


class ConditionsEvaluator:
    """Evaluates rule/assignment conditions against a request context"""

    def __init__(
        self,
        env_provider: Optional[EnvProvider] = None,
        settings_provider: Optional[SettingsProvider] = None,
    ):
        """
        Args:
            env_provider: Returns the current environment name when the context has none
            settings_provider: Returns a plugin's settings when the context has none
        """
        self.env_provider = env_provider or (lambda: "production")
        self.settings_provider = settings_provider or (lambda plugin_id: {})

    def matches(self, conditions: Optional[dict[str, Any]], context: Optional[dict[str, Any]]) -> bool:
        if not conditions:
            return True
        context = context or {}

        if "guard" in conditions and conditions["guard"] is not None:
            need = str(conditions["guard"])
            have = str(context.get("guard") or "")
            if need and need != have:
                return False

        env_rule = conditions.get("env")
        if isinstance(env_rule, dict):
            env = context.get("env")
            if env is None:
                env = self.env_provider()
            env = str(env)
            allow = _string_list(env_rule.get("allow"))
            deny = _string_list(env_rule.get("deny"))
            if allow and env not in allow:
                return False
            if deny and env in deny:
                return False

        if "setting_link" in conditions:
            if not is_truthy(self._setting_value(conditions["setting_link"], context)):
                return False

        return True

    def _setting_value(self, key: Any, context: dict[str, Any]) -> Any:
        settings = context.get("settings")
        if not isinstance(settings, dict):
            plugin_id = context.get("plugin_id")
            try:
                plugin_id = int(plugin_id) if plugin_id is not None else 0
            except (TypeError, ValueError):
                plugin_id = 0
            settings = self.settings_provider(plugin_id) if plugin_id > 0 else {}
        if key is None or key == "":
            return None
        return settings.get(str(key))
