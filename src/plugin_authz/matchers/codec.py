"""
Codec Guard

Dangerous codec primitives (deserialization) are only granted when the
concrete permission carries a non-empty class allow-list.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

DEFAULT_GUARDED_METHODS = ("unserialize",)

ALLOWED_CLASSES_OPTION = "allowed_classes"


@dataclass
class GuardDecision:
    ok: bool
    reason: Optional[str] = None
    allowed_classes: list[str] = field(default_factory=list)


def _bare_class_name(name: str) -> str:
    return name.strip().lstrip("\\.")


class CodecGuard:
    """Allow-list enforcement for guarded codec primitives"""

    def __init__(self, guarded_methods: Optional[Iterable[str]] = None):
        methods = guarded_methods if guarded_methods is not None else DEFAULT_GUARDED_METHODS
        self.guarded_methods = frozenset(m.lower() for m in methods)

    def requires_allow_list(self, method: str) -> bool:
        return method.lower() in self.guarded_methods

    def validate_concrete_for(self, method: str, allowed: Optional[dict[str, Any]]) -> GuardDecision:
        """
        Check a concrete row's "allowed" blob for the given method.

        Args:
            method: Codec primitive being invoked
            allowed: {"methods": ..., "groups": ..., "options": {"allowed_classes": [...]}}
        """
        if not self.requires_allow_list(method):
            return GuardDecision(ok=True)

        options = (allowed or {}).get("options") or {}
        classes = options.get(ALLOWED_CLASSES_OPTION) if isinstance(options, dict) else None
        if not isinstance(classes, (list, tuple)) or not classes:
            return GuardDecision(ok=False, reason="missing_class_allowlist")

        cleaned: list[str] = []
        for c in classes:
            if isinstance(c, str) and c.strip() and c.strip() not in cleaned:
                cleaned.append(c.strip())
        if not cleaned:
            return GuardDecision(ok=False, reason="empty_class_allowlist")

        return GuardDecision(ok=True, allowed_classes=cleaned)

    def class_allowed(self, class_name: str, allowed_classes: Iterable[str]) -> bool:
        wanted = _bare_class_name(class_name)
        return any(_bare_class_name(c) == wanted for c in allowed_classes)
