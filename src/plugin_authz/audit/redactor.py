"""
Audit Redaction

Masks sensitive leaves of an audit payload before it leaves the process.

A leaf is masked when its lower-cased dot path matches an explicit field
("headers.authorization", or "credentials.*" for a whole subtree) or when its
key contains a sensitive fragment. Bearer credentials keep the scheme:
"Bearer abc123" becomes "Bearer ***".
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional

DEFAULT_MASK = "***"

DEFAULT_HEURISTIC_KEYS = (
    "password",
    "passwd",
    "secret",
    "token",
    "authorization",
    "cookie",
    "api_key",
    "apikey",
    "client_secret",
    "private_key",
    "passphrase",
    "access_token",
    "refresh_token",
)

_BEARER = re.compile(r"^(bearer\s+)\S", re.IGNORECASE)


class Redactor:
    """Recursive, non-mutating payload redactor."""

    def __init__(
        self,
        mask: str = DEFAULT_MASK,
        heuristic_keys: Optional[Iterable[str]] = None,
    ):
        self.mask = mask
        keys = DEFAULT_HEURISTIC_KEYS if heuristic_keys is None else heuristic_keys
        self.heuristic_keys = tuple(k.lower() for k in keys)

    def redact(self, payload: Any, fields: Optional[Iterable[str]] = None) -> Any:
        """Return a redacted copy of payload; explicit fields are dot paths."""
        paths = [f.strip().lower() for f in (fields or []) if f and f.strip()]
        return self._walk(payload, "", paths)

    def is_sensitive_key(self, key: Any) -> bool:
        k = str(key).lower()
        return any(fragment in k for fragment in self.heuristic_keys)

    def mask_value(self, value: Any) -> Any:
        """Mask one scalar; containers are masked leaf by leaf."""
        if isinstance(value, dict):
            return {k: self.mask_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.mask_value(v) for v in value]
        if value is None:
            return None
        if isinstance(value, str):
            m = _BEARER.match(value)
            if m:
                return m.group(1) + self.mask
        return self.mask

    def _walk(self, value: Any, path: str, paths: list[str]) -> Any:
        if isinstance(value, dict):
            out = {}
            for key, child in value.items():
                child_path = f"{path}.{key}".lower() if path else str(key).lower()
                if self._path_matches(child_path, paths) or self.is_sensitive_key(key):
                    out[key] = self.mask_value(child)
                else:
                    out[key] = self._walk(child, child_path, paths)
            return out
        if isinstance(value, (list, tuple)):
            return [
                self._walk(child, f"{path}.{i}" if path else str(i), paths)
                for i, child in enumerate(value)
            ]
        return value

    @staticmethod
    def _path_matches(path: str, paths: list[str]) -> bool:
        for p in paths:
            if p.endswith(".*"):
                prefix = p[:-2]
                if path == prefix or path.startswith(prefix + "."):
                    return True
            elif p == path:
                return True
        return False
