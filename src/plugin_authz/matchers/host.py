"""
Host Matcher

Egress allow-list matching for network permissions: method, scheme, host
(exact or "*." wildcard), port and path.
"""

import logging
import re
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"https": 443, "http": 80}

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def compile_delimited_regex(expr: str) -> Optional[re.Pattern]:
    """
    Compile a "<delim>pattern<delim>flags" expression (the part after "re:").

    Returns None when the expression is malformed.
    """
    if len(expr) < 2:
        return None
    delim = expr[0]
    if delim.isalnum() or delim.isspace() or delim == "\\":
        return None
    last = expr.rfind(delim)
    if last <= 0:
        return None
    pattern = expr[1:last]
    flags = 0
    for ch in expr[last + 1:]:
        flags |= _REGEX_FLAGS.get(ch, 0)
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        logger.debug(f"Ignoring invalid regex {expr!r}: {e}")
        return None


class HostMatcher:
    """Pure matcher over a network permission's allow-lists"""

    def match(
        self,
        method: str,
        scheme: str,
        host: str,
        port: int,
        path: str,
        methods: Optional[Iterable[str]],
        schemes: Optional[Iterable[str]],
        ports: Optional[Iterable[int]],
        paths: Optional[Iterable[str]],
        hosts: Optional[Iterable[str]],
    ) -> bool:
        return (
            self.method_matches(method, methods)
            and self.scheme_matches(scheme, schemes)
            and self.host_matches(host, hosts)
            and self.port_matches(port, ports, scheme)
            and self.path_matches(path, paths)
        )

    def method_matches(self, method: str, allowed: Optional[Iterable[str]]) -> bool:
        allowed = list(allowed or [])
        if not allowed:
            return True
        wanted = method.upper()
        return any(str(a).upper() == wanted for a in allowed)

    def scheme_matches(self, scheme: str, schemes: Optional[Iterable[str]]) -> bool:
        schemes = list(schemes or [])
        if not schemes:
            return True
        wanted = scheme.lower()
        return any(str(s).lower() == wanted for s in schemes)

    def host_matches(self, host: str, patterns: Optional[Iterable[str]]) -> bool:
        patterns = list(patterns or [])
        if not patterns:
            return True
        h = host.lower().rstrip(".")
        if not h:
            return False
        for p in patterns:
            p = str(p).lower().rstrip(".")
            if p == h:
                return True
            if p.startswith("*."):
                suffix = p[1:]  # ".example.com"
                if len(suffix) > 1 and h.endswith(suffix):
                    label = h[: -len(suffix)]
                    # At least one non-empty label in front of the suffix
                    if label and not label.endswith("."):
                        return True
        return False

    def port_matches(self, port: int, ports: Optional[Iterable[int]], scheme: str) -> bool:
        ports = list(ports or [])
        if not ports:
            return port == DEFAULT_PORTS.get(scheme.lower(), 80)
        for p in ports:
            try:
                if int(p) == port:
                    return True
            except (TypeError, ValueError):
                continue
        return False

    def path_matches(self, path: str, prefixes: Optional[Iterable[str]]) -> bool:
        prefixes = list(prefixes or [])
        if not prefixes:
            return True
        for pre in prefixes:
            pre = str(pre)
            if pre.startswith("re:"):
                rx = compile_delimited_regex(pre[3:])
                if rx is not None and rx.search(path):
                    return True
                continue
            if pre.endswith("*"):
                pre = pre.rstrip("*")
            if pre in ("", "/"):
                return True
            if path.startswith(pre):
                return True
        return False
