"""
Path Matcher

Sandbox containment and allow-list matching for file permissions.

Containment is decided lexically (". and .." collapsed without touching the
filesystem) before any symlink resolution, so "../" traversal can never be
rescued by a resolved path. When a permission explicitly follows symlinks the
real paths are resolved as well and containment is verified again.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from .host import compile_delimited_regex

logger = logging.getLogger(__name__)


@dataclass
class PathMatch:
    """Outcome of a path check"""
    ok: bool
    reason: Optional[str] = None
    normalized: Optional[str] = None
    matched: Optional[str] = None


def collapse_dot_segments(path: str) -> str:
    """Lexically collapse "." and ".." segments; ".." never climbs above the root."""
    path = path.replace("\\", "/")
    stack: list[str] = []
    for seg in path.split("/"):
        if seg in ("", "."):
            continue
        if seg == "..":
            if stack:
                stack.pop()
            continue
        stack.append(seg)
    prefix = "/" if path.startswith("/") else ""
    return prefix + "/".join(stack)


def glob_to_regex(glob: str) -> re.Pattern:
    """
    Compile a glob into an anchored, case-insensitive regex.

    "**" matches across separators, "*" within one segment, "?" one character.
    """
    g = glob.replace("\\", "/")
    out = []
    i = 0
    while i < len(g):
        ch = g[i]
        if ch == "*":
            if i + 1 < len(g) and g[i + 1] == "*":
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.IGNORECASE)


def _is_under(candidate: str, root: str) -> bool:
    c = candidate.replace("\\", "/").rstrip("/")
    r = root.replace("\\", "/").rstrip("/")
    return c == r or (c + "/").startswith(r + "/")


def _realpath(path: str) -> str:
    """Resolve symlinks; fall back to the lexical form when resolution fails."""
    try:
        return os.path.realpath(path).replace("\\", "/")
    except (OSError, ValueError):
        return path


class PathMatcher:
    """Pure sandbox/pattern matcher for file requests"""

    def normalize_root(self, base_dir: str) -> str:
        p = base_dir.replace("\\", "/").rstrip("/")
        if p == "":
            return ""
        return collapse_dot_segments(p)

    def match(
        self,
        base_dir: str,
        path: str,
        patterns: Iterable[str],
        follow_symlinks: bool = False,
    ) -> PathMatch:
        root = self.normalize_root(base_dir)
        if root in ("", "/"):
            return PathMatch(ok=False, reason="invalid_sandbox_root")

        rel = path.replace("\\", "/").lstrip("/")
        if rel == "" or "\0" in rel:
            return PathMatch(ok=False, reason="invalid_path")

        norm = collapse_dot_segments(root.rstrip("/") + "/" + rel)

        # Lexical containment first, regardless of symlink policy
        if not _is_under(norm, root):
            return PathMatch(ok=False, reason="sandbox_escape", normalized=norm)

        if follow_symlinks:
            root_real = _realpath(root)
            norm_real = _realpath(norm)
            if not _is_under(norm_real, root_real):
                return PathMatch(ok=False, reason="sandbox_escape", normalized=norm_real)
            norm, root = norm_real, root_real

        relative = norm[len(root.rstrip("/")):].lstrip("/") or "."

        for pattern in patterns:
            if self.pattern_matches(relative, str(pattern)):
                return PathMatch(ok=True, normalized=norm, matched=str(pattern))

        logger.debug(f"No pattern matched {relative!r} under {root}")
        return PathMatch(ok=False, reason="no_pattern_match", normalized=norm)

    def pattern_matches(self, relative: str, pattern: str) -> bool:
        if pattern.startswith("re:"):
            rx = compile_delimited_regex(pattern[3:])
            return bool(rx and rx.search(relative))
        return bool(glob_to_regex(pattern).match(relative))
