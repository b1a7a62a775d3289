"""Pure, stateless matchers used by the permission checkers."""

from .host import HostMatcher, DEFAULT_PORTS, compile_delimited_regex
from .path import PathMatcher, PathMatch, collapse_dot_segments, glob_to_regex
from .columns import ColumnPolicy, ColumnDecision
from .codec import CodecGuard, GuardDecision, ALLOWED_CLASSES_OPTION

__all__ = [
    # Network
    "HostMatcher",
    "DEFAULT_PORTS",
    "compile_delimited_regex",
    # File
    "PathMatcher",
    "PathMatch",
    "collapse_dot_segments",
    "glob_to_regex",
    # DB
    "ColumnPolicy",
    "ColumnDecision",
    # Codec
    "CodecGuard",
    "GuardDecision",
    "ALLOWED_CLASSES_OPTION",
]
