"""Runtime gating: conditions and time windows."""

from .conditions import ConditionsEvaluator, is_truthy
from .time_window import TimeWindowEvaluator, parse_duration_seconds, parse_instant

__all__ = [
    "ConditionsEvaluator",
    "is_truthy",
    "TimeWindowEvaluator",
    "parse_duration_seconds",
    "parse_instant",
]
