"""Column-level policy for database permissions."""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

COLUMN_ACTIONS = ("select", "insert", "update")


@dataclass
class ColumnDecision:
    ok: bool
    reason: Optional[str] = None
    diff: dict[str, list[str]] = field(default_factory=dict)


def _normalize_columns(columns: Optional[Iterable[Any]]) -> Optional[list[str]]:
    """None means unknown / unconstrained"""
    if columns is None:
        return None
    out: list[str] = []
    for c in columns:
        if isinstance(c, str) and c and c not in out:
            out.append(c)
    return out


class ColumnPolicy:
    """
    Decide whether requested columns fit a host column policy.

    Policy shape: {"all": [...] | None, "writable": [...] | None}. A missing or
    None list is unconstrained.

    - select: requested must be a subset of "all"
    - insert/update: requested must be a subset of "writable" and of "all"
    - anything else (delete, truncate, grouped_queries, ...): passes
    """

    def check(
        self,
        action: str,
        requested_columns: Optional[Iterable[Any]],
        policy: Optional[dict[str, Any]],
    ) -> ColumnDecision:
        action = action.lower()
        if action not in COLUMN_ACTIONS:
            return ColumnDecision(ok=True)

        requested = _normalize_columns(requested_columns) or []
        policy = policy or {}
        all_cols = _normalize_columns(policy.get("all"))
        writable = _normalize_columns(policy.get("writable"))

        if action in ("insert", "update") and writable is not None:
            not_writable = [c for c in requested if c not in writable]
            if not_writable:
                return ColumnDecision(
                    ok=False,
                    reason="columns_not_writable",
                    diff={"not_writable": not_writable},
                )

        if all_cols is not None:
            not_allowed = [c for c in requested if c not in all_cols]
            if not_allowed:
                return ColumnDecision(
                    ok=False,
                    reason="columns_not_in_all_policy",
                    diff={"not_allowed": not_allowed},
                )

        return ColumnDecision(ok=True)
