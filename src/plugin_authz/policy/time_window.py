"""
Time-Window Evaluator

Evaluates the optional expiry window attached to an assignment or tag pivot.

Window shape: {"limited": bool, "type": "until" | "ttl", "value": str}
- "until": value is an ISO-8601 instant; active while now <= instant
- "ttl":   value is raw seconds ("3600") or an ISO-8601 duration ("PT1H");
           active while now <= started_at + duration

Malformed data is never an error: it evaluates to inactive.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

_ISO_DURATION = re.compile(
    r"^P(?!$)"
    r"(?:(?P<years>\d+)Y)?"
    r"(?:(?P<months>\d+)M)?"
    r"(?:(?P<weeks>\d+)W)?"
    r"(?:(?P<days>\d+)D)?"
    r"(?:T(?=\d)"
    r"(?:(?P<hours>\d+)H)?"
    r"(?:(?P<minutes>\d+)M)?"
    r"(?:(?P<seconds>\d+)S)?"
    r")?$"
)


def parse_instant(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 instant; naive values are taken as UTC. None when unparsable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_duration_seconds(value: Any) -> Optional[int]:
    """
    Parse raw integer seconds or an ISO-8601 duration.

    Years and months are approximated as 365 and 30 days.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    text = str(value or "").strip()
    if text.isdigit():
        return int(text)
    m = _ISO_DURATION.match(text.upper())
    if not m:
        return None
    parts = {k: int(v) if v else 0 for k, v in m.groupdict().items()}
    days = parts["years"] * 365 + parts["months"] * 30 + parts["weeks"] * 7 + parts["days"]
    return days * 86400 + parts["hours"] * 3600 + parts["minutes"] * 60 + parts["seconds"]


def _field(window: Any, name: str) -> Any:
    if isinstance(window, dict):
        return window.get(name)
    return getattr(window, name, None)


class TimeWindowEvaluator:
    """Pure evaluator for assignment time windows"""

    def is_active(
        self,
        window: Any,
        started_at: Union[datetime, str, None] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        if not window or not _field(window, "limited"):
            return True

        kind = _field(window, "type")
        kind = getattr(kind, "value", kind)
        value = _field(window, "value")
        now = parse_instant(now) if now is not None else datetime.now(timezone.utc)

        if kind == "until":
            until = parse_instant(value)
            if until is None:
                logger.debug(f"Malformed 'until' window value {value!r}; treating as inactive")
                return False
            return now <= until

        if kind == "ttl":
            start = parse_instant(started_at)
            if start is None:
                return False
            seconds = parse_duration_seconds(value)
            if seconds is None:
                logger.debug(f"Unparsable ttl {value!r}; treating as inactive")
                return False
            return now <= start + timedelta(seconds=seconds)

        # Unknown window type
        return False
