"""Audit record model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class AuditAction(str, Enum):
    """What the record is about"""
    ALLOW = "allow"
    DENY = "deny"
    INGEST = "ingest"
    DEACTIVATE = "deactivate"


@dataclass
class AuditRecord:
    """One structured audit entry; context is already redacted."""
    plugin_id: int
    type: str
    action: AuditAction
    resource: str
    reason: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "type": self.type,
            "action": self.action.value,
            "resource": self.resource,
            "reason": self.reason,
            "context": self.context,
            "tags": list(self.tags),
            "timestamp": self.timestamp.isoformat(),
        }
