"""
Audit Emitter

Builds redacted audit records and hands them to a sink. Errors from the sink
propagate; the permission service treats every emission as best-effort at its
own call sites.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from .records import AuditAction, AuditRecord
from .redactor import Redactor
from .sinks import AuditSink, InMemoryAuditSink

logger = logging.getLogger(__name__)


class AuditEmitter:
    def __init__(
        self,
        redactor: Optional[Redactor] = None,
        sink: Optional[AuditSink] = None,
        enabled: bool = True,
    ):
        self.redactor = redactor or Redactor()
        self.sink = sink or InMemoryAuditSink()
        self.enabled = enabled

    def record(
        self,
        plugin_id: int,
        type: str,
        action: AuditAction,
        resource: str,
        context: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
        redact_fields: Optional[Iterable[str]] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Optional[AuditRecord]:
        """Emit one record; returns None when auditing is disabled."""
        if not self.enabled:
            return None
        record = AuditRecord(
            plugin_id=plugin_id,
            type=type,
            action=AuditAction(action),
            resource=resource,
            reason=reason,
            context=self.redactor.redact(context or {}, redact_fields),
            tags=sorted({str(t) for t in (tags or [])}),
        )
        self.sink.write(record)
        return record
