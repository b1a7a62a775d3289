"""Structured, redacted audit trail for decisions and ingestion."""

from .records import AuditAction, AuditRecord
from .redactor import Redactor, DEFAULT_HEURISTIC_KEYS, DEFAULT_MASK
from .sinks import AuditSink, InMemoryAuditSink, LoggingAuditSink
from .emitter import AuditEmitter

__all__ = [
    "AuditAction",
    "AuditRecord",
    "Redactor",
    "DEFAULT_HEURISTIC_KEYS",
    "DEFAULT_MASK",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "AuditEmitter",
]
