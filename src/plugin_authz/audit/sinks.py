"""Audit sinks: where emitted audit records go."""

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, List, Optional

from .records import AuditRecord

audit_logger = logging.getLogger("plugin_authz.audit")


class AuditSink(ABC):
    """Destination for audit records. write() may raise; callers decide."""

    @abstractmethod
    def write(self, record: AuditRecord) -> None:
        pass


class InMemoryAuditSink(AuditSink):
    """Keeps the most recent records in memory (tests, diagnostics)."""

    def __init__(self, max_records: Optional[int] = 10000):
        self._records: Deque[AuditRecord] = deque(maxlen=max_records)

    def write(self, record: AuditRecord) -> None:
        self._records.append(record)

    @property
    def records(self) -> List[AuditRecord]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()


class LoggingAuditSink(AuditSink):
    """Mirrors each record to the plugin_authz.audit logger at INFO."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or audit_logger

    def write(self, record: AuditRecord) -> None:
        self.logger.info(
            f"{record.action.value} plugin={record.plugin_id} {record.resource}"
            + (f" reason={record.reason}" if record.reason else ""),
            extra={"audit": record.to_dict()},
        )
