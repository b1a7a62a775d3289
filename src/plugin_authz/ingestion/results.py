"""Ingestion result types."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RuleIngestResult:
    """Outcome of ingesting one manifest rule"""
    type: str
    natural_key: str
    concrete_id: int
    concrete_type: str
    created: bool
    assigned: bool
    warning: Optional[str] = None
    path: Optional[str] = None  # "$.required_permissions[0]"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "natural_key": self.natural_key,
            "concrete_id": self.concrete_id,
            "concrete_type": self.concrete_type,
            "created": self.created,
            "assigned": self.assigned,
            "warning": self.warning,
            "path": self.path,
        }


@dataclass
class IngestSummary:
    """
    Aggregate outcome of a manifest ingestion.

    created counts new concrete rows, linked counts assignments ensured,
    failed counts rules that raised; warnings are "<path>: <message>" strings.
    """
    created: int = 0
    linked: int = 0
    items: List[RuleIngestResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    failed: int = 0

    def add(self, item: RuleIngestResult) -> None:
        self.items.append(item)
        if item.created:
            self.created += 1
        if item.assigned:
            self.linked += 1
        if item.warning:
            self.warnings.append(f"{item.path}: {item.warning}" if item.path else item.warning)

    def fail(self, path: str, message: str) -> None:
        self.failed += 1
        self.warnings.append(f"{path}: {message}")

    @classmethod
    def merge(cls, *parts: "IngestSummary") -> "IngestSummary":
        merged = cls()
        for part in parts:
            merged.created += part.created
            merged.linked += part.linked
            merged.failed += part.failed
            merged.items.extend(part.items)
            merged.warnings.extend(part.warnings)
        return merged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": self.created,
            "linked": self.linked,
            "items": [i.to_dict() for i in self.items],
            "warnings": list(self.warnings),
            "failed": self.failed,
        }
