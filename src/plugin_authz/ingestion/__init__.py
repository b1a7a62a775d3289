"""Manifest ingestion: normalization, per-type ingestors and summaries."""

from .results import RuleIngestResult, IngestSummary
from .ingestors import (
    BaseIngestor,
    DbIngestor,
    FileIngestor,
    NotificationIngestor,
    ModuleIngestor,
    NetworkIngestor,
    CodecIngestor,
    assignment_meta,
    default_ingestors,
)
from .manifest import ManifestNormalizer, ManifestIngestor, BUCKETS

__all__ = [
    # Results
    "RuleIngestResult",
    "IngestSummary",
    # Ingestors
    "BaseIngestor",
    "DbIngestor",
    "FileIngestor",
    "NotificationIngestor",
    "ModuleIngestor",
    "NetworkIngestor",
    "CodecIngestor",
    "assignment_meta",
    "default_ingestors",
    # Manifest
    "ManifestNormalizer",
    "ManifestIngestor",
    "BUCKETS",
]
