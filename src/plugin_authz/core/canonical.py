"""
Canonicalization and Natural-Key Hashing

Deterministic normalization of identity payloads so that semantically equal
permission rules hash to the same natural key, plus the ETag helpers used by
the capability cache.

Normalization rules:
- mappings become key-sorted mappings of normalized values
- lists, tuples and sets become unique sequences sorted by canonical JSON
- datetimes become ISO-8601 strings, enums their value, models their JSON dump
- scalars and None pass through unchanged
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel


def normalize(value: Any) -> Any:
    """Recursively normalize a value for hashing and comparison."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): normalize(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple, set, frozenset)):
        unique: dict[str, Any] = {}
        for item in value:
            norm = normalize(item)
            unique.setdefault(canonical_json(norm, normalized=True), norm)
        return [unique[k] for k in sorted(unique)]
    return value


def canonical_json(value: Any, normalized: bool = False) -> str:
    """Compact, key-sorted JSON with unescaped unicode."""
    if not normalized:
        value = normalize(value)
    return json.dumps(
        value,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def key_from_identity(identity: dict[str, Any]) -> str:
    """Natural key: SHA-256 over the canonical serialization of an identity map."""
    return sha256_hex(canonical_json(identity))


# =============================================================================
# List canonicalizers used by the upsert DTOs
# =============================================================================

def canon_list(values: Optional[Iterable[Any]], case: Optional[str] = None) -> list[str]:
    """Unique, sorted list of non-empty strings, optionally case-folded ("upper"/"lower")."""
    out = set()
    for v in values or []:
        if v is None:
            continue
        text = str(v).strip()
        if not text:
            continue
        if case == "upper":
            text = text.upper()
        elif case == "lower":
            text = text.lower()
        out.add(text)
    return sorted(out)


def canon_list_or_none(values: Optional[Iterable[Any]], case: Optional[str] = None) -> Optional[list[str]]:
    """Like canon_list, but None (unknown / unconstrained) stays None."""
    if values is None:
        return None
    return canon_list(values, case)


def canon_ports(ports: Optional[Iterable[Any]]) -> Optional[list[int]]:
    """Unique, numerically sorted port list; None stays None."""
    if ports is None:
        return None
    out = set()
    for p in ports:
        if isinstance(p, bool):
            continue
        try:
            out.add(int(p))
        except (TypeError, ValueError):
            continue
    return sorted(out)


def canon_bool_map(flags: dict[str, Any], keys: Iterable[str]) -> dict[str, bool]:
    """Strict boolean map over a fixed key set."""
    return {k: bool(flags.get(k, False)) for k in keys}


class KeyBuilder:
    """Stable content hashes for natural keys and capability ETags."""

    normalize = staticmethod(normalize)
    json = staticmethod(canonical_json)

    @staticmethod
    def from_identity(identity: dict[str, Any]) -> str:
        return key_from_identity(identity)

    @staticmethod
    def from_capabilities(capabilities: Any) -> str:
        """ETag of a compiled capability map (any JSON-able shape)."""
        return sha256_hex(canonical_json(capabilities))

    @staticmethod
    def from_assignments(
        plugin_id: int,
        direct: Iterable[Any],
        via_tags: Iterable[Any],
        concrete: Optional[dict[str, Any]] = None,
        catalogs: Optional[dict[str, Any]] = None,
    ) -> str:
        """ETag of an assignment snapshot plus optional concrete/catalog version markers."""
        payload = {
            "plugin": plugin_id,
            "direct": normalize(list(direct)),
            "via_tags": normalize(list(via_tags)),
            "concrete": normalize(concrete or {}),
            "catalogs": normalize(catalogs or {}),
        }
        return sha256_hex(canonical_json(payload))
