"""
Capability Cache

Per-plugin store of compiled capability maps with an ETag and optional TTL.
Eventually consistent: writers invalidate explicitly after a mutation, and a
stale read in between is bounded by the TTL.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    stored_at: float
    ttl: Optional[float]
    value: Any
    etag: Optional[str]

    def expired(self, now: float) -> bool:
        return bool(self.ttl) and now - self.stored_at > self.ttl


class CapabilityCache:
    """TTL cache keyed by plugin id; ttl 0 or None means no expiry."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = 300,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._store: Dict[int, _Slot] = {}
        self._lock = threading.Lock()

    def get(self, plugin_id: int) -> Optional[Any]:
        """Cached capability map, or None on a miss."""
        with self._lock:
            slot = self._store.get(plugin_id)
            if slot is None:
                return None
            if slot.expired(self._clock()):
                self._store.pop(plugin_id, None)
                return None
            return slot.value

    def etag(self, plugin_id: int) -> Optional[str]:
        with self._lock:
            slot = self._store.get(plugin_id)
            if slot is None or slot.expired(self._clock()):
                return None
            return slot.etag

    def put(
        self,
        plugin_id: int,
        capabilities: Any,
        ttl: Optional[float] = None,
        etag: Optional[str] = None,
    ) -> None:
        if etag is None:
            etag = getattr(capabilities, "etag", None)
        with self._lock:
            now = self._clock()
            if plugin_id not in self._store and len(self._store) >= self.max_entries:
                self._evict(now)
            self._store[plugin_id] = _Slot(
                stored_at=now,
                ttl=self.ttl if ttl is None else ttl,
                value=capabilities,
                etag=etag,
            )

    def _evict(self, now: float) -> None:
        for key in [k for k, s in self._store.items() if s.expired(now)]:
            del self._store[key]
        # Oldest insertions go first
        while self._store and len(self._store) >= self.max_entries:
            oldest = next(iter(self._store))
            del self._store[oldest]
            logger.debug(f"Evicted capability map for plugin {oldest}")

    def invalidate(self, plugin_id: int) -> bool:
        with self._lock:
            return self._store.pop(plugin_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
