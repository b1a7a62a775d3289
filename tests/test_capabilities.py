"""
Test Capability Compilation and Cache
"""

import pytest

from plugin_authz.core.cache import CapabilityCache
from plugin_authz.core.compiler import CapabilityCompiler
from plugin_authz.core.types import PermissionType
from plugin_authz.data.dto.upsert import NetworkUpsertDto
from plugin_authz.data.models import AssignmentSource, TimeWindow
from plugin_authz.data.repos import InMemoryPermissionRepository

PAST = "2000-01-01T00:00:00Z"
FUTURE = "2999-01-01T00:00:00Z"


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestCapabilityCache:
    """Test suite for CapabilityCache"""

    def setup_method(self):
        self.clock = FakeClock()
        self.cache = CapabilityCache(ttl_seconds=60, max_entries=2, clock=self.clock)

    def test_hit_then_expiry(self):
        self.cache.put(1, {"caps": 1}, etag="e1")
        assert self.cache.get(1) == {"caps": 1}
        assert self.cache.etag(1) == "e1"

        self.clock.now += 61
        assert self.cache.get(1) is None
        assert self.cache.etag(1) is None

    def test_zero_ttl_never_expires(self):
        cache = CapabilityCache(ttl_seconds=0, clock=self.clock)
        cache.put(1, "caps")
        self.clock.now += 10 ** 6
        assert cache.get(1) == "caps"

    def test_per_entry_ttl_override(self):
        self.cache.put(1, "caps", ttl=5)
        self.clock.now += 6
        assert self.cache.get(1) is None

    def test_oldest_entry_evicted_when_full(self):
        self.cache.put(1, "a")
        self.cache.put(2, "b")
        self.cache.put(3, "c")
        assert self.cache.get(1) is None
        assert self.cache.get(3) == "c"
        assert len(self.cache) == 2

    def test_invalidate(self):
        self.cache.put(1, "a")
        assert self.cache.invalidate(1) is True
        assert self.cache.invalidate(1) is False
        assert self.cache.get(1) is None


class TestCapabilityCompiler:
    """Test suite for CapabilityCompiler"""

    def setup_method(self):
        self.repo = InMemoryPermissionRepository()
        self.compiler = CapabilityCompiler(self.repo)

    async def _grant(self, plugin_id, host, meta=None):
        dto = NetworkUpsertDto.from_rule({"target": {"hosts": [host]}})
        outcome = await self.repo.upsert_for_plugin(plugin_id, dto, meta)
        return outcome.concrete_id

    @pytest.mark.asyncio
    async def test_entries_sorted_by_id_with_provenance(self):
        second = await self._grant(1, "b.example.com")
        first = await self._grant(2, "a.example.com")
        await self.repo.ensure_plugin_assignment(1, PermissionType.NETWORK, first)

        outcome = await self.compiler.compile(1)

        entries = outcome.capabilities.for_type("network")
        assert [e.id for e in entries] == sorted([first, second])
        assert all(e.source == AssignmentSource.DIRECT for e in entries)
        assert outcome.capabilities.etag

    @pytest.mark.asyncio
    async def test_inactive_and_expired_direct_assignments_dropped(self):
        active = await self._grant(1, "a.example.com")
        inactive = await self._grant(1, "b.example.com")
        expired = await self._grant(1, "c.example.com", {"window": TimeWindow.until(PAST)})
        await self.repo.deactivate_plugin_permission(1, PermissionType.NETWORK, inactive)

        outcome = await self.compiler.compile(1)

        assert [e.id for e in outcome.capabilities.for_type(PermissionType.NETWORK)] == [active]
        assert [m.id for m in outcome.expired] == [expired]

    @pytest.mark.asyncio
    async def test_direct_wins_over_tag(self):
        concrete = await self._grant(1, "a.example.com", {"conditions": {"guard": "direct"}})
        tag = await self.repo.create_tag("egress")
        await self.repo.add_tag_item(tag.id, "network", concrete, conditions={"guard": "tag"})
        await self.repo.attach_tag(1, tag.id)

        [entry] = (await self.compiler.compile(1)).capabilities.for_type("network")

        assert entry.source == AssignmentSource.DIRECT
        assert entry.conditions == {"guard": "direct"}

    @pytest.mark.asyncio
    async def test_tag_window_gates_tag_items(self):
        concrete = await self._grant(1, "a.example.com")
        tag = await self.repo.create_tag("egress")
        await self.repo.add_tag_item(tag.id, "network", concrete)

        await self.repo.attach_tag(2, tag.id, window=TimeWindow.until(PAST))
        assert len((await self.compiler.compile(2)).capabilities) == 0

        await self.repo.attach_tag(2, tag.id, window=TimeWindow.until(FUTURE))
        outcome = await self.compiler.compile(2)
        [entry] = outcome.capabilities.for_type("network")
        assert entry.source == AssignmentSource.TAG
        assert entry.tag_name == "egress"
        # expired tag pivots are never auto-deactivated
        assert outcome.expired == []

    @pytest.mark.asyncio
    async def test_etag_stable_until_grants_change(self):
        await self._grant(1, "a.example.com")
        first = (await self.compiler.compile(1)).capabilities.etag
        again = (await self.compiler.compile(1)).capabilities.etag
        assert first == again

        await self._grant(1, "b.example.com")
        assert (await self.compiler.compile(1)).capabilities.etag != first
