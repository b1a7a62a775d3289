"""
Test Permission Repository

Idempotent, atomic upsert and assignment/tag bookkeeping on the in-memory store.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from plugin_authz.core.types import PermissionType
from plugin_authz.data.dto.upsert import ModuleUpsertDto, NetworkUpsertDto
from plugin_authz.data.models import AssignmentSource, DbPermission, RouteStatus, TimeWindow
from plugin_authz.data.repos import InMemoryPermissionRepository
from plugin_authz.errors import DuplicateNaturalKeyError, PersistenceError


def network_dto(**target):
    target.setdefault("hosts", ["api.example.com"])
    return NetworkUpsertDto.from_rule({"type": "network", "actions": ["request"], "target": target})


class TestUpsert:
    """Test suite for upsert_for_plugin"""

    def setup_method(self):
        self.repo = InMemoryPermissionRepository()
        self.table = self.repo.concrete[PermissionType.NETWORK]

    @pytest.mark.asyncio
    async def test_second_upsert_is_idempotent(self):
        dto = network_dto()

        first = await self.repo.upsert_for_plugin(1, dto)
        second = await self.repo.upsert_for_plugin(1, dto)

        assert (first.created, first.assigned) == (True, True)
        assert (second.created, second.assigned) == (False, True)
        assert first.concrete_id == second.concrete_id
        assert first.assignment_id == second.assignment_id
        assert len(await self.table.list()) == 1
        assert len(await self.repo.assignments.list()) == 1

    @pytest.mark.asyncio
    async def test_identity_drift_is_a_warning(self):
        dto = network_dto()
        outcome = await self.repo.upsert_for_plugin(1, dto)
        await self.table.update(outcome.concrete_id, hosts=["evil.example.com"])

        again = await self.repo.upsert_for_plugin(1, dto)

        assert again.created is False
        assert again.warning.startswith("attribute_mismatch_for_natural_key")
        assert "hosts" in again.warning
        # identity fields are never rewritten under an existing key
        assert (await self.table.get(outcome.concrete_id)).hosts == ["evil.example.com"]

    @pytest.mark.asyncio
    async def test_mutable_fields_are_updated_in_place(self):
        first = await self.repo.upsert_for_plugin(1, NetworkUpsertDto.from_rule(
            {"label": "old", "target": {"hosts": ["api.example.com"]}}
        ))
        second = await self.repo.upsert_for_plugin(1, NetworkUpsertDto.from_rule(
            {"label": "new", "target": {"hosts": ["api.example.com"]}}
        ))

        assert second.concrete_id == first.concrete_id
        assert second.warning is None
        assert (await self.table.get(first.concrete_id)).label == "new"

    @pytest.mark.asyncio
    async def test_module_alias_is_mutable(self):
        rule = {"actions": ["call"], "target": {"plugin": "billing", "apis": ["invoice.create"]}}
        first = await self.repo.upsert_for_plugin(1, ModuleUpsertDto.from_rule(rule))
        rule["target"]["plugin_alias"] = "bill"
        second = await self.repo.upsert_for_plugin(1, ModuleUpsertDto.from_rule(rule))

        row = await self.repo.concrete[PermissionType.MODULE].get(second.concrete_id)
        assert second.concrete_id == first.concrete_id
        assert row.module_alias == "bill"

    @pytest.mark.asyncio
    async def test_failed_assignment_rolls_back_concrete_insert(self):
        dto = network_dto()
        failing = AsyncMock(side_effect=PersistenceError("assignment table unavailable"))

        with patch.object(self.repo, "_ensure_assignment", failing):
            with pytest.raises(PersistenceError):
                await self.repo.upsert_for_plugin(1, dto)

        assert await self.table.get_by_natural_key(dto.natural_key()) is None
        assert await self.table.list() == []
        assert await self.repo.assignments.list() == []

        retried = await self.repo.upsert_for_plugin(1, dto)
        assert retried.created is True
        assert retried.concrete_id == 1

    @pytest.mark.asyncio
    async def test_concurrent_ingest_creates_one_row(self):
        dto = network_dto()

        outcomes = await asyncio.gather(*[
            self.repo.upsert_for_plugin(plugin_id, dto) for plugin_id in range(1, 6)
        ])

        assert sum(o.created for o in outcomes) == 1
        assert {o.concrete_id for o in outcomes} == {outcomes[0].concrete_id}
        assert len(await self.table.list()) == 1
        assert len(await self.repo.assignments.list()) == 5

    @pytest.mark.asyncio
    async def test_concurrent_mixed_keys_leave_no_per_key_state(self):
        dtos = [network_dto(hosts=[f"h{i % 3}.example.com"]) for i in range(9)]

        outcomes = await asyncio.gather(*[
            self.repo.upsert_for_plugin(plugin_id, dto) for plugin_id, dto in enumerate(dtos, start=1)
        ])

        assert sum(o.created for o in outcomes) == 3
        assert len(await self.table.list()) == 3
        assert len(await self.repo.assignments.list()) == 9
        assert not self.repo._write_lock.locked()
        assert not hasattr(self.repo, "_key_locks")

    @pytest.mark.asyncio
    async def test_meta_applies_only_present_keys(self):
        dto = network_dto()
        await self.repo.upsert_for_plugin(1, dto, {"audit": {"tags": ["egress"]}, "actions": ["request"]})
        await self.repo.upsert_for_plugin(1, dto, {"conditions": {"guard": "web"}})

        [row] = await self.repo.assignments.list()
        assert row.audit == {"tags": ["egress"]}
        assert row.conditions == {"guard": "web"}
        assert row.actions == ["request"]

    @pytest.mark.asyncio
    async def test_natural_key_uniqueness_enforced_by_table(self):
        table = self.repo.concrete[PermissionType.DB]
        await table.create(DbPermission(natural_key="k1", table="users"))
        with pytest.raises(DuplicateNaturalKeyError):
            await table.create(DbPermission(natural_key="k1", table="orders"))


class TestAssignments:
    """Test suite for assignment, tag and route bookkeeping"""

    def setup_method(self):
        self.repo = InMemoryPermissionRepository()

    @pytest.mark.asyncio
    async def test_deactivate_is_idempotent(self):
        outcome = await self.repo.upsert_for_plugin(1, network_dto())

        assert await self.repo.deactivate_plugin_permission(1, PermissionType.NETWORK, outcome.concrete_id)
        assert not await self.repo.deactivate_plugin_permission(1, PermissionType.NETWORK, outcome.concrete_id)
        assert not await self.repo.deactivate_plugin_permission(2, PermissionType.NETWORK, outcome.concrete_id)

        [morph] = await self.repo.get_direct_morphs(1)
        assert morph.active is False
        assert morph.source == AssignmentSource.DIRECT

    @pytest.mark.asyncio
    async def test_ensure_assignment_sets_window(self):
        outcome = await self.repo.upsert_for_plugin(1, network_dto())
        window = TimeWindow.ttl(60)
        await self.repo.ensure_plugin_assignment(1, "network", outcome.concrete_id, {"window": window})

        [morph] = await self.repo.get_direct_morphs(1)
        assert morph.window == window
        assert morph.started_at is not None

    @pytest.mark.asyncio
    async def test_tag_morphs_follow_pivot(self):
        outcome = await self.repo.upsert_for_plugin(1, network_dto())
        tag = await self.repo.create_tag("egress", "Outbound HTTP")
        await self.repo.add_tag_item(tag.id, "network", outcome.concrete_id, audit={"tags": ["t"]})
        await self.repo.attach_tag(2, tag.id, window=TimeWindow.ttl(3600))

        [morph] = await self.repo.get_tag_morphs(2)
        assert morph.source == AssignmentSource.TAG
        assert morph.tag_name == "egress"
        assert morph.window.value == "3600"
        assert morph.audit == {"tags": ["t"]}

        assert await self.repo.detach_tag(2, tag.id) is True
        assert await self.repo.get_tag_morphs(2) == []
        assert await self.repo.detach_tag(2, tag.id) is False

    @pytest.mark.asyncio
    async def test_unknown_tag_rejected(self):
        with pytest.raises(PersistenceError):
            await self.repo.add_tag_item(99, "network", 1)
        with pytest.raises(PersistenceError):
            await self.repo.attach_tag(1, 99)

    @pytest.mark.asyncio
    async def test_fetch_concrete_by_type_skips_missing(self):
        outcome = await self.repo.upsert_for_plugin(1, network_dto())
        rows = await self.repo.fetch_concrete_by_type(PermissionType.NETWORK, [outcome.concrete_id, 404])
        assert list(rows) == [outcome.concrete_id]

    @pytest.mark.asyncio
    async def test_route_approval_upserts(self):
        await self.repo.record_route_approval(1, "admin.dashboard", RouteStatus.PENDING)
        record = await self.repo.record_route_approval(1, "admin.dashboard", RouteStatus.APPROVED, guard="admin")

        stored = await self.repo.route_permission(1, "admin.dashboard")
        assert stored.id == record.id
        assert stored.status == RouteStatus.APPROVED
        assert stored.approved_at is not None
        assert await self.repo.route_permission(1, "other") is None
