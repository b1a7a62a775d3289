"""
Test Manifest Ingestion

Normalization, per-rule isolation, required flags and summaries.
"""

import pytest

from plugin_authz.core.registry import PermissionRegistry
from plugin_authz.core.types import PermissionType
from plugin_authz.data.repos import InMemoryPermissionRepository
from plugin_authz.errors import ConfigurationError, UnknownPermissionTypeError
from plugin_authz.ingestion import (
    CodecIngestor,
    IngestSummary,
    ManifestIngestor,
    ManifestNormalizer,
    NetworkIngestor,
    RuleIngestResult,
    default_ingestors,
)


def make_ingestor(repo):
    registry = PermissionRegistry()
    for ingestor in default_ingestors({"json": ["json_encode", "json_decode"]}):
        registry.register_ingestor(ingestor)
    return ManifestIngestor(registry, repo)


class TestManifestNormalizer:
    """Test suite for ManifestNormalizer"""

    def setup_method(self):
        self.normalizer = ManifestNormalizer()

    def test_notify_alias_and_action_order(self):
        rule = self.normalizer.normalize_rule(
            {"type": "Notify", "actions": ["send", "Send", "receive"], "target": {"channels": ["sms", "mail"]}}
        )
        assert rule["type"] == "notification"
        assert rule["actions"] == ["receive", "send"]
        assert rule["target"]["channels"] == ["mail", "sms"]

    def test_network_defaults_and_casing(self):
        rule = self.normalizer.normalize_rule({
            "type": "network",
            "target": {"hosts": ["API.example.com"], "methods": ["post", "get"], "ports": [8443, "x", 443]},
        })
        target = rule["target"]
        assert target["hosts"] == ["api.example.com"]
        assert target["methods"] == ["GET", "POST"]
        assert target["schemes"] == ["https"]
        assert target["ports"] == [443, 8443]

    def test_unknown_type_rejected(self):
        with pytest.raises(UnknownPermissionTypeError):
            self.normalizer.normalize_rule({"type": "telepathy", "target": {}})

    def test_rules_sorted_deterministically(self):
        manifest = {"required_permissions": [
            {"type": "network", "target": {"hosts": ["b.com"]}},
            {"type": "db", "actions": ["select"], "target": {"table": "users"}},
            {"type": "network", "target": {"hosts": ["a.com"]}},
        ]}
        rules = self.normalizer.normalize(manifest)["required_permissions"]
        assert [(r["type"], r["target"].get("hosts")) for r in rules] == [
            ("db", None), ("network", ["a.com"]), ("network", ["b.com"]),
        ]


class TestManifestIngestor:
    """Test suite for ManifestIngestor"""

    def setup_method(self):
        self.repo = InMemoryPermissionRepository()
        self.ingestor = make_ingestor(self.repo)

    @pytest.mark.asyncio
    async def test_reingest_is_idempotent(self, network_rule):
        manifest = {"required_permissions": [network_rule]}

        first = await self.ingestor.ingest(1, manifest)
        second = await self.ingestor.ingest(1, manifest)

        assert (first.created, first.linked) == (1, 1)
        assert (second.created, second.linked) == (0, 1)
        assert second.items[0].created is False
        assert second.items[0].assigned is True
        assert first.items[0].natural_key == second.items[0].natural_key
        assert len(await self.repo.concrete[PermissionType.NETWORK].list()) == 1

    @pytest.mark.asyncio
    async def test_failing_rule_does_not_abort_siblings(self, network_rule):
        manifest = {
            "required_permissions": [
                {"type": "network", "target": {"hosts": []}},
                network_rule,
            ],
            "optional_permissions": [
                {"type": "telepathy"},
                {"type": "route", "target": {"route": "x"}},
            ],
        }

        summary = await self.ingestor.ingest(1, manifest)

        assert summary.created == 1
        assert summary.failed == 3
        assert any(w.startswith("$.required_permissions[0]:") for w in summary.warnings)
        assert any(w.startswith("$.optional_permissions[0]:") for w in summary.warnings)
        assert any(w.startswith("$.optional_permissions[1]:") for w in summary.warnings)
        assert summary.items[0].path == "$.required_permissions[1]"

    @pytest.mark.asyncio
    async def test_required_flag_lands_on_assignment(self, network_rule):
        manifest = {
            "required_permissions": [network_rule],
            "optional_permissions": [
                {"type": "notify", "actions": ["send"], "target": {"channels": ["mail"]}},
            ],
        }
        await self.ingestor.ingest(1, manifest)

        by_type = {a.permission_type: a for a in await self.repo.assignments.list()}
        assert by_type[PermissionType.NETWORK].constraints == {"required": True}
        assert by_type[PermissionType.NOTIFICATION].constraints == {"required": False}

    @pytest.mark.asyncio
    async def test_rule_meta_copied_to_assignment(self, network_rule):
        rule = {**network_rule, "conditions": {"guard": "web"}, "justification": "CDN assets"}
        await self.ingestor.ingest(1, {"required_permissions": [rule]})

        [assignment] = await self.repo.assignments.list()
        assert assignment.conditions == {"guard": "web"}
        assert assignment.justification == "CDN assets"
        assert assignment.actions == ["request"]

    @pytest.mark.asyncio
    async def test_codec_groups_resolved_at_ingest(self):
        manifest = {"required_permissions": [
            {"type": "codec", "actions": ["invoke"], "target": {"groups": ["json"]}},
        ]}
        summary = await self.ingestor.ingest(1, manifest)

        row = await self.repo.concrete[PermissionType.CODEC].get(summary.items[0].concrete_id)
        assert row.allowed["methods"] == ["json_decode", "json_encode"]
        assert row.allowed["groups"] == ["json"]


class TestRegistry:
    """Test suite for PermissionRegistry"""

    def test_route_cannot_have_an_ingestor(self):
        class RouteIngestor:
            def type(self):
                return PermissionType.ROUTE

        with pytest.raises(ConfigurationError):
            PermissionRegistry().register_ingestor(RouteIngestor())

    def test_lookup(self):
        registry = PermissionRegistry(disabled_types=["codec"])
        registry.register_ingestor(NetworkIngestor())
        registry.register_ingestor(CodecIngestor())

        assert registry.has_ingestor("network")
        assert registry.ingestor_for("route") is None
        assert registry.ingestor_for("bogus") is None
        with pytest.raises(UnknownPermissionTypeError):
            registry.checker_for("network")
        assert registry.types() == []


class TestIngestSummary:
    """Test suite for IngestSummary"""

    def test_merge(self):
        a = IngestSummary()
        a.add(RuleIngestResult("db", "k1", 1, "db", created=True, assigned=True))
        b = IngestSummary()
        b.add(RuleIngestResult("db", "k1", 1, "db", created=False, assigned=True, warning="drift", path="$.x[0]"))
        b.fail("$.x[1]", "boom")

        merged = IngestSummary.merge(a, b)

        assert (merged.created, merged.linked, merged.failed) == (1, 2, 1)
        assert merged.warnings == ["$.x[0]: drift", "$.x[1]: boom"]
        assert merged.to_dict()["items"][1]["warning"] == "drift"
