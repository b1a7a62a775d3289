"""
Test Runtime Gating

Time windows and conditions.
"""

from datetime import datetime, timedelta, timezone

from plugin_authz.data.models import TimeWindow
from plugin_authz.policy import ConditionsEvaluator, TimeWindowEvaluator, is_truthy
from plugin_authz.policy.time_window import parse_duration_seconds, parse_instant


class TestTimeWindow:
    """Test suite for TimeWindowEvaluator"""

    def setup_method(self):
        self.windows = TimeWindowEvaluator()
        self.now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def test_no_window_is_active(self):
        assert self.windows.is_active(None)
        assert self.windows.is_active({"limited": False, "type": "until", "value": "2000-01-01"})

    def test_until_in_past_is_inactive(self):
        window = {"limited": True, "type": "until", "value": "2025-05-31T00:00:00Z"}
        assert self.windows.is_active(window, now=self.now) is False

    def test_until_in_future_is_active(self):
        window = TimeWindow.until(self.now + timedelta(minutes=1))
        assert self.windows.is_active(window, now=self.now) is True

    def test_malformed_until_fails_closed(self):
        window = {"limited": True, "type": "until", "value": "not-a-date"}
        assert self.windows.is_active(window, now=self.now) is False

    def test_ttl_started_two_hours_ago_is_inactive(self):
        window = {"limited": True, "type": "ttl", "value": "3600"}
        assert self.windows.is_active(window, self.now - timedelta(hours=2), self.now) is False

    def test_ttl_started_thirty_minutes_ago_is_active(self):
        window = {"limited": True, "type": "ttl", "value": "3600"}
        assert self.windows.is_active(window, self.now - timedelta(minutes=30), self.now) is True

    def test_ttl_with_iso_duration(self):
        window = TimeWindow.ttl("PT1H")
        assert self.windows.is_active(window, self.now - timedelta(minutes=59), self.now) is True
        assert self.windows.is_active(window, self.now - timedelta(minutes=61), self.now) is False

    def test_ttl_without_start_is_inactive(self):
        window = {"limited": True, "type": "ttl", "value": "3600"}
        assert self.windows.is_active(window, None, self.now) is False

    def test_unknown_type_is_inactive(self):
        assert self.windows.is_active({"limited": True, "type": "forever"}, now=self.now) is False

    def test_duration_parsing(self):
        assert parse_duration_seconds("90") == 90
        assert parse_duration_seconds("PT1H30M") == 5400
        assert parse_duration_seconds("P1D") == 86400
        assert parse_duration_seconds("P1Y2M") == (365 + 60) * 86400
        assert parse_duration_seconds("P1W") == 7 * 86400
        assert parse_duration_seconds("P") is None
        assert parse_duration_seconds("soon") is None

    def test_naive_instant_is_utc(self):
        assert parse_instant("2025-01-01T00:00:00") == datetime(2025, 1, 1, tzinfo=timezone.utc)


class TestConditions:
    """Test suite for ConditionsEvaluator"""

    def setup_method(self):
        self.settings = {42: {"feature_x": "1", "feature_off": "0"}}
        self.conditions = ConditionsEvaluator(
            env_provider=lambda: "production",
            settings_provider=lambda plugin_id: self.settings.get(plugin_id, {}),
        )

    def test_empty_conditions_match(self):
        assert self.conditions.matches(None, {})
        assert self.conditions.matches({}, {"guard": "web"})

    def test_guard_equality(self):
        assert self.conditions.matches({"guard": "admin"}, {"guard": "admin"})
        assert not self.conditions.matches({"guard": "admin"}, {"guard": "web"})
        assert not self.conditions.matches({"guard": "admin"}, {})

    def test_env_allow_uses_provider_when_context_is_silent(self):
        assert self.conditions.matches({"env": {"allow": ["production"]}}, {})
        assert not self.conditions.matches({"env": {"allow": ["staging"]}}, {})
        assert self.conditions.matches({"env": {"allow": ["staging"]}}, {"env": "staging"})

    def test_env_deny_wins(self):
        conditions = {"env": {"allow": ["production"], "deny": ["production"]}}
        assert not self.conditions.matches(conditions, {})

    def test_setting_link_from_context(self):
        assert self.conditions.matches({"setting_link": "beta"}, {"settings": {"beta": True}})
        assert not self.conditions.matches({"setting_link": "beta"}, {"settings": {"beta": "0"}})
        assert not self.conditions.matches({"setting_link": "beta"}, {"settings": {}})

    def test_setting_link_from_provider(self):
        assert self.conditions.matches({"setting_link": "feature_x"}, {"plugin_id": 42})
        assert not self.conditions.matches({"setting_link": "feature_off"}, {"plugin_id": 42})
        assert not self.conditions.matches({"setting_link": "feature_x"}, {"plugin_id": 7})

    def test_truthiness(self):
        for value in (None, False, 0, "0", ""):
            assert is_truthy(value) is False
        for value in (True, 1, "1", "false", "no", [0]):
            assert is_truthy(value) is True
