"""Tests for the operational dashboard composer."""

import pytest

from aquita.infra.settings import DashboardSettings
from aquita.operations.dashboard import (
    REQUIRED_TABLES,
    DatabaseCheck,
    OperationalDashboard,
    pool_status,
    summarize_group,
    worst_status,
)


class StaticProbe:
    def __init__(self, check: DatabaseCheck):
        self.check_result = check
        self.requested: list[tuple] = []

    def check(self, required_tables):
        self.requested.append(required_tables)
        return self.check_result


HEALTHY_DB = DatabaseCheck(reachable=True, missing_tables=[], active_connections=10, max_connections=100)


def _dashboard(tracker, check=HEALTHY_DB, settings=None):
    probe = StaticProbe(check)
    return OperationalDashboard(tracker, settings or DashboardSettings(), probe=probe), probe


def _feed_healthy(tracker):
    tracker.record("ai", "concierge", 300.0, True)
    tracker.record("whatsapp", "send_text", 200.0, True)


class TestWorstStatus:
    def test_ordering(self):
        assert worst_status("up", "degraded") == "degraded"
        assert worst_status("degraded", "down", "up") == "down"
        assert worst_status("up", "up") == "up"


class TestPoolStatus:
    @pytest.mark.parametrize(
        "ratio,expected",
        [(0.1, "up"), (0.74, "up"), (0.75, "degraded"), (0.89, "degraded"), (0.9, "down"), (1.2, "down")],
    )
    def test_thresholds(self, ratio, expected):
        assert pool_status(ratio, 0.75, 0.9) == expected


class TestSummarizeGroup:
    def test_no_samples_is_degraded(self):
        assert summarize_group([]) == {"status": "degraded", "reason": "no_samples", "entries": []}

    def test_healthy_group_is_up(self, tracker):
        tracker.record("ai", "concierge", 100.0, True)
        assert summarize_group(tracker.snapshot())["status"] == "up"

    def test_slow_but_reliable_is_degraded(self, tracker):
        tracker.record("ai", "concierge", 5000.0, True)
        summary = summarize_group(tracker.snapshot({"ai": 2500.0}))
        assert summary["status"] == "degraded"
        assert summary["reason"] == "latency"

    def test_high_error_rate_is_down(self, tracker):
        tracker.record("whatsapp", "send_text", 100.0, False)
        tracker.record("whatsapp", "send_text", 100.0, True)
        summary = summarize_group(tracker.snapshot())
        assert summary["status"] == "down"
        assert summary["entries"][0]["errorRatePct"] == 50.0


class TestOperationalDashboard:
    def test_all_up(self, tracker):
        _feed_healthy(tracker)
        dashboard, probe = _dashboard(tracker)

        result = dashboard.get_operational_dashboard()

        assert result["status"] == "up"
        assert probe.requested == [REQUIRED_TABLES]
        assert result["database"]["schema"]["status"] == "up"
        assert result["database"]["pool"]["utilizationRatio"] == 0.1
        assert set(result["dependencies"]) == {"ai", "whatsapp"}
        assert "generatedAt" in result

    def test_missing_samples_degrade_overall(self, tracker):
        tracker.record("ai", "concierge", 300.0, True)
        dashboard, _ = _dashboard(tracker)

        result = dashboard.get_operational_dashboard()

        assert result["dependencies"]["whatsapp"]["reason"] == "no_samples"
        assert result["status"] == "degraded"

    def test_missing_table_is_down(self, tracker):
        _feed_healthy(tracker)
        check = DatabaseCheck(
            reachable=True, missing_tables=["whatsapp_messages"], active_connections=1, max_connections=100
        )
        dashboard, _ = _dashboard(tracker, check)

        result = dashboard.get_operational_dashboard()

        assert result["database"]["schema"] == {
            "status": "down",
            "reason": "missing_tables",
            "missingTables": ["whatsapp_messages"],
        }
        assert result["status"] == "down"

    def test_saturated_pool_is_down(self, tracker):
        _feed_healthy(tracker)
        check = DatabaseCheck(reachable=True, active_connections=95, max_connections=100)
        dashboard, _ = _dashboard(tracker, check)

        result = dashboard.get_operational_dashboard()

        assert result["database"]["pool"]["status"] == "down"
        assert result["status"] == "down"

    def test_custom_pool_thresholds(self, tracker):
        _feed_healthy(tracker)
        check = DatabaseCheck(reachable=True, active_connections=50, max_connections=100)
        settings = DashboardSettings(pool_warn_ratio=0.4, pool_critical_ratio=0.8)
        dashboard, _ = _dashboard(tracker, check, settings)

        assert dashboard.get_operational_dashboard()["status"] == "degraded"

    def test_unreachable_database(self, tracker):
        _feed_healthy(tracker)
        dashboard, _ = _dashboard(tracker, DatabaseCheck(reachable=False, error="OperationalError"))

        result = dashboard.get_operational_dashboard()

        assert result["database"]["schema"]["status"] == "down"
        assert result["database"]["pool"]["status"] == "down"
        assert result["status"] == "down"

    def test_latency_threshold_from_settings(self, tracker):
        tracker.record("ai", "concierge", 2000.0, True)
        tracker.record("whatsapp", "send_text", 200.0, True)
        strict = DashboardSettings(latency_thresholds_ms={"ai": 1000.0, "whatsapp": 1800.0})
        dashboard, _ = _dashboard(tracker, settings=strict)

        result = dashboard.get_operational_dashboard()

        assert result["dependencies"]["ai"]["status"] == "degraded"
        assert result["dependencies"]["whatsapp"]["status"] == "up"

    def test_other_dependencies_ignored(self, tracker):
        _feed_healthy(tracker)
        tracker.record("maps", "geocode", 100.0, False)
        dashboard, _ = _dashboard(tracker)

        assert dashboard.get_operational_dashboard()["status"] == "up"
