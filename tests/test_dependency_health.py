"""Tests for the dependency health tracker."""

from datetime import datetime, timezone

from aquita.observability.dependency_health import (
    DEFAULT_THRESHOLD_MS,
    WINDOW_SIZE,
    DependencyHealthTracker,
    normalize_name,
    percentile,
)


class TestPercentile:
    def test_empty_is_zero(self):
        assert percentile([], 0.95) == 0.0

    def test_single_value(self):
        assert percentile([42.0], 0.5) == 42.0
        assert percentile([42.0], 0.95) == 42.0

    def test_index_is_floor_of_n_minus_one_times_p(self):
        values = [float(v) for v in range(1, 11)]  # 1..10
        assert percentile(values, 0.5) == 5.0  # floor(9 * 0.5) = 4
        assert percentile(values, 0.95) == 9.0  # floor(9 * 0.95) = 8

    def test_rounds_to_two_decimals(self):
        assert percentile([1.23456], 0.5) == 1.23


class TestNormalizeName:
    def test_lowercase_and_trim(self):
        assert normalize_name("  WhatsApp ") == "whatsapp"

    def test_blank_becomes_unknown(self):
        assert normalize_name("   ") == "unknown"
        assert normalize_name(None) == "unknown"


class TestRecord:
    def test_window_is_bounded(self, tracker):
        for i in range(WINDOW_SIZE + 50):
            tracker.record("whatsapp", "send_text", float(i), True)

        [report] = tracker.snapshot()
        assert report.samples == WINDOW_SIZE
        # counters are not windowed
        assert report.success_count == WINDOW_SIZE + 50

    def test_oldest_latencies_evicted_first(self, tracker):
        tracker.record("ai", "concierge", 10_000.0, True)
        for _ in range(WINDOW_SIZE):
            tracker.record("ai", "concierge", 5.0, True)

        [report] = tracker.snapshot()
        assert report.p95_ms == 5.0

    def test_names_normalized_into_one_key(self, tracker):
        tracker.record("WhatsApp", " Send_Text ", 10.0, True)
        tracker.record("whatsapp", "send_text", 20.0, False)

        [report] = tracker.snapshot()
        assert report.key == "whatsapp:send_text"
        assert report.success_count == 1
        assert report.failure_count == 1

    def test_duration_stored_as_given(self, tracker):
        tracker.record("whatsapp", "send_text", -5.0, True)

        [report] = tracker.snapshot()
        assert report.p50_ms == -5.0
        assert report.p95_ms == -5.0

    def test_last_seen_uses_clock(self):
        stamp = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        tracker = DependencyHealthTracker(clock=lambda: stamp)
        tracker.record("ai", "auto_reply", 100.0, True)

        [report] = tracker.snapshot()
        assert report.last_seen_at == stamp
        assert report.to_dict()["lastSeenAt"] == stamp.isoformat()


class TestSnapshot:
    def test_no_keys_before_first_call(self, tracker):
        assert tracker.snapshot() == []

    def test_error_rate(self, tracker):
        tracker.record("whatsapp", "send_text", 10.0, True)
        tracker.record("whatsapp", "send_text", 10.0, True)
        tracker.record("whatsapp", "send_text", 10.0, False)

        [report] = tracker.snapshot()
        assert report.error_rate_pct == 33.33

    def test_p95_never_below_p50(self, tracker):
        for value in (900.0, 10.0, 250.0, 40.0, 3.0, 1200.0, 77.0):
            tracker.record("ai", "concierge", value, True)

        [report] = tracker.snapshot()
        assert report.p95_ms >= report.p50_ms

    def test_threshold_resolution_order(self, tracker):
        tracker.record("ai", "concierge", 2000.0, True)
        tracker.record("ai", "auto_reply", 2000.0, True)
        tracker.record("maps", "geocode", 2000.0, True)

        reports = {
            r.key: r
            for r in tracker.snapshot({"ai:concierge": 1000.0, "ai": 2500.0})
        }
        assert reports["ai:concierge"].threshold_ms == 1000.0
        assert reports["ai:concierge"].healthy is False
        assert reports["ai:auto_reply"].threshold_ms == 2500.0
        assert reports["ai:auto_reply"].healthy is True
        assert reports["maps:geocode"].threshold_ms == DEFAULT_THRESHOLD_MS
        assert reports["maps:geocode"].healthy is False

    def test_error_rate_of_twenty_is_unhealthy(self, tracker):
        for success in (True, True, True, True, False):
            tracker.record("whatsapp", "send_text", 5.0, success)

        [report] = tracker.snapshot()
        assert report.error_rate_pct == 20.0
        assert report.healthy is False

    def test_unhealthy_first_then_by_descending_p95(self, tracker):
        tracker.record("ai", "fast", 10.0, True)
        tracker.record("ai", "slow", 900.0, True)
        tracker.record("whatsapp", "broken", 5.0, False)

        keys = [r.key for r in tracker.snapshot()]
        assert keys == ["whatsapp:broken", "ai:slow", "ai:fast"]

    def test_snapshot_does_not_mutate(self, tracker):
        tracker.record("ai", "concierge", 10.0, True)
        first = tracker.snapshot()
        second = tracker.snapshot()
        assert first == second

    def test_reset_drops_samples(self, tracker):
        tracker.record("ai", "concierge", 10.0, True)
        tracker.reset()
        assert tracker.snapshot() == []

    def test_report_dict_uses_camel_case(self, tracker):
        tracker.record("whatsapp", "send_location", 12.5, True)
        data = tracker.snapshot()[0].to_dict()
        assert set(data) == {
            "key",
            "dependency",
            "operation",
            "samples",
            "p50Ms",
            "p95Ms",
            "successCount",
            "failureCount",
            "errorRatePct",
            "thresholdMs",
            "healthy",
            "lastSeenAt",
        }
