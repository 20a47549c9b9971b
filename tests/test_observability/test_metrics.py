"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from src.observability.metrics import get_metrics


def _value(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsCollector:
    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_breach_created_and_suppressed(self):
        labels = {"metric": "waste", "severity": "warn"}
        created = _value("city_alerts_breaches_created_total", labels)
        suppressed = _value("city_alerts_breaches_suppressed_total", labels)

        metrics = get_metrics()
        metrics.record_breach("waste", "warn", created=True)
        metrics.record_breach("waste", "warn", created=False)
        metrics.record_breach("waste", "warn", created=False)

        assert _value("city_alerts_breaches_created_total", labels) == created + 1
        assert _value("city_alerts_breaches_suppressed_total", labels) == suppressed + 2

    def test_skipped_tick_has_no_latency(self):
        count = _value("city_alerts_evaluator_latency_seconds_count")
        ticks = _value("city_alerts_evaluator_ticks_total", {"outcome": "skipped"})

        get_metrics().record_tick("skipped")

        assert _value("city_alerts_evaluator_ticks_total", {"outcome": "skipped"}) == ticks + 1
        assert _value("city_alerts_evaluator_latency_seconds_count") == count

    def test_delivery_outcomes(self):
        labels = {"channel": "webpush", "outcome": "gone"}
        before = _value("city_alerts_notification_deliveries_total", labels)
        get_metrics().record_delivery("webpush", "gone")
        assert _value("city_alerts_notification_deliveries_total", labels) == before + 1
