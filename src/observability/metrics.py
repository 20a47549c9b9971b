"""
Prometheus metrics for breach evaluation and notification delivery.

Defines and exposes metrics for:
- Evaluator ticks (completed, skipped, failed) and tick latency
- Breaches created and suppressed by the dedup window
- Per-metric evaluation errors
- Notification dispatches and per-endpoint delivery outcomes
- Dead push subscriptions pruned

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the city-alerts service.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_breach("traffic", "critical", created=True)
        metrics.record_delivery("webpush", "gone")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Evaluator
        self.evaluator_ticks = Counter(
            "city_alerts_evaluator_ticks_total",
            "Evaluator ticks by outcome",
            ["outcome"],  # completed, skipped, failed
        )

        self.evaluator_latency = Histogram(
            "city_alerts_evaluator_latency_seconds",
            "Duration of one evaluation pass",
            buckets=LATENCY_BUCKETS,
        )

        self.evaluator_metric_errors = Counter(
            "city_alerts_evaluator_metric_errors_total",
            "Errors while evaluating a single metric",
            ["metric"],
        )

        self.evaluator_running = Gauge(
            "city_alerts_evaluator_running",
            "Whether the periodic evaluator loop is running (1) or not (0)",
        )

        # Breaches
        self.breaches_created = Counter(
            "city_alerts_breaches_created_total",
            "Breaches recorded",
            ["metric", "severity"],
        )

        self.breaches_suppressed = Counter(
            "city_alerts_breaches_suppressed_total",
            "Breaches suppressed by the dedup window",
            ["metric", "severity"],
        )

        self.breaches_acknowledged = Counter(
            "city_alerts_breaches_acknowledged_total",
            "Breaches acknowledged by operators",
        )

        # Notifications
        self.notifications_dispatched = Counter(
            "city_alerts_notifications_dispatched_total",
            "Notification dispatches by channel and terminal status",
            ["channel", "status"],  # sent, failed, no_subscribers
        )

        self.notification_deliveries = Counter(
            "city_alerts_notification_deliveries_total",
            "Per-endpoint delivery attempts by outcome",
            ["channel", "outcome"],  # ok, failed, gone, timeout
        )

        self.dispatch_latency = Histogram(
            "city_alerts_dispatch_latency_seconds",
            "Time to deliver one notification across all endpoints",
            ["channel"],
            buckets=LATENCY_BUCKETS,
        )

        self.subscriptions_pruned = Counter(
            "city_alerts_push_subscriptions_pruned_total",
            "Push subscriptions deleted after the push service reported them gone",
        )

        self._server_started = False

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        if self._server_started:
            logger.warning("Metrics server already started")
            return

        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port)
        self._server_started = True
        logger.info("Metrics server started on port %d", port)

    def record_tick(self, outcome: str, latency: float | None = None) -> None:
        """
        Record one evaluator tick.

        Args:
            outcome: completed, skipped, or failed
            latency: Tick duration in seconds (omitted for skipped ticks)
        """
        self.evaluator_ticks.labels(outcome=outcome).inc()
        if latency is not None:
            self.evaluator_latency.observe(latency)

    def record_metric_error(self, metric: str) -> None:
        self.evaluator_metric_errors.labels(metric=metric).inc()

    def set_evaluator_running(self, running: bool) -> None:
        self.evaluator_running.set(1 if running else 0)

    def record_breach(self, metric: str, severity: str, created: bool) -> None:
        """
        Record a breach candidate.

        Args:
            metric: Metric name
            severity: warn or critical
            created: True if stored, False if suppressed by dedup
        """
        if created:
            self.breaches_created.labels(metric=metric, severity=severity).inc()
        else:
            self.breaches_suppressed.labels(metric=metric, severity=severity).inc()

    def record_ack(self) -> None:
        self.breaches_acknowledged.inc()

    def record_dispatch(self, channel: str, status: str, latency: float) -> None:
        """
        Record a finished dispatch.

        Args:
            channel: webpush, email, or sms
            status: Terminal notification status
            latency: Dispatch duration in seconds
        """
        self.notifications_dispatched.labels(channel=channel, status=status).inc()
        self.dispatch_latency.labels(channel=channel).observe(latency)

    def record_delivery(self, channel: str, outcome: str) -> None:
        self.notification_deliveries.labels(channel=channel, outcome=outcome).inc()

    def record_subscription_pruned(self) -> None:
        self.subscriptions_pruned.inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
