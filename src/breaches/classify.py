"""Stateless threshold classification for breach detection.

Each function is pure: no I/O and no clock reads. Deduplication and
persistence live in the evaluator and repository.
"""

from datetime import datetime

from src.breaches.schemas import Breach, Severity
from src.thresholds.schemas import Threshold


def classify_severity(value: float, threshold: Threshold) -> Severity | None:
    """Classify a sampled value against a metric's threshold.

    Both bands are inclusive: a value equal to the critical level is
    critical, a value equal to the warn level is warn.

    Returns:
        "critical", "warn", or None when the value is below warn.
    """
    if value >= threshold.critical:
        return "critical"
    if value >= threshold.warn:
        return "warn"
    return None


def _fmt(number: float) -> str:
    return f"{number:g}"


def format_breach_message(
    metric: str,
    severity: str,
    value: float,
    threshold: Threshold,
) -> str:
    """Build the breach message, e.g.
    ``TRAFFIC CRITICAL: value=95, thresholds warn=70, critical=90``.
    """
    return (
        f"{metric.upper()} {severity.upper()}: value={_fmt(value)}, "
        f"thresholds warn={_fmt(threshold.warn)}, "
        f"critical={_fmt(threshold.critical)}"
    )


def check_threshold(
    metric: str,
    value: float,
    threshold: Threshold,
    now: datetime,
) -> Breach | None:
    """Turn one sample into a candidate breach.

    Args:
        metric: Metric that was sampled.
        value: Sampled value.
        threshold: Current threshold for the metric.
        now: Evaluation time, used as the breach's created_at.

    Returns:
        Unsaved Breach, or None when the value is inside the normal band.
    """
    severity = classify_severity(value, threshold)
    if severity is None:
        return None

    return Breach(
        metric=metric,
        value=value,
        severity=severity,
        message=format_breach_message(metric, severity, value, threshold),
        created_at=now,
    )
