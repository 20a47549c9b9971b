"""Schema definitions for threshold records.

Maps 1:1 to the ``thresholds`` database table. Each row holds the warn
and critical levels for one city metric. Rows are seeded at bootstrap,
updated by operators, and never deleted.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Metric = Literal["traffic", "air_quality", "waste", "power"]

VALID_METRICS: frozenset[str] = frozenset({
    "traffic",
    "air_quality",
    "waste",
    "power",
})


def validate_threshold(metric: str, warn: Any, critical: Any) -> None:
    """Reject a threshold update before it reaches the database.

    Args:
        metric: Metric name.
        warn: Proposed warn level.
        critical: Proposed critical level.

    Raises:
        ValueError: If the metric is unknown, a level is missing or not a
            finite number, or ``warn >= critical``.
    """
    if metric not in VALID_METRICS:
        raise ValueError(
            f"Unknown metric {metric!r}. "
            f"Must be one of: {sorted(VALID_METRICS)}"
        )
    if warn is None or critical is None:
        raise ValueError("Both warn and critical are required")
    for name, level in (("warn", warn), ("critical", critical)):
        if isinstance(level, bool) or not isinstance(level, (int, float)):
            raise ValueError(f"{name} must be a number, got {level!r}")
        if not math.isfinite(level):
            raise ValueError(f"{name} must be finite, got {level!r}")
    if warn >= critical:
        raise ValueError(
            f"warn must be < critical (got warn={warn}, critical={critical})"
        )


@dataclass
class Threshold:
    """A persisted threshold row.

    Attributes:
        metric: Metric this threshold applies to (primary key).
        warn: Values at or above this level raise a warn breach.
        critical: Values at or above this level raise a critical breach.
        updated_at: Last time an operator changed the row.
    """

    metric: str
    warn: float
    critical: float
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        validate_threshold(self.metric, self.warn, self.critical)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "metric": self.metric,
            "warn": self.warn,
            "critical": self.critical,
            "updated_at": self.updated_at.isoformat(),
        }
