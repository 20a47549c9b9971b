"""Schema definitions for breach records.

Maps 1:1 to the ``breaches`` database table. A breach records one
instance of a sampled metric crossing its warn or critical threshold.
Breaches are append-only; the acknowledgement pair (``acked_by``,
``acked_at``) is the single mutation, set once and never cleared.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from src.thresholds.schemas import VALID_METRICS

Severity = Literal["warn", "critical"]

VALID_SEVERITIES: frozenset[str] = frozenset({
    "warn",
    "critical",
})


@dataclass
class Breach:
    """A persisted breach record from the breaches table.

    Attributes:
        metric: Metric that crossed a threshold.
        value: Sampled value at evaluation time.
        severity: warn or critical.
        message: Human-readable summary with value and both thresholds.
        id: Monotonic identifier assigned by the database (None until stored).
        created_at: Evaluation time of the tick that recorded the breach.
        acked_by: Operator who acknowledged the breach.
        acked_at: When the breach was acknowledged.
    """

    metric: str
    value: float
    severity: str
    message: str
    id: int | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    acked_by: int | None = None
    acked_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.metric not in VALID_METRICS:
            raise ValueError(
                f"Invalid metric {self.metric!r}. "
                f"Must be one of: {sorted(VALID_METRICS)}"
            )
        if self.severity not in VALID_SEVERITIES:
            raise ValueError(
                f"Invalid severity {self.severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            )
        if (self.acked_by is None) != (self.acked_at is None):
            raise ValueError("acked_by and acked_at must be set together")

    @property
    def is_active(self) -> bool:
        """A breach stays active until it is acknowledged."""
        return self.acked_at is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "metric": self.metric,
            "value": self.value,
            "severity": self.severity,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "acked_by": self.acked_by,
            "acked_at": self.acked_at.isoformat() if self.acked_at else None,
        }
