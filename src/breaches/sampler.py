"""Metric samplers consumed by the breach evaluator.

Metric acquisition belongs to the external telemetry source. The
evaluator only needs the current instantaneous value of each metric,
which a sampler supplies.
"""

import logging
from abc import ABC, abstractmethod

from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS metrics_timeseries (
    id      BIGSERIAL PRIMARY KEY,
    metric  TEXT NOT NULL
            CHECK (metric IN ('traffic', 'air_quality', 'waste', 'power')),
    value   DOUBLE PRECISION NOT NULL,
    ts      TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_metrics_timeseries_metric_ts
    ON metrics_timeseries (metric, ts DESC);
"""

_LATEST_SQL = """
SELECT value FROM metrics_timeseries
WHERE metric = $1
ORDER BY ts DESC LIMIT 1
"""

# Readings older than the cutoff count as missing
_LATEST_FRESH_SQL = """
SELECT value FROM metrics_timeseries
WHERE metric = $1 AND ts >= NOW() - make_interval(secs => $2)
ORDER BY ts DESC LIMIT 1
"""


class MetricSampler(ABC):
    """Source of current metric values."""

    @abstractmethod
    async def sample(self, metric: str) -> float | None:
        """Return the current value of ``metric``, or None if no reading exists."""


class TimeseriesSampler(MetricSampler):
    """Reads the latest reading per metric from ``metrics_timeseries``.

    The telemetry pipeline appends readings to that table; this sampler
    never writes to it. With ``max_age_seconds`` set, a metric whose
    newest reading is older than that has no current value, so a stalled
    feed cannot keep producing breaches from its last reading.
    """

    def __init__(self, database: Database, max_age_seconds: float | None = None) -> None:
        self._db = database
        self._max_age = float(max_age_seconds) if max_age_seconds else None

    async def create_table(self) -> None:
        """Create the readings table so a fresh database can be evaluated."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("metrics_timeseries table ensured")

    async def sample(self, metric: str) -> float | None:
        if self._max_age is None:
            value = await self._db.fetchval(_LATEST_SQL, metric)
        else:
            value = await self._db.fetchval(_LATEST_FRESH_SQL, metric, self._max_age)
        if value is None:
            return None
        return float(value)


class StaticSampler(MetricSampler):
    """Returns fixed values. Used for manual evaluation runs and tests."""

    def __init__(self, values: dict[str, float]) -> None:
        self._values = dict(values)

    def set(self, metric: str, value: float | None) -> None:
        if value is None:
            self._values.pop(metric, None)
        else:
            self._values[metric] = value

    async def sample(self, metric: str) -> float | None:
        return self._values.get(metric)
