"""Threshold repository: read and upsert per-metric warn/critical levels."""

import logging
from typing import Any

from src.storage.database import Database
from src.thresholds.schemas import Threshold, validate_threshold

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS thresholds (
    metric      TEXT PRIMARY KEY
                CHECK (metric IN ('traffic', 'air_quality', 'waste', 'power')),
    warn        DOUBLE PRECISION NOT NULL,
    critical    DOUBLE PRECISION NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (warn < critical)
);
"""

_SEED_SQL = """
INSERT INTO thresholds (metric, warn, critical)
VALUES ($1, $2, $3)
ON CONFLICT (metric) DO NOTHING
"""

_UPSERT_SQL = """
INSERT INTO thresholds (metric, warn, critical, updated_at)
VALUES ($1, $2, $3, NOW())
ON CONFLICT (metric) DO UPDATE SET
    warn = EXCLUDED.warn,
    critical = EXCLUDED.critical,
    updated_at = NOW()
RETURNING metric, warn, critical, updated_at
"""


class ThresholdRepository:
    """CRUD operations for the thresholds table.

    Reads feed the breach evaluator; writes come from operators through
    the API. Rows are never deleted.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the thresholds table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Thresholds table ensured")

    async def seed_defaults(self, defaults: dict[str, tuple[float, float]]) -> None:
        """Insert default levels for metrics that have no row yet.

        Args:
            defaults: ``{metric: (warn, critical)}``.
        """
        for metric, (warn, critical) in defaults.items():
            validate_threshold(metric, warn, critical)
            await self._db.execute(_SEED_SQL, metric, warn, critical)
        logger.info("Threshold defaults seeded for %d metrics", len(defaults))

    async def get_all(self) -> list[Threshold]:
        """All thresholds ordered by metric name."""
        rows = await self._db.fetch(
            "SELECT metric, warn, critical, updated_at FROM thresholds ORDER BY metric"
        )
        return [_row_to_threshold(row) for row in rows]

    async def get(self, metric: str) -> Threshold | None:
        row = await self._db.fetchrow(
            "SELECT metric, warn, critical, updated_at FROM thresholds WHERE metric = $1",
            metric,
        )
        if row is None:
            return None
        return _row_to_threshold(row)

    async def upsert(self, metric: str, warn: float, critical: float) -> Threshold:
        """Validate and write a threshold in one statement.

        Args:
            metric: Metric name.
            warn: New warn level.
            critical: New critical level.

        Returns:
            The stored Threshold.

        Raises:
            ValueError: On an unknown metric or ``warn >= critical``. Nothing
                is written in that case.
        """
        validate_threshold(metric, warn, critical)
        row = await self._db.fetchrow(_UPSERT_SQL, metric, float(warn), float(critical))
        threshold = _row_to_threshold(row)
        logger.info(
            "Threshold updated: %s warn=%s critical=%s",
            threshold.metric, threshold.warn, threshold.critical,
        )
        return threshold


def _row_to_threshold(row: Any) -> Threshold:
    """Convert an asyncpg Record to a Threshold."""
    return Threshold(
        metric=row["metric"],
        warn=float(row["warn"]),
        critical=float(row["critical"]),
        updated_at=row["updated_at"],
    )
