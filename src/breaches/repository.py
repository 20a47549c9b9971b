"""Breach repository: append-only breach log plus the acknowledgement pair.

Every write is a single statement. Creation uses insert-returning (with
the dedup range check folded into the same statement) and acknowledgement
is a conditional update, so the evaluator and concurrent HTTP handlers
never lose an update.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from src.breaches.schemas import Breach
from src.storage.database import Database

logger = logging.getLogger(__name__)

_COLUMNS = "id, metric, value, severity, message, created_at, acked_by, acked_at"

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS breaches (
    id          BIGSERIAL PRIMARY KEY,
    metric      TEXT NOT NULL
                CHECK (metric IN ('traffic', 'air_quality', 'waste', 'power')),
    value       DOUBLE PRECISION NOT NULL,
    severity    TEXT NOT NULL CHECK (severity IN ('warn', 'critical')),
    message     TEXT NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    acked_by    INTEGER NULL,
    acked_at    TIMESTAMPTZ NULL,
    CHECK ((acked_by IS NULL) = (acked_at IS NULL))
);

-- Backs the dedup range check (metric, severity, trailing window)
CREATE INDEX IF NOT EXISTS idx_breaches_metric_severity_created
    ON breaches (metric, severity, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_breaches_created
    ON breaches (created_at DESC);
CREATE INDEX IF NOT EXISTS idx_breaches_active
    ON breaches (created_at DESC) WHERE acked_at IS NULL;
"""

_INSERT_SQL = f"""
INSERT INTO breaches (metric, value, severity, message, created_at)
VALUES ($1, $2, $3, $4, $5)
RETURNING {_COLUMNS}
"""

_INSERT_UNLESS_RECENT_SQL = f"""
INSERT INTO breaches (metric, value, severity, message, created_at)
SELECT $1::text, $2::double precision, $3::text, $4::text, $5::timestamptz
WHERE NOT EXISTS (
    SELECT 1 FROM breaches
    WHERE metric = $1::text AND severity = $3::text AND created_at >= $6::timestamptz
)
RETURNING {_COLUMNS}
"""

_ACK_SQL = f"""
UPDATE breaches
SET acked_by = $1, acked_at = $3
WHERE id = $2 AND acked_at IS NULL
RETURNING {_COLUMNS}
"""


class BreachRepository:
    """Repository for breach persistence and acknowledgement."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the breaches table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Breaches table ensured")

    async def create(self, breach: Breach) -> Breach:
        """Insert a breach unconditionally.

        Returns:
            The stored Breach with its database id.
        """
        row = await self._db.fetchrow(
            _INSERT_SQL,
            breach.metric,
            breach.value,
            breach.severity,
            breach.message,
            breach.created_at,
        )
        return _row_to_breach(row)

    async def create_unless_recent(
        self,
        breach: Breach,
        since: datetime,
    ) -> Breach | None:
        """Insert a breach unless the same (metric, severity) exists since ``since``.

        The existence check and the insert are one statement.

        Args:
            breach: Candidate breach.
            since: Start of the dedup window (evaluation time minus window).

        Returns:
            The stored Breach, or None if a recent duplicate suppressed it.
        """
        row = await self._db.fetchrow(
            _INSERT_UNLESS_RECENT_SQL,
            breach.metric,
            breach.value,
            breach.severity,
            breach.message,
            breach.created_at,
            since,
        )
        if row is None:
            return None
        return _row_to_breach(row)

    async def find_recent(
        self,
        metric: str,
        severity: str,
        since: datetime,
    ) -> Breach | None:
        """Newest breach of the (metric, severity) pair created at or after ``since``."""
        sql = f"""
            SELECT {_COLUMNS} FROM breaches
            WHERE metric = $1 AND severity = $2 AND created_at >= $3
            ORDER BY created_at DESC
            LIMIT 1
        """
        row = await self._db.fetchrow(sql, metric, severity, since)
        if row is None:
            return None
        return _row_to_breach(row)

    async def get_by_id(self, breach_id: int) -> Breach | None:
        row = await self._db.fetchrow(
            f"SELECT {_COLUMNS} FROM breaches WHERE id = $1", breach_id,
        )
        if row is None:
            return None
        return _row_to_breach(row)

    async def list_recent(
        self,
        *,
        active_only: bool = False,
        limit: int = 100,
    ) -> list[Breach]:
        """List breaches newest first.

        Args:
            active_only: Only return unacknowledged breaches.
            limit: Maximum rows, capped at 100.

        Returns:
            Breaches ordered by created_at descending.
        """
        limit = max(1, min(limit, 100))
        where_clause = "WHERE acked_at IS NULL" if active_only else ""
        sql = f"""
            SELECT {_COLUMNS} FROM breaches
            {where_clause}
            ORDER BY created_at DESC, id DESC
            LIMIT $1
        """
        rows = await self._db.fetch(sql, limit)
        return [_row_to_breach(row) for row in rows]

    async def acknowledge(
        self,
        breach_id: int,
        actor_id: int,
        acked_at: datetime | None = None,
    ) -> Breach | None:
        """Acknowledge an active breach (compare-and-set on ``acked_at IS NULL``).

        Of several concurrent calls for the same breach exactly one gets
        the row back; the rest see None, the same as for an unknown id.

        Args:
            breach_id: Breach to acknowledge.
            actor_id: Operator performing the acknowledgement.
            acked_at: Acknowledgement time (defaults to now).

        Returns:
            The updated Breach, or None if not found or already acknowledged.
        """
        acked_at = acked_at or datetime.now(timezone.utc)
        row = await self._db.fetchrow(_ACK_SQL, actor_id, breach_id, acked_at)
        if row is None:
            return None
        logger.info("Breach %s acknowledged by operator %s", breach_id, actor_id)
        return _row_to_breach(row)


def _row_to_breach(row: Any) -> Breach:
    """Convert an asyncpg Record to a Breach."""
    return Breach(
        id=row["id"],
        metric=row["metric"],
        value=float(row["value"]),
        severity=row["severity"],
        message=row["message"],
        created_at=row["created_at"],
        acked_by=row.get("acked_by"),
        acked_at=row.get("acked_at"),
    )
