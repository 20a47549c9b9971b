"""Notification, push subscription and operator contact persistence.

A notification row is created ``queued`` and finalized by one conditional
update that writes status, delivery report and ``sent_at`` together, so a
reader never sees a terminal status without its report. Subscriptions are
keyed by endpoint and upserted.
"""

import json
import logging
from typing import Any

from src.notifications.schemas import (
    TERMINAL_STATUSES,
    Notification,
    OperatorContact,
    PushSubscription,
    parse_report,
)
from src.storage.database import Database

logger = logging.getLogger(__name__)

_NOTIFICATION_COLUMNS = (
    "id, title, message, severity, source, related_entity_id, channel, "
    "status, delivery_report, created_at, sent_at"
)

_CREATE_NOTIFICATIONS_SQL = """
CREATE TABLE IF NOT EXISTS notifications (
    id                  BIGSERIAL PRIMARY KEY,
    title               TEXT NOT NULL,
    message             TEXT NOT NULL DEFAULT '',
    severity            TEXT NOT NULL DEFAULT 'low'
                        CHECK (severity IN ('low', 'medium', 'high', 'critical')),
    source              TEXT NOT NULL DEFAULT 'alert',
    related_entity_id   BIGINT NULL,
    channel             TEXT NOT NULL DEFAULT 'webpush'
                        CHECK (channel IN ('webpush', 'email', 'sms')),
    status              TEXT NOT NULL DEFAULT 'queued'
                        CHECK (status IN ('queued', 'sent', 'failed', 'no_subscribers')),
    delivery_report     JSONB NULL,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    sent_at             TIMESTAMPTZ NULL
);

CREATE INDEX IF NOT EXISTS idx_notifications_created
    ON notifications (created_at DESC);
CREATE INDEX IF NOT EXISTS idx_notifications_status
    ON notifications (status, created_at DESC);
"""

_INSERT_NOTIFICATION_SQL = f"""
INSERT INTO notifications (
    title, message, severity, source, related_entity_id, channel, status
)
VALUES ($1, $2, $3, $4, $5, $6, 'queued')
RETURNING {_NOTIFICATION_COLUMNS}
"""

_REQUEUE_SQL = f"""
UPDATE notifications
SET status = 'queued', delivery_report = NULL, sent_at = NULL,
    title = $3, message = $4, severity = $5, source = $6,
    related_entity_id = COALESCE($7, related_entity_id)
WHERE id = $1 AND channel = $2
RETURNING {_NOTIFICATION_COLUMNS}
"""

_FINALIZE_SQL = f"""
UPDATE notifications
SET status = $2, delivery_report = $3::jsonb, sent_at = NOW()
WHERE id = $1 AND status = 'queued'
RETURNING {_NOTIFICATION_COLUMNS}
"""

_CREATE_SUBSCRIPTIONS_SQL = """
CREATE TABLE IF NOT EXISTS push_subscriptions (
    endpoint    TEXT PRIMARY KEY,
    owner_id    INTEGER NOT NULL,
    p256dh      TEXT NOT NULL,
    auth        TEXT NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_push_subscriptions_owner
    ON push_subscriptions (owner_id);
"""

_UPSERT_SUBSCRIPTION_SQL = """
INSERT INTO push_subscriptions (endpoint, owner_id, p256dh, auth)
VALUES ($1, $2, $3, $4)
ON CONFLICT (endpoint) DO UPDATE SET
    owner_id = EXCLUDED.owner_id,
    p256dh = EXCLUDED.p256dh,
    auth = EXCLUDED.auth
RETURNING endpoint, owner_id, p256dh, auth, created_at
"""

_CREATE_OPERATORS_SQL = """
CREATE TABLE IF NOT EXISTS operators (
    id          SERIAL PRIMARY KEY,
    name        TEXT NOT NULL,
    email       TEXT UNIQUE,
    phone       TEXT,
    role        TEXT NOT NULL DEFAULT 'operator',
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


class NotificationRepository:
    """Repository for notification records and their delivery reports."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the notifications table and indexes (idempotent)."""
        await self._db.execute(_CREATE_NOTIFICATIONS_SQL)
        logger.info("Notifications table ensured")

    async def create(self, notification: Notification) -> Notification:
        """Insert a new notification in ``queued`` status.

        Returns:
            The stored Notification with its database id.
        """
        row = await self._db.fetchrow(
            _INSERT_NOTIFICATION_SQL,
            notification.title,
            notification.message,
            notification.severity,
            notification.source,
            notification.related_entity_id,
            notification.channel,
        )
        return _row_to_notification(row)

    async def get_by_id(self, notification_id: int) -> Notification | None:
        row = await self._db.fetchrow(
            f"SELECT {_NOTIFICATION_COLUMNS} FROM notifications WHERE id = $1",
            notification_id,
        )
        if row is None:
            return None
        return _row_to_notification(row)

    async def requeue(
        self,
        notification_id: int,
        notification: Notification,
    ) -> Notification | None:
        """Reset an existing record for a retry.

        The previous report and ``sent_at`` are cleared and the content is
        replaced with the retry's. Only a record of the same channel is
        reset, so a report never lands under another channel's row.

        Args:
            notification_id: Record to retry.
            notification: Content and channel of the retry.

        Returns:
            The reset Notification, or None if no record with that id and
            channel exists.
        """
        row = await self._db.fetchrow(
            _REQUEUE_SQL,
            notification_id,
            notification.channel,
            notification.title,
            notification.message,
            notification.severity,
            notification.source,
            notification.related_entity_id,
        )
        if row is None:
            return None
        return _row_to_notification(row)

    async def finalize(
        self,
        notification_id: int,
        status: str,
        report: dict[str, Any],
    ) -> Notification | None:
        """Move a queued notification to its terminal status.

        Status, report and ``sent_at`` are written by one statement.

        Args:
            notification_id: Record to finalize.
            status: sent, failed or no_subscribers.
            report: ``{"sent": n, "results": [...]}``.

        Returns:
            The finalized Notification, or None if the record is not queued.
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Invalid terminal status {status!r}")

        row = await self._db.fetchrow(
            _FINALIZE_SQL, notification_id, status, json.dumps(report),
        )
        if row is None:
            return None
        return _row_to_notification(row)

    async def list_recent(
        self,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Notification]:
        """List notifications newest first, optionally filtered by status."""
        conditions: list[str] = []
        params: list[Any] = []
        idx = 1

        if status is not None:
            conditions.append(f"status = ${idx}")
            params.append(status)
            idx += 1

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        sql = f"""
            SELECT {_NOTIFICATION_COLUMNS} FROM notifications
            {where_clause}
            ORDER BY created_at DESC, id DESC
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        params.extend([limit, offset])

        rows = await self._db.fetch(sql, *params)
        return [_row_to_notification(row) for row in rows]


class SubscriptionRepository:
    """Repository for browser push subscriptions."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the push_subscriptions table (idempotent)."""
        await self._db.execute(_CREATE_SUBSCRIPTIONS_SQL)
        logger.info("Push subscriptions table ensured")

    async def upsert(self, subscription: PushSubscription) -> PushSubscription:
        """Register a device, replacing owner and keys if the endpoint exists."""
        row = await self._db.fetchrow(
            _UPSERT_SUBSCRIPTION_SQL,
            subscription.endpoint,
            subscription.owner_id,
            subscription.p256dh,
            subscription.auth,
        )
        return _row_to_subscription(row)

    async def delete(self, endpoint: str, owner_id: int) -> bool:
        """Remove the caller's own subscription.

        Returns:
            True if a row was deleted.
        """
        result = await self._db.execute(
            "DELETE FROM push_subscriptions WHERE endpoint = $1 AND owner_id = $2",
            endpoint,
            owner_id,
        )
        return result == "DELETE 1"

    async def delete_by_endpoint(self, endpoint: str) -> bool:
        """Remove a subscription regardless of owner (dead endpoint pruning)."""
        result = await self._db.execute(
            "DELETE FROM push_subscriptions WHERE endpoint = $1", endpoint,
        )
        return result == "DELETE 1"

    async def list_all(self, owner_id: int | None = None) -> list[PushSubscription]:
        """All subscriptions, or only those of ``owner_id``."""
        if owner_id is None:
            rows = await self._db.fetch(
                "SELECT endpoint, owner_id, p256dh, auth, created_at "
                "FROM push_subscriptions ORDER BY created_at"
            )
        else:
            rows = await self._db.fetch(
                "SELECT endpoint, owner_id, p256dh, auth, created_at "
                "FROM push_subscriptions WHERE owner_id = $1 ORDER BY created_at",
                owner_id,
            )
        return [_row_to_subscription(row) for row in rows]


class OperatorDirectory:
    """Read-only lookup of operator contact details.

    The operators table belongs to user management; this service only
    creates it on a fresh database and reads email and phone from it.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_OPERATORS_SQL)
        logger.info("Operators table ensured")

    async def get_contact(self, operator_id: int) -> OperatorContact | None:
        row = await self._db.fetchrow(
            "SELECT id, name, email, phone FROM operators WHERE id = $1",
            operator_id,
        )
        if row is None:
            return None
        return OperatorContact(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
        )


def _row_to_notification(row: Any) -> Notification:
    """Convert an asyncpg Record to a Notification."""
    return Notification(
        id=row["id"],
        title=row["title"],
        message=row["message"],
        severity=row["severity"],
        source=row["source"],
        related_entity_id=row["related_entity_id"],
        channel=row["channel"],
        status=row["status"],
        delivery_report=parse_report(row["delivery_report"]),
        created_at=row["created_at"],
        sent_at=row["sent_at"],
    )


def _row_to_subscription(row: Any) -> PushSubscription:
    return PushSubscription(
        endpoint=row["endpoint"],
        owner_id=row["owner_id"],
        p256dh=row["p256dh"],
        auth=row["auth"],
        created_at=row["created_at"],
    )
