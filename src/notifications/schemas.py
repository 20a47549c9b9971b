"""Schema definitions for notifications, push subscriptions and delivery results.

``Notification`` maps 1:1 to the ``notifications`` table and describes one
delivery attempt: it is created ``queued`` and moves exactly once to a
terminal status, written together with its delivery report.
``PushSubscription`` maps to ``push_subscriptions`` and is keyed by the
device endpoint.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

NotificationStatus = Literal["queued", "sent", "failed", "no_subscribers"]

VALID_STATUSES: frozenset[str] = frozenset({
    "queued",
    "sent",
    "failed",
    "no_subscribers",
})

TERMINAL_STATUSES: frozenset[str] = VALID_STATUSES - {"queued"}

NotificationSeverity = Literal["low", "medium", "high", "critical"]

VALID_NOTIFICATION_SEVERITIES: frozenset[str] = frozenset({
    "low",
    "medium",
    "high",
    "critical",
})

Channel = Literal["webpush", "email", "sms"]

VALID_CHANNELS: frozenset[str] = frozenset({
    "webpush",
    "email",
    "sms",
})

# Breach severity -> notification severity
BREACH_NOTIFICATION_SEVERITY: dict[str, str] = {
    "warn": "high",
    "critical": "critical",
}


@dataclass
class DeliveryResult:
    """Outcome of one delivery attempt to one endpoint."""

    endpoint: str
    ok: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"endpoint": self.endpoint, "ok": self.ok}
        if not self.ok:
            data["error"] = self.error or "send failed"
        return data


@dataclass
class DeliveryOutcome:
    """Aggregate result of one dispatch, returned to the caller."""

    notification_id: int
    status: str
    results: list[DeliveryResult] = field(default_factory=list)

    @property
    def sent(self) -> int:
        """Number of endpoints that accepted the notification."""
        return sum(1 for r in self.results if r.ok)

    def to_report(self) -> dict[str, Any]:
        """Delivery report persisted alongside the terminal status."""
        return {
            "sent": self.sent,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class ChannelDispatch:
    """One channel's share of a multi-channel dispatch.

    Exactly one of ``outcome`` (the channel was dispatched) and ``error``
    (it could not be, e.g. the provider is not configured) is set.
    """

    channel: str
    outcome: DeliveryOutcome | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not None and self.outcome.status == "sent"

    def to_dict(self) -> dict[str, Any]:
        if self.outcome is None:
            return {"channel": self.channel, "ok": False, "error": self.error}
        return {
            "channel": self.channel,
            "ok": self.ok,
            "id": self.outcome.notification_id,
            "status": self.outcome.status,
            **self.outcome.to_report(),
        }


@dataclass
class NotificationRequest:
    """A request to deliver a notification over one channel.

    Attributes:
        title: Notification title (email subject).
        body: Notification text.
        channel: webpush, email or sms.
        notification_id: Existing record to retry; a new one is created if None.
        severity: low, medium, high or critical.
        source: Classification such as "alert", "breach" or "test".
        related_entity_id: Optional id of the breach or alert this is about.
        url: Click-through URL carried in the push payload.
        tag: Optional push tag (replaces earlier notifications with the same tag).
        recipient: Explicit email address or phone number (email/sms only).
        owner_id: Operator whose stored address or devices are targeted.
    """

    title: str
    body: str = ""
    channel: str = "webpush"
    notification_id: int | None = None
    severity: str = "low"
    source: str = "alert"
    related_entity_id: int | None = None
    url: str | None = None
    tag: str | None = None
    recipient: str | None = None
    owner_id: int | None = None

    def __post_init__(self) -> None:
        if not self.title:
            raise ValueError("title is required")
        if self.channel not in VALID_CHANNELS:
            raise ValueError(
                f"Invalid channel {self.channel!r}. "
                f"Must be one of: {sorted(VALID_CHANNELS)}"
            )
        if self.severity not in VALID_NOTIFICATION_SEVERITIES:
            raise ValueError(
                f"Invalid severity {self.severity!r}. "
                f"Must be one of: {sorted(VALID_NOTIFICATION_SEVERITIES)}"
            )


@dataclass
class OutgoingMessage:
    """Content handed to a channel adapter for one endpoint."""

    notification_id: int
    title: str
    body: str
    severity: str = "low"
    url: str = "/alerts"
    tag: str | None = None

    def to_push_payload(self) -> str:
        """JSON payload read by the service worker."""
        payload: dict[str, Any] = {
            "title": self.title,
            "body": self.body,
            "url": self.url,
            "id": self.notification_id,
            "severity": self.severity,
        }
        if self.tag:
            payload["tag"] = self.tag
        return json.dumps(payload)


@dataclass
class Notification:
    """A persisted notification record from the notifications table."""

    title: str
    message: str
    severity: str = "low"
    source: str = "alert"
    channel: str = "webpush"
    related_entity_id: int | None = None
    status: str = "queued"
    delivery_report: dict[str, Any] | None = None
    id: int | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    sent_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.status not in VALID_STATUSES:
            raise ValueError(
                f"Invalid status {self.status!r}. "
                f"Must be one of: {sorted(VALID_STATUSES)}"
            )
        if self.channel not in VALID_CHANNELS:
            raise ValueError(
                f"Invalid channel {self.channel!r}. "
                f"Must be one of: {sorted(VALID_CHANNELS)}"
            )

    @classmethod
    def from_request(cls, request: NotificationRequest) -> "Notification":
        return cls(
            title=request.title,
            message=request.body,
            severity=request.severity,
            source=request.source,
            channel=request.channel,
            related_entity_id=request.related_entity_id,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "source": self.source,
            "channel": self.channel,
            "related_entity_id": self.related_entity_id,
            "status": self.status,
            "delivery_report": self.delivery_report,
            "created_at": self.created_at.isoformat(),
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }


@dataclass
class PushSubscription:
    """A browser Push API subscription.

    The endpoint identifies the device; re-subscribing the same endpoint
    (even from another operator) replaces owner and keys.
    """

    endpoint: str
    owner_id: int
    p256dh: str
    auth: str
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_subscription_info(self) -> dict[str, Any]:
        """Shape expected by the Web Push client library."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }


@dataclass
class OperatorContact:
    """Stored contact details of an operator."""

    id: int
    name: str
    email: str | None = None
    phone: str | None = None


def parse_report(value: Any) -> dict[str, Any] | None:
    """Decode a JSONB delivery report that asyncpg may return as text."""
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)
