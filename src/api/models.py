"""
Request and response models for the city-alerts API.
"""

from typing import Literal

from pydantic import BaseModel, Field

from src.breaches.schemas import Breach
from src.notifications.schemas import ChannelDispatch, DeliveryOutcome, Notification
from src.thresholds.schemas import Threshold


class ComponentHealth(BaseModel):
    """Health status of an infrastructure component."""

    status: str = Field(..., description="healthy, unhealthy, or disabled")
    latency_ms: float | None = Field(default=None, description="Check latency in milliseconds")
    details: dict = Field(default_factory=dict, description="Extra diagnostic information")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(
        default_factory=dict,
        description="Per-component health (database, redis, evaluator)",
    )
    channels: dict[str, bool] = Field(
        default_factory=dict,
        description="Which notification providers are configured",
    )
    version: str = Field(..., description="Service version")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Type of error",
    )


# Thresholds


class ThresholdItem(BaseModel):
    """Warn and critical levels for one metric."""

    metric: str = Field(..., description="traffic, air_quality, waste or power")
    warn: float = Field(..., description="Warn level (inclusive)")
    critical: float = Field(..., description="Critical level (inclusive)")
    updated_at: str | None = Field(default=None, description="Last update (ISO format)")

    @classmethod
    def from_threshold(cls, threshold: Threshold) -> "ThresholdItem":
        return cls(**threshold.to_dict())


class ThresholdsResponse(BaseModel):
    """Response model for listing thresholds."""

    thresholds: list[ThresholdItem] = Field(..., description="Thresholds ordered by metric")


class ThresholdUpdateRequest(BaseModel):
    """Request model for updating one metric's thresholds.

    Ordering (warn < critical) is checked by the threshold store so that
    both the API and direct callers get the same message.
    """

    warn: float = Field(..., description="New warn level")
    critical: float = Field(..., description="New critical level")


class ThresholdResponse(BaseModel):
    """Response model for an updated threshold."""

    threshold: ThresholdItem


# Breaches


class BreachItem(BaseModel):
    """Single breach record."""

    id: int = Field(..., description="Breach identifier")
    metric: str = Field(..., description="Metric that crossed its threshold")
    value: float = Field(..., description="Sampled value")
    severity: str = Field(..., description="warn or critical")
    message: str = Field(..., description="Summary with value and both thresholds")
    created_at: str = Field(..., description="Evaluation time (ISO format)")
    acked_by: int | None = Field(default=None, description="Acknowledging operator")
    acked_at: str | None = Field(default=None, description="Acknowledgement time (ISO format)")
    active: bool = Field(..., description="True until acknowledged")

    @classmethod
    def from_breach(cls, breach: Breach) -> "BreachItem":
        return cls(**breach.to_dict(), active=breach.is_active)


class BreachesResponse(BaseModel):
    """Response model for listing breaches."""

    breaches: list[BreachItem] = Field(..., description="Breaches, newest first")
    total: int = Field(..., description="Number of breaches returned")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class BreachAckResponse(BaseModel):
    """Response model for acknowledging a breach."""

    ok: bool = Field(default=True)
    breach: BreachItem
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class EvaluationResponse(BaseModel):
    """Response model for an on-demand evaluation pass."""

    skipped: bool = Field(..., description="True if another pass was already running")
    created: list[BreachItem] = Field(default_factory=list, description="Newly recorded breaches")
    suppressed: int = Field(default=0, description="Breaches suppressed by the dedup window")
    failed_metrics: list[str] = Field(default_factory=list, description="Metrics whose evaluation failed")
    evaluated_at: str | None = Field(default=None, description="Evaluation time (ISO format)")


# Notifications


class SendNotificationRequest(BaseModel):
    """Request model for sending a notification."""

    title: str = Field(..., min_length=1, max_length=200, description="Title (email subject)")
    body: str = Field(default="", max_length=4000, description="Notification text")
    notification_id: int | None = Field(
        default=None,
        description="Existing notification to retry; a new record is created when omitted",
    )
    severity: Literal["low", "medium", "high", "critical"] = Field(default="low")
    source: Literal["alert", "breach", "test", "other"] = Field(default="alert")
    related_entity_id: int | None = Field(default=None, description="Related breach or alert id")
    url: str | None = Field(default=None, description="Click-through URL (push only)")
    tag: str | None = Field(default=None, description="Push tag; replaces earlier pushes with the same tag")
    to: str | None = Field(
        default=None,
        description="Explicit email address or phone number (email/sms only)",
    )
    owner_id: int | None = Field(
        default=None,
        description="Target operator; defaults to the caller for email/sms",
    )


class DeliveryResultItem(BaseModel):
    endpoint: str
    ok: bool
    error: str | None = None


class SendNotificationResponse(BaseModel):
    """Response model for a dispatch."""

    ok: bool = Field(default=True)
    id: int = Field(..., description="Notification identifier")
    status: str = Field(..., description="sent, failed or no_subscribers")
    sent: int = Field(..., description="Endpoints that accepted the notification")
    results: list[DeliveryResultItem] = Field(default_factory=list)
    latency_ms: float = Field(..., description="Processing latency in milliseconds")

    @classmethod
    def from_outcome(cls, outcome: DeliveryOutcome, latency_ms: float) -> "SendNotificationResponse":
        return cls(
            id=outcome.notification_id,
            status=outcome.status,
            sent=outcome.sent,
            results=[DeliveryResultItem(**r.to_dict()) for r in outcome.results],
            latency_ms=latency_ms,
        )


class NotifyAllRequest(BaseModel):
    """Request model for one notification over several channels."""

    title: str = Field(..., min_length=1, max_length=200, description="Title (email subject)")
    body: str = Field(default="", max_length=4000, description="Notification text")
    severity: Literal["low", "medium", "high", "critical"] = Field(default="low")
    source: Literal["alert", "breach", "test", "other"] = Field(default="alert")
    related_entity_id: int | None = Field(default=None, description="Related breach or alert id")
    url: str | None = Field(default=None, description="Click-through URL (push only)")
    tag: str | None = Field(default=None, description="Push tag")
    owner_id: int | None = Field(
        default=None,
        description="Operator whose devices and stored contact are used; defaults to the caller",
    )
    email: str | None = Field(default=None, description="Email address overriding the stored one")
    phone: str | None = Field(default=None, description="Phone number overriding the stored one")
    channels: list[Literal["webpush", "sms", "email"]] = Field(
        default_factory=lambda: ["webpush", "sms", "email"],
        min_length=1,
        description="Channels to use; each is dispatched and reported independently",
    )


class ChannelDispatchItem(BaseModel):
    """One channel's result in a multi-channel send."""

    channel: str
    ok: bool
    id: int | None = Field(default=None, description="Notification identifier, if a record was made")
    status: str | None = Field(default=None, description="sent, failed or no_subscribers")
    sent: int = Field(default=0, description="Endpoints that accepted the notification")
    results: list[DeliveryResultItem] = Field(default_factory=list)
    error: str | None = Field(default=None, description="Why the channel could not be dispatched")

    @classmethod
    def from_dispatch(cls, dispatch: ChannelDispatch) -> "ChannelDispatchItem":
        return cls(**dispatch.to_dict())


class NotifyAllResponse(BaseModel):
    """Response model for a multi-channel send."""

    ok: bool = Field(..., description="True if at least one channel delivered")
    channels: list[ChannelDispatchItem]
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class PushTestRequest(BaseModel):
    """Optional overrides for the push self-test."""

    title: str = Field(default="Test Notification", min_length=1, max_length=200)
    body: str = Field(default="Hello from City Alerts", max_length=4000)
    url: str = Field(default="/")
    tag: str = Field(default="test")


class EmailTestRequest(BaseModel):
    """Optional overrides for the email self-test."""

    to: str | None = Field(default=None, description="Recipient; defaults to the caller's stored email")
    subject: str = Field(default="City Alerts test email", min_length=1, max_length=200)
    text: str = Field(default="Hello! This is a test email from City Alerts.", max_length=4000)


class NotificationItem(BaseModel):
    """Single notification record."""

    id: int
    title: str
    message: str
    severity: str
    source: str
    channel: str
    related_entity_id: int | None = None
    status: str
    delivery_report: dict | None = None
    created_at: str
    sent_at: str | None = None

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationItem":
        return cls(**notification.to_dict())


class NotificationsResponse(BaseModel):
    """Response model for listing notifications."""

    notifications: list[NotificationItem]
    total: int = Field(..., description="Number of notifications returned")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class SubscribeRequest(BaseModel):
    """Browser PushSubscription as serialized by ``subscription.toJSON()``."""

    endpoint: str = Field(..., min_length=1, description="Push service endpoint URL")
    keys: SubscriptionKeys


class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1, description="Push service endpoint URL")


class SubscriptionResponse(BaseModel):
    ok: bool = Field(default=True)
    endpoint: str
    removed: bool | None = Field(default=None, description="Set on unsubscribe")


class PublicKeyResponse(BaseModel):
    public_key: str = Field(..., description="VAPID application server key")
