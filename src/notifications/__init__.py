"""Notification delivery over web push, email and SMS.

Components:
- NotificationRequest / Notification / PushSubscription: data models
- NotificationRepository / SubscriptionRepository / OperatorDirectory: persistence
- WebPushChannel / EmailChannel / SmsChannel: provider adapters
- NotificationDispatcher: fan-out, per-endpoint reporting and dead endpoint pruning
"""

from src.notifications.channels import (
    ChannelUnavailableError,
    DeliveryError,
    EmailChannel,
    EndpointGoneError,
    NotificationChannel,
    SmsChannel,
    WebPushChannel,
)
from src.notifications.config import NotificationConfig
from src.notifications.dispatcher import (
    NotificationChannelMismatchError,
    NotificationDispatcher,
    NotificationNotFoundError,
)
from src.notifications.repository import (
    NotificationRepository,
    OperatorDirectory,
    SubscriptionRepository,
)
from src.notifications.schemas import (
    ChannelDispatch,
    DeliveryOutcome,
    DeliveryResult,
    Notification,
    NotificationRequest,
    OperatorContact,
    OutgoingMessage,
    PushSubscription,
)

__all__ = [
    "ChannelDispatch",
    "ChannelUnavailableError",
    "DeliveryError",
    "DeliveryOutcome",
    "DeliveryResult",
    "EmailChannel",
    "EndpointGoneError",
    "Notification",
    "NotificationChannel",
    "NotificationConfig",
    "NotificationChannelMismatchError",
    "NotificationDispatcher",
    "NotificationNotFoundError",
    "NotificationRepository",
    "NotificationRequest",
    "OperatorContact",
    "OperatorDirectory",
    "OutgoingMessage",
    "PushSubscription",
    "SmsChannel",
    "SubscriptionRepository",
    "WebPushChannel",
]
