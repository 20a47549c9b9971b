"""Notification dispatcher: fan one notification out to its endpoints.

Creates (or re-queues) the notification record, resolves endpoints for
the requested channel, sends to all of them concurrently with a per-send
timeout and finalizes the record with a per-endpoint delivery report.
Dead push endpoints are pruned as they are discovered.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from src.notifications.channels import (
    ChannelUnavailableError,
    EndpointGoneError,
    NotificationChannel,
)
from src.notifications.config import NotificationConfig
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
    OutgoingMessage,
    PushSubscription,
)
from src.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

ALL_CHANNELS: tuple[str, ...] = ("webpush", "sms", "email")


class NotificationNotFoundError(Exception):
    """A retry referenced a notification id that does not exist."""

    def __init__(self, notification_id: int) -> None:
        self.notification_id = notification_id
        super().__init__(f"Notification {notification_id} not found")


class NotificationChannelMismatchError(ValueError):
    """A retry asked for a different channel than the stored record."""

    def __init__(self, notification_id: int, stored: str, requested: str) -> None:
        self.notification_id = notification_id
        self.stored = stored
        self.requested = requested
        super().__init__(
            f"Notification {notification_id} was sent via {stored}, not {requested}"
        )


class NotificationDispatcher:
    """Delivers notifications over web push, email or SMS.

    Delivery failures never raise: each endpoint's outcome lands in the
    report. A missing provider configuration or a bad retry id raises
    before anything is sent.
    """

    def __init__(
        self,
        notification_repo: NotificationRepository,
        subscription_repo: SubscriptionRepository,
        operator_directory: OperatorDirectory,
        push_channel: NotificationChannel | None = None,
        email_channel: NotificationChannel | None = None,
        sms_channel: NotificationChannel | None = None,
        config: NotificationConfig | None = None,
    ) -> None:
        self._notifications = notification_repo
        self._subscriptions = subscription_repo
        self._operators = operator_directory
        self._config = config or NotificationConfig()
        self._channels: dict[str, NotificationChannel | None] = {
            "webpush": push_channel,
            "email": email_channel,
            "sms": sms_channel,
        }

    def get_channel(self, channel: str) -> NotificationChannel:
        """Return a configured channel adapter.

        Raises:
            ChannelUnavailableError: No adapter or missing credentials.
        """
        adapter = self._channels.get(channel)
        if adapter is None:
            raise ChannelUnavailableError(channel)
        adapter.ensure_configured()
        return adapter

    async def dispatch(self, request: NotificationRequest) -> DeliveryOutcome:
        """Deliver one notification and record the outcome.

        Once the record exists it always leaves ``queued``: if resolving
        endpoints or writing the report fails, the record is finalized as
        ``failed`` with the error before the exception propagates.

        Args:
            request: What to send, over which channel and to whom.

        Returns:
            DeliveryOutcome with the terminal status and per-endpoint results.

        Raises:
            ChannelUnavailableError: The channel is not configured.
            NotificationNotFoundError: ``request.notification_id`` is unknown.
            NotificationChannelMismatchError: The retried record belongs to
                another channel.
        """
        channel = self.get_channel(request.channel)
        start = time.perf_counter()

        notification = await self._prepare_record(request)
        notification_id = notification.id

        try:
            outcome = await self._send_all(channel, request, notification_id)
            await self._finalize(outcome)
        except Exception as e:
            logger.error(
                "Dispatch of notification %s via %s failed: %s",
                notification_id, request.channel, e,
            )
            await self._finalize_failed(notification_id, e)
            get_metrics().record_dispatch(
                request.channel, "failed", time.perf_counter() - start,
            )
            raise

        elapsed = time.perf_counter() - start
        get_metrics().record_dispatch(request.channel, outcome.status, elapsed)
        logger.info(
            "Notification %s via %s: %s (%d/%d delivered, %.0fms)",
            notification_id, request.channel, outcome.status,
            outcome.sent, len(outcome.results), elapsed * 1000,
        )
        return outcome

    async def dispatch_all(
        self,
        request: NotificationRequest,
        channels: Sequence[str] = ALL_CHANNELS,
        recipients: dict[str, str] | None = None,
    ) -> list[ChannelDispatch]:
        """Deliver the same notification over several channels independently.

        Each channel gets its own record and report. A channel that cannot
        be dispatched (not configured, storage error) is reported with its
        error and does not affect the others.

        Args:
            request: Content and owner; its channel and recipient are ignored.
            channels: Channels to use, in reporting order.
            recipients: Optional explicit address per channel
                (``{"email": ..., "sms": ...}``); otherwise the owner's
                stored contact is used.

        Returns:
            One ChannelDispatch per requested channel.
        """
        recipients = recipients or {}
        per_channel = [
            replace(
                request,
                channel=name,
                notification_id=None,
                recipient=recipients.get(name) if name != "webpush" else None,
            )
            for name in channels
        ]
        results = await asyncio.gather(
            *(self.dispatch(r) for r in per_channel),
            return_exceptions=True,
        )

        dispatches: list[ChannelDispatch] = []
        for name, result in zip(channels, results):
            if isinstance(result, ChannelUnavailableError):
                dispatches.append(ChannelDispatch(name, error=str(result)))
            elif isinstance(result, Exception):
                logger.warning("Channel %s failed in multi-channel dispatch: %s", name, result)
                dispatches.append(
                    ChannelDispatch(name, error=str(result) or type(result).__name__)
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                dispatches.append(ChannelDispatch(name, outcome=result))
        return dispatches

    async def _send_all(
        self,
        channel: NotificationChannel,
        request: NotificationRequest,
        notification_id: int,
    ) -> DeliveryOutcome:
        targets = await self._resolve_targets(request)
        if not targets:
            logger.info(
                "Notification %s has no %s recipients",
                notification_id, request.channel,
            )
            return DeliveryOutcome(notification_id, "no_subscribers", [])

        message = OutgoingMessage(
            notification_id=notification_id,
            title=request.title,
            body=request.body,
            severity=request.severity,
            url=request.url or self._config.default_url,
            tag=request.tag,
        )
        results = await asyncio.gather(
            *(self._deliver(channel, target, message) for target in targets)
        )
        status = "sent" if any(r.ok for r in results) else "failed"
        return DeliveryOutcome(notification_id, status, list(results))

    async def _prepare_record(self, request: NotificationRequest) -> Notification:
        notification = Notification.from_request(request)
        if request.notification_id is None:
            return await self._notifications.create(notification)

        requeued = await self._notifications.requeue(request.notification_id, notification)
        if requeued is not None:
            return requeued

        existing = await self._notifications.get_by_id(request.notification_id)
        if existing is None:
            raise NotificationNotFoundError(request.notification_id)
        raise NotificationChannelMismatchError(
            request.notification_id, existing.channel, request.channel,
        )

    async def _resolve_targets(self, request: NotificationRequest) -> list[Any]:
        """Endpoints for the request's channel.

        Push targets every stored subscription (or the owner's). Email and
        SMS target one address: the explicit recipient, else the owner's
        stored contact.
        """
        if request.channel == "webpush":
            return await self._subscriptions.list_all(owner_id=request.owner_id)

        if request.recipient:
            return [request.recipient]
        if request.owner_id is None:
            return []

        contact = await self._operators.get_contact(request.owner_id)
        if contact is None:
            return []
        address = contact.email if request.channel == "email" else contact.phone
        return [address] if address else []

    async def _deliver(
        self,
        channel: NotificationChannel,
        target: Any,
        message: OutgoingMessage,
    ) -> DeliveryResult:
        """Send to one endpoint, capturing every failure as a result."""
        endpoint = _endpoint_of(target)
        timeout = self._config.send_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                await channel.send(target, message)
        except TimeoutError:
            get_metrics().record_delivery(channel.name, "timeout")
            logger.warning(
                "Send of notification %s to %s timed out",
                message.notification_id, endpoint,
            )
            return DeliveryResult(endpoint, False, f"timeout after {timeout:g}s")
        except EndpointGoneError as e:
            get_metrics().record_delivery(channel.name, "gone")
            await self._prune(endpoint)
            return DeliveryResult(endpoint, False, str(e))
        except Exception as e:
            get_metrics().record_delivery(channel.name, "failed")
            logger.warning(
                "Send of notification %s to %s failed: %s",
                message.notification_id, endpoint, e,
            )
            return DeliveryResult(endpoint, False, str(e) or type(e).__name__)

        get_metrics().record_delivery(channel.name, "ok")
        return DeliveryResult(endpoint, True)

    async def _prune(self, endpoint: str) -> None:
        try:
            deleted = await self._subscriptions.delete_by_endpoint(endpoint)
        except Exception as e:
            logger.error("Failed to delete gone push subscription %s: %s", endpoint, e)
            return
        if deleted:
            get_metrics().record_subscription_pruned()
            logger.info("Deleted gone push subscription %s", endpoint)

    async def _finalize(self, outcome: DeliveryOutcome) -> None:
        stored = await self._notifications.finalize(
            outcome.notification_id, outcome.status, outcome.to_report(),
        )
        if stored is None:
            logger.warning(
                "Notification %s was no longer queued; report not written",
                outcome.notification_id,
            )

    async def _finalize_failed(self, notification_id: int, error: Exception) -> None:
        report = {"sent": 0, "results": [], "error": str(error) or type(error).__name__}
        try:
            await self._notifications.finalize(notification_id, "failed", report)
        except Exception as e:
            logger.error(
                "Could not mark notification %s as failed: %s", notification_id, e,
            )


def _endpoint_of(target: Any) -> str:
    if isinstance(target, PushSubscription):
        return target.endpoint
    return str(target)
