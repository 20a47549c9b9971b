"""Delivery channel adapters for web push, email and SMS.

Each adapter sends one message to one endpoint. Success returns, failure
raises: ``EndpointGoneError`` when the push service reports the device
subscription as gone, ``DeliveryError`` for any other failure.
Provider SDKs are blocking, so every call runs in a worker thread and
carries its own HTTP timeout.
"""

import asyncio
import html
import logging
from abc import ABC, abstractmethod
from typing import Any

import resend
from pywebpush import WebPushException, webpush
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client as TwilioClient

from src.config.settings import Settings, get_settings
from src.notifications.schemas import OutgoingMessage, PushSubscription

logger = logging.getLogger(__name__)

# Push service status codes meaning the subscription no longer exists
GONE_STATUS_CODES = frozenset({404, 410})


class ChannelUnavailableError(Exception):
    """The channel's provider is not configured."""

    def __init__(self, channel: str, message: str | None = None) -> None:
        self.channel = channel
        super().__init__(message or f"{channel} channel is not configured")


class DeliveryError(Exception):
    """A single send to a single endpoint failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class EndpointGoneError(DeliveryError):
    """The push service reported the subscription as expired or unknown."""


class NotificationChannel(ABC):
    """Abstract base for notification delivery channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel identifier (webpush, email, sms)."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        """True when provider credentials are present."""

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ChannelUnavailableError(self.name)

    @abstractmethod
    async def send(self, target: Any, message: OutgoingMessage) -> None:
        """Deliver ``message`` to one endpoint.

        Raises:
            DeliveryError: The provider rejected or failed the send.
        """


class WebPushChannel(NotificationChannel):
    """Browser push via the Web Push protocol with VAPID authentication."""

    def __init__(
        self,
        settings: Settings | None = None,
        ttl_seconds: int = 3600,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._settings = settings or get_settings()
        self._ttl = ttl_seconds
        self._timeout = timeout_seconds

    @property
    def name(self) -> str:
        return "webpush"

    @property
    def configured(self) -> bool:
        return self._settings.webpush_configured

    @property
    def public_key(self) -> str | None:
        return self._settings.vapid_public_key

    def _push(self, subscription: PushSubscription, data: str) -> None:
        webpush(
            subscription_info=subscription.to_subscription_info(),
            data=data,
            vapid_private_key=self._settings.vapid_private_key,
            vapid_claims={"sub": self._settings.vapid_subject},
            ttl=self._ttl,
            timeout=self._timeout,
        )

    async def send(self, target: PushSubscription, message: OutgoingMessage) -> None:
        self.ensure_configured()
        try:
            await asyncio.to_thread(self._push, target, message.to_push_payload())
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            if status in GONE_STATUS_CODES:
                raise EndpointGoneError(
                    f"push subscription gone (HTTP {status})", status_code=status,
                ) from e
            raise DeliveryError(str(e), status_code=status) from e


class EmailChannel(NotificationChannel):
    """Transactional email through Resend."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    @property
    def name(self) -> str:
        return "email"

    @property
    def configured(self) -> bool:
        return self._settings.email_configured

    def _build_params(self, to: str, message: OutgoingMessage) -> dict[str, Any]:
        body_html = html.escape(message.body).replace("\n", "<br>")
        return {
            "from": self._settings.resend_from,
            "to": [to],
            "subject": message.title,
            "text": message.body,
            "html": f"<p>{body_html}</p>",
        }

    def _send_sync(self, params: dict[str, Any]) -> Any:
        resend.api_key = self._settings.resend_api_key
        return resend.Emails.send(params)

    async def send(self, target: str, message: OutgoingMessage) -> None:
        self.ensure_configured()
        try:
            result = await asyncio.to_thread(
                self._send_sync, self._build_params(target, message),
            )
        except Exception as e:
            raise DeliveryError(f"email send failed: {e}") from e
        logger.debug("Email %s accepted by provider: %s", message.notification_id, result)


class SmsChannel(NotificationChannel):
    """SMS through Twilio."""

    def __init__(
        self,
        settings: Settings | None = None,
        max_length: int = 320,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._settings = settings or get_settings()
        self._max_length = max_length
        self._timeout = timeout_seconds
        self._client: TwilioClient | None = None

    @property
    def name(self) -> str:
        return "sms"

    @property
    def configured(self) -> bool:
        return self._settings.sms_configured

    def format_body(self, message: OutgoingMessage) -> str:
        text = f"{message.title}: {message.body}" if message.body else message.title
        if len(text) > self._max_length:
            text = text[: self._max_length - 3] + "..."
        return text

    def _get_client(self) -> TwilioClient:
        if self._client is None:
            self._client = TwilioClient(
                self._settings.twilio_account_sid,
                self._settings.twilio_auth_token,
                http_client=TwilioHttpClient(timeout=self._timeout),
            )
        return self._client

    def _send_sync(self, to: str, body: str) -> Any:
        return self._get_client().messages.create(
            to=to,
            from_=self._settings.twilio_from_number,
            body=body,
        )

    async def send(self, target: str, message: OutgoingMessage) -> None:
        self.ensure_configured()
        try:
            await asyncio.to_thread(self._send_sync, target, self.format_body(message))
        except Exception as e:
            status = getattr(e, "status", None)
            raise DeliveryError(f"sms send failed: {e}", status_code=status) from e
