"""Notification endpoints: send over one or all channels, self-tests, push subscriptions, history."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.auth import get_operator_id, get_optional_operator_id, verify_api_key
from src.api.dependencies import (
    get_dispatcher,
    get_notification_config,
    get_notification_repository,
    get_operator_directory,
    get_push_channel,
    get_subscription_repository,
)
from src.api.models import (
    ChannelDispatchItem,
    EmailTestRequest,
    ErrorResponse,
    NotificationItem,
    NotificationsResponse,
    NotifyAllRequest,
    NotifyAllResponse,
    PublicKeyResponse,
    PushTestRequest,
    SendNotificationRequest,
    SendNotificationResponse,
    SubscribeRequest,
    SubscriptionResponse,
    UnsubscribeRequest,
)
from src.notifications.channels import ChannelUnavailableError, WebPushChannel
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
from src.notifications.schemas import VALID_STATUSES, NotificationRequest, PushSubscription

logger = structlog.get_logger(__name__)
router = APIRouter()

_SEND_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Invalid API key"},
    404: {"model": ErrorResponse, "description": "Retried notification not found"},
    422: {"model": ErrorResponse, "description": "Invalid request or retry on another channel"},
    500: {"model": ErrorResponse, "description": "Server error"},
    503: {"model": ErrorResponse, "description": "Channel not configured"},
}


async def _send(
    channel: str,
    body: SendNotificationRequest,
    dispatcher: NotificationDispatcher,
    operator_id: int | None,
) -> SendNotificationResponse:
    owner_id = body.owner_id
    # Email and SMS go to the caller's stored address unless told otherwise
    if channel != "webpush" and owner_id is None and body.to is None:
        owner_id = operator_id

    try:
        request = NotificationRequest(
            title=body.title,
            body=body.body,
            channel=channel,
            notification_id=body.notification_id,
            severity=body.severity,
            source=body.source,
            related_entity_id=body.related_entity_id,
            url=body.url,
            tag=body.tag,
            recipient=body.to if channel != "webpush" else None,
            owner_id=owner_id,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    return await _dispatch(request, dispatcher)


async def _dispatch(
    request: NotificationRequest,
    dispatcher: NotificationDispatcher,
) -> SendNotificationResponse:
    start_time = time.perf_counter()
    channel = request.channel

    try:
        outcome = await dispatcher.dispatch(request)
    except ChannelUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
    except NotificationNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
    except NotificationChannelMismatchError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except Exception as e:
        logger.error(f"Failed to send {channel} notification: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send {channel} notification",
        )

    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Notification dispatched",
        channel=channel,
        notification_id=outcome.notification_id,
        status=outcome.status,
        sent=outcome.sent,
        endpoints=len(outcome.results),
        latency_ms=round(latency_ms, 2),
    )
    return SendNotificationResponse.from_outcome(outcome, round(latency_ms, 2))


@router.post(
    "/notifications/webpush/send",
    response_model=SendNotificationResponse,
    responses=_SEND_RESPONSES,
    summary="Send a push notification",
    description=(
        "Push to every registered device (or only owner_id's). Devices the "
        "push service reports as gone are unregistered."
    ),
)
async def send_webpush(
    body: SendNotificationRequest,
    api_key: str = Depends(verify_api_key),
    operator_id: int | None = Depends(get_optional_operator_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> SendNotificationResponse:
    return await _send("webpush", body, dispatcher, operator_id)


@router.post(
    "/notifications/email/send",
    response_model=SendNotificationResponse,
    responses=_SEND_RESPONSES,
    summary="Send an email notification",
    description="Email `to`, or the stored address of owner_id (default: the caller).",
)
async def send_email(
    body: SendNotificationRequest,
    api_key: str = Depends(verify_api_key),
    operator_id: int | None = Depends(get_optional_operator_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> SendNotificationResponse:
    return await _send("email", body, dispatcher, operator_id)


@router.post(
    "/notifications/sms/send",
    response_model=SendNotificationResponse,
    responses=_SEND_RESPONSES,
    summary="Send an SMS notification",
    description="Text `to`, or the stored phone number of owner_id (default: the caller).",
)
async def send_sms(
    body: SendNotificationRequest,
    api_key: str = Depends(verify_api_key),
    operator_id: int | None = Depends(get_optional_operator_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> SendNotificationResponse:
    return await _send("sms", body, dispatcher, operator_id)


@router.post(
    "/notifications/notify",
    response_model=NotifyAllResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        422: {"model": ErrorResponse, "description": "Invalid request or no target operator"},
    },
    summary="Notify over several channels",
    description=(
        "Send one notification over web push, SMS and email (or the listed "
        "channels). Each channel gets its own record; an unconfigured or "
        "failing channel is reported without affecting the others."
    ),
)
async def notify_all(
    body: NotifyAllRequest,
    api_key: str = Depends(verify_api_key),
    operator_id: int | None = Depends(get_optional_operator_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> NotifyAllResponse:
    start_time = time.perf_counter()

    owner_id = body.owner_id if body.owner_id is not None else operator_id
    if owner_id is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="owner_id or X-Operator-ID is required",
        )

    request = NotificationRequest(
        title=body.title,
        body=body.body,
        severity=body.severity,
        source=body.source,
        related_entity_id=body.related_entity_id,
        url=body.url,
        tag=body.tag,
        owner_id=owner_id,
    )
    recipients = {
        name: address
        for name, address in (("email", body.email), ("sms", body.phone))
        if address
    }
    # Duplicates would create two records for the same channel
    channels = list(dict.fromkeys(body.channels))

    dispatches = await dispatcher.dispatch_all(request, channels, recipients)

    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Multi-channel notification dispatched",
        owner_id=owner_id,
        outcomes={d.channel: d.outcome.status if d.outcome else "error" for d in dispatches},
        latency_ms=round(latency_ms, 2),
    )
    return NotifyAllResponse(
        ok=any(d.ok for d in dispatches),
        channels=[ChannelDispatchItem.from_dispatch(d) for d in dispatches],
        latency_ms=round(latency_ms, 2),
    )


@router.post(
    "/notifications/webpush/test",
    response_model=SendNotificationResponse,
    responses={
        **_SEND_RESPONSES,
        404: {"model": ErrorResponse, "description": "Caller has no push subscriptions"},
    },
    summary="Send a test push to yourself",
    description="Push a test notification to every device the caller registered.",
)
async def send_test_push(
    body: PushTestRequest | None = None,
    api_key: str = Depends(verify_api_key),
    operator_id: int = Depends(get_operator_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    subscriptions: SubscriptionRepository = Depends(get_subscription_repository),
) -> SendNotificationResponse:
    body = body or PushTestRequest()

    try:
        owned = await subscriptions.list_all(owner_id=operator_id)
    except Exception as e:
        logger.error(f"Failed to list push subscriptions: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list push subscriptions",
        )
    if not owned:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No subscriptions",
        )

    request = NotificationRequest(
        title=body.title,
        body=body.body,
        channel="webpush",
        source="test",
        url=body.url,
        tag=body.tag,
        owner_id=operator_id,
    )
    return await _dispatch(request, dispatcher)


@router.post(
    "/notifications/email/test",
    response_model=SendNotificationResponse,
    responses={
        **_SEND_RESPONSES,
        404: {"model": ErrorResponse, "description": "Caller unknown or has no email address"},
    },
    summary="Send a test email",
    description="Email a test message to `to`, or to the caller's stored address.",
)
async def send_test_email(
    body: EmailTestRequest | None = None,
    api_key: str = Depends(verify_api_key),
    operator_id: int = Depends(get_operator_id),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    directory: OperatorDirectory = Depends(get_operator_directory),
) -> SendNotificationResponse:
    body = body or EmailTestRequest()

    try:
        dispatcher.get_channel("email")
    except ChannelUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )

    to = body.to
    if to is None:
        try:
            contact = await directory.get_contact(operator_id)
        except Exception as e:
            logger.error(f"Failed to look up operator: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to look up operator",
            )
        if contact is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Operator {operator_id} not found",
            )
        if not contact.email:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Operator {operator_id} has no email address",
            )
        to = contact.email

    request = NotificationRequest(
        title=body.subject,
        body=body.text,
        channel="email",
        source="test",
        recipient=to,
    )
    return await _dispatch(request, dispatcher)


@router.get(
    "/notifications/webpush/public-key",
    response_model=PublicKeyResponse,
    responses={503: {"model": ErrorResponse, "description": "Web push not configured"}},
    summary="VAPID public key",
    description="Application server key browsers need to create a push subscription.",
)
async def get_public_key(
    channel: WebPushChannel = Depends(get_push_channel),
) -> PublicKeyResponse:
    if not channel.configured or not channel.public_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="webpush channel is not configured",
        )
    return PublicKeyResponse(public_key=channel.public_key)


@router.post(
    "/notifications/webpush/subscribe",
    response_model=SubscriptionResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key or missing operator"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Register a push subscription",
    description="Register the caller's device. Re-registering an endpoint replaces its owner and keys.",
)
async def subscribe(
    body: SubscribeRequest,
    api_key: str = Depends(verify_api_key),
    operator_id: int = Depends(get_operator_id),
    repo: SubscriptionRepository = Depends(get_subscription_repository),
) -> SubscriptionResponse:
    try:
        stored = await repo.upsert(
            PushSubscription(
                endpoint=body.endpoint,
                owner_id=operator_id,
                p256dh=body.keys.p256dh,
                auth=body.keys.auth,
            )
        )
    except Exception as e:
        logger.error(f"Failed to store push subscription: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store push subscription",
        )

    logger.info("Push subscription stored", operator_id=operator_id)
    return SubscriptionResponse(endpoint=stored.endpoint)


@router.post(
    "/notifications/webpush/unsubscribe",
    response_model=SubscriptionResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key or missing operator"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Remove a push subscription",
    description="Remove one of the caller's own devices. Removing an unknown endpoint is not an error.",
)
async def unsubscribe(
    body: UnsubscribeRequest,
    api_key: str = Depends(verify_api_key),
    operator_id: int = Depends(get_operator_id),
    repo: SubscriptionRepository = Depends(get_subscription_repository),
) -> SubscriptionResponse:
    try:
        removed = await repo.delete(body.endpoint, operator_id)
    except Exception as e:
        logger.error(f"Failed to remove push subscription: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove push subscription",
        )

    return SubscriptionResponse(endpoint=body.endpoint, removed=removed)


@router.get(
    "/notifications",
    response_model=NotificationsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        422: {"model": ErrorResponse, "description": "Invalid filter parameter"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="List notifications",
    description="Notification history with delivery reports, most recent first.",
)
async def list_notifications(
    notification_status: str | None = Query(
        default=None,
        alias="status",
        description="Filter by status: queued, sent, failed, no_subscribers",
    ),
    limit: int | None = Query(
        default=None,
        ge=1,
        description="Maximum notifications to return (capped by NOTIFICATIONS_MAX_LIST_LIMIT)",
    ),
    offset: int = Query(default=0, ge=0, description="Offset for pagination"),
    api_key: str = Depends(verify_api_key),
    repo: NotificationRepository = Depends(get_notification_repository),
    config: NotificationConfig = Depends(get_notification_config),
) -> NotificationsResponse:
    start_time = time.perf_counter()
    limit = min(limit or config.default_list_limit, config.max_list_limit)

    try:
        if notification_status and notification_status not in VALID_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=(
                    f"Invalid status {notification_status!r}. "
                    f"Must be one of: {sorted(VALID_STATUSES)}"
                ),
            )

        notifications = await repo.list_recent(
            status=notification_status,
            limit=limit,
            offset=offset,
        )
        items = [NotificationItem.from_notification(n) for n in notifications]
        latency_ms = (time.perf_counter() - start_time) * 1000

        return NotificationsResponse(
            notifications=items,
            total=len(items),
            latency_ms=round(latency_ms, 2),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list notifications: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list notifications",
        )


@router.get(
    "/notifications/{notification_id}",
    response_model=NotificationItem,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Notification not found"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Get a notification",
)
async def get_notification(
    notification_id: int,
    api_key: str = Depends(verify_api_key),
    repo: NotificationRepository = Depends(get_notification_repository),
) -> NotificationItem:
    try:
        notification = await repo.get_by_id(notification_id)
    except Exception as e:
        logger.error(f"Failed to get notification: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get notification",
        )

    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notification {notification_id} not found",
        )
    return NotificationItem.from_notification(notification)
