"""
Dependency injection for FastAPI endpoints.

Every repository and service is a process-wide singleton created on first
use. Tests replace them through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import AsyncGenerator

import redis.asyncio as redis

from src.breaches.config import BreachConfig
from src.breaches.evaluator import BreachEvaluator
from src.breaches.repository import BreachRepository
from src.breaches.sampler import TimeseriesSampler
from src.config.settings import get_settings
from src.notifications.channels import EmailChannel, SmsChannel, WebPushChannel
from src.notifications.config import NotificationConfig
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.repository import (
    NotificationRepository,
    OperatorDirectory,
    SubscriptionRepository,
)
from src.storage.database import Database
from src.thresholds.repository import ThresholdRepository

# Global service instances (initialized on first request)
_database: Database | None = None
_redis_client: redis.Redis | None = None
_dispatcher: NotificationDispatcher | None = None
_evaluator: BreachEvaluator | None = None


async def get_database() -> Database:
    """Get the shared database, connecting on first use."""
    global _database

    if _database is None:
        database = Database()
        await database.connect()
        _database = database

    return _database


def _get_redis() -> redis.Redis | None:
    global _redis_client

    settings = get_settings()
    if not settings.redis_enabled:
        return None

    if _redis_client is None:
        _redis_client = redis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def get_redis_client() -> AsyncGenerator[redis.Redis | None, None]:
    """Get the shared Redis client, or None when Redis is disabled."""
    yield _get_redis()


@lru_cache
def get_breach_config() -> BreachConfig:
    return BreachConfig()


@lru_cache
def get_notification_config() -> NotificationConfig:
    return NotificationConfig()


async def get_threshold_repository() -> ThresholdRepository:
    return ThresholdRepository(await get_database())


async def get_breach_repository() -> BreachRepository:
    return BreachRepository(await get_database())


async def get_notification_repository() -> NotificationRepository:
    return NotificationRepository(await get_database())


async def get_subscription_repository() -> SubscriptionRepository:
    return SubscriptionRepository(await get_database())


async def get_operator_directory() -> OperatorDirectory:
    return OperatorDirectory(await get_database())


async def get_dispatcher() -> NotificationDispatcher:
    """
    Get the notification dispatcher.

    Channel adapters are always constructed; unconfigured providers are
    reported per request (503) rather than at startup.
    """
    global _dispatcher

    if _dispatcher is None:
        settings = get_settings()
        config = get_notification_config()
        database = await get_database()
        _dispatcher = NotificationDispatcher(
            notification_repo=NotificationRepository(database),
            subscription_repo=SubscriptionRepository(database),
            operator_directory=OperatorDirectory(database),
            push_channel=WebPushChannel(
                settings,
                ttl_seconds=config.push_ttl_seconds,
                timeout_seconds=config.send_timeout_seconds,
            ),
            email_channel=EmailChannel(settings),
            sms_channel=SmsChannel(
                settings,
                max_length=config.sms_max_length,
                timeout_seconds=config.send_timeout_seconds,
            ),
            config=config,
        )

    return _dispatcher


async def get_push_channel() -> WebPushChannel:
    return WebPushChannel(get_settings())


async def get_evaluator() -> BreachEvaluator:
    """Get the breach evaluator shared by the background loop and the API."""
    global _evaluator

    if _evaluator is None:
        database = await get_database()
        config = get_breach_config()
        _evaluator = BreachEvaluator(
            threshold_repo=ThresholdRepository(database),
            breach_repo=BreachRepository(database),
            sampler=TimeseriesSampler(
                database, max_age_seconds=config.sample_max_age_seconds,
            ),
            config=config,
            dispatcher=await get_dispatcher(),
            redis_client=_get_redis(),
        )

    return _evaluator


def peek_evaluator() -> BreachEvaluator | None:
    """Return the evaluator if it was created, without creating it."""
    return _evaluator


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _database, _redis_client, _dispatcher, _evaluator

    if _evaluator is not None:
        await _evaluator.stop()
        _evaluator = None

    _dispatcher = None

    if _database is not None:
        await _database.close()
        _database = None

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
