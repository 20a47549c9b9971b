"""
Health check endpoint with infrastructure checks.
"""

import time

import structlog
from fastapi import APIRouter, Depends

from src.api.dependencies import get_database, get_redis_client, peek_evaluator
from src.api.models import ComponentHealth, HealthResponse
from src.config.settings import get_settings
from src.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_database(db: Database) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    start = time.perf_counter()
    healthy = await db.health_check()
    latency_ms = (time.perf_counter() - start) * 1000
    return ComponentHealth(
        status="healthy" if healthy else "unhealthy",
        latency_ms=round(latency_ms, 2),
    )


async def _check_redis(redis_client) -> ComponentHealth:
    """Check Redis connectivity and measure latency."""
    if redis_client is None:
        return ComponentHealth(status="disabled")

    start = time.perf_counter()
    try:
        await redis_client.ping()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


def _check_evaluator() -> ComponentHealth:
    settings = get_settings()
    if not settings.evaluator_enabled:
        return ComponentHealth(status="disabled")

    evaluator = peek_evaluator()
    if evaluator is None or not evaluator.is_running:
        return ComponentHealth(status="unhealthy", details={"running": False})

    last_tick = evaluator.last_tick_at
    return ComponentHealth(
        status="healthy",
        details={
            "running": True,
            "last_tick_at": last_tick.isoformat() if last_tick else None,
        },
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the health of the service and its dependencies.",
)
async def health_check(
    db: Database = Depends(get_database),
    redis_client=Depends(get_redis_client),
) -> HealthResponse:
    """
    Check service health including database, Redis, and the evaluator.

    Status logic:
    - unhealthy: database is down
    - degraded: Redis or the background evaluator is down
    - healthy: all components operational
    """
    settings = get_settings()

    components: dict[str, ComponentHealth] = {
        "database": await _check_database(db),
        "redis": await _check_redis(redis_client),
        "evaluator": _check_evaluator(),
    }

    if components["database"].status == "unhealthy":
        status = "unhealthy"
    elif any(c.status == "unhealthy" for c in components.values()):
        status = "degraded"
    else:
        status = "healthy"

    if status != "healthy":
        logger.warning(
            "Health check not healthy",
            status=status,
            components={k: c.status for k, c in components.items()},
        )

    return HealthResponse(
        status=status,
        components=components,
        channels={
            "webpush": settings.webpush_configured,
            "email": settings.email_configured,
            "sms": settings.sms_configured,
        },
        version="0.1.0",
    )
