"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import cleanup_dependencies, get_evaluator
from src.api.middleware.timeout import TimeoutMiddleware
from src.api.routes import breaches, health, notifications, thresholds
from src.config.settings import get_settings
from src.observability.logging import bind_context, clear_context

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Starts the periodic breach evaluator when enabled. A failure to start
    it is logged and the API keeps serving.
    """
    logger.info("City alerts API starting up")

    settings = get_settings()
    if settings.evaluator_enabled:
        try:
            evaluator = await get_evaluator()
            evaluator.start()
        except Exception as e:
            logger.warning("Failed to start breach evaluator: %s", e)

    yield

    logger.info("City alerts API shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "thresholds", "description": "Per-metric warn and critical levels"},
        {"name": "breaches", "description": "Threshold breaches and acknowledgement"},
        {"name": "notifications", "description": "Web push, email and SMS delivery"},
    ]

    app = FastAPI(
        title="City Alerts API",
        description="""
Threshold breach detection and multi-channel notification for city metrics
(traffic, air quality, waste, power).

## Authentication

Requires `X-API-KEY` header for all requests except `/health`.
Acknowledgement and push subscription endpoints also need the acting
operator in `X-Operator-ID`.
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # Add CORS middleware (origins from CORS_ORIGINS env var, comma-separated)
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Added before the logging middleware so the timeout wraps the whole request
    if settings.request_timeout_seconds > 0:
        app.add_middleware(
            TimeoutMiddleware,
            timeout_seconds=settings.request_timeout_seconds,
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        # Correlation ID: use incoming header or generate a new one
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )
        bind_context(request_id=request_id)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time

            response.headers["X-Request-ID"] = request_id

            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            clear_context()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(thresholds.router, tags=["thresholds"])
    app.include_router(breaches.router, tags=["breaches"])
    app.include_router(notifications.router, tags=["notifications"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "City Alerts API",
            "version": "0.1.0",
            "docs": "/docs",
        }

    return app
