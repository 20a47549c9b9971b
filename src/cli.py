"""
Command-line interface for city-alerts.

Provides commands to run the API server, initialize the database, run the
breach evaluator outside the API process, and run diagnostic checks.

Usage:
    city-alerts serve      # Run the API server (with background evaluator)
    city-alerts init-db    # Create tables and seed default thresholds
    city-alerts evaluate   # Run one evaluation pass (--loop for periodic)
    city-alerts health     # Check service health
"""

import asyncio
import json
import signal
import sys

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """City Alerts - threshold breach detection and notification."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command("init-db")
@click.option("--no-seed", is_flag=True, help="Do not insert default thresholds")
def init_db(no_seed: bool) -> None:
    """Create tables and seed default thresholds."""
    from src.storage.database import Database
    from src.storage.schema import create_all_tables

    async def run():
        db = Database()
        await db.connect()
        try:
            await create_all_tables(db, seed=not no_seed)
        finally:
            await db.close()

        click.echo("Database initialized successfully")

    asyncio.run(run())


def _parse_samples(samples: tuple[str, ...]) -> dict[str, float]:
    from src.thresholds.schemas import VALID_METRICS

    values: dict[str, float] = {}
    for item in samples:
        metric, sep, raw = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected METRIC=VALUE, got {item!r}", param_hint="--sample")
        if metric not in VALID_METRICS:
            raise click.BadParameter(
                f"unknown metric {metric!r}, must be one of {sorted(VALID_METRICS)}",
                param_hint="--sample",
            )
        try:
            values[metric] = float(raw)
        except ValueError:
            raise click.BadParameter(f"{raw!r} is not a number", param_hint="--sample")
    return values


@main.command()
@click.option("--loop", "run_loop", is_flag=True, help="Keep evaluating every interval")
@click.option(
    "--sample",
    "samples",
    multiple=True,
    help="Use METRIC=VALUE instead of the stored readings (can repeat)",
)
@click.option("--notify/--no-notify", default=True, help="Push notifications for new breaches")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server (with --loop)")
def evaluate(run_loop: bool, samples: tuple[str, ...], notify: bool, metrics: bool) -> None:
    """Evaluate all metrics against their thresholds."""
    from src.breaches.config import BreachConfig
    from src.breaches.evaluator import BreachEvaluator
    from src.breaches.repository import BreachRepository
    from src.breaches.sampler import StaticSampler, TimeseriesSampler
    from src.notifications.channels import WebPushChannel
    from src.notifications.config import NotificationConfig
    from src.notifications.dispatcher import NotificationDispatcher
    from src.notifications.repository import (
        NotificationRepository,
        OperatorDirectory,
        SubscriptionRepository,
    )
    from src.storage.database import Database
    from src.thresholds.repository import ThresholdRepository

    static_values = _parse_samples(samples)
    settings = get_settings()

    async def run():
        db = Database()
        await db.connect()

        redis_client = None
        if settings.redis_enabled:
            import redis.asyncio as redis
            redis_client = redis.from_url(
                str(settings.redis_url),
                encoding="utf-8",
                decode_responses=True,
            )

        dispatcher = None
        if notify and settings.webpush_configured:
            config = NotificationConfig()
            dispatcher = NotificationDispatcher(
                notification_repo=NotificationRepository(db),
                subscription_repo=SubscriptionRepository(db),
                operator_directory=OperatorDirectory(db),
                push_channel=WebPushChannel(
                    settings,
                    ttl_seconds=config.push_ttl_seconds,
                    timeout_seconds=config.send_timeout_seconds,
                ),
                config=config,
            )

        breach_config = BreachConfig()
        if static_values:
            sampler = StaticSampler(static_values)
        else:
            sampler = TimeseriesSampler(
                db, max_age_seconds=breach_config.sample_max_age_seconds,
            )
        evaluator = BreachEvaluator(
            threshold_repo=ThresholdRepository(db),
            breach_repo=BreachRepository(db),
            sampler=sampler,
            config=breach_config,
            dispatcher=dispatcher,
            redis_client=redis_client,
        )

        try:
            if run_loop:
                if metrics:
                    get_metrics().start_server()

                stop_event = asyncio.Event()
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGTERM, signal.SIGINT):
                    loop.add_signal_handler(sig, stop_event.set)

                evaluator.start()
                click.echo("Evaluator running, press Ctrl+C to stop")
                await stop_event.wait()
                await evaluator.stop()
            else:
                report = await evaluator.evaluate()
                click.echo(json.dumps(report.to_dict(), indent=2))
        finally:
            if redis_client is not None:
                await redis_client.aclose()
            await db.close()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        settings = get_settings()
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from src.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check Redis
        if settings.redis_enabled:
            try:
                import redis.asyncio as redis
                client = redis.from_url(str(settings.redis_url))
                results["redis"] = bool(await client.ping())
                await client.aclose()
            except Exception as e:
                results["redis"] = False
                logger.error("Redis health check failed", error=str(e))

        # Check providers
        results["webpush_configured"] = settings.webpush_configured
        results["email_configured"] = settings.email_configured
        results["sms_configured"] = settings.sms_configured

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("redis", "postgres") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
