"""
Structured logging for the API, the evaluator and the CLI.

API modules log through structlog; the evaluator, dispatcher and
repositories use plain ``logging.getLogger(__name__)``. Both end up in one
root handler whose ``ProcessorFormatter`` runs the same processor chain
over stdlib records, so a dispatcher line written while a request is in
flight carries that request's ``request_id`` like any structlog line.
Production renders JSON, development renders a colored console.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from src.config.settings import get_settings

# Provider SDKs and HTTP stacks are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "urllib3", "twilio.http_client")

_HANDLER_NAME = "city-alerts"


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def build_formatter(json_output: bool) -> structlog.stdlib.ProcessorFormatter:
    """Formatter rendering both structlog events and foreign stdlib records."""
    if json_output:
        final: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final],
    )


def setup_logging() -> None:
    """
    Route structlog and stdlib logging through one stdout handler.

    Like ``logging.basicConfig``, no handler is added when the root logger
    already has one from elsewhere (a test runner, an embedding server).
    Calling it again replaces the handler installed by a previous call.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Breach recorded", metric="traffic", severity="critical")
    """
    settings = get_settings()

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(build_formatter(json_output=settings.is_production))

    root = logging.getLogger()
    ours = [h for h in root.handlers if h.get_name() == _HANDLER_NAME]
    for existing in ours:
        root.removeHandler(existing)
    if ours or not root.handlers:
        root.addHandler(handler)
    root.setLevel(settings.log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Bind context variables to all subsequent log messages."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
