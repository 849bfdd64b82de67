"""Structured logging setup.

Learn: Modules call structlog.get_logger() and log dotted event names with
key/value context (logger.warning("metrics_cache.read_failed", user_id=...)).
This module decides how those events are rendered: human-readable console
output in development, one JSON object per line everywhere else.

The request ID bound by RequestIdMiddleware lives in structlog's contextvars,
so merge_contextvars attaches it to every entry logged during that request.
"""

import logging
import sys

import structlog

from smartpro.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure stdlib logging and structlog for the process."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    if settings.environment == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
