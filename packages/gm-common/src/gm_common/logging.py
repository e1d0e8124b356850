"""
Structured logging setup for gateway-metrics.

Configures structlog for JSON-formatted structured logging. Every log line
includes timestamp, level, service name, and event. Request-scoped context
is bound through contextvars by the callers that need it.
"""

from __future__ import annotations

import logging

import structlog


def configure_logging(
    level: str = "INFO",
    *,
    json_logs: bool = True,
    service: str | None = None,
) -> None:
    """Configure structlog for the current process.

    Args:
        level: Minimum level name (``DEBUG``, ``INFO``, ...).
        json_logs: Render JSON lines when true, console output otherwise.
        service: Service name bound to every log line.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    renderer: structlog.typing.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )

    structlog.contextvars.clear_contextvars()
    if service:
        structlog.contextvars.bind_contextvars(service=service)
