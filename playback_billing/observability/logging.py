"""
Structured Logging with Structlog.

Every entry carries the service name and version. Session tokens and API keys
are masked before rendering, so playback webhooks can log the token they
refer to without leaking it.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from playback_billing.config import Settings

MASKED_FIELDS = frozenset({"session_token", "api_key", "x_api_key"})
MASK_VISIBLE_CHARS = 4

# Request logging is done by our own middleware
_QUIETED_LOGGERS = ("uvicorn.access",)


def mask_value(value: Any) -> str:
    """Keep a short prefix for correlation, hide the rest."""
    text = str(value)
    if len(text) <= MASK_VISIBLE_CHARS:
        return "***"
    return f"{text[:MASK_VISIBLE_CHARS]}***"


def mask_sensitive_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in MASKED_FIELDS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = mask_value(event_dict[key])
    return event_dict


def _service_context(settings: Settings) -> Processor:
    def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", settings.service_name)
        event_dict.setdefault("version", settings.api_version)
        return event_dict

    return add_service_context


def setup_logging(settings: Settings) -> None:
    """
    Configure structlog over the standard library root logger.

    JSON output looks like:
    {
        "event": "usage_recorded",
        "level": "info",
        "timestamp": "2025-01-08T12:00:00.123456Z",
        "logger": "playback_billing.services.session_tracker",
        "service": "playback-billing",
        "version": "0.1.0",
        "request_id": "req-123",
        ...additional context
    }

    Safe to call again; the latest settings win.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in _QUIETED_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _service_context(settings),
        mask_sensitive_fields,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Module logger, e.g. ``logger = get_logger(__name__)``."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """
    Bind context variables for every log entry emitted inside the block.

    Usage:
        with log_context(request_id="req-123"):
            logger.info("invoice_generated")
    """
    structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*context)
