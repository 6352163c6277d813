"""
Structured logging for the death verification service.

structlog renders through the stdlib logging handler so uvicorn and httpx
output share one format: coloured console lines in dev, JSON elsewhere.
Identity fields are masked before rendering; verification logs refer to a
person by query reference only.
"""
from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from shared.config import Environment, get_settings

REDACTED = "[redacted]"
IDENTITY_FIELDS = frozenset({
    "full_name",
    "fullName",
    "date_of_birth",
    "dateOfBirth",
    "national_id",
    "nationalId",
    "ssn",
})


def redact_identity(_: Any, __: str, event_dict: EventDict) -> EventDict:
    """Mask names, birth dates and national IDs that slip into a log call."""
    for key in IDENTITY_FIELDS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def setup_logging(service_name: str, extra_context: dict[str, Any] | None = None) -> None:
    """
    Configure structured logging for a service process.

    Args:
        service_name: Identifier bound to every entry (e.g. "api").
        extra_context: Additional static fields bound to every entry.
    """
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_identity,
    ]

    render_chain: list[Processor]
    if settings.environment == Environment.DEV:
        render_chain = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]
    else:
        render_chain = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *render_chain,
            ],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Per-request lines come from the access log middleware
    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service=service_name,
        instance_id=settings.instance_id,
        environment=settings.environment.value,
        **(extra_context or {}),
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name)
