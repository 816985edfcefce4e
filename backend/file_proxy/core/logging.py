"""Structured logging with structlog.

Events are snake_case names with keyword context. Every event logged
while a request is in flight carries that request's correlation id.
Values under credential-like keys are masked before rendering.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

import structlog

from file_proxy.config import Settings, get_settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

REDACTED = "***"
SENSITIVE_KEYS = ("token", "secret", "authorization", "password")

# Chatty transport loggers would otherwise log every downstream call
QUIET_LOGGERS = ("httpx", "httpcore", "azure")


def add_request_id(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Attach the current correlation id, if any."""
    request_id = request_id_ctx.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def redact_secrets(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Mask values whose key names a credential."""
    for key in event_dict:
        if any(marker in key.lower() for marker in SENSITIVE_KEYS):
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        settings: Settings to read level and environment from; defaults
            to the cached process settings
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_id,
        redact_secrets,
    ]
    if settings.is_development:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    logging.getLogger("uvicorn").setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, typically for ``__name__``."""
    return structlog.get_logger(name)


def generate_request_id() -> str:
    """Short correlation id: the first 8 characters of a uuid4."""
    return uuid4().hex[:8]


def truncate_id(value: str | None, length: int = 8) -> str:
    """Shorten an identifier for log output."""
    if not value:
        return "not_set"
    return value[:length] + "..." if len(value) > length else value
