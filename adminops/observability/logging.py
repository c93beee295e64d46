"""
Structured Logging with Structlog.

Provides JSON-formatted logs with command context (admin uid, command name,
client ip) bound per command execution.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from adminops.config import Settings

# Service identity stamped on every entry; filled by setup_logging
_app_context: dict[str, str] = {}


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    for key, value in _app_context.items():
        event_dict.setdefault(key, value)
    return event_dict


def setup_logging(settings: Settings) -> None:
    """
    Configure structured logging with structlog.

    Logs are formatted as JSON for machine parsing with the following structure:
    {
        "event": "command_completed",
        "level": "info",
        "timestamp": "2025-01-08T12:00:00.123456Z",
        "logger": "adminops.services.admin_executor",
        "service": "adminops",
        "version": "0.1.0",
        "admin_uid": "uid-123",
        "command": "ban_user",
        ...additional context
    }
    """
    _app_context["service"] = settings.service_name
    _app_context["version"] = settings.service_version

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_level.upper() == "DEBUG":
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("license_created", license_key=key, plan="Pro")
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Context manager for adding structured logging context.

    Usage:
        with log_context(admin_uid="uid-1", command="ban_user"):
            logger.info("user_banned")
            # All logs within this context will include admin_uid and command
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = {k: v for k, v in kwargs.items() if v is not None}

    def __enter__(self) -> None:
        """Enter context - bind context variables."""
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context - clear context variables."""
        structlog.contextvars.unbind_contextvars(*self.context.keys())
