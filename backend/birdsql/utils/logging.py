"""
Logging configuration for the birdsql tour.

This module configures structlog for console output locally and JSON output
when running in AWS. It should be initialized once at startup via
configure_logging().

Features:
    - Environment-aware renderers (console for local, JSON for aws)
    - Automatic context binding (timestamp, log level, logger name)
    - Integration with standard library logging for SQLAlchemy and the driver
    - Sensitive data filtering (passwords, including those inside database URLs)

Usage:
    from birdsql.utils.logging import configure_logging

    configure_logging(environment="local", log_level="INFO")

    # In modules
    import structlog
    logger = structlog.get_logger(__name__)

    logger.info("bird_inserted", species="rooster", rows_affected=1)
"""

from __future__ import annotations

import logging
import re
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Sensitive field patterns to redact from logs
SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "secret",
        "token",
        "credential",
    }
)

# user:password@ inside a URL
_URL_PASSWORD = re.compile(r"(?P<prefix>[a-z0-9+]+://[^:/@\s]+:)[^@\s]+(?=@)", re.I)


def redact_url(value: str) -> str:
    """Replace the password component of any URL in ``value`` with ``***``."""
    return _URL_PASSWORD.sub(r"\g<prefix>***", value)


def _redact_sensitive_data(
    _logger: WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """
    Redact sensitive data from log events.

    Values under sensitive key names are replaced with "[REDACTED]"; string
    values that embed a URL have its password masked.
    """
    for key in list(event_dict.keys()):
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            event_dict[key] = "[REDACTED]"
        elif isinstance(event_dict[key], str):
            event_dict[key] = redact_url(event_dict[key])
    return event_dict


def configure_logging(
    environment: str = "local",
    log_level: str | None = None,
) -> None:
    """
    Configure logging for the application.

    Logs go to stderr so that the tour's own output on stdout stays readable.

    Args:
        environment: Runtime environment ('local' or 'aws').
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            If not provided, defaults to DEBUG for local, INFO for aws.
    """
    if log_level is None:
        log_level = "DEBUG" if environment == "local" else "INFO"

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _redact_sensitive_data,
    ]

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: Processor
    if environment == "aws":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    # SQLAlchemy's pool and engine loggers are chatty below WARNING
    logging.getLogger("sqlalchemy.pool").setLevel(max(numeric_level, logging.WARNING))

    logger = structlog.get_logger("logging.config")
    logger.debug(
        "logging_configured",
        environment=environment,
        log_level=log_level,
        output_format="json" if environment == "aws" else "console",
    )


def bind_stage_context(stage: str) -> None:
    """Bind the current tour stage to all subsequent log lines."""
    structlog.contextvars.bind_contextvars(stage=stage)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


__all__ = [
    "configure_logging",
    "bind_stage_context",
    "clear_context",
    "redact_url",
]
