"""
Utility helpers shared across birdsql.

- logging: structlog configuration and URL password redaction
"""

from birdsql.utils.logging import (
    bind_stage_context,
    clear_context,
    configure_logging,
    redact_url,
)

__all__ = [
    "configure_logging",
    "bind_stage_context",
    "clear_context",
    "redact_url",
]
