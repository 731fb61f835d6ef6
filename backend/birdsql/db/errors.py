"""
Exception hierarchy for birdsql database operations.

Every failure the tour can hit maps onto one of these classes, so callers can
tell "no rows" apart from "connection lost" and "deadline exceeded" apart from
"query failed for another reason". SQLAlchemy exceptions are translated in one
place, :func:`translate_errors`, and always chained with ``raise ... from``.

Hierarchy:
    BirdsqlError
    ├── ConfigurationError
    ├── ConnectivityError
    ├── QueryError
    │   ├── NoRowsError
    │   ├── ConstraintViolationError
    │   └── DeadlineExceededError
    └── ScanError
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import exc

if TYPE_CHECKING:
    from birdsql.db.cancellation import Deadline

logger = structlog.get_logger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================


class BirdsqlError(Exception):
    """Base exception for birdsql operations."""

    pass


class ConfigurationError(BirdsqlError):
    """Raised when the connection URL or pool settings are unusable."""

    pass


class ConnectivityError(BirdsqlError):
    """Raised when the database cannot be reached or the connection is lost."""

    pass


class QueryError(BirdsqlError):
    """Raised when a statement fails on the server or cannot be bound."""

    pass


class NoRowsError(QueryError):
    """Raised when a single-row query matches nothing."""

    pass


class ConstraintViolationError(QueryError):
    """Raised when a mutation violates a unique, foreign-key or check constraint."""

    pass


class DeadlineExceededError(QueryError):
    """
    Raised when a statement is cancelled because its deadline elapsed.

    Attributes:
        timeout: The deadline's timeout in seconds, when it had one.
    """

    def __init__(self, message: str, timeout: float | None = None) -> None:
        super().__init__(message)
        self.timeout = timeout


class ScanError(BirdsqlError):
    """
    Raised when a result row cannot be mapped onto a record.

    Attributes:
        row_index: Zero-based position of the offending row in the result.
    """

    def __init__(self, message: str, row_index: int = 0) -> None:
        super().__init__(message)
        self.row_index = row_index


# =============================================================================
# Translation
# =============================================================================


@contextmanager
def translate_errors(
    operation: str,
    deadline: Deadline | None = None,
) -> Iterator[None]:
    """
    Translate SQLAlchemy exceptions raised inside the block.

    Args:
        operation: Short description used in the error message ("insert bird").
        deadline: Deadline bound to the block, if any. When it has expired, any
            driver error is reported as :class:`DeadlineExceededError`.

    Raises:
        BirdsqlError: One of the subclasses, chained to the original error.
    """
    try:
        yield
    except BirdsqlError:
        raise
    except exc.IntegrityError as e:
        logger.warning("constraint_violation", operation=operation, error=str(e.orig))
        raise ConstraintViolationError(f"could not {operation}: {e.orig}") from e
    except exc.DBAPIError as e:
        if deadline is not None and deadline.expired:
            raise DeadlineExceededError(
                f"could not {operation}: deadline exceeded", timeout=deadline.timeout
            ) from e
        if e.connection_invalidated:
            raise ConnectivityError(f"could not {operation}: connection lost: {e.orig}") from e
        raise QueryError(f"could not {operation}: {e.orig}") from e
    except exc.SQLAlchemyError as e:
        raise QueryError(f"could not {operation}: {e}") from e


__all__ = [
    "BirdsqlError",
    "ConfigurationError",
    "ConnectivityError",
    "QueryError",
    "NoRowsError",
    "ConstraintViolationError",
    "DeadlineExceededError",
    "ScanError",
    "translate_errors",
]
