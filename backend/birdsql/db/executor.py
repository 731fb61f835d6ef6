"""
Run one statement on a pooled connection.

Each function checks a connection out, runs a single statement written with
``$n`` placeholders, consumes the whole result, and returns the connection to
the pool before returning. Errors come back as :mod:`birdsql.db.errors`
subclasses.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

import structlog
from sqlalchemy import Connection, CursorResult, Row

from birdsql.db.cancellation import Deadline, guard
from birdsql.db.engine import Database
from birdsql.db.errors import NoRowsError, translate_errors
from birdsql.db.params import bind_positional

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@contextmanager
def bound_connection(
    db: Database,
    operation: str,
    deadline: Deadline | None = None,
) -> Iterator[Connection]:
    """Yield a pooled connection whose statements honour ``deadline``."""
    with db.connect(deadline) as conn, translate_errors(operation, deadline):
        with guard(deadline, conn):
            yield conn


def run(
    db: Database,
    operation: str,
    sql: str,
    args: tuple[Any, ...],
    consume: Callable[[CursorResult[Any]], T],
    deadline: Deadline | None = None,
) -> T:
    """Execute ``sql`` and hand its result to ``consume`` before releasing the connection."""
    statement, params = bind_positional(sql, args)
    with bound_connection(db, operation, deadline) as conn:
        result = conn.execute(statement, params)
        try:
            return consume(result)
        finally:
            result.close()


def first_row(result: CursorResult[Any]) -> Row[Any]:
    """Return the first row of ``result`` or raise NoRowsError."""
    row = result.first()
    if row is None:
        raise NoRowsError("no rows in result set")
    return row


def all_rows(result: CursorResult[Any]) -> list[Row[Any]]:
    return list(result.all())


def rows_affected(result: CursorResult[Any]) -> int:
    return result.rowcount


def fetch_one(
    db: Database, sql: str, *args: Any, deadline: Deadline | None = None
) -> Row[Any]:
    """
    Run a query expected to return at most one row.

    Raises:
        NoRowsError: If the query returned no rows.
        QueryError: If the statement failed.
    """
    return run(db, "query row", sql, args, first_row, deadline)


def fetch_all(
    db: Database, sql: str, *args: Any, deadline: Deadline | None = None
) -> list[Row[Any]]:
    """Run a query and return every row, in the order the server sent them."""
    return run(db, "execute query", sql, args, all_rows, deadline)


def execute(db: Database, sql: str, *args: Any, deadline: Deadline | None = None) -> int:
    """
    Run a statement and return the number of rows the server reports as affected.

    Raises:
        ConstraintViolationError: If the statement violated a constraint.
        QueryError: If the statement failed for another reason.
    """
    count = run(db, "execute statement", sql, args, rows_affected, deadline)
    logger.debug("statement_executed", rows_affected=count)
    return count


__all__ = [
    "bound_connection",
    "run",
    "first_row",
    "all_rows",
    "rows_affected",
    "fetch_one",
    "fetch_all",
    "execute",
]
