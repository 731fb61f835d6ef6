"""
Server-side prepared statements.

PostgreSQL prepared statements live in the session that created them, so a
:class:`PreparedStatement` pins one pooled connection for its whole life:

    PREPARE <name> AS <sql>        once, on enter
    EXECUTE <name>(args...)        any number of times
    DEALLOCATE <name>              exactly once, on close

The handle is a context manager; leaving the block releases the statement and
returns the connection to the pool, whether or not an execution failed.

Usage:
    with PreparedStatement(db, "SELECT bird, description FROM birds WHERE bird = $1") as stmt:
        eagle = stmt.fetch_one("eagle")
        owl = stmt.fetch_one("owl")
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable
from contextlib import ExitStack
from typing import Any, TypeVar

import structlog
from sqlalchemy import Connection, CursorResult, Row, text

from birdsql.db.cancellation import Deadline, guard
from birdsql.db.engine import Database
from birdsql.db.errors import BirdsqlError, QueryError, translate_errors
from birdsql.db.executor import all_rows, first_row, rows_affected
from birdsql.db.params import check_arity, literal_text, placeholder_count

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class PreparedStatement:
    """
    A statement compiled once on the server and executed many times.

    Attributes:
        sql: The statement text, with ``$n`` placeholders.
        name: Server-side statement name.
        arity: Number of parameters each execution takes.
    """

    def __init__(self, db: Database, sql: str, *, name: str | None = None) -> None:
        if name is None:
            name = f"birdsql_{uuid.uuid4().hex[:12]}"
        elif not _IDENTIFIER.match(name):
            raise QueryError(f"invalid prepared statement name {name!r}")
        self.sql = sql
        self.name = name
        self.arity = placeholder_count(sql)
        self._db = db
        self._stack = ExitStack()
        self._conn: Connection | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def prepare(self) -> PreparedStatement:
        """Pin a connection and compile the statement on it."""
        if self._closed:
            raise QueryError(f"prepared statement {self.name} is closed")
        if self._conn is not None:
            return self

        conn = self._stack.enter_context(self._db.connect())
        try:
            with translate_errors(f"prepare statement {self.name}"):
                conn.execute(literal_text(f"PREPARE {self.name} AS {self.sql}"))
        except BaseException:
            self._closed = True
            self._stack.close()
            raise

        self._conn = conn
        logger.debug("statement_prepared", name=self.name, arity=self.arity)
        return self

    def _run(
        self,
        args: tuple[Any, ...],
        consume: Callable[[CursorResult[Any]], T],
        deadline: Deadline | None,
    ) -> T:
        if self._closed:
            raise QueryError(f"prepared statement {self.name} is closed")
        conn = self._conn
        if conn is None:
            conn = self.prepare()._conn
            assert conn is not None
        check_arity(self.arity, args)

        placeholders = ", ".join(f":p{i}" for i in range(1, len(args) + 1))
        call = f"EXECUTE {self.name}({placeholders})" if args else f"EXECUTE {self.name}"
        params = {f"p{i}": value for i, value in enumerate(args, start=1)}

        with translate_errors(f"execute prepared statement {self.name}", deadline):
            with guard(deadline, conn):
                result = conn.execute(text(call), params)
                try:
                    return consume(result)
                finally:
                    result.close()

    def fetch_one(self, *args: Any, deadline: Deadline | None = None) -> Row[Any]:
        """Execute with ``args`` and return the first row (NoRowsError if none)."""
        return self._run(args, first_row, deadline)

    def fetch_all(self, *args: Any, deadline: Deadline | None = None) -> list[Row[Any]]:
        return self._run(args, all_rows, deadline)

    def execute(self, *args: Any, deadline: Deadline | None = None) -> int:
        """Execute with ``args`` and return the affected-row count."""
        return self._run(args, rows_affected, deadline)

    def close(self) -> None:
        """
        Deallocate the statement and return the connection to the pool.

        Runs once; later calls are no-ops. A connection that was invalidated
        (for example after a cancelled execution) took the statement with it, so
        nothing is sent to the server. If DEALLOCATE fails, the connection is
        invalidated so the statement cannot leak into the pool.
        """
        if self._closed:
            return
        self._closed = True
        conn, self._conn = self._conn, None
        try:
            if conn is not None and not conn.invalidated:
                try:
                    with translate_errors(f"deallocate statement {self.name}"):
                        conn.execute(literal_text(f"DEALLOCATE {self.name}"))
                except BirdsqlError:
                    conn.invalidate()
                    raise
                logger.debug("statement_deallocated", name=self.name)
        finally:
            self._stack.close()

    def __enter__(self) -> PreparedStatement:
        return self.prepare()

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        try:
            self.close()
        except BirdsqlError as close_error:
            if exc_type is None:
                raise
            logger.warning(
                "prepared_statement_close_failed",
                name=self.name,
                error=str(close_error),
                error_type=type(close_error).__name__,
            )

    def __repr__(self) -> str:
        state = "closed" if self._closed else ("prepared" if self._conn else "new")
        return f"PreparedStatement(name={self.name!r}, {state})"


__all__ = ["PreparedStatement"]
