"""
Queries against the ``birds`` table.

The statements below are the query shapes the tour walks through. Every
function takes the pooled :class:`~birdsql.db.Database` handle, binds its
arguments by position (``$1``, ``$2``, ...) and returns plain values or
:class:`~birdsql.birds.models.Bird` records.
"""

from __future__ import annotations

from typing import Any

import structlog

from birdsql.birds.models import Bird, scan_birds
from birdsql.db import executor
from birdsql.db.cancellation import Deadline
from birdsql.db.engine import Database
from birdsql.db.statements import PreparedStatement

logger = structlog.get_logger(__name__)

SELECT_ONE_BIRD = "SELECT bird, description FROM birds LIMIT 1"
SELECT_BIRDS = "SELECT bird, description FROM birds LIMIT 10"
SELECT_BIRD_BY_SPECIES = "SELECT bird, description FROM birds WHERE bird = $1"
INSERT_BIRD = "INSERT INTO birds (bird, description) VALUES ($1, $2)"
DELETE_BIRD = "DELETE FROM birds WHERE bird = $1"
SLOW_QUERY = "SELECT * FROM pg_sleep($1)"


def query_row(
    db: Database,
    sql: str = SELECT_ONE_BIRD,
    *args: Any,
    deadline: Deadline | None = None,
) -> Bird:
    """
    Fetch a single bird.

    Raises:
        NoRowsError: If nothing matched.
        ScanError: If the row is not two text columns.
    """
    row = executor.fetch_one(db, sql, *args, deadline=deadline)
    return Bird.scan(row)


def query_rows(
    db: Database,
    sql: str = SELECT_BIRDS,
    *args: Any,
    deadline: Deadline | None = None,
) -> list[Bird]:
    """Fetch every bird the query returns, in server order."""
    rows = executor.fetch_all(db, sql, *args, deadline=deadline)
    return scan_birds(rows)


def find_bird(db: Database, species: str, *, deadline: Deadline | None = None) -> Bird:
    return query_row(db, SELECT_BIRD_BY_SPECIES, species, deadline=deadline)


def insert_bird(db: Database, bird: Bird, *, deadline: Deadline | None = None) -> int:
    """Insert ``bird`` and return the number of rows inserted."""
    inserted = executor.execute(db, INSERT_BIRD, *bird.as_params(), deadline=deadline)
    logger.info("bird_inserted", species=bird.species, rows_affected=inserted)
    return inserted


def delete_bird(db: Database, species: str, *, deadline: Deadline | None = None) -> int:
    """Delete every bird of ``species``; a species that is not there deletes 0 rows."""
    deleted = executor.execute(db, DELETE_BIRD, species, deadline=deadline)
    logger.info("bird_deleted", species=species, rows_affected=deleted)
    return deleted


def find_birds_prepared(db: Database, *species: str) -> list[Bird]:
    """
    Look up several species through one prepared statement.

    The statement is compiled once, executed once per species, and released
    when the lookups finish or the first one fails.
    """
    with PreparedStatement(db, SELECT_BIRD_BY_SPECIES) as stmt:
        return [Bird.scan(stmt.fetch_one(name)) for name in species]


def query_with_deadline(
    db: Database,
    deadline: Deadline,
    sql: str,
    *args: Any,
) -> list[tuple[Any, ...]]:
    """
    Run ``sql`` bound to ``deadline`` and return its raw rows.

    Raises:
        DeadlineExceededError: If the deadline elapsed before the server answered.
    """
    rows = executor.fetch_all(db, sql, *args, deadline=deadline)
    return [tuple(row) for row in rows]


def sleep(db: Database, seconds: float, *, deadline: Deadline) -> None:
    """Ask the server to sleep for ``seconds`` under ``deadline`` (PostgreSQL only)."""
    query_with_deadline(db, deadline, SLOW_QUERY, seconds)


__all__ = [
    "SELECT_ONE_BIRD",
    "SELECT_BIRDS",
    "SELECT_BIRD_BY_SPECIES",
    "INSERT_BIRD",
    "DELETE_BIRD",
    "SLOW_QUERY",
    "query_row",
    "query_rows",
    "find_bird",
    "insert_bird",
    "delete_bird",
    "find_birds_prepared",
    "query_with_deadline",
    "sleep",
]
