"""
Database package: connection pooling, statement execution and cancellation.

Connection Pool Configuration (defaults, see birdsql.config.settings):
- max idle connections: 5
- max open connections: 10
- max idle time: 1 second
- max connection lifetime: 30 seconds

Usage:
    from birdsql.db import Deadline, PreparedStatement, execute, fetch_one, ping, pool_scope

    with pool_scope() as db:
        ping(db)
        row = fetch_one(db, "SELECT bird, description FROM birds WHERE bird = $1", "eagle")
        inserted = execute(db, "INSERT INTO birds (bird, description) VALUES ($1, $2)", "owl", "hoots")

        with PreparedStatement(db, "SELECT bird FROM birds WHERE bird = $1") as stmt:
            stmt.fetch_one("owl")

        deadline = Deadline.background().with_timeout(0.3)
        fetch_one(db, "SELECT pg_sleep(1)", deadline=deadline)  # DeadlineExceededError

See Also:
    - birdsql.db.errors for the exception hierarchy
    - SQLAlchemy 2.0 pooling docs: https://docs.sqlalchemy.org/en/20/core/pooling.html
"""

from birdsql.db.cancellation import Deadline
from birdsql.db.engine import Database, PoolSettings, create_database, ping, pool_scope
from birdsql.db.errors import (
    BirdsqlError,
    ConfigurationError,
    ConnectivityError,
    ConstraintViolationError,
    DeadlineExceededError,
    NoRowsError,
    QueryError,
    ScanError,
)
from birdsql.db.executor import execute, fetch_all, fetch_one
from birdsql.db.statements import PreparedStatement

__all__ = [
    "Database",
    "PoolSettings",
    "create_database",
    "pool_scope",
    "ping",
    "Deadline",
    "PreparedStatement",
    "execute",
    "fetch_all",
    "fetch_one",
    "BirdsqlError",
    "ConfigurationError",
    "ConnectivityError",
    "QueryError",
    "NoRowsError",
    "ConstraintViolationError",
    "DeadlineExceededError",
    "ScanError",
]
