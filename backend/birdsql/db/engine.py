"""
SQLAlchemy engine creation and connection pooling.

This module builds the one long-lived object of the tour: a pooled engine for
a single database endpoint, wrapped in :class:`Database` together with the
bounds it was configured with.

Connection Pool Settings (defaults):
    - max idle connections: 5   (QueuePool pool_size)
    - max open connections: 10  (pool_size + max_overflow)
    - max idle time: 1 second   (checkout event discards older idle connections)
    - max lifetime: 30 seconds  (pool_recycle)
    - checkout wait: 30 seconds (pool_timeout; shortened by a statement deadline)

The engine never connects eagerly; the first connection is opened by
:func:`ping` or the first statement. Statements run in AUTOCOMMIT, so each
call is its own unit of work on the server.

Usage:
    from birdsql.db import pool_scope, ping

    with pool_scope() as db:
        ping(db)
        print(db.pool_status())
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import Connection, Engine, create_engine, event, exc, text
from sqlalchemy.pool import ConnectionPoolEntry, PoolProxiedConnection, QueuePool

from birdsql.config import Settings, get_database_url_sync, get_settings
from birdsql.db.cancellation import Deadline, guard
from birdsql.db.errors import (
    ConfigurationError,
    ConnectivityError,
    DeadlineExceededError,
    QueryError,
    translate_errors,
)
from birdsql.utils.logging import redact_url

logger = structlog.get_logger(__name__)

_CHECKED_IN_AT = "birdsql_checked_in_at"


# =============================================================================
# Pool Settings
# =============================================================================


@dataclass(frozen=True)
class PoolSettings:
    """The four bounds applied to the connection pool, plus the checkout wait."""

    max_idle_conns: int = 5
    max_open_conns: int = 10
    max_idle_time: float = 1.0
    max_lifetime: float = 30.0
    checkout_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.max_idle_conns < 1 or self.max_open_conns < 1:
            raise ConfigurationError("pool connection bounds must be at least 1")
        if self.max_idle_conns > self.max_open_conns:
            raise ConfigurationError(
                f"max_idle_conns ({self.max_idle_conns}) exceeds "
                f"max_open_conns ({self.max_open_conns})"
            )
        if min(self.max_idle_time, self.max_lifetime, self.checkout_timeout) <= 0:
            raise ConfigurationError("pool durations must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> PoolSettings:
        return cls(
            max_idle_conns=settings.pool_max_idle_conns,
            max_open_conns=settings.pool_max_open_conns,
            max_idle_time=settings.pool_max_idle_time_seconds,
            max_lifetime=settings.pool_max_lifetime_seconds,
            checkout_timeout=settings.pool_checkout_timeout_seconds,
        )

    @property
    def max_overflow(self) -> int:
        return self.max_open_conns - self.max_idle_conns


# =============================================================================
# Database Handle
# =============================================================================


class Database:
    """
    Pooled handle to one database endpoint.

    Safe to share between call sites; disposed exactly once, either explicitly
    with :meth:`dispose` or by leaving its ``with`` block.

    Attributes:
        engine: The SQLAlchemy engine owning the pool.
        pool_settings: The bounds the pool was created with.
    """

    def __init__(self, engine: Engine, pool_settings: PoolSettings) -> None:
        self.engine = engine
        self.pool_settings = pool_settings
        self._disposed = False
        # one slot per connection the pool may open
        self._slots = threading.BoundedSemaphore(pool_settings.max_open_conns)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _acquire_slot(self, deadline: Deadline | None) -> None:
        """
        Wait for a free connection slot, no longer than ``deadline`` allows.

        Without a bounded deadline the wait is capped by ``checkout_timeout``.
        """
        if deadline is not None:
            deadline.check()
        timeout = self.pool_settings.checkout_timeout
        remaining = deadline.remaining() if deadline is not None else None
        bounded_by_deadline = remaining is not None and remaining <= timeout
        if bounded_by_deadline:
            timeout = remaining

        if self._slots.acquire(timeout=timeout):
            return
        if bounded_by_deadline:
            logger.info("pool_checkout_deadline_exceeded", timeout=deadline.timeout)
            raise DeadlineExceededError(
                "could not acquire a connection: deadline exceeded",
                timeout=deadline.timeout,
            )
        raise ConnectivityError(
            f"could not connect to database: no connection free within {timeout:.2f}s "
            f"(max_open_conns={self.pool_settings.max_open_conns})"
        )

    @contextmanager
    def connect(self, deadline: Deadline | None = None) -> Iterator[Connection]:
        """
        Check a connection out of the pool for the duration of the block.

        Args:
            deadline: Optional bound on waiting for a free connection and on
                opening it.

        Raises:
            ConnectivityError: If the handle is disposed or no connection can be opened.
            DeadlineExceededError: If the deadline elapsed before a connection was ready.
        """
        if self._disposed:
            raise ConnectivityError("database handle is closed")
        self._acquire_slot(deadline)
        try:
            try:
                conn = self.engine.connect()
            except exc.SQLAlchemyError as e:
                if deadline is not None and deadline.expired:
                    raise DeadlineExceededError(
                        "could not connect to database: deadline exceeded",
                        timeout=deadline.timeout,
                    ) from e
                logger.error(
                    "database_connect_failed",
                    error=str(getattr(e, "orig", None) or e),
                    error_type=type(e).__name__,
                )
                raise ConnectivityError(
                    f"could not connect to database: {getattr(e, 'orig', None) or e}"
                ) from e
            with conn:
                yield conn
        finally:
            self._slots.release()

    def pool_status(self) -> dict[str, Any]:
        """Return the configured bounds together with live pool counters."""
        pool = self.engine.pool
        status: dict[str, Any] = {
            "max_idle_conns": self.pool_settings.max_idle_conns,
            "max_open_conns": self.pool_settings.max_open_conns,
            "max_idle_time": self.pool_settings.max_idle_time,
            "max_lifetime": self.pool_settings.max_lifetime,
            "checkout_timeout": self.pool_settings.checkout_timeout,
        }
        if isinstance(pool, QueuePool):
            status.update(
                pool_size=pool.size(),
                checked_in=pool.checkedin(),
                checked_out=pool.checkedout(),
                overflow=pool.overflow(),
            )
        return status

    def dispose(self) -> None:
        """Close every pooled connection. Later calls are no-ops."""
        if self._disposed:
            return
        self._disposed = True
        self.engine.dispose()
        logger.info("database_engine_closed")

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.dispose()

    def __repr__(self) -> str:
        return f"Database(url={redact_url(str(self.engine.url))!r})"


# =============================================================================
# Engine Management
# =============================================================================


def _install_idle_timeout(engine: Engine, max_idle_time: float) -> None:
    """
    Discard pooled connections that sat idle longer than ``max_idle_time``.

    QueuePool only knows about lifetime (``pool_recycle``). The idle bound is
    enforced on checkout: raising DisconnectionError makes the pool drop the
    connection and retry with a fresh one.
    """

    @event.listens_for(engine, "checkin")
    def _stamp_checkin(
        dbapi_connection: Any, connection_record: ConnectionPoolEntry
    ) -> None:
        connection_record.info[_CHECKED_IN_AT] = time.monotonic()

    @event.listens_for(engine, "checkout")
    def _expire_idle(
        dbapi_connection: Any,
        connection_record: ConnectionPoolEntry,
        connection_proxy: PoolProxiedConnection,
    ) -> None:
        checked_in_at = connection_record.info.pop(_CHECKED_IN_AT, None)
        if checked_in_at is None:
            return
        idle = time.monotonic() - checked_in_at
        if idle > max_idle_time:
            logger.debug("pooled_connection_idle_expired", idle_seconds=round(idle, 3))
            raise exc.DisconnectionError(f"connection idle for {idle:.3f}s")


def create_database(
    url: str | None = None,
    *,
    settings: Settings | None = None,
    pool_settings: PoolSettings | None = None,
) -> Database:
    """
    Create a pooled database handle without connecting.

    Args:
        url: Connection URL. Defaults to the configured DATABASE_URL.
        settings: Settings to read defaults from. Defaults to get_settings().
        pool_settings: Pool bounds. Defaults to the POOL_* settings.

    Returns:
        Database: The handle; dispose it (or use it as a context manager).

    Raises:
        ConfigurationError: If the URL is malformed or names an unavailable driver.
    """
    if settings is None:
        settings = get_settings()
    if url is None:
        url = settings.get_database_url()
    url = get_database_url_sync(url)
    if pool_settings is None:
        pool_settings = PoolSettings.from_settings(settings)

    try:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=pool_settings.max_idle_conns,
            max_overflow=pool_settings.max_overflow,
            pool_recycle=pool_settings.max_lifetime,
            pool_timeout=pool_settings.checkout_timeout,
            pool_pre_ping=True,
            isolation_level="AUTOCOMMIT",
            echo=settings.debug,
        )
    except (exc.ArgumentError, ImportError) as e:
        logger.error(
            "database_engine_creation_failed",
            url=redact_url(url),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise ConfigurationError(f"invalid database URL {redact_url(url)!r}: {e}") from e

    _install_idle_timeout(engine, pool_settings.max_idle_time)

    logger.info(
        "database_engine_created",
        url=redact_url(url),
        max_idle_conns=pool_settings.max_idle_conns,
        max_open_conns=pool_settings.max_open_conns,
        max_idle_time=pool_settings.max_idle_time,
        max_lifetime=pool_settings.max_lifetime,
    )
    return Database(engine, pool_settings)


@contextmanager
def pool_scope(
    url: str | None = None,
    *,
    settings: Settings | None = None,
    pool_settings: PoolSettings | None = None,
) -> Iterator[Database]:
    """
    Create a database handle and dispose it when the block exits.

    Disposal runs on normal exit and when the block raises.
    """
    db = create_database(url, settings=settings, pool_settings=pool_settings)
    try:
        yield db
    finally:
        db.dispose()


# =============================================================================
# Liveness
# =============================================================================


def ping(db: Database, deadline: Deadline | None = None) -> None:
    """
    Verify the database is reachable with one round trip.

    Args:
        db: The database handle.
        deadline: Optional bound on the round trip. Unbounded by default.

    Raises:
        ConnectivityError: If the server cannot be reached.
        DeadlineExceededError: If the deadline elapsed first.
    """
    try:
        with db.connect(deadline) as conn, translate_errors("reach database", deadline):
            with guard(deadline, conn):
                conn.execute(text("SELECT 1")).scalar()
    except DeadlineExceededError:
        raise
    except QueryError as e:
        raise ConnectivityError(f"unable to reach database: {e}") from e
    logger.info("database_connection_verified")


__all__ = [
    "Database",
    "PoolSettings",
    "create_database",
    "pool_scope",
    "ping",
]
