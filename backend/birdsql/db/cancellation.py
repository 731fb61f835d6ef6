"""
Deadlines for statements that must not outlive a time bound.

A :class:`Deadline` is a small, immutable cancellation token. The unbounded
parent comes from :meth:`Deadline.background`; bounded children are derived
with :meth:`Deadline.with_timeout` and never outlive their parent.

While a statement runs under :func:`guard`, a timer thread waits for the
deadline and then cancels the statement from the client side through the
driver's thread-safe cancel entry point (psycopg2 ``connection.cancel()``,
sqlite3 ``connection.interrupt()``). The blocked call then fails with a
driver error, which :func:`birdsql.db.errors.translate_errors` reports as
:class:`~birdsql.db.errors.DeadlineExceededError`.

Usage:
    parent = Deadline.background()
    deadline = parent.with_timeout(0.3)

    with engine.connect() as conn, translate_errors("sleep", deadline):
        with guard(deadline, conn):
            conn.execute(text("SELECT pg_sleep(1)"))
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy import Connection

from birdsql.db.errors import ConfigurationError, DeadlineExceededError

logger = structlog.get_logger(__name__)


class Deadline:
    """
    Point in time after which work bound to this token must be abandoned.

    Attributes:
        expires_at: ``time.monotonic()`` value at which the deadline elapses,
            or ``None`` for an unbounded deadline.
        timeout: The timeout the deadline was derived with, in seconds.
    """

    __slots__ = ("expires_at", "timeout")

    def __init__(self, expires_at: float | None = None, timeout: float | None = None) -> None:
        self.expires_at = expires_at
        self.timeout = timeout

    @classmethod
    def background(cls) -> Deadline:
        """Return an unbounded deadline that never expires."""
        return cls()

    def with_timeout(self, seconds: float) -> Deadline:
        """
        Derive a child deadline that elapses ``seconds`` from now.

        The child expires no later than this deadline.
        """
        if seconds < 0:
            raise ValueError(f"timeout must not be negative, got {seconds}")
        expires_at = time.monotonic() + seconds
        if self.expires_at is not None:
            expires_at = min(expires_at, self.expires_at)
        return Deadline(expires_at=expires_at, timeout=seconds)

    @property
    def bounded(self) -> bool:
        return self.expires_at is not None

    def remaining(self) -> float | None:
        """Seconds left before expiry (never negative), or ``None`` if unbounded."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    def check(self) -> None:
        """Raise DeadlineExceededError if the deadline has already elapsed."""
        if self.expired:
            raise DeadlineExceededError("deadline exceeded", timeout=self.timeout)

    @contextmanager
    def arm(self, cancel: Callable[[], None]) -> Iterator[None]:
        """
        Call ``cancel`` from a timer thread if the block outlives the deadline.

        An already expired deadline fails before the block runs.
        """
        self.check()
        remaining = self.remaining()
        if remaining is None:
            yield
            return

        def _fire() -> None:
            logger.info("deadline_elapsed", timeout=self.timeout)
            try:
                cancel()
            except Exception as e:
                logger.warning(
                    "statement_cancel_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

        timer = threading.Timer(remaining, _fire)
        timer.daemon = True
        timer.start()
        try:
            yield
        finally:
            timer.cancel()

    def __repr__(self) -> str:
        if self.expires_at is None:
            return "Deadline(background)"
        return f"Deadline(timeout={self.timeout}, remaining={self.remaining():.3f})"


def driver_canceller(conn: Connection) -> Callable[[], None]:
    """
    Return the driver call that aborts the statement running on ``conn``.

    Raises:
        ConfigurationError: If the DBAPI driver offers no cancel entry point.
    """
    dbapi_connection = conn.connection.dbapi_connection
    for name in ("cancel", "interrupt"):
        fn = getattr(dbapi_connection, name, None)
        if callable(fn):
            return fn
    raise ConfigurationError(
        f"driver connection {type(dbapi_connection).__name__} cannot cancel statements"
    )


@contextmanager
def guard(deadline: Deadline | None, conn: Connection) -> Iterator[None]:
    """
    Bind the statements run inside the block to ``deadline``.

    A connection whose statement was cancelled is invalidated, so the pool
    discards it instead of handing it out again.
    """
    if deadline is None or not deadline.bounded:
        yield
        return

    deadline.check()
    with deadline.arm(driver_canceller(conn)):
        try:
            yield
        except Exception:
            if deadline.expired:
                conn.invalidate()
            raise


__all__ = ["Deadline", "driver_canceller", "guard"]
