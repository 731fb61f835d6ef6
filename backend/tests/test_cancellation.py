from __future__ import annotations

import threading
import time
from contextlib import ExitStack
from unittest.mock import MagicMock

import pytest

from birdsql.birds import query_with_deadline
from birdsql.db import (
    ConfigurationError,
    Database,
    Deadline,
    DeadlineExceededError,
    fetch_one,
)
from birdsql.db.cancellation import driver_canceller, guard

# Counts far enough that SQLite needs many seconds to finish.
SLOW_COUNT = (
    "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c WHERE x < $1) "
    "SELECT count(*) FROM c"
)


def test_background_deadline_never_expires() -> None:
    deadline = Deadline.background()

    assert not deadline.bounded
    assert not deadline.expired
    assert deadline.remaining() is None
    deadline.check()


def test_child_deadline_is_bounded_by_parent() -> None:
    parent = Deadline.background().with_timeout(0.1)
    child = parent.with_timeout(10.0)

    assert child.remaining() is not None
    assert child.remaining() <= 0.1
    assert child.timeout == 10.0


def test_zero_timeout_expires_immediately() -> None:
    deadline = Deadline.background().with_timeout(0)

    assert deadline.expired
    with pytest.raises(DeadlineExceededError):
        deadline.check()


def test_negative_timeout_rejected() -> None:
    with pytest.raises(ValueError):
        Deadline.background().with_timeout(-1)


def test_arm_fires_cancel_after_timeout() -> None:
    fired = threading.Event()
    deadline = Deadline.background().with_timeout(0.05)

    with deadline.arm(fired.set):
        assert fired.wait(1.0), "cancel callback should run once the deadline elapses"


def test_arm_does_not_fire_when_block_finishes_first() -> None:
    fired = threading.Event()
    deadline = Deadline.background().with_timeout(0.2)

    with deadline.arm(fired.set):
        pass

    assert not fired.wait(0.4)


def test_driver_canceller_prefers_cancel() -> None:
    conn = MagicMock()
    dbapi_connection = conn.connection.dbapi_connection

    assert driver_canceller(conn) is dbapi_connection.cancel


def test_driver_canceller_without_entry_point() -> None:
    conn = MagicMock()
    conn.connection.dbapi_connection = object()

    with pytest.raises(ConfigurationError):
        driver_canceller(conn)


def test_guard_rejects_expired_deadline_before_io() -> None:
    conn = MagicMock()
    deadline = Deadline.background().with_timeout(0)

    with pytest.raises(DeadlineExceededError):
        with guard(deadline, conn):
            conn.execute("SELECT 1")

    conn.execute.assert_not_called()


def test_slow_query_is_cancelled_near_the_deadline(db: Database) -> None:
    """The client gives up at ~300ms instead of waiting for the statement."""

    deadline = Deadline.background().with_timeout(0.3)
    started = time.monotonic()

    with pytest.raises(DeadlineExceededError) as excinfo:
        query_with_deadline(db, deadline, SLOW_COUNT, 10**10)

    elapsed = time.monotonic() - started
    assert 0.25 <= elapsed < 1.0
    assert excinfo.value.timeout == 0.3
    assert db.pool_status()["checked_out"] == 0


def test_fast_query_within_deadline_succeeds(db: Database) -> None:
    deadline = Deadline.background().with_timeout(5.0)

    row = fetch_one(db, SLOW_COUNT, 10, deadline=deadline)

    assert row[0] == 10


def test_pool_recovers_after_cancellation(db: Database) -> None:
    deadline = Deadline.background().with_timeout(0.1)
    with pytest.raises(DeadlineExceededError):
        fetch_one(db, SLOW_COUNT, 10**10, deadline=deadline)

    assert fetch_one(db, "SELECT 1")[0] == 1


def test_deadline_bounds_wait_for_exhausted_pool(db: Database) -> None:
    """With every connection held, the deadline fires instead of the checkout timeout."""

    with ExitStack() as stack:
        for _ in range(db.pool_settings.max_open_conns):
            stack.enter_context(db.connect())

        deadline = Deadline.background().with_timeout(0.3)
        started = time.monotonic()
        with pytest.raises(DeadlineExceededError) as excinfo:
            fetch_one(db, "SELECT 1", deadline=deadline)
        elapsed = time.monotonic() - started

    assert 0.25 <= elapsed < 1.0
    assert excinfo.value.timeout == 0.3
    assert db.pool_status()["checked_out"] == 0
    assert fetch_one(db, "SELECT 1")[0] == 1


def test_expired_deadline_fails_before_checkout(db: Database) -> None:
    deadline = Deadline.background().with_timeout(0)

    with pytest.raises(DeadlineExceededError):
        with db.connect(deadline):
            pytest.fail("no connection should be handed out")

    assert db.pool_status()["checked_out"] == 0
