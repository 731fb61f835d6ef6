"""
The tour: each stage runs one query shape and prints what it found.

Stages run in the order of :data:`STAGES`. Each stage receives the shared
database handle and the tour options; failures propagate as
:class:`~birdsql.db.errors.BirdsqlError` so the caller decides what to do.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from birdsql.birds.models import Bird
from birdsql.birds.queries import (
    delete_bird,
    find_birds_prepared,
    insert_bird,
    query_row,
    query_rows,
    sleep,
)
from birdsql.db.cancellation import Deadline
from birdsql.db.engine import Database, ping
from birdsql.db.errors import DeadlineExceededError
from birdsql.utils.logging import bind_stage_context, clear_context

logger = structlog.get_logger(__name__)

ROOSTER = Bird(species="rooster", description="wakes you up in the morning")


@dataclass(frozen=True)
class TourOptions:
    """Knobs for the stages that take arguments."""

    species: tuple[str, ...] = ("eagle",)
    timeout_ms: int = 300
    sleep_seconds: float = 1.0
    new_bird: Bird = ROOSTER


def stage_ping(db: Database, options: TourOptions) -> None:
    ping(db, Deadline.background())
    print("database is reachable")


def stage_query_row(db: Database, options: TourOptions) -> None:
    bird = query_row(db)
    print(f"found bird: {bird}")


def stage_query_rows(db: Database, options: TourOptions) -> None:
    birds = query_rows(db)
    print(f"found {len(birds)} birds: [{', '.join(str(b) for b in birds)}]")


def stage_insert(db: Database, options: TourOptions) -> None:
    inserted = insert_bird(db, options.new_bird)
    print("inserted", inserted, "rows")


def stage_prepared(db: Database, options: TourOptions) -> None:
    for bird in find_birds_prepared(db, *options.species):
        print(f"result: {bird}")


def stage_delete(db: Database, options: TourOptions) -> None:
    deleted = delete_bird(db, options.new_bird.species)
    print("deleted", deleted, "rows")


def stage_cancel(db: Database, options: TourOptions) -> None:
    """
    Ask the server for a slow query under a shorter deadline.

    The deadline elapsing is the expected outcome; the stage reports how long
    the client waited before the statement was cancelled.
    """
    deadline = Deadline.background().with_timeout(options.timeout_ms / 1000)
    started = time.monotonic()
    try:
        sleep(db, options.sleep_seconds, deadline=deadline)
    except DeadlineExceededError as e:
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info("query_cancelled", elapsed_ms=round(elapsed_ms), timeout_ms=options.timeout_ms)
        print(f"query cancelled after {elapsed_ms:.0f}ms: {e}")
        return
    print(f"query finished within {options.timeout_ms}ms")


StageFn = Callable[[Database, TourOptions], None]

STAGES: dict[str, StageFn] = {
    "ping": stage_ping,
    "query-row": stage_query_row,
    "query-rows": stage_query_rows,
    "insert": stage_insert,
    "prepared": stage_prepared,
    "delete": stage_delete,
    "cancel": stage_cancel,
}


def run_tour(
    db: Database,
    options: TourOptions | None = None,
    stages: list[str] | None = None,
) -> None:
    """
    Run the requested stages (all of them by default) in tour order.

    Raises:
        KeyError: For an unknown stage name.
        BirdsqlError: From the first stage that fails; later stages do not run.
    """
    if options is None:
        options = TourOptions()
    selected = list(STAGES) if not stages else stages
    unknown = [name for name in selected if name not in STAGES]
    if unknown:
        raise KeyError(f"unknown stage(s): {', '.join(unknown)}")

    for name in STAGES:
        if name not in selected:
            continue
        bind_stage_context(name)
        try:
            logger.debug("stage_started")
            STAGES[name](db, options)
        finally:
            clear_context()


__all__ = ["ROOSTER", "STAGES", "TourOptions", "run_tour"]
