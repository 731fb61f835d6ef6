from __future__ import annotations

from pathlib import Path

import pytest

from birdsql.birds import tour
from birdsql.birds.models import Bird
from birdsql.birds.queries import insert_bird
from birdsql.birds.tour import ROOSTER, TourOptions, run_tour
from birdsql.config import Settings
from birdsql.db import Database, DeadlineExceededError, execute, pool_scope
from birdsql.main import main

CREATE_BIRDS = "CREATE TABLE birds (bird TEXT PRIMARY KEY, description TEXT)"

EAGLE = Bird(species="eagle", description="bald and proud")


@pytest.fixture
def recorded(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Replace every stage with one that records its name."""

    calls: list[str] = []
    for name in tour.STAGES:
        monkeypatch.setitem(
            tour.STAGES, name, lambda db, options, name=name: calls.append(name)
        )
    return calls


@pytest.fixture
def database_url(sqlite_url: str) -> str:
    """SQLite URL whose birds table already holds an eagle."""

    with pool_scope(sqlite_url, settings=Settings()) as db:
        execute(db, CREATE_BIRDS)
        insert_bird(db, EAGLE)
    return sqlite_url


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("birdsql.main.configure_logging", lambda **kwargs: None)


def test_stages_run_in_tour_order(db: Database, recorded: list[str]) -> None:
    run_tour(db, stages=["delete", "ping", "insert"])

    assert recorded == ["ping", "insert", "delete"]


def test_every_stage_runs_by_default(db: Database, recorded: list[str]) -> None:
    run_tour(db)

    assert recorded == list(tour.STAGES)


def test_unknown_stage_rejected_before_anything_runs(
    db: Database, recorded: list[str]
) -> None:
    with pytest.raises(KeyError, match="fly"):
        run_tour(db, stages=["ping", "fly"])

    assert recorded == []


def test_cancel_stage_reports_deadline(
    db: Database, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def fake_sleep(db: Database, seconds: float, *, deadline: object) -> None:
        raise DeadlineExceededError("could not execute query: deadline exceeded", timeout=0.3)

    monkeypatch.setattr(tour, "sleep", fake_sleep)

    run_tour(db, TourOptions(timeout_ms=300), stages=["cancel"])

    assert "query cancelled after" in capsys.readouterr().out


def test_cancel_stage_when_query_beats_deadline(
    db: Database, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(tour, "sleep", lambda db, seconds, deadline: None)

    run_tour(db, TourOptions(timeout_ms=300), stages=["cancel"])

    assert "query finished within 300ms" in capsys.readouterr().out


def test_main_runs_selected_stages(
    database_url: str, capsys: pytest.CaptureFixture[str]
) -> None:
    code = main(
        [
            "--database-url",
            database_url,
            "--stage",
            "ping",
            "--stage",
            "insert",
            "--stage",
            "query-rows",
            "--stage",
            "delete",
        ]
    )

    out = capsys.readouterr().out
    assert code == 0
    assert "database is reachable" in out
    assert "found 1 birds: [{species: eagle, description: bald and proud}]" in out
    assert "inserted 1 rows" in out
    assert "deleted 1 rows" in out


def test_main_query_row_prints_bird(
    database_url: str, capsys: pytest.CaptureFixture[str]
) -> None:
    assert main(["--database-url", database_url, "--stage", "query-row"]) == 0

    assert "found bird: {species: eagle, description: bald and proud}" in capsys.readouterr().out


def test_main_reports_failure_on_stderr(
    sqlite_url: str, capsys: pytest.CaptureFixture[str]
) -> None:
    with pool_scope(sqlite_url, settings=Settings()) as db:
        execute(db, CREATE_BIRDS)

    code = main(["--database-url", sqlite_url, "--stage", "query-row"])

    assert code == 1
    assert "no rows in result set" in capsys.readouterr().err


def test_main_unreachable_database(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    url = f"sqlite:///{tmp_path / 'missing' / 'birds.db'}"

    assert main(["--database-url", url, "--stage", "ping"]) == 1
    assert "error:" in capsys.readouterr().err


def test_main_duplicate_insert_fails(
    database_url: str, capsys: pytest.CaptureFixture[str]
) -> None:
    with pool_scope(database_url, settings=Settings()) as db:
        insert_bird(db, ROOSTER)

    assert main(["--database-url", database_url, "--stage", "insert"]) == 1
    assert "error:" in capsys.readouterr().err


def test_main_rejects_unknown_stage() -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--stage", "fly"])

    assert excinfo.value.code == 2


def test_main_rejects_invalid_configuration(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--timeout-ms", "-5", "--stage", "ping"]) == 1
    assert "invalid configuration" in capsys.readouterr().err
