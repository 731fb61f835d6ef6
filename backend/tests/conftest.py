from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from birdsql.birds.models import Bird
from birdsql.birds.queries import insert_bird
from birdsql.config import Settings
from birdsql.config import settings as settings_module
from birdsql.db import Database, PoolSettings, execute, pool_scope

CREATE_BIRDS = "CREATE TABLE birds (bird TEXT PRIMARY KEY, description TEXT)"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep the host environment and cached settings out of every test."""

    for name in (
        "DATABASE_URL",
        "LOG_LEVEL",
        "ENVIRONMENT",
        "QUERY_TIMEOUT_MS",
        "DEBUG",
        "AWS_EXECUTION_ENV",
        "ECS_CONTAINER_METADATA_URI",
        "SLEEP_SECONDS",
        "POSTGRES_DB",
        "POSTGRES_USER",
        "POSTGRES_PASSWORD",
        "POSTGRES_HOST",
        "POSTGRES_PORT",
        "POOL_MAX_IDLE_CONNS",
        "POOL_MAX_OPEN_CONNS",
        "POOL_MAX_IDLE_TIME_SECONDS",
        "POOL_MAX_LIFETIME_SECONDS",
        "POOL_CHECKOUT_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    settings_module.get_settings.cache_clear()
    yield
    settings_module.get_settings.cache_clear()


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """URL of an empty file-backed SQLite database."""

    return f"sqlite:///{tmp_path / 'birds.db'}"


@pytest.fixture
def settings(sqlite_url: str) -> Settings:
    return Settings(database_url=sqlite_url)


@pytest.fixture
def db(sqlite_url: str, settings: Settings) -> Generator[Database, None, None]:
    """A pooled handle on a SQLite database holding an empty birds table."""

    with pool_scope(sqlite_url, settings=settings, pool_settings=PoolSettings()) as handle:
        execute(handle, CREATE_BIRDS)
        yield handle


@pytest.fixture
def add_birds(db: Database) -> Callable[[int], list[Bird]]:
    """Factory fixture inserting ``count`` numbered birds, in order."""

    def _factory(count: int) -> list[Bird]:
        birds = [
            Bird(species=f"bird-{i:02d}", description=f"description {i}")
            for i in range(count)
        ]
        for bird in birds:
            insert_bird(db, bird)
        return birds

    return _factory
