from __future__ import annotations

import os
from pathlib import Path

import pytest

os.environ.setdefault("ALBUMCRAFT_JWT_SIGNING_KEY", "test-signing-key")
os.environ.setdefault("ALBUMCRAFT_DATABASE_URL", "sqlite://")
os.environ.setdefault("ALBUMCRAFT_RUN_WORKERS_IN_PROCESS", "false")

from albumcraft.db import Database, build_database  # noqa: E402
from albumcraft.infrastructure.queue import PostgresJobQueue, PostgresQueueConfig  # noqa: E402
from albumcraft.repositories.album_repository import AlbumRepository  # noqa: E402

TEST_USER_ID = "user-1"


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    """File-backed SQLite so worker threads get their own connections."""
    db = build_database(f"sqlite:///{tmp_path / 'albums.db'}")
    yield db
    db.engine.dispose()


@pytest.fixture()
def repository(database: Database) -> AlbumRepository:
    repo = AlbumRepository(database.session_factory)
    repo.create_user(user_id=TEST_USER_ID, email="user-1@example.com", name="User One")
    return repo


@pytest.fixture()
def job_queue() -> PostgresJobQueue:
    queue = PostgresJobQueue(config=PostgresQueueConfig(dsn=":memory:"))
    yield queue
    queue.close()
