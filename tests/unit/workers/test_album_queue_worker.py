from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from albumcraft.db import Database
from albumcraft.domain.models import AlbumJob, FileDescriptor, JobState, NotificationType
from albumcraft.infrastructure.queue import PostgresJobQueue
from albumcraft.notifications.notification_log import NotificationLog
from albumcraft.notifications.notification_service import NotificationPublisher
from albumcraft.repositories.album_repository import AlbumRepository
from albumcraft.workers.materializer import AlbumMaterializer
from albumcraft.workers.queue_worker import AlbumQueueWorker
from albumcraft.workers.worker_pool import WorkerPool

from tests.mocks.storage import InMemoryObjectStorage, fail_on_file

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _job(album_name: str, *, files: list[str], priority: int = 1) -> AlbumJob:
    return AlbumJob(
        id=uuid4(),
        user_id="user-1",
        event_name="Wedding",
        album_name=album_name,
        session_id="session-1",
        priority=priority,
        state=JobState.WAITING,
        created_at=NOW,
        updated_at=NOW,
        files=[
            FileDescriptor(name=name, size=3, mime_type="image/jpeg", payload=b"jpg")
            for name in files
        ],
    )


def _worker(
    database: Database,
    repository: AlbumRepository,
    queue: PostgresJobQueue,
    storage: InMemoryObjectStorage,
) -> tuple[AlbumQueueWorker, NotificationLog]:
    log = NotificationLog(database.session_factory)
    worker = AlbumQueueWorker(
        queue=queue,
        materializer=AlbumMaterializer(repository=repository, storage=storage),
        publisher=NotificationPublisher(log),
        poll_interval=0.01,
    )
    return worker, log


def test_partial_upload_failure_completes_job_with_errors(
    database: Database, repository: AlbumRepository, job_queue: PostgresJobQueue
) -> None:
    storage = InMemoryObjectStorage(fail_when=fail_on_file("0001-"))
    worker, log = _worker(database, repository, job_queue, storage)
    job = job_queue.enqueue(_job("Ceremony", files=["a.jpg", "b.jpg"]))

    processed = asyncio.run(worker.run_once())

    assert processed is True
    finished = job_queue.get_job(job.id)
    assert finished.state is JobState.COMPLETED
    assert finished.progress == 100
    assert [error["file"] for error in finished.file_errors] == ["b.jpg"]
    album = repository.get_album(finished.album_id)
    assert album.photo_count == 1

    events = log.list_recent("session-1", now=datetime.now(timezone.utc))
    progress = [e.payload["progress"] for e in events if e.type is NotificationType.ALBUM_PROGRESS]
    assert progress == [10, 30, 60, 90, 100]
    completed = [e for e in events if e.type is NotificationType.ALBUM_COMPLETED]
    assert len(completed) == 1
    assert completed[0].payload["albumId"] == album.id
    assert completed[0].payload["photoCount"] == 1
    assert completed[0].payload["errors"][0]["file"] == "b.jpg"


def test_unexpected_exception_marks_job_failed(
    database: Database,
    repository: AlbumRepository,
    job_queue: PostgresJobQueue,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    worker, log = _worker(database, repository, job_queue, InMemoryObjectStorage())

    def _explode(**kwargs):
        raise RuntimeError("database connection lost")

    monkeypatch.setattr(repository, "create_album", _explode)
    job = job_queue.enqueue(_job("Party", files=["a.jpg"]))

    assert asyncio.run(worker.run_once()) is True

    failed = job_queue.get_job(job.id)
    assert failed.state is JobState.FAILED
    assert failed.error_message == "database connection lost"
    events = log.list_recent("session-1", now=datetime.now(timezone.utc))
    assert events[-1].type is NotificationType.ALBUM_FAILED
    assert events[-1].payload["error"] == "database connection lost"


def test_run_once_returns_false_when_queue_is_idle(
    database: Database, repository: AlbumRepository, job_queue: PostgresJobQueue
) -> None:
    worker, _ = _worker(database, repository, job_queue, InMemoryObjectStorage())

    assert asyncio.run(worker.run_once()) is False


def test_run_once_respects_shutdown_event(
    database: Database, repository: AlbumRepository, job_queue: PostgresJobQueue
) -> None:
    worker, _ = _worker(database, repository, job_queue, InMemoryObjectStorage())
    job = job_queue.enqueue(_job("Ceremony", files=[]))

    async def scenario() -> bool:
        event = asyncio.Event()
        event.set()
        return await worker.run_once(shutdown_event=event)

    assert asyncio.run(scenario()) is False
    assert job_queue.get_job(job.id).state is JobState.WAITING


def test_worker_pool_drains_queue_by_priority(
    database: Database, repository: AlbumRepository, job_queue: PostgresJobQueue
) -> None:
    storage = InMemoryObjectStorage()
    worker, _ = _worker(database, repository, job_queue, storage)
    jobs = [
        job_queue.enqueue(_job(f"album-{index}", files=["a.jpg"], priority=3 - index))
        for index in range(3)
    ]

    async def scenario() -> None:
        pool = WorkerPool(worker_factory=lambda index: worker, size=2)
        pool.start()
        assert pool.running
        for _ in range(200):
            if job_queue.count_by_state("session-1").is_processing_complete:
                break
            await asyncio.sleep(0.01)
        await pool.stop()
        assert not pool.running

    asyncio.run(scenario())

    assert all(job_queue.get_job(job.id).state is JobState.COMPLETED for job in jobs)
    assert len(storage.objects) == 3
