from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from albumcraft.db import Database
from albumcraft.domain.models import AlbumJob, JobState, NotificationEvent, NotificationType
from albumcraft.infrastructure.queue import PostgresJobQueue
from albumcraft.lifecycle import queue_cleanup_once, run_periodic_cleanup
from albumcraft.notifications.notification_log import NotificationLog
from albumcraft.notifications.notification_service import NotificationPublisher

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _finished_job(queue: PostgresJobQueue, finished_at: datetime) -> AlbumJob:
    job = queue.enqueue(
        AlbumJob(
            id=uuid4(),
            user_id="user-1",
            event_name="Wedding",
            album_name="Ceremony",
            session_id="S",
            priority=1,
            state=JobState.WAITING,
            created_at=NOW,
            updated_at=NOW,
        )
    )
    queue.acquire_next(now=NOW)
    return queue.mark_failed(
        job.id, error_message="boom", album_id=None, file_errors=[], now=finished_at
    )


def test_cleanup_once_purges_jobs_and_events(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    log = NotificationLog(database.session_factory, ttl_seconds=600)
    _finished_job(job_queue, NOW - timedelta(hours=30))
    _finished_job(job_queue, NOW - timedelta(hours=1))
    log.append(
        NotificationEvent(
            type=NotificationType.HEARTBEAT,
            session_id="S",
            timestamp=NOW - timedelta(hours=2),
        )
    )

    summary = queue_cleanup_once(
        queue=job_queue,
        notification_log=log,
        retention=timedelta(hours=24),
        now=NOW,
    )

    assert summary.purged_jobs == 1
    assert summary.pruned_events == 1
    assert job_queue.count_by_state().failed == 1


def test_periodic_cleanup_stops_on_shutdown(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    log = NotificationLog(database.session_factory)
    _finished_job(job_queue, NOW - timedelta(days=2))

    async def scenario() -> None:
        shutdown = asyncio.Event()
        task = asyncio.create_task(
            run_periodic_cleanup(
                queue=job_queue,
                notification_log=log,
                retention=timedelta(hours=24),
                shutdown_event=shutdown,
                interval_seconds=60,
                clock=lambda: NOW,
            )
        )
        for _ in range(100):
            if job_queue.count_by_state().total_jobs == 0:
                break
            await asyncio.sleep(0.01)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())

    assert job_queue.count_by_state().total_jobs == 0


def test_cleanup_once_fails_jobs_past_their_lease(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    later = NOW + timedelta(hours=1)
    log = NotificationLog(database.session_factory, ttl_seconds=600)
    job = job_queue.enqueue(
        AlbumJob(
            id=uuid4(),
            user_id="user-1",
            event_name="Wedding",
            album_name="Stuck",
            session_id="S",
            priority=1,
            state=JobState.WAITING,
            created_at=NOW,
            updated_at=NOW,
        )
    )
    job_queue.acquire_next(now=NOW)

    summary = queue_cleanup_once(
        queue=job_queue,
        notification_log=log,
        retention=timedelta(hours=24),
        lease=timedelta(minutes=30),
        publisher=NotificationPublisher(log, clock=lambda: later),
        now=later,
    )

    assert summary.expired_jobs == 1
    assert job_queue.get_job(job.id).state is JobState.FAILED
    [event] = [event.as_dict() for event in log.list_recent("S", now=later)]
    assert event["type"] == "album_failed"
    assert event["albumName"] == "Stuck"
    assert event["jobId"] == str(job.id)


def test_cleanup_once_without_lease_leaves_active_jobs(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    log = NotificationLog(database.session_factory)
    job_queue.enqueue(
        AlbumJob(
            id=uuid4(),
            user_id="user-1",
            event_name="Wedding",
            album_name="Running",
            session_id="S",
            priority=1,
            state=JobState.WAITING,
            created_at=NOW,
            updated_at=NOW,
        )
    )
    job_queue.acquire_next(now=NOW)

    summary = queue_cleanup_once(
        queue=job_queue,
        notification_log=log,
        retention=timedelta(hours=24),
        now=NOW + timedelta(days=1),
    )

    assert summary.expired_jobs == 0
    assert job_queue.count_by_state().active == 1
