from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from albumcraft.db import Database
from albumcraft.domain.models import (
    AlbumJob,
    JobState,
    NotificationEvent,
    NotificationType,
    utcnow,
)
from albumcraft.exceptions import DatabaseOperationError, TransportClosedError
from albumcraft.infrastructure.queue import PostgresJobQueue
from albumcraft.notifications.notification_log import NotificationLog
from albumcraft.notifications.notification_service import (
    ChannelSettings,
    NotificationChannel,
    NotificationPublisher,
)

IDLE = 60.0


class Recorder:
    def __init__(self, *, fail_after: int | None = None) -> None:
        self.events: list[NotificationEvent] = []
        self.fail_after = fail_after
        self.calls = 0

    async def __call__(self, event: NotificationEvent) -> None:
        self.calls += 1
        if self.fail_after is not None and self.calls > self.fail_after:
            raise ConnectionResetError("client went away")
        self.events.append(event)

    def types(self) -> list[NotificationType]:
        return [event.type for event in self.events]


def _channel(
    database: Database,
    queue: PostgresJobQueue,
    *,
    stats: float = IDLE,
    heartbeat: float = IDLE,
    poll: float = IDLE,
) -> tuple[NotificationChannel, NotificationPublisher]:
    log = NotificationLog(database.session_factory)
    channel = NotificationChannel(
        queue=queue,
        log=log,
        settings=ChannelSettings(
            stats_interval_seconds=stats,
            heartbeat_interval_seconds=heartbeat,
            poll_interval_seconds=poll,
        ),
    )
    return channel, NotificationPublisher(log)


def _progress(publisher: NotificationPublisher, value: int) -> None:
    publisher.album_progress(
        "s1", job_id="job-1", album_name="Ceremony", progress=value, message="working"
    )


@pytest.mark.asyncio
async def test_connected_is_first_and_stored_events_are_replayed(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    channel, publisher = _channel(database, job_queue)
    _progress(publisher, 10)
    _progress(publisher, 30)
    recorder = Recorder()

    subscription = await channel.subscribe("s1", send=recorder)

    assert recorder.types() == [
        NotificationType.CONNECTED,
        NotificationType.ALBUM_PROGRESS,
        NotificationType.ALBUM_PROGRESS,
    ]
    assert recorder.events[0].payload == {"message": "Connected to album notifications"}
    assert [event.payload["progress"] for event in recorder.events[1:]] == [10, 30]
    assert channel.subscribers_for("s1") == 1
    await subscription.close()
    assert channel.active_subscribers == 0


@pytest.mark.asyncio
async def test_new_events_are_forwarded_once(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    channel, publisher = _channel(database, job_queue, poll=0.01)
    _progress(publisher, 10)
    recorder = Recorder()
    subscription = await channel.subscribe("s1", send=recorder)

    await asyncio.to_thread(_progress, publisher, 60)
    await asyncio.sleep(0.15)
    await subscription.close()

    progress = [
        event.payload["progress"]
        for event in recorder.events
        if event.type is NotificationType.ALBUM_PROGRESS
    ]
    assert progress == [10, 60]


@pytest.mark.asyncio
async def test_stats_and_heartbeat_timers_tick(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    now = utcnow()
    job_queue.enqueue(
        AlbumJob(
            id=uuid4(),
            user_id="user-1",
            event_name="Wedding",
            album_name="Ceremony",
            session_id="s1",
            priority=1,
            state=JobState.WAITING,
            created_at=now,
            updated_at=now,
        )
    )
    channel, _ = _channel(database, job_queue, stats=0.02, heartbeat=0.03)
    recorder = Recorder()

    subscription = await channel.subscribe("s1", send=recorder)
    await asyncio.sleep(0.2)
    await subscription.close()

    stats = [event for event in recorder.events if event.type is NotificationType.QUEUE_STATS]
    assert stats
    assert stats[0].payload["data"] == {
        "waiting": 1,
        "active": 0,
        "completed": 0,
        "failed": 0,
        "totalJobs": 1,
    }
    assert NotificationType.HEARTBEAT in recorder.types()


@pytest.mark.asyncio
async def test_failed_write_closes_subscription_and_stops_timers(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    channel, _ = _channel(database, job_queue, stats=0.01, heartbeat=0.01, poll=0.01)
    recorder = Recorder(fail_after=1)

    subscription = await channel.subscribe("s1", send=recorder)
    await asyncio.sleep(0.1)

    assert subscription.closed
    assert all(task.done() for task in subscription.tasks)
    assert channel.active_subscribers == 0
    calls = recorder.calls
    await asyncio.sleep(0.05)
    assert recorder.calls == calls
    with pytest.raises(TransportClosedError):
        await subscription.deliver(
            NotificationEvent(type=NotificationType.HEARTBEAT, session_id="s1")
        )


@pytest.mark.asyncio
async def test_stream_ends_when_subscription_closes(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    channel, _ = _channel(database, job_queue, heartbeat=0.01)
    subscription = await channel.subscribe("s1")
    received: list[NotificationType] = []

    async def consume() -> None:
        async for event in subscription.stream():
            received.append(event.type)

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0.05)
    await channel.close_all()
    await asyncio.wait_for(consumer, timeout=1)

    assert received[0] is NotificationType.CONNECTED
    assert NotificationType.HEARTBEAT in received
    assert channel.active_subscribers == 0


@pytest.mark.asyncio
async def test_close_is_idempotent(database: Database, job_queue: PostgresJobQueue) -> None:
    channel, _ = _channel(database, job_queue)
    subscription = await channel.subscribe("s1", send=Recorder())

    await subscription.close()
    await subscription.close()

    assert subscription.closed
    assert all(task.done() for task in subscription.tasks)


class FlakyLog(NotificationLog):
    """Fails the first ``failures`` reads of newly logged events."""

    def __init__(self, *args, failures: int = 1, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.failures = failures

    def list_since(self, session_id: str, after_id: int) -> list[NotificationEvent]:
        if self.failures > 0:
            self.failures -= 1
            raise DatabaseOperationError("notification_event: database operation failed")
        return super().list_since(session_id, after_id)


class UnavailableLog(NotificationLog):
    def latest_id(self, session_id: str) -> int:
        raise DatabaseOperationError("notification_event: database operation failed")


@pytest.mark.asyncio
async def test_failed_replay_does_not_leak_subscription(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    channel = NotificationChannel(
        queue=job_queue,
        log=UnavailableLog(database.session_factory),
        settings=ChannelSettings(
            stats_interval_seconds=IDLE,
            heartbeat_interval_seconds=IDLE,
            poll_interval_seconds=IDLE,
        ),
    )

    with pytest.raises(DatabaseOperationError):
        await channel.subscribe("s1", send=Recorder())

    assert channel.active_subscribers == 0
    assert channel.subscribers_for("s1") == 0


@pytest.mark.asyncio
async def test_forwarding_survives_a_failed_log_read(
    database: Database, job_queue: PostgresJobQueue
) -> None:
    log = FlakyLog(database.session_factory, failures=1)
    channel = NotificationChannel(
        queue=job_queue,
        log=log,
        settings=ChannelSettings(
            stats_interval_seconds=IDLE,
            heartbeat_interval_seconds=IDLE,
            poll_interval_seconds=0.01,
        ),
    )
    publisher = NotificationPublisher(log)
    recorder = Recorder()
    subscription = await channel.subscribe("s1", send=recorder)

    await asyncio.sleep(0.05)
    await asyncio.to_thread(_progress, publisher, 60)
    await asyncio.sleep(0.15)
    await subscription.close()

    assert log.failures == 0
    progress = [
        event.payload["progress"]
        for event in recorder.events
        if event.type is NotificationType.ALBUM_PROGRESS
    ]
    assert progress == [60]
