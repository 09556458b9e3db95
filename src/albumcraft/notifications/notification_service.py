"""Per-session progress notifications pushed to subscribers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator

from ..domain.models import NotificationEvent, NotificationType, QueueStats, utcnow
from ..exceptions import AppError, TransportClosedError
from ..infrastructure.job_queue import JobQueue
from .notification_log import NotificationLog

logger = logging.getLogger(__name__)

SendCallable = Callable[[NotificationEvent], Awaitable[None]]


@dataclass(slots=True)
class ChannelSettings:
    """Timer intervals of one subscription, in seconds."""

    stats_interval_seconds: float = 5.0
    heartbeat_interval_seconds: float = 30.0
    poll_interval_seconds: float = 1.0
    buffer_size: int = 256


class NotificationPublisher:
    """Appends lifecycle events to the shared notification log.

    Publishing is observational only: failures are logged and never
    propagate into the job that produced the event.
    """

    def __init__(self, log: NotificationLog, *, clock: Callable[[], datetime] | None = None) -> None:
        self._log = log
        self._clock = clock or utcnow

    def publish(
        self,
        event_type: NotificationType,
        session_id: str,
        payload: dict[str, Any],
    ) -> NotificationEvent | None:
        event = NotificationEvent(
            type=event_type,
            session_id=session_id,
            payload=payload,
            timestamp=self._clock(),
        )
        try:
            return self._log.append(event)
        except AppError:
            logger.warning(
                "notifications.publish_failed",
                extra={"session_id": session_id, "type": event_type.value},
                exc_info=True,
            )
            return None

    def album_progress(
        self, session_id: str, *, job_id: str, album_name: str, progress: int, message: str
    ) -> NotificationEvent | None:
        return self.publish(
            NotificationType.ALBUM_PROGRESS,
            session_id,
            {"jobId": job_id, "albumName": album_name, "progress": progress, "message": message},
        )

    def album_completed(
        self,
        session_id: str,
        *,
        job_id: str,
        album_name: str,
        album_id: str,
        photo_count: int,
        errors: list[dict[str, str]],
    ) -> NotificationEvent | None:
        return self.publish(
            NotificationType.ALBUM_COMPLETED,
            session_id,
            {
                "jobId": job_id,
                "albumName": album_name,
                "albumId": album_id,
                "photoCount": photo_count,
                "errors": list(errors),
                "message": f"Album '{album_name}' created",
            },
        )

    def album_failed(
        self, session_id: str, *, job_id: str, album_name: str, error: str
    ) -> NotificationEvent | None:
        return self.publish(
            NotificationType.ALBUM_FAILED,
            session_id,
            {
                "jobId": job_id,
                "albumName": album_name,
                "error": error,
                "message": f"Album '{album_name}' failed",
            },
        )


class Subscription:
    """Handle owning the timers and the outgoing buffer of one subscriber.

    Once closed, no timer of this subscription fires again and every further
    delivery raises :class:`TransportClosedError`.
    """

    def __init__(
        self,
        *,
        session_id: str,
        send: SendCallable | None = None,
        buffer_size: int = 256,
        on_close: Callable[["Subscription"], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self.last_event_id = 0
        self._queue: asyncio.Queue[NotificationEvent | None] = asyncio.Queue(maxsize=buffer_size)
        self._send = send or self._enqueue
        self._tasks: list[asyncio.Task[None]] = []
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def tasks(self) -> tuple[asyncio.Task[None], ...]:
        return tuple(self._tasks)

    def start(self, coroutines: list[Coroutine[Any, Any, None]]) -> None:
        for coroutine in coroutines:
            self._tasks.append(asyncio.create_task(coroutine))

    async def deliver(self, event: NotificationEvent) -> None:
        """Write one event; any write failure closes the subscription."""

        if self._closed:
            raise TransportClosedError(f"subscriber for '{self.session_id}' is closed")
        try:
            await self._send(event)
        except TransportClosedError:
            await self.close()
            raise
        except Exception as exc:
            await self.close()
            raise TransportClosedError(str(exc)) from exc
        if event.id is not None:
            self.last_event_id = max(self.last_event_id, event.id)

    async def stream(self) -> AsyncIterator[NotificationEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current and not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            self._drain_and_stop()
        if self._on_close is not None:
            self._on_close(self)
        logger.debug("notifications.subscriber.closed", extra={"session_id": self.session_id})

    async def _enqueue(self, event: NotificationEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull as exc:
            raise TransportClosedError("subscriber is not draining its buffer") from exc

    def _drain_and_stop(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)


class NotificationChannel:
    """Creates subscriptions that replay, forward and tick per session."""

    def __init__(
        self,
        *,
        queue: JobQueue,
        log: NotificationLog,
        settings: ChannelSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._queue = queue
        self._log = log
        self.settings = settings or ChannelSettings()
        self._clock = clock or utcnow
        self._subscriptions: set[Subscription] = set()

    @property
    def active_subscribers(self) -> int:
        return len(self._subscriptions)

    def subscribers_for(self, session_id: str) -> int:
        return sum(1 for sub in self._subscriptions if sub.session_id == session_id)

    async def subscribe(
        self,
        session_id: str,
        *,
        send: SendCallable | None = None,
        replay: bool = True,
    ) -> Subscription:
        """Open a subscription, emit ``connected`` and start its timers."""

        subscription = Subscription(
            session_id=session_id,
            send=send,
            buffer_size=self.settings.buffer_size,
            on_close=self._subscriptions.discard,
        )
        self._subscriptions.add(subscription)
        try:
            await subscription.deliver(
                NotificationEvent(
                    type=NotificationType.CONNECTED,
                    session_id=session_id,
                    payload={"message": "Connected to album notifications"},
                    timestamp=self._clock(),
                )
            )
            subscription.last_event_id = await asyncio.to_thread(self._log.latest_id, session_id)
            if replay:
                replay_until = subscription.last_event_id
                stored = await asyncio.to_thread(self._log.list_recent, session_id, now=self._clock())
                for event in stored:
                    # newer events are forwarded by the poll timer
                    if event.id is not None and event.id > replay_until:
                        break
                    await subscription.deliver(event)
        except BaseException:
            await subscription.close()
            raise

        subscription.start(
            [
                self._run_timer(subscription, self.settings.stats_interval_seconds, self._emit_stats),
                self._run_timer(
                    subscription, self.settings.heartbeat_interval_seconds, self._emit_heartbeat
                ),
                self._run_timer(subscription, self.settings.poll_interval_seconds, self._forward_logged),
            ]
        )
        logger.info(
            "notifications.subscriber.opened",
            extra={"session_id": session_id, "active": self.active_subscribers},
        )
        return subscription

    async def close_all(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.close()

    async def queue_stats(self, session_id: str | None = None) -> QueueStats:
        return await asyncio.to_thread(self._queue.count_by_state, session_id)

    async def _run_timer(
        self,
        subscription: Subscription,
        interval: float,
        tick: Callable[[Subscription], Awaitable[None]],
    ) -> None:
        while not subscription.closed:
            await asyncio.sleep(interval)
            if subscription.closed:
                return
            try:
                await tick(subscription)
            except TransportClosedError:
                return
            except AppError:
                logger.warning(
                    "notifications.tick_failed",
                    extra={"session_id": subscription.session_id, "tick": tick.__name__},
                    exc_info=True,
                )

    async def _emit_stats(self, subscription: Subscription) -> None:
        stats = await self.queue_stats(subscription.session_id)
        await subscription.deliver(
            NotificationEvent(
                type=NotificationType.QUEUE_STATS,
                session_id=subscription.session_id,
                payload={"data": stats.as_dict()},
                timestamp=self._clock(),
            )
        )

    async def _emit_heartbeat(self, subscription: Subscription) -> None:
        await subscription.deliver(
            NotificationEvent(
                type=NotificationType.HEARTBEAT,
                session_id=subscription.session_id,
                timestamp=self._clock(),
            )
        )

    async def _forward_logged(self, subscription: Subscription) -> None:
        events = await asyncio.to_thread(
            self._log.list_since, subscription.session_id, subscription.last_event_id
        )
        for event in events:
            await subscription.deliver(event)


__all__ = [
    "ChannelSettings",
    "NotificationChannel",
    "NotificationPublisher",
    "Subscription",
]
