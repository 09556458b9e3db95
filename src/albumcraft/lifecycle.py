"""Lifecycle helpers wiring background tasks for FastAPI startup."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from .domain.models import AlbumJob
from .exceptions import AppError
from .infrastructure.job_queue import JobQueue
from .notifications.notification_log import NotificationLog
from .notifications.notification_service import NotificationPublisher

logger = logging.getLogger(__name__)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CleanupSummary:
    purged_jobs: int = 0
    pruned_events: int = 0
    expired_jobs: int = 0


def release_expired_jobs(
    *,
    queue: JobQueue,
    lease: timedelta,
    now: datetime,
    publisher: NotificationPublisher | None = None,
) -> list[AlbumJob]:
    """Fail jobs active for longer than ``lease`` and tell their sessions."""

    expired = queue.release_expired(started_before=now - lease, now=now)
    for job in expired:
        logger.warning(
            "queue.job.lease_expired",
            extra={
                "job_id": str(job.id),
                "session_id": job.session_id,
                "started_at": job.started_at.isoformat() if job.started_at else None,
            },
        )
        if publisher is not None:
            publisher.album_failed(
                job.session_id,
                job_id=str(job.id),
                album_name=job.album_name,
                error=job.error_message or "job lease expired",
            )
    return expired


def queue_cleanup_once(
    *,
    queue: JobQueue,
    notification_log: NotificationLog,
    retention: timedelta,
    lease: timedelta | None = None,
    publisher: NotificationPublisher | None = None,
    now: datetime | None = None,
) -> CleanupSummary:
    """Fail stale active jobs, purge terminal jobs past retention and expired events."""

    current = now or _default_clock()
    expired: list[AlbumJob] = []
    if lease is not None:
        expired = release_expired_jobs(queue=queue, lease=lease, now=current, publisher=publisher)
    return CleanupSummary(
        purged_jobs=queue.purge_finished(older_than=current - retention),
        pruned_events=notification_log.prune_expired(now=current),
        expired_jobs=len(expired),
    )


async def run_periodic_cleanup(
    *,
    queue: JobQueue,
    notification_log: NotificationLog,
    retention: timedelta,
    shutdown_event: asyncio.Event,
    lease: timedelta | None = None,
    publisher: NotificationPublisher | None = None,
    interval_seconds: float = 900.0,
    clock: Callable[[], datetime] | None = None,
) -> None:
    """Execute cleanup until ``shutdown_event`` is signalled."""

    interval = max(1.0, float(interval_seconds))
    tick = clock or _default_clock
    while not shutdown_event.is_set():
        try:
            summary = await asyncio.to_thread(
                queue_cleanup_once,
                queue=queue,
                notification_log=notification_log,
                retention=retention,
                lease=lease,
                publisher=publisher,
                now=tick(),
            )
        except AppError:
            logger.exception("cleanup.iteration_failed")
        else:
            if summary.purged_jobs or summary.pruned_events or summary.expired_jobs:
                logger.info(
                    "cleanup.completed",
                    extra={
                        "purged_jobs": summary.purged_jobs,
                        "pruned_events": summary.pruned_events,
                        "expired_jobs": summary.expired_jobs,
                    },
                )
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


__all__ = ["CleanupSummary", "queue_cleanup_once", "release_expired_jobs", "run_periodic_cleanup"]
