"""Queue worker draining album jobs into albums, photos and stored files."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from ..domain.models import AlbumJob
from ..exceptions import AppError, JobExecutionError, NotFoundError
from ..infrastructure.job_queue import JobQueue
from ..notifications.notification_service import NotificationPublisher
from .materializer import AlbumMaterializer, MaterializedAlbum

T = TypeVar("T")


class AlbumQueueWorker:
    """Claims one job at a time and reports its lifecycle.

    Every claimed job ends ``completed`` (possibly with per-file errors) or
    ``failed``; there is no automatic requeue. A job whose worker dies stays
    ``active`` until the cleanup task fails it once its lease runs out.
    """

    def __init__(
        self,
        *,
        queue: JobQueue,
        materializer: AlbumMaterializer,
        publisher: NotificationPublisher,
        clock: Callable[[], datetime] | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.queue = queue
        self.materializer = materializer
        self.publisher = publisher
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._poll_interval = poll_interval
        self._logger = logging.getLogger(__name__)

    @staticmethod
    async def _run_sync(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        """Execute ``func`` in a worker thread to avoid blocking the event loop."""

        return await asyncio.to_thread(func, *args, **kwargs)

    async def run_once(
        self,
        *,
        shutdown_event: asyncio.Event | None = None,
    ) -> bool:
        """Claim and process at most one job; ``False`` when the queue is idle."""

        if shutdown_event is not None and shutdown_event.is_set():
            return False

        job = await self._run_sync(self.queue.acquire_next, now=self._clock())
        if job is None:
            return False

        try:
            await self.process_job(job)
        except asyncio.CancelledError:
            # the job may already be finished when cancellation lands
            with contextlib.suppress(NotFoundError):
                await self._run_sync(
                    self._fail,
                    job,
                    JobExecutionError("worker stopped before the album was finished"),
                )
            raise
        return True

    async def run_forever(
        self,
        *,
        worker_id: int,
        shutdown_event: asyncio.Event,
    ) -> None:
        """Continuously process jobs until ``shutdown_event`` is set."""

        self._logger.info("worker.started", extra={"worker_id": worker_id})
        try:
            while not shutdown_event.is_set():
                try:
                    has_job = await self.run_once(shutdown_event=shutdown_event)
                except AppError:
                    self._logger.exception("worker.poll_failed", extra={"worker_id": worker_id})
                    has_job = False
                if not has_job:
                    try:
                        await asyncio.wait_for(shutdown_event.wait(), timeout=self._poll_interval)
                    except asyncio.TimeoutError:
                        continue
        except asyncio.CancelledError:
            self._logger.debug("worker.cancelled", extra={"worker_id": worker_id})
            raise
        finally:
            self._logger.info("worker.stopped", extra={"worker_id": worker_id})

    async def process_job(self, job: AlbumJob) -> None:
        self._logger.info(
            "worker.job.started",
            extra={
                "job_id": str(job.id),
                "session_id": job.session_id,
                "album_name": job.album_name,
                "files": len(job.files),
                "priority": job.priority,
            },
        )
        try:
            result = await self._run_sync(self._materialize, job)
        except Exception as exc:  # noqa: BLE001 - any failure ends the job as failed
            await self._run_sync(self._fail, job, exc)
            return
        await self._run_sync(self._complete, job, result)

    def _materialize(self, job: AlbumJob) -> MaterializedAlbum:
        def on_progress(progress: int, message: str) -> None:
            self.queue.update_progress(job.id, progress, now=self._clock())
            self.publisher.album_progress(
                job.session_id,
                job_id=str(job.id),
                album_name=job.album_name,
                progress=progress,
                message=message,
            )

        return self.materializer.materialize(
            user_id=job.user_id,
            event_name=job.event_name,
            album_name=job.album_name,
            files=job.files,
            on_progress=on_progress,
        )

    def _complete(self, job: AlbumJob, result: MaterializedAlbum) -> None:
        self.queue.mark_completed(
            job.id,
            album_id=result.album.id,
            file_errors=result.file_errors,
            now=self._clock(),
        )
        self.publisher.album_completed(
            job.session_id,
            job_id=str(job.id),
            album_name=job.album_name,
            album_id=result.album.id,
            photo_count=result.photo_count,
            errors=result.file_errors,
        )
        self._logger.info(
            "worker.job.completed",
            extra={
                "job_id": str(job.id),
                "album_id": result.album.id,
                "photos": result.photo_count,
                "file_errors": len(result.file_errors),
            },
        )

    def _fail(self, job: AlbumJob, exc: BaseException) -> None:
        message = str(exc) or exc.__class__.__name__
        album_id = getattr(exc, "album_id", None)
        file_errors = getattr(exc, "file_errors", [])
        self._logger.error(
            "worker.job.failed",
            extra={"job_id": str(job.id), "session_id": job.session_id, "error": message},
            exc_info=exc,
        )
        self.queue.mark_failed(
            job.id,
            error_message=message,
            album_id=album_id,
            file_errors=file_errors,
            now=self._clock(),
        )
        self.publisher.album_failed(
            job.session_id,
            job_id=str(job.id),
            album_name=job.album_name,
            error=message,
        )


__all__ = ["AlbumQueueWorker"]
