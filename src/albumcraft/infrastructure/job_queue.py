"""Interface of the durable album job queue."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from ..domain.models import AlbumJob, QueueStats


class JobQueue:
    """Persistence gateway for queue operations.

    Ready jobs are served by descending ``priority`` and FIFO within equal
    priority. Implementations guarantee that a ``waiting`` job is claimed by at
    most one caller of :meth:`acquire_next`; PostgreSQL does so with
    ``SELECT … FOR UPDATE SKIP LOCKED``. Only the queue writes state
    transitions.
    """

    def enqueue(self, job: AlbumJob) -> AlbumJob:
        """Persist a ``waiting`` job together with its file payloads."""

        raise NotImplementedError

    def acquire_next(self, *, now: datetime) -> AlbumJob | None:
        """Claim the highest-priority waiting job and mark it ``active``."""

        raise NotImplementedError

    def update_progress(self, job_id: UUID, progress: int, *, now: datetime) -> None:
        """Record worker progress (0-100) on an active job."""

        raise NotImplementedError

    def mark_completed(
        self,
        job_id: UUID,
        *,
        album_id: str | None,
        file_errors: Sequence[dict[str, str]],
        now: datetime,
    ) -> AlbumJob:
        """Move an active job to ``completed`` and drop its payloads."""

        raise NotImplementedError

    def mark_failed(
        self,
        job_id: UUID,
        *,
        error_message: str,
        album_id: str | None,
        file_errors: Sequence[dict[str, str]],
        now: datetime,
    ) -> AlbumJob:
        """Move an active job to ``failed`` keeping the error for inspection."""

        raise NotImplementedError

    def get_job(self, job_id: UUID, *, include_files: bool = False) -> AlbumJob:
        """Return one job or raise :class:`~albumcraft.exceptions.NotFoundError`."""

        raise NotImplementedError

    def list_jobs(self, session_id: str) -> list[AlbumJob]:
        """Return jobs of a session in dequeue order, without payloads."""

        raise NotImplementedError

    def count_by_state(self, session_id: str | None = None) -> QueueStats:
        """Count jobs per state, optionally scoped to ``session_id``."""

        raise NotImplementedError

    def release_expired(self, *, started_before: datetime, now: datetime) -> list[AlbumJob]:
        """Fail ``active`` jobs claimed before ``started_before`` and return them.

        Recovers jobs whose worker died or lost the queue connection before it
        could record the outcome.
        """

        raise NotImplementedError

    def purge_finished(self, *, older_than: datetime) -> int:
        """Delete terminal jobs finished before ``older_than``."""

        raise NotImplementedError
