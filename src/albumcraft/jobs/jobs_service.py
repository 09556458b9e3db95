"""Read-side queries over the album job queue."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from ..domain.models import AlbumJob, QueueStats
from ..exceptions import NotFoundError
from ..infrastructure.job_queue import JobQueue


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(slots=True)
class QueueStatusService:
    """Derives session progress from job counts computed on demand."""

    queue: JobQueue

    def stats(self, session_id: str | None = None) -> QueueStats:
        return self.queue.count_by_state(session_id)

    def status(self, session_id: str | None = None) -> dict[str, Any]:
        stats = self.stats(session_id)
        payload: dict[str, Any] = {
            "success": True,
            "stats": stats.as_dict(),
            "isProcessingComplete": stats.is_processing_complete,
            "progress": stats.progress,
        }
        if session_id is not None:
            payload["sessionId"] = session_id
        return payload

    def job_detail(self, job_id: str, *, user_id: str | None = None) -> dict[str, Any]:
        """Return one job; ``user_id`` restricts the lookup to its owner."""
        try:
            parsed = UUID(job_id)
        except ValueError as exc:
            raise NotFoundError(f"job '{job_id}' not found") from exc
        job = self.queue.get_job(parsed)
        if user_id is not None and job.user_id != user_id:
            raise NotFoundError(f"job '{job_id}' not found")
        return self.serialize(job)

    def session_jobs(self, session_id: str) -> list[dict[str, Any]]:
        return [self.serialize(job) for job in self.queue.list_jobs(session_id)]

    @staticmethod
    def serialize(job: AlbumJob) -> dict[str, Any]:
        return {
            "id": str(job.id),
            "userId": job.user_id,
            "eventName": job.event_name,
            "albumName": job.album_name,
            "sessionId": job.session_id,
            "priority": job.priority,
            "state": job.state.value,
            "progress": job.progress,
            "albumId": job.album_id,
            "error": job.error_message,
            "fileErrors": list(job.file_errors),
            "createdAt": _iso(job.created_at),
            "startedAt": _iso(job.started_at),
            "finishedAt": _iso(job.finished_at),
        }


__all__ = ["QueueStatusService"]
