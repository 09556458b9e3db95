"""Domain models for the batch album pipeline.

Jobs, file descriptors and notification events are plain dataclasses so the
queue backends, the worker and the HTTP layer can exchange them without
touching ORM state. Album and photo rows belong to the persistence layer and
are surfaced here only as lightweight records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any
from uuid import UUID


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobState(StrEnum):
    """Lifecycle of a queued album job.

    ``waiting`` jobs are claimed by exactly one worker and become ``active``;
    the worker then moves them to ``completed`` or ``failed``. Terminal jobs
    stay queryable until the retention cleanup purges them.
    """

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class NotificationType(StrEnum):
    CONNECTED = "connected"
    QUEUE_STATS = "queue_stats"
    ALBUM_PROGRESS = "album_progress"
    ALBUM_COMPLETED = "album_completed"
    ALBUM_FAILED = "album_failed"
    HEARTBEAT = "heartbeat"


class AlbumStatus(StrEnum):
    DRAFT = "DRAFT"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


@dataclass(slots=True)
class FileDescriptor:
    """A decoded photo payload attached to an album definition."""

    name: str
    size: int
    mime_type: str
    payload: bytes


@dataclass(slots=True)
class AlbumJob:
    """Queue entry describing one album to materialize."""

    id: UUID
    user_id: str
    event_name: str
    album_name: str
    session_id: str
    priority: int
    state: JobState
    created_at: datetime
    updated_at: datetime
    files: list[FileDescriptor] = field(default_factory=list)
    progress: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    album_id: str | None = None
    error_message: str | None = None
    file_errors: list[dict[str, str]] = field(default_factory=list)


@dataclass(slots=True)
class QueueStats:
    """Job counts per state, optionally scoped to one session."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total_jobs(self) -> int:
        return self.waiting + self.active + self.completed + self.failed

    @property
    def is_processing_complete(self) -> bool:
        return self.waiting == 0 and self.active == 0

    @property
    def progress(self) -> int:
        total = self.total_jobs
        if total <= 0:
            return 0
        # half-up, 1 of 8 completed reports 13
        return (self.completed * 200 + total) // (2 * total)

    def as_dict(self) -> dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "totalJobs": self.total_jobs,
        }


@dataclass(slots=True)
class NotificationEvent:
    """Observational lifecycle event pushed to session subscribers."""

    type: NotificationType
    session_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    id: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "sessionId": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            **self.payload,
        }


@dataclass(slots=True)
class AlbumRecord:
    id: str
    user_id: str
    name: str
    event_name: str | None
    status: AlbumStatus
    photo_count: int
    created_at: datetime

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "eventName": self.event_name,
            "status": self.status.value,
            "photoCount": self.photo_count,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class PhotoRecord:
    id: str
    album_id: str
    user_id: str
    filename: str
    storage_key: str
    url: str
    size_bytes: int
    mime_type: str
    thumbnail_url: str | None = None
