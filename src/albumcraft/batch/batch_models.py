"""Data structures for batch album submissions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..domain.models import AlbumRecord


class OutcomeStatus(StrEnum):
    QUEUED = "queued"
    FAILED = "failed"


@dataclass(slots=True)
class RawFile:
    """File descriptor as submitted, payload still base64 text."""

    name: str
    size: int | None
    mime_type: str
    data_base64: str


@dataclass(slots=True)
class AlbumDefinition:
    name: str
    event_name: str | None = None
    files: list[RawFile] = field(default_factory=list)


@dataclass(slots=True)
class BatchRequest:
    """Validated-shape batch submission handed to the orchestrator."""

    user_id: str | None
    event_name: str | None
    albums: list[AlbumDefinition]
    session_id: str | None = None
    use_queue: bool = True


@dataclass(slots=True)
class QueuedAlbumOutcome:
    album_name: str
    status: OutcomeStatus
    job_id: str | None = None
    priority: int | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "albumName": self.album_name,
            "jobId": self.job_id,
            "status": self.status.value,
        }
        if self.priority is not None:
            data["priority"] = self.priority
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(slots=True)
class CreatedAlbum:
    album: AlbumRecord
    photo_count: int
    file_errors: list[dict[str, str]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        data = self.album.summary()
        data["photoCount"] = self.photo_count
        data["errors"] = list(self.file_errors)
        return data


@dataclass(slots=True)
class BatchResult:
    """Per-album outcomes of one submission in either execution mode."""

    session_id: str
    use_queue: bool
    queued: list[QueuedAlbumOutcome] = field(default_factory=list)
    created: list[CreatedAlbum] = field(default_factory=list)
    failures: list[dict[str, str]] = field(default_factory=list)

    def as_response(self) -> dict[str, Any]:
        if self.use_queue:
            accepted = sum(1 for item in self.queued if item.status is OutcomeStatus.QUEUED)
            return {
                "success": accepted > 0,
                "message": f"{accepted} of {len(self.queued)} albums added to the processing queue",
                "results": [item.as_dict() for item in self.queued],
                "sessionId": self.session_id,
                "useQueue": True,
            }
        return {
            "success": bool(self.created),
            "message": f"{len(self.created)} albums created",
            "albums": [item.as_dict() for item in self.created],
            "total": len(self.created),
            "failures": list(self.failures),
            "sessionId": self.session_id,
            "useQueue": False,
        }
