"""Batch orchestrator routing album definitions to the queue or direct creation."""

from __future__ import annotations

import base64
import binascii
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..domain.models import AlbumJob, FileDescriptor, JobState
from ..exceptions import (
    AppError,
    BatchValidationError,
    EnqueueError,
    ErrorCode,
    NotFoundError,
    QueueUnavailableError,
)
from ..infrastructure.job_queue import JobQueue
from ..repositories.album_repository import AlbumRepository
from ..workers.materializer import AlbumMaterializer
from .batch_models import (
    AlbumDefinition,
    BatchRequest,
    BatchResult,
    CreatedAlbum,
    OutcomeStatus,
    QueuedAlbumOutcome,
    RawFile,
)

logger = logging.getLogger(__name__)


class PayloadDecodeError(AppError):
    """Raised when a file payload is not valid base64."""

    code = ErrorCode.VALIDATION_ERROR


def decode_files(files: list[RawFile]) -> list[FileDescriptor]:
    """Decode base64 payloads once, at the submission boundary."""

    decoded: list[FileDescriptor] = []
    for file in files:
        try:
            payload = base64.b64decode(file.data_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise PayloadDecodeError(f"file '{file.name}' is not valid base64") from exc
        decoded.append(
            FileDescriptor(
                name=file.name,
                size=file.size if file.size is not None else len(payload),
                mime_type=file.mime_type or "application/octet-stream",
                payload=payload,
            )
        )
    return decoded


def _millis() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class BatchOrchestrator:
    """Validates a batch and fans it out.

    With ``use_queue`` and at least one album carrying files, every album of
    the batch becomes a queued job; otherwise every album is created
    synchronously. The first album gets ``priority == len(albums)`` and each
    following album one less.
    """

    queue: JobQueue
    repository: AlbumRepository
    materializer: AlbumMaterializer
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))
    log: logging.Logger = field(default_factory=lambda: logger)

    def submit(
        self,
        request: BatchRequest,
        *,
        require_existing_user: bool = False,
        session_prefix: str = "batch",
    ) -> BatchResult:
        self.validate(request)
        user_id = str(request.user_id)
        if require_existing_user and not self.repository.user_exists(user_id):
            raise NotFoundError(f"user '{user_id}' not found")

        session_id = request.session_id or f"{session_prefix}-{_millis()}"
        queued_mode = request.use_queue and any(album.files for album in request.albums)
        self.log.info(
            "batch.submitted",
            extra={
                "user_id": user_id,
                "session_id": session_id,
                "albums": len(request.albums),
                "use_queue": queued_mode,
            },
        )
        if queued_mode:
            return self._enqueue_all(request, user_id=user_id, session_id=session_id)
        return self._create_all(request, user_id=user_id, session_id=session_id)

    @staticmethod
    def validate(request: BatchRequest) -> None:
        details: list[dict[str, Any]] = []
        if not request.user_id or not str(request.user_id).strip():
            details.append({"field": "userId", "message": "userId is required"})
        if not request.albums:
            details.append({"field": "albums", "message": "at least one album is required"})
        for index, album in enumerate(request.albums):
            if not album.name or not album.name.strip():
                details.append(
                    {"field": f"albums[{index}].name", "message": "album name must not be empty"}
                )
            if not _event_name_for(request, album):
                details.append(
                    {
                        "field": f"albums[{index}].eventName",
                        "message": "event name must not be empty",
                    }
                )
        if details:
            raise BatchValidationError("invalid batch request", details)

    def _enqueue_all(self, request: BatchRequest, *, user_id: str, session_id: str) -> BatchResult:
        result = BatchResult(session_id=session_id, use_queue=True)
        total = len(request.albums)
        for index, album in enumerate(request.albums):
            priority = total - index
            try:
                files = decode_files(album.files)
            except PayloadDecodeError as exc:
                result.queued.append(
                    QueuedAlbumOutcome(
                        album_name=album.name,
                        status=OutcomeStatus.FAILED,
                        priority=priority,
                        error=str(exc),
                    )
                )
                continue
            now = self.clock()
            job = AlbumJob(
                id=uuid.uuid4(),
                user_id=user_id,
                event_name=_event_name_for(request, album),
                album_name=album.name,
                session_id=session_id,
                priority=priority,
                state=JobState.WAITING,
                created_at=now,
                updated_at=now,
                files=files,
            )
            try:
                self.queue.enqueue(job)
            except QueueUnavailableError:
                if not any(item.status is OutcomeStatus.QUEUED for item in result.queued):
                    raise
                result.queued.append(self._enqueue_failure(album, priority, "queue unavailable"))
                continue
            except EnqueueError as exc:
                result.queued.append(self._enqueue_failure(album, priority, str(exc)))
                continue
            result.queued.append(
                QueuedAlbumOutcome(
                    album_name=album.name,
                    status=OutcomeStatus.QUEUED,
                    job_id=str(job.id),
                    priority=priority,
                )
            )
        self.log.info(
            "batch.enqueued",
            extra={
                "session_id": session_id,
                "queued": sum(1 for item in result.queued if item.status is OutcomeStatus.QUEUED),
                "failed": sum(1 for item in result.queued if item.status is OutcomeStatus.FAILED),
            },
        )
        return result

    def _create_all(self, request: BatchRequest, *, user_id: str, session_id: str) -> BatchResult:
        result = BatchResult(session_id=session_id, use_queue=False)
        for album in request.albums:
            try:
                files = decode_files(album.files)
                created = self.materializer.materialize(
                    user_id=user_id,
                    event_name=_event_name_for(request, album),
                    album_name=album.name,
                    files=files,
                )
            except AppError as exc:
                self.log.warning(
                    "batch.album.failed",
                    extra={"session_id": session_id, "album_name": album.name, "error": str(exc)},
                )
                result.failures.append({"albumName": album.name, "error": str(exc)})
                continue
            result.created.append(
                CreatedAlbum(
                    album=created.album,
                    photo_count=created.photo_count,
                    file_errors=created.file_errors,
                )
            )
        return result

    def _enqueue_failure(
        self, album: AlbumDefinition, priority: int, error: str
    ) -> QueuedAlbumOutcome:
        self.log.warning(
            "batch.enqueue.failed", extra={"album_name": album.name, "error": error}
        )
        return QueuedAlbumOutcome(
            album_name=album.name,
            status=OutcomeStatus.FAILED,
            priority=priority,
            error=error,
        )


def _event_name_for(request: BatchRequest, album: AlbumDefinition) -> str:
    for candidate in (album.event_name, request.event_name):
        if candidate and candidate.strip():
            return candidate.strip()
    return ""


__all__ = ["BatchOrchestrator", "PayloadDecodeError", "decode_files"]
