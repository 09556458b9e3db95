"""Application errors and helpers shared by the batch pipeline layers."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "ErrorCode",
    "AppError",
    "BatchValidationError",
    "EnqueueError",
    "QueueBusyError",
    "QueueUnavailableError",
    "StorageUploadError",
    "StorageNotConfiguredError",
    "JobExecutionError",
    "TransportClosedError",
    "RepositoryError",
    "NotFoundError",
    "DatabaseOperationError",
    "ensure_found",
    "handle_sqlalchemy_errors",
]


class ErrorCode(StrEnum):
    """Failure categories reported to clients and stored on jobs."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    ENQUEUE_FAILURE = "ENQUEUE_FAILURE"
    UPLOAD_FAILURE = "UPLOAD_FAILURE"
    JOB_FAILURE = "JOB_FAILURE"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppError(Exception):
    """Base class for application specific errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR


class BatchValidationError(AppError):
    """Raised when a batch request is malformed; nothing has been written yet."""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.details = list(details or [])


class EnqueueError(AppError):
    """Raised when the queue cannot accept a job."""

    code = ErrorCode.ENQUEUE_FAILURE


class QueueBusyError(EnqueueError):
    """Raised when the waiting backlog reached ``queue_max_waiting_jobs``."""


class QueueUnavailableError(EnqueueError):
    """Raised when the queue backing store cannot be reached."""


class StorageUploadError(AppError):
    """Raised when a single object could not be written to storage."""

    code = ErrorCode.UPLOAD_FAILURE


class StorageNotConfiguredError(StorageUploadError):
    """Raised when the S3 backend is selected without bucket settings."""


class JobExecutionError(AppError):
    """Raised by a worker when a job cannot be materialized."""

    code = ErrorCode.JOB_FAILURE

    def __init__(
        self,
        message: str,
        *,
        album_id: str | None = None,
        file_errors: list[dict[str, str]] | None = None,
    ) -> None:
        super().__init__(message)
        self.album_id = album_id
        self.file_errors = list(file_errors or [])


class TransportClosedError(AppError):
    """Raised when a push-channel subscriber is gone."""

    code = ErrorCode.TRANSPORT_FAILURE


class RepositoryError(AppError):
    """Base class for persistence layer failures."""


class NotFoundError(RepositoryError):
    """Raised when a record could not be located."""

    code = ErrorCode.NOT_FOUND


class DatabaseOperationError(RepositoryError):
    """Raised for unexpected database errors."""


@dataclass(slots=True)
class _EntityContext:
    entity: str | None = None

    def format(self, message: str) -> str:
        if self.entity:
            return f"{self.entity}: {message}"
        return message


def ensure_found(record: object | None, *, entity: str, identifier: str) -> object:
    """Ensure a record exists, otherwise raise :class:`NotFoundError`."""

    if record is None:
        raise NotFoundError(f"{entity} '{identifier}' not found")
    return record


def _translate_sqlalchemy_error(exc: Exception, *, context: _EntityContext) -> RepositoryError:
    if isinstance(exc, sa_exc.IntegrityError):
        return DatabaseOperationError(context.format("integrity constraint violated"))
    if isinstance(exc, sa_exc.DBAPIError):
        return DatabaseOperationError(context.format("database operation failed"))
    return RepositoryError(context.format(str(exc)))


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors into domain specific ones."""

    context = _EntityContext(entity)
    try:
        yield
    except (sa_exc.IntegrityError, sa_exc.DBAPIError) as exc:
        raise _translate_sqlalchemy_error(exc, context=context) from exc
