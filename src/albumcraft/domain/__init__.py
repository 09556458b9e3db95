"""Domain layer exports."""

from .models import (
    AlbumJob,
    AlbumRecord,
    AlbumStatus,
    FileDescriptor,
    JobState,
    NotificationEvent,
    NotificationType,
    PhotoRecord,
    QueueStats,
)

__all__ = [
    "AlbumJob",
    "AlbumRecord",
    "AlbumStatus",
    "FileDescriptor",
    "JobState",
    "NotificationEvent",
    "NotificationType",
    "PhotoRecord",
    "QueueStats",
]
