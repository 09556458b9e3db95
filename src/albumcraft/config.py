"""Application configuration for the AlbumCraft batch pipeline.

Values are read from ``ALBUMCRAFT_*`` environment variables. The defaults
target a single-host deployment: SQLite for albums and the job queue, files on
local disk under ``media_root`` and the worker pool running inside the API
process.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_media_root() -> Path:
    return Path("./var/media")


class AppConfig(BaseSettings):
    """Pydantic settings container for the service layer."""

    model_config = SettingsConfigDict(env_prefix="ALBUMCRAFT_")

    database_url: str = Field(
        default="sqlite:///albumcraft.db",
        description="SQLAlchemy URL for users, albums, photos and notification events.",
    )
    queue_database_url: str | None = Field(
        default=None,
        description="Optional dedicated DSN for the job queue; defaults to database_url.",
    )
    queue_statement_timeout_ms: int = Field(
        default=5_000,
        ge=1_000,
        description="PostgreSQL statement_timeout used by the job queue (ms).",
    )
    queue_max_waiting_jobs: int | None = Field(
        default=None,
        ge=1,
        description="Back-pressure bound on waiting jobs; unlimited when unset.",
    )
    worker_count: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Number of concurrently active queue workers.",
    )
    worker_poll_interval_ms: int = Field(
        default=1_000,
        ge=10,
        description="Idle polling interval for AlbumQueueWorker.run_forever in milliseconds.",
    )
    worker_upload_retry_attempts: int = Field(
        default=1,
        ge=1,
        description="Attempts per file upload; 1 disables retries.",
    )
    worker_upload_retry_backoff_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Base delay for exponential upload retry backoff in seconds.",
    )
    image_variants_enabled: bool = Field(
        default=True,
        description="Render and upload JPEG thumbnail and medium variants of each photo.",
    )
    image_thumbnail_size: int = Field(
        default=300,
        ge=16,
        description="Edge of the square thumbnail variant in pixels.",
    )
    image_medium_long_edge: int = Field(
        default=2048,
        ge=64,
        description="Maximum long edge of the medium variant in pixels.",
    )
    run_workers_in_process: bool = Field(
        default=True,
        description="Start the worker pool inside the API process on startup.",
    )
    storage_backend: Literal["local", "s3"] = Field(
        default="local",
        description="Object storage implementation used for photo uploads.",
    )
    media_root: Path = Field(
        default_factory=_default_media_root,
        description="Filesystem root used by the local storage backend.",
    )
    public_base_url: str = Field(
        default="/media",
        description="URL prefix for objects served by the local storage backend.",
    )
    s3_bucket: str | None = Field(default=None, description="Bucket for the S3 backend.")
    s3_region: str = Field(default="us-east-1", description="AWS region of the bucket.")
    s3_endpoint_url: str | None = Field(
        default=None,
        description="Custom endpoint for S3-compatible storage (MinIO, R2, ...).",
    )
    notification_stats_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Interval between queue_stats events on the push channel.",
    )
    notification_heartbeat_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Interval between heartbeat events on the push channel.",
    )
    notification_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Interval at which subscribers forward newly logged events.",
    )
    notification_log_limit: int = Field(
        default=50,
        ge=1,
        description="Maximum number of stored events per session.",
    )
    notification_log_ttl_seconds: int = Field(
        default=3_600,
        ge=60,
        description="Retention of stored events per session.",
    )
    job_retention_hours: int = Field(
        default=24,
        ge=1,
        description="How long completed and failed jobs stay queryable.",
    )
    job_lease_seconds: float = Field(
        default=1800.0,
        ge=30.0,
        description="How long a job may stay active before the cleanup task fails it.",
    )
    cleanup_interval_seconds: float = Field(
        default=900.0,
        ge=1.0,
        description="Interval of the periodic queue/notification cleanup task.",
    )
    jwt_signing_key: str = Field(
        default="change-me",
        min_length=1,
        description="HS256 key used to verify bearer tokens.",
    )
    jwt_ttl_hours: int = Field(
        default=168,
        ge=1,
        description="Lifetime of issued bearer tokens in hours.",
    )
    batch_rate_limit_per_minute: int = Field(
        default=10,
        ge=1,
        description="Batch submissions allowed per user per minute.",
    )

    @property
    def effective_queue_url(self) -> str:
        return self.queue_database_url or self.database_url


def load_config() -> AppConfig:
    """Load configuration from the environment."""

    return AppConfig()


__all__ = ["AppConfig", "load_config"]
