"""Dependency wiring helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from fastapi import FastAPI

from .auth.auth_service import TokenService
from .batch.batch_api import router as batch_router
from .batch.batch_service import BatchOrchestrator
from .config import AppConfig
from .db import Database, build_database
from .infrastructure.job_queue import JobQueue
from .infrastructure.queue import PostgresJobQueue, PostgresQueueConfig
from .jobs.jobs_api import router as jobs_router
from .jobs.jobs_service import QueueStatusService
from .media.image_variants import VariantSettings
from .notifications.notification_api import router as notifications_router
from .notifications.notification_log import NotificationLog
from .notifications.notification_service import (
    ChannelSettings,
    NotificationChannel,
    NotificationPublisher,
)
from .repositories.album_repository import AlbumRepository
from .storage import ObjectStorage, build_storage
from .utils.rate_limiter import SubmissionRateLimiter
from .workers.materializer import AlbumMaterializer
from .workers.queue_worker import AlbumQueueWorker
from .workers.worker_pool import WorkerPool


@dataclass(slots=True)
class ServiceContainer:
    """Every collaborator shared by the API process and the worker runner."""

    config: AppConfig
    database: Database
    queue: JobQueue
    storage: ObjectStorage
    album_repository: AlbumRepository
    notification_log: NotificationLog
    publisher: NotificationPublisher
    materializer: AlbumMaterializer

    @property
    def job_retention(self) -> timedelta:
        return timedelta(hours=self.config.job_retention_hours)

    @property
    def job_lease(self) -> timedelta:
        return timedelta(seconds=self.config.job_lease_seconds)

    def build_worker(self, index: int = 0) -> AlbumQueueWorker:
        return AlbumQueueWorker(
            queue=self.queue,
            materializer=self.materializer,
            publisher=self.publisher,
            poll_interval=max(self.config.worker_poll_interval_ms / 1000.0, 0.001),
        )

    def build_worker_pool(self) -> WorkerPool:
        return WorkerPool(worker_factory=self.build_worker, size=self.config.worker_count)


def build_queue(config: AppConfig) -> PostgresJobQueue:
    return PostgresJobQueue(
        config=PostgresQueueConfig(
            dsn=config.effective_queue_url,
            statement_timeout_ms=config.queue_statement_timeout_ms,
            max_waiting_jobs=config.queue_max_waiting_jobs,
        )
    )


def build_services(
    config: AppConfig,
    *,
    queue: JobQueue | None = None,
    storage: ObjectStorage | None = None,
    database: Database | None = None,
) -> ServiceContainer:
    """Create repositories, queue, storage and notification collaborators."""
    database = database or build_database(config.database_url)
    album_repository = AlbumRepository(database.session_factory)
    storage = storage or build_storage(config)
    notification_log = NotificationLog(
        database.session_factory,
        limit=config.notification_log_limit,
        ttl_seconds=config.notification_log_ttl_seconds,
    )
    return ServiceContainer(
        config=config,
        database=database,
        queue=queue or build_queue(config),
        storage=storage,
        album_repository=album_repository,
        notification_log=notification_log,
        publisher=NotificationPublisher(notification_log),
        materializer=AlbumMaterializer(
            repository=album_repository,
            storage=storage,
            upload_retry_attempts=config.worker_upload_retry_attempts,
            upload_retry_backoff_seconds=config.worker_upload_retry_backoff_seconds,
            generate_variants=config.image_variants_enabled,
            variant_settings=VariantSettings(
                thumbnail_size=config.image_thumbnail_size,
                medium_long_edge=config.image_medium_long_edge,
            ),
        ),
    )


def include_routers(app: FastAPI, services: ServiceContainer) -> None:
    """Mount module routers and attach services."""
    config = services.config

    app.state.config = config
    app.state.services = services
    app.state.job_queue = services.queue
    app.state.album_repository = services.album_repository
    app.state.notification_log = services.notification_log
    app.state.batch_orchestrator = BatchOrchestrator(
        queue=services.queue,
        repository=services.album_repository,
        materializer=services.materializer,
    )
    app.state.queue_status_service = QueueStatusService(queue=services.queue)
    app.state.notification_channel = NotificationChannel(
        queue=services.queue,
        log=services.notification_log,
        settings=ChannelSettings(
            stats_interval_seconds=config.notification_stats_interval_seconds,
            heartbeat_interval_seconds=config.notification_heartbeat_interval_seconds,
            poll_interval_seconds=config.notification_poll_interval_seconds,
        ),
    )
    app.state.token_service = TokenService.from_settings(
        signing_key=config.jwt_signing_key,
        token_ttl_hours=config.jwt_ttl_hours,
    )
    app.state.batch_rate_limiter = SubmissionRateLimiter(
        limit_per_minute=config.batch_rate_limit_per_minute
    )

    app.include_router(batch_router)
    app.include_router(jobs_router)
    app.include_router(notifications_router)
