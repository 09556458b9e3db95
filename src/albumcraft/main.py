"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os

import uvicorn
from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import build_services, include_routers
from .infrastructure.job_queue import JobQueue
from .lifecycle import run_periodic_cleanup
from .logging import configure_logging
from .storage import ObjectStorage

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig | None = None,
    *,
    queue: JobQueue | None = None,
    storage: ObjectStorage | None = None,
) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()
    services = build_services(cfg, queue=queue, storage=storage)
    app = FastAPI(title="AlbumCraft")
    include_routers(app, services)
    app.state.worker_pool = None
    app.state.cleanup_task = None
    app.state.cleanup_shutdown_event = None

    async def _startup_worker_pool() -> None:
        if not cfg.run_workers_in_process:
            logger.info("Worker pool startup skipped: workers run out of process")
            return
        pool = services.build_worker_pool()
        pool.start()
        app.state.worker_pool = pool

    async def _shutdown_worker_pool() -> None:
        pool = app.state.worker_pool
        if pool is not None:
            await pool.stop()
        app.state.worker_pool = None

    async def _startup_cleanup() -> None:
        shutdown_event = asyncio.Event()
        task = asyncio.create_task(
            run_periodic_cleanup(
                queue=services.queue,
                notification_log=services.notification_log,
                retention=services.job_retention,
                shutdown_event=shutdown_event,
                lease=services.job_lease,
                publisher=services.publisher,
                interval_seconds=cfg.cleanup_interval_seconds,
            ),
            name="albumcraft-cleanup",
        )
        app.state.cleanup_task = task
        app.state.cleanup_shutdown_event = shutdown_event

    async def _shutdown_cleanup() -> None:
        shutdown_event = app.state.cleanup_shutdown_event
        if shutdown_event is not None:
            shutdown_event.set()
        task: asyncio.Task[None] | None = app.state.cleanup_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        app.state.cleanup_task = None
        app.state.cleanup_shutdown_event = None

    async def _shutdown_notifications() -> None:
        await app.state.notification_channel.close_all()

    app.add_event_handler("startup", _startup_worker_pool)
    app.add_event_handler("startup", _startup_cleanup)
    app.add_event_handler("shutdown", _shutdown_notifications)
    app.add_event_handler("shutdown", _shutdown_cleanup)
    app.add_event_handler("shutdown", _shutdown_worker_pool)
    return app


def serve() -> None:
    """Run the API with uvicorn; host and port come from ``ALBUMCRAFT_HOST``/``ALBUMCRAFT_PORT``."""
    uvicorn.run(
        "albumcraft.main:create_app",
        factory=True,
        host=os.getenv("ALBUMCRAFT_HOST", "127.0.0.1"),
        port=int(os.getenv("ALBUMCRAFT_PORT", "8000")),
    )


__all__ = ["create_app", "serve"]
