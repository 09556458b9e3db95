"""Bounded pool of asyncio worker tasks sharing one shutdown event."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .queue_worker import AlbumQueueWorker

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerPool:
    """Runs ``size`` workers; at most ``size`` jobs are active per process."""

    worker_factory: Callable[[int], AlbumQueueWorker]
    size: int = 4
    workers: list[AlbumQueueWorker] = field(default_factory=list)
    tasks: list[asyncio.Task[None]] = field(default_factory=list)
    shutdown_event: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return bool(self.tasks)

    def start(self) -> None:
        if self.running:
            return
        if self.size <= 0:
            logger.info("worker_pool.skipped", extra={"size": self.size})
            return
        self.shutdown_event = asyncio.Event()
        for index in range(self.size):
            worker = self.worker_factory(index)
            task = asyncio.create_task(
                worker.run_forever(worker_id=index, shutdown_event=self.shutdown_event),
                name=f"albumcraft-worker-{index}",
            )
            self.workers.append(worker)
            self.tasks.append(task)
        logger.info("worker_pool.started", extra={"size": self.size})

    async def stop(self) -> None:
        if self.shutdown_event is not None:
            self.shutdown_event.set()
        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.workers = []
        self.tasks = []
        self.shutdown_event = None
        logger.info("worker_pool.stopped")

    async def wait(self) -> None:
        """Block until every worker task has finished."""

        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)


__all__ = ["WorkerPool"]
