from __future__ import annotations

from dataclasses import dataclass, field

from albumcraft.domain.models import AlbumJob
from albumcraft.exceptions import EnqueueError
from albumcraft.infrastructure.queue import PostgresJobQueue


@dataclass
class ScriptedEnqueueQueue:
    """Wraps a real queue and raises scripted errors for chosen albums."""

    inner: PostgresJobQueue
    failures: dict[str, EnqueueError] = field(default_factory=dict)
    enqueued: list[AlbumJob] = field(default_factory=list)

    def enqueue(self, job: AlbumJob) -> AlbumJob:
        error = self.failures.get(job.album_name)
        if error is not None:
            raise error
        self.enqueued.append(job)
        return self.inner.enqueue(job)

    def __getattr__(self, name: str):
        return getattr(self.inner, name)
