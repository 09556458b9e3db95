"""Infrastructure adapters and repository contracts for AlbumCraft."""

from __future__ import annotations

from .job_queue import JobQueue

__all__ = ["JobQueue"]
