"""Queue adapters for the PostgreSQL-backed album job queue."""

from .postgres import PostgresJobQueue, PostgresQueueConfig

__all__ = ["PostgresJobQueue", "PostgresQueueConfig"]
