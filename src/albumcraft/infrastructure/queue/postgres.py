"""PostgreSQL-backed album job queue with a SQLite fallback for tests."""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Sequence
from uuid import UUID

import psycopg
from psycopg.rows import dict_row

from ...domain.models import AlbumJob, FileDescriptor, JobState, QueueStats
from ...exceptions import NotFoundError, QueueBusyError, QueueUnavailableError
from ..job_queue import JobQueue

LEASE_EXPIRED_MESSAGE = "job lease expired before the worker recorded an outcome"


@dataclass(slots=True)
class PostgresQueueConfig:
    """Configuration required to talk to the queue database."""

    dsn: str
    statement_timeout_ms: int = 5_000
    max_waiting_jobs: int | None = None


class PostgresJobQueue(JobQueue):
    """Concrete queue backed by PostgreSQL with a SQLite test fallback."""

    def __init__(self, *, config: PostgresQueueConfig) -> None:
        self.config = config
        if self._is_sqlite_dsn(config.dsn):
            self._backend: _QueueBackend = _SQLiteQueueBackend(config)
        else:
            self._backend = _PostgresQueueBackend(config)

    # Public API ---------------------------------------------------------

    def enqueue(self, job: AlbumJob) -> AlbumJob:  # type: ignore[override]
        return self._backend.enqueue(job)

    def acquire_next(self, *, now: datetime) -> AlbumJob | None:  # type: ignore[override]
        return self._backend.acquire_next(now=now)

    def update_progress(self, job_id: UUID, progress: int, *, now: datetime) -> None:  # type: ignore[override]
        self._backend.update_progress(job_id, max(0, min(100, int(progress))), now=now)

    def mark_completed(  # type: ignore[override]
        self,
        job_id: UUID,
        *,
        album_id: str | None,
        file_errors: Sequence[dict[str, str]],
        now: datetime,
    ) -> AlbumJob:
        return self._backend.finish(
            job_id,
            state=JobState.COMPLETED,
            album_id=album_id,
            error_message=None,
            file_errors=list(file_errors),
            now=now,
        )

    def mark_failed(  # type: ignore[override]
        self,
        job_id: UUID,
        *,
        error_message: str,
        album_id: str | None,
        file_errors: Sequence[dict[str, str]],
        now: datetime,
    ) -> AlbumJob:
        return self._backend.finish(
            job_id,
            state=JobState.FAILED,
            album_id=album_id,
            error_message=error_message,
            file_errors=list(file_errors),
            now=now,
        )

    def get_job(self, job_id: UUID, *, include_files: bool = False) -> AlbumJob:  # type: ignore[override]
        return self._backend.get_job(job_id, include_files=include_files)

    def list_jobs(self, session_id: str) -> list[AlbumJob]:  # type: ignore[override]
        return self._backend.list_jobs(session_id)

    def count_by_state(self, session_id: str | None = None) -> QueueStats:  # type: ignore[override]
        return self._backend.count_by_state(session_id)

    def release_expired(  # type: ignore[override]
        self, *, started_before: datetime, now: datetime
    ) -> list[AlbumJob]:
        return self._backend.release_expired(started_before=started_before, now=now)

    def purge_finished(self, *, older_than: datetime) -> int:  # type: ignore[override]
        return self._backend.purge_finished(older_than=older_than)

    def close(self) -> None:
        self._backend.close()

    # Helpers ------------------------------------------------------------

    @staticmethod
    def _is_sqlite_dsn(dsn: str) -> bool:
        return dsn == ":memory:" or dsn.startswith("sqlite:") or dsn.startswith("file:")


class _QueueBackend:
    """Backend protocol implemented by concrete database adapters."""

    def enqueue(self, job: AlbumJob) -> AlbumJob:
        raise NotImplementedError

    def acquire_next(self, *, now: datetime) -> AlbumJob | None:
        raise NotImplementedError

    def update_progress(self, job_id: UUID, progress: int, *, now: datetime) -> None:
        raise NotImplementedError

    def finish(
        self,
        job_id: UUID,
        *,
        state: JobState,
        album_id: str | None,
        error_message: str | None,
        file_errors: list[dict[str, str]],
        now: datetime,
    ) -> AlbumJob:
        raise NotImplementedError

    def get_job(self, job_id: UUID, *, include_files: bool) -> AlbumJob:
        raise NotImplementedError

    def list_jobs(self, session_id: str) -> list[AlbumJob]:
        raise NotImplementedError

    def count_by_state(self, session_id: str | None) -> QueueStats:
        raise NotImplementedError

    def release_expired(self, *, started_before: datetime, now: datetime) -> list[AlbumJob]:
        raise NotImplementedError

    def purge_finished(self, *, older_than: datetime) -> int:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _stats_from_rows(rows: Sequence[Mapping[str, Any]]) -> QueueStats:
    counts = {row["state"]: int(row["cnt"]) for row in rows}
    return QueueStats(
        waiting=counts.get(JobState.WAITING.value, 0),
        active=counts.get(JobState.ACTIVE.value, 0),
        completed=counts.get(JobState.COMPLETED.value, 0),
        failed=counts.get(JobState.FAILED.value, 0),
    )


class _SQLiteQueueBackend(_QueueBackend):
    """SQLite implementation used in unit tests and single-host deployments.

    One connection is shared by all threads; ``_lock`` serializes access and
    the claim ``UPDATE`` only succeeds while the row is still ``waiting``.
    """

    def __init__(self, config: PostgresQueueConfig) -> None:
        self.config = config
        self._lock = threading.RLock()
        self._conn = self._connect(config.dsn)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # Queue operations ---------------------------------------------------

    def enqueue(self, job: AlbumJob) -> AlbumJob:
        try:
            with self._transaction():
                self._enforce_backpressure()
                self._conn.execute(
                    """
                    INSERT INTO album_jobs (
                        id, user_id, event_name, album_name, session_id,
                        priority, state, progress, album_id, error_message,
                        file_errors, created_at, updated_at, started_at, finished_at
                    ) VALUES (
                        :id, :user_id, :event_name, :album_name, :session_id,
                        :priority, :state, :progress, :album_id, :error_message,
                        :file_errors, :created_at, :updated_at, :started_at, :finished_at
                    )
                    """,
                    self._serialize_job(job),
                )
                self._conn.executemany(
                    """
                    INSERT INTO album_job_files (job_id, position, name, size_bytes, mime_type, payload)
                    VALUES (:job_id, :position, :name, :size_bytes, :mime_type, :payload)
                    """,
                    [
                        {
                            "job_id": str(job.id),
                            "position": index,
                            "name": file.name,
                            "size_bytes": file.size,
                            "mime_type": file.mime_type,
                            "payload": sqlite3.Binary(file.payload),
                        }
                        for index, file in enumerate(job.files)
                    ],
                )
        except sqlite3.DatabaseError as exc:
            raise QueueUnavailableError("failed to enqueue job") from exc
        return job

    def acquire_next(self, *, now: datetime) -> AlbumJob | None:
        try:
            with self._transaction():
                row = self._conn.execute(
                    """
                    SELECT id
                    FROM album_jobs
                    WHERE state = :waiting
                    ORDER BY priority DESC, seq
                    LIMIT 1
                    """,
                    {"waiting": JobState.WAITING.value},
                ).fetchone()
                if row is None:
                    return None
                claimed = self._conn.execute(
                    """
                    UPDATE album_jobs
                    SET state = :active,
                        started_at = :now,
                        updated_at = :now
                    WHERE id = :id
                      AND state = :waiting
                    """,
                    {
                        "active": JobState.ACTIVE.value,
                        "waiting": JobState.WAITING.value,
                        "now": self._serialize_datetime(now),
                        "id": row["id"],
                    },
                )
                if claimed.rowcount != 1:
                    return None
                return self._get_job(row["id"], include_files=True)
        except sqlite3.DatabaseError as exc:
            raise QueueUnavailableError("failed to acquire job") from exc

    def update_progress(self, job_id: UUID, progress: int, *, now: datetime) -> None:
        try:
            with self._transaction():
                self._conn.execute(
                    """
                    UPDATE album_jobs
                    SET progress = :progress, updated_at = :now
                    WHERE id = :id AND state = :active
                    """,
                    {
                        "progress": progress,
                        "now": self._serialize_datetime(now),
                        "id": str(job_id),
                        "active": JobState.ACTIVE.value,
                    },
                )
        except sqlite3.DatabaseError as exc:
            raise QueueUnavailableError("failed to update job progress") from exc

    def finish(
        self,
        job_id: UUID,
        *,
        state: JobState,
        album_id: str | None,
        error_message: str | None,
        file_errors: list[dict[str, str]],
        now: datetime,
    ) -> AlbumJob:
        try:
            with self._transaction():
                updated = self._conn.execute(
                    """
                    UPDATE album_jobs
                    SET state = :state,
                        progress = CASE WHEN :state = 'completed' THEN 100 ELSE progress END,
                        album_id = :album_id,
                        error_message = :error_message,
                        file_errors = :file_errors,
                        finished_at = :now,
                        updated_at = :now
                    WHERE id = :id AND state = :active
                    """,
                    {
                        "state": state.value,
                        "album_id": album_id,
                        "error_message": error_message,
                        "file_errors": json.dumps(file_errors),
                        "now": self._serialize_datetime(now),
                        "id": str(job_id),
                        "active": JobState.ACTIVE.value,
                    },
                )
                if updated.rowcount != 1:
                    raise NotFoundError(f"active job '{job_id}' not found")
                self._conn.execute(
                    "DELETE FROM album_job_files WHERE job_id = :id", {"id": str(job_id)}
                )
                return self._get_job(str(job_id), include_files=False)
        except sqlite3.DatabaseError as exc:
            raise QueueUnavailableError("failed to finalize job") from exc

    def get_job(self, job_id: UUID, *, include_files: bool) -> AlbumJob:
        with self._lock:
            return self._get_job(str(job_id), include_files=include_files)

    def list_jobs(self, session_id: str) -> list[AlbumJob]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT *
                FROM album_jobs
                WHERE session_id = :session_id
                ORDER BY priority DESC, seq
                """,
                {"session_id": session_id},
            ).fetchall()
        return [self._deserialize_job(row) for row in rows]

    def count_by_state(self, session_id: str | None) -> QueueStats:
        query = "SELECT state, COUNT(*) AS cnt FROM album_jobs"
        params: dict[str, object] = {}
        if session_id is not None:
            query += " WHERE session_id = :session_id"
            params["session_id"] = session_id
        query += " GROUP BY state"
        try:
            with self._lock:
                rows = self._conn.execute(query, params).fetchall()
        except sqlite3.DatabaseError as exc:
            raise QueueUnavailableError("failed to count jobs") from exc
        return _stats_from_rows(rows)

    def release_expired(self, *, started_before: datetime, now: datetime) -> list[AlbumJob]:
        try:
            with self._transaction():
                rows = self._conn.execute(
                    """
                    SELECT id
                    FROM album_jobs
                    WHERE state = :active AND started_at < :cutoff
                    ORDER BY seq
                    """,
                    {
                        "active": JobState.ACTIVE.value,
                        "cutoff": self._serialize_datetime(started_before),
                    },
                ).fetchall()
                jobs: list[AlbumJob] = []
                for row in rows:
                    self._conn.execute(
                        """
                        UPDATE album_jobs
                        SET state = :failed,
                            error_message = :error_message,
                            finished_at = :now,
                            updated_at = :now
                        WHERE id = :id
                        """,
                        {
                            "failed": JobState.FAILED.value,
                            "error_message": LEASE_EXPIRED_MESSAGE,
                            "now": self._serialize_datetime(now),
                            "id": row["id"],
                        },
                    )
                    self._conn.execute(
                        "DELETE FROM album_job_files WHERE job_id = :id", {"id": row["id"]}
                    )
                    jobs.append(self._get_job(row["id"], include_files=False))
                return jobs
        except sqlite3.DatabaseError as exc:
            raise QueueUnavailableError("failed to release expired jobs") from exc

    def purge_finished(self, *, older_than: datetime) -> int:
        params = {
            "completed": JobState.COMPLETED.value,
            "failed": JobState.FAILED.value,
            "cutoff": self._serialize_datetime(older_than),
        }
        try:
            with self._transaction():
                self._conn.execute(
                    """
                    DELETE FROM album_job_files
                    WHERE job_id IN (
                        SELECT id FROM album_jobs
                        WHERE state IN (:completed, :failed) AND finished_at < :cutoff
                    )
                    """,
                    params,
                )
                deleted = self._conn.execute(
                    """
                    DELETE FROM album_jobs
                    WHERE state IN (:completed, :failed) AND finished_at < :cutoff
                    """,
                    params,
                )
                return deleted.rowcount
        except sqlite3.DatabaseError as exc:
            raise QueueUnavailableError("failed to purge finished jobs") from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # Internal utilities -------------------------------------------------

    def _connect(self, dsn: str) -> sqlite3.Connection:
        if dsn.startswith("sqlite:///"):
            path = dsn.replace("sqlite:///", "", 1) or ":memory:"
        elif dsn.startswith("sqlite://"):
            path = dsn.replace("sqlite://", "", 1) or ":memory:"
        else:
            path = dsn
        return sqlite3.connect(
            path,
            check_same_thread=False,
            isolation_level=None,
            uri=path.startswith("file:"),
        )

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    def _ensure_schema(self) -> None:
        with self._transaction():
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS album_jobs (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL,
                    event_name TEXT NOT NULL,
                    album_name TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    priority INTEGER NOT NULL DEFAULT 0,
                    state TEXT NOT NULL,
                    progress INTEGER NOT NULL DEFAULT 0,
                    album_id TEXT,
                    error_message TEXT,
                    file_errors TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    started_at TEXT,
                    finished_at TEXT
                )
                """
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS album_job_files (
                    job_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL,
                    mime_type TEXT NOT NULL,
                    payload BLOB NOT NULL,
                    PRIMARY KEY (job_id, position)
                )
                """
            )
            self._conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_album_jobs_ready
                    ON album_jobs(state, priority DESC, seq)
                """
            )
            self._conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_album_jobs_session
                    ON album_jobs(session_id, state)
                """
            )

    def _get_job(self, job_id: str, *, include_files: bool) -> AlbumJob:
        row = self._conn.execute(
            "SELECT * FROM album_jobs WHERE id = :id", {"id": job_id}
        ).fetchone()
        if row is None:
            raise NotFoundError(f"job '{job_id}' not found")
        job = self._deserialize_job(row)
        if include_files:
            file_rows = self._conn.execute(
                """
                SELECT name, size_bytes, mime_type, payload
                FROM album_job_files
                WHERE job_id = :id
                ORDER BY position
                """,
                {"id": job_id},
            ).fetchall()
            job.files = [
                FileDescriptor(
                    name=file_row["name"],
                    size=file_row["size_bytes"],
                    mime_type=file_row["mime_type"],
                    payload=bytes(file_row["payload"]),
                )
                for file_row in file_rows
            ]
        return job

    def _enforce_backpressure(self) -> None:
        limit = self.config.max_waiting_jobs
        if limit is None:
            return
        count = self._conn.execute(
            "SELECT COUNT(*) FROM album_jobs WHERE state = :waiting",
            {"waiting": JobState.WAITING.value},
        ).fetchone()[0]
        if count >= limit:
            raise QueueBusyError("album queue saturated")

    @staticmethod
    def _serialize_datetime(value: datetime | None) -> str | None:
        if value is None:
            return None
        return _utc(value).isoformat(timespec="microseconds")

    def _serialize_job(self, job: AlbumJob) -> dict[str, object]:
        return {
            "id": str(job.id),
            "user_id": job.user_id,
            "event_name": job.event_name,
            "album_name": job.album_name,
            "session_id": job.session_id,
            "priority": job.priority,
            "state": job.state.value,
            "progress": job.progress,
            "album_id": job.album_id,
            "error_message": job.error_message,
            "file_errors": json.dumps(job.file_errors),
            "created_at": self._serialize_datetime(job.created_at),
            "updated_at": self._serialize_datetime(job.updated_at),
            "started_at": self._serialize_datetime(job.started_at),
            "finished_at": self._serialize_datetime(job.finished_at),
        }

    def _deserialize_job(self, row: sqlite3.Row) -> AlbumJob:
        def _parse(value: str | None) -> datetime | None:
            if value is None:
                return None
            return _utc(datetime.fromisoformat(value))

        return AlbumJob(
            id=UUID(row["id"]),
            user_id=row["user_id"],
            event_name=row["event_name"],
            album_name=row["album_name"],
            session_id=row["session_id"],
            priority=row["priority"],
            state=JobState(row["state"]),
            created_at=_parse(row["created_at"]),  # type: ignore[arg-type]
            updated_at=_parse(row["updated_at"]),  # type: ignore[arg-type]
            progress=row["progress"],
            started_at=_parse(row["started_at"]),
            finished_at=_parse(row["finished_at"]),
            album_id=row["album_id"],
            error_message=row["error_message"],
            file_errors=json.loads(row["file_errors"] or "[]"),
        )


class _PostgresQueueBackend(_QueueBackend):
    """PostgreSQL implementation relying on psycopg for real deployments."""

    def __init__(self, config: PostgresQueueConfig) -> None:
        self.config = config
        self._lock = threading.RLock()
        try:
            self._conn = psycopg.connect(config.dsn, autocommit=False, row_factory=dict_row)
        except psycopg.Error as exc:
            raise QueueUnavailableError("cannot connect to queue database") from exc
        self._set_statement_timeout()
        self._ensure_schema()

    # Queue operations ---------------------------------------------------

    def enqueue(self, job: AlbumJob) -> AlbumJob:
        try:
            with self._transaction() as cur:
                self._enforce_backpressure(cur)
                cur.execute(
                    """
                    INSERT INTO album_jobs (
                        id, user_id, event_name, album_name, session_id,
                        priority, state, progress, album_id, error_message,
                        file_errors, created_at, updated_at, started_at, finished_at
                    ) VALUES (
                        %(id)s, %(user_id)s, %(event_name)s, %(album_name)s, %(session_id)s,
                        %(priority)s, %(state)s, %(progress)s, %(album_id)s, %(error_message)s,
                        %(file_errors)s::jsonb, %(created_at)s, %(updated_at)s,
                        %(started_at)s, %(finished_at)s
                    )
                    """,
                    self._serialize_job(job),
                )
                cur.executemany(
                    """
                    INSERT INTO album_job_files (job_id, position, name, size_bytes, mime_type, payload)
                    VALUES (%(job_id)s, %(position)s, %(name)s, %(size_bytes)s, %(mime_type)s, %(payload)s)
                    """,
                    [
                        {
                            "job_id": job.id,
                            "position": index,
                            "name": file.name,
                            "size_bytes": file.size,
                            "mime_type": file.mime_type,
                            "payload": file.payload,
                        }
                        for index, file in enumerate(job.files)
                    ],
                )
        except QueueBusyError:
            raise
        except psycopg.Error as exc:
            raise QueueUnavailableError("failed to enqueue job") from exc
        return job

    def acquire_next(self, *, now: datetime) -> AlbumJob | None:
        try:
            with self._transaction() as cur:
                cur.execute(
                    """
                    UPDATE album_jobs
                    SET state = %(active)s,
                        started_at = %(now)s,
                        updated_at = %(now)s
                    WHERE id = (
                        SELECT id
                        FROM album_jobs
                        WHERE state = %(waiting)s
                        ORDER BY priority DESC, seq
                        FOR UPDATE SKIP LOCKED
                        LIMIT 1
                    )
                    RETURNING *
                    """,
                    {
                        "active": JobState.ACTIVE.value,
                        "waiting": JobState.WAITING.value,
                        "now": _utc(now),
                    },
                )
                row = cur.fetchone()
                if row is None:
                    return None
                job = self._deserialize_job(row)
                job.files = self._load_files(cur, job.id)
                return job
        except psycopg.Error as exc:
            raise QueueUnavailableError("failed to acquire job") from exc

    def update_progress(self, job_id: UUID, progress: int, *, now: datetime) -> None:
        try:
            with self._transaction() as cur:
                cur.execute(
                    """
                    UPDATE album_jobs
                    SET progress = %(progress)s, updated_at = %(now)s
                    WHERE id = %(id)s AND state = %(active)s
                    """,
                    {
                        "progress": progress,
                        "now": _utc(now),
                        "id": job_id,
                        "active": JobState.ACTIVE.value,
                    },
                )
        except psycopg.Error as exc:
            raise QueueUnavailableError("failed to update job progress") from exc

    def finish(
        self,
        job_id: UUID,
        *,
        state: JobState,
        album_id: str | None,
        error_message: str | None,
        file_errors: list[dict[str, str]],
        now: datetime,
    ) -> AlbumJob:
        try:
            with self._transaction() as cur:
                cur.execute(
                    """
                    UPDATE album_jobs
                    SET state = %(state)s,
                        progress = CASE WHEN %(state)s = 'completed' THEN 100 ELSE progress END,
                        album_id = %(album_id)s,
                        error_message = %(error_message)s,
                        file_errors = %(file_errors)s::jsonb,
                        finished_at = %(now)s,
                        updated_at = %(now)s
                    WHERE id = %(id)s AND state = %(active)s
                    RETURNING *
                    """,
                    {
                        "state": state.value,
                        "album_id": album_id,
                        "error_message": error_message,
                        "file_errors": json.dumps(file_errors),
                        "now": _utc(now),
                        "id": job_id,
                        "active": JobState.ACTIVE.value,
                    },
                )
                row = cur.fetchone()
                if row is None:
                    raise NotFoundError(f"active job '{job_id}' not found")
                cur.execute("DELETE FROM album_job_files WHERE job_id = %(id)s", {"id": job_id})
                return self._deserialize_job(row)
        except psycopg.Error as exc:
            raise QueueUnavailableError("failed to finalize job") from exc

    def get_job(self, job_id: UUID, *, include_files: bool) -> AlbumJob:
        with self._transaction() as cur:
            cur.execute("SELECT * FROM album_jobs WHERE id = %(id)s", {"id": job_id})
            row = cur.fetchone()
            if row is None:
                raise NotFoundError(f"job '{job_id}' not found")
            job = self._deserialize_job(row)
            if include_files:
                job.files = self._load_files(cur, job.id)
            return job

    def list_jobs(self, session_id: str) -> list[AlbumJob]:
        with self._transaction() as cur:
            cur.execute(
                """
                SELECT *
                FROM album_jobs
                WHERE session_id = %(session_id)s
                ORDER BY priority DESC, seq
                """,
                {"session_id": session_id},
            )
            rows = cur.fetchall() or []
        return [self._deserialize_job(row) for row in rows]

    def count_by_state(self, session_id: str | None) -> QueueStats:
        query = "SELECT state, COUNT(*) AS cnt FROM album_jobs"
        params: dict[str, object] = {}
        if session_id is not None:
            query += " WHERE session_id = %(session_id)s"
            params["session_id"] = session_id
        query += " GROUP BY state"
        try:
            with self._transaction() as cur:
                cur.execute(query, params)
                rows = cur.fetchall() or []
        except psycopg.Error as exc:
            raise QueueUnavailableError("failed to count jobs") from exc
        return _stats_from_rows(rows)

    def release_expired(self, *, started_before: datetime, now: datetime) -> list[AlbumJob]:
        try:
            with self._transaction() as cur:
                cur.execute(
                    """
                    UPDATE album_jobs
                    SET state = %(failed)s,
                        error_message = %(error_message)s,
                        finished_at = %(now)s,
                        updated_at = %(now)s
                    WHERE state = %(active)s
                      AND started_at < %(cutoff)s
                    RETURNING *
                    """,
                    {
                        "failed": JobState.FAILED.value,
                        "active": JobState.ACTIVE.value,
                        "error_message": LEASE_EXPIRED_MESSAGE,
                        "now": _utc(now),
                        "cutoff": _utc(started_before),
                    },
                )
                rows = cur.fetchall() or []
                if rows:
                    cur.execute(
                        "DELETE FROM album_job_files WHERE job_id = ANY(%(ids)s)",
                        {"ids": [row["id"] for row in rows]},
                    )
                jobs = [self._deserialize_job(row) for row in rows]
                jobs.sort(key=lambda job: job.created_at)
                return jobs
        except psycopg.Error as exc:
            raise QueueUnavailableError("failed to release expired jobs") from exc

    def purge_finished(self, *, older_than: datetime) -> int:
        try:
            with self._transaction() as cur:
                cur.execute(
                    """
                    DELETE FROM album_jobs
                    WHERE state IN (%(completed)s, %(failed)s)
                      AND finished_at < %(cutoff)s
                    """,
                    {
                        "completed": JobState.COMPLETED.value,
                        "failed": JobState.FAILED.value,
                        "cutoff": _utc(older_than),
                    },
                )
                return cur.rowcount
        except psycopg.Error as exc:
            raise QueueUnavailableError("failed to purge finished jobs") from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # Internal utilities -------------------------------------------------

    @contextmanager
    def _transaction(self):
        with self._lock, self._conn.cursor() as cur:
            try:
                yield cur
            except BaseException:
                self._conn.rollback()
                raise
            else:
                self._conn.commit()

    def _set_statement_timeout(self) -> None:
        with self._conn.cursor() as cur:
            cur.execute(f"SET statement_timeout = {int(self.config.statement_timeout_ms)}")
        self._conn.commit()

    def _ensure_schema(self) -> None:
        with self._conn.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS album_jobs (
                    id UUID PRIMARY KEY,
                    seq BIGSERIAL UNIQUE,
                    user_id TEXT NOT NULL,
                    event_name TEXT NOT NULL,
                    album_name TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    priority INTEGER NOT NULL DEFAULT 0,
                    state TEXT NOT NULL,
                    progress INTEGER NOT NULL DEFAULT 0,
                    album_id TEXT,
                    error_message TEXT,
                    file_errors JSONB NOT NULL DEFAULT '[]'::jsonb,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL,
                    started_at TIMESTAMPTZ,
                    finished_at TIMESTAMPTZ
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS album_job_files (
                    job_id UUID NOT NULL REFERENCES album_jobs(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    size_bytes BIGINT NOT NULL,
                    mime_type TEXT NOT NULL,
                    payload BYTEA NOT NULL,
                    PRIMARY KEY (job_id, position)
                )
                """
            )
            cur.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_album_jobs_ready
                    ON album_jobs(state, priority DESC, seq)
                """
            )
            cur.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_album_jobs_session
                    ON album_jobs(session_id, state)
                """
            )
        self._conn.commit()

    def _enforce_backpressure(self, cur) -> None:
        limit = self.config.max_waiting_jobs
        if limit is None:
            return
        cur.execute(
            "SELECT COUNT(*) AS cnt FROM album_jobs WHERE state = %(waiting)s",
            {"waiting": JobState.WAITING.value},
        )
        row = cur.fetchone()
        count = 0 if row is None else row["cnt"]
        if count >= limit:
            raise QueueBusyError("album queue saturated")

    @staticmethod
    def _load_files(cur, job_id: UUID) -> list[FileDescriptor]:
        cur.execute(
            """
            SELECT name, size_bytes, mime_type, payload
            FROM album_job_files
            WHERE job_id = %(id)s
            ORDER BY position
            """,
            {"id": job_id},
        )
        return [
            FileDescriptor(
                name=row["name"],
                size=row["size_bytes"],
                mime_type=row["mime_type"],
                payload=bytes(row["payload"]),
            )
            for row in cur.fetchall() or []
        ]

    @staticmethod
    def _serialize_job(job: AlbumJob) -> dict[str, object]:
        return {
            "id": job.id,
            "user_id": job.user_id,
            "event_name": job.event_name,
            "album_name": job.album_name,
            "session_id": job.session_id,
            "priority": job.priority,
            "state": job.state.value,
            "progress": job.progress,
            "album_id": job.album_id,
            "error_message": job.error_message,
            "file_errors": json.dumps(job.file_errors),
            "created_at": _utc(job.created_at),
            "updated_at": _utc(job.updated_at),
            "started_at": _utc(job.started_at) if job.started_at else None,
            "finished_at": _utc(job.finished_at) if job.finished_at else None,
        }

    @staticmethod
    def _deserialize_job(row: Mapping[str, Any]) -> AlbumJob:
        job_id = row["id"]
        return AlbumJob(
            id=job_id if isinstance(job_id, UUID) else UUID(str(job_id)),
            user_id=row["user_id"],
            event_name=row["event_name"],
            album_name=row["album_name"],
            session_id=row["session_id"],
            priority=row["priority"],
            state=JobState(row["state"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            progress=row["progress"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            album_id=row["album_id"],
            error_message=row["error_message"],
            file_errors=list(row["file_errors"] or []),
        )
