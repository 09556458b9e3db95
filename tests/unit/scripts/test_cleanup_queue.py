from datetime import datetime, timedelta, timezone
import importlib.util
import sys
from pathlib import Path
from uuid import uuid4

from albumcraft.config import AppConfig
from albumcraft.domain.models import AlbumJob, JobState
from albumcraft.infrastructure.queue import PostgresJobQueue, PostgresQueueConfig


PROJECT_ROOT = Path(__file__).resolve().parents[3]
MODULE_PATH = PROJECT_ROOT / "scripts" / "cleanup_queue.py"
SPEC = importlib.util.spec_from_file_location("cleanup_queue_module", MODULE_PATH)
cleanup_queue = importlib.util.module_from_spec(SPEC)
assert SPEC and SPEC.loader
sys.modules["cleanup_queue_module"] = cleanup_queue
SPEC.loader.exec_module(cleanup_queue)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _seed(dsn: str) -> None:
    queue = PostgresJobQueue(config=PostgresQueueConfig(dsn=dsn))
    for index, finished_at in enumerate((NOW - timedelta(days=3), NOW)):
        job = queue.enqueue(
            AlbumJob(
                id=uuid4(),
                user_id="user-1",
                event_name="Wedding",
                album_name=f"album-{index}",
                session_id="S",
                priority=2 - index,
                state=JobState.WAITING,
                created_at=NOW,
                updated_at=NOW,
            )
        )
        queue.acquire_next(now=NOW)
        queue.mark_completed(job.id, album_id=None, file_errors=[], now=finished_at)
    queue.close()


def _config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        database_url=f"sqlite:///{tmp_path / 'albums.db'}",
        queue_database_url=f"sqlite:///{tmp_path / 'queue.db'}",
        job_retention_hours=24,
    )


def test_perform_cleanup_dry_run(monkeypatch, tmp_path):
    config = _config(tmp_path)
    _seed(config.effective_queue_url)
    monkeypatch.setattr(cleanup_queue, "load_config", lambda: config)

    report = cleanup_queue.perform_cleanup(dry_run=True, reference_time=NOW)

    assert report.dry_run is True
    assert report.jobs_removed == 2
    assert report.events_removed == 0


def test_perform_cleanup_purges_old_jobs(monkeypatch, tmp_path):
    config = _config(tmp_path)
    _seed(config.effective_queue_url)
    monkeypatch.setattr(cleanup_queue, "load_config", lambda: config)

    report = cleanup_queue.perform_cleanup(dry_run=False, reference_time=NOW)

    assert report.dry_run is False
    assert report.jobs_removed == 1


def test_main_returns_error_code_on_failure(monkeypatch, capsys):
    def _boom(*, dry_run):
        raise RuntimeError("queue database unreachable")

    monkeypatch.setattr(cleanup_queue, "perform_cleanup", _boom)

    assert cleanup_queue.main(["--dry-run"]) == 2
    assert "queue database unreachable" in capsys.readouterr().err


def test_main_prints_summary(monkeypatch, capsys):
    monkeypatch.setattr(
        cleanup_queue,
        "perform_cleanup",
        lambda *, dry_run: cleanup_queue.CleanupReport(
            jobs_removed=4, events_removed=7, dry_run=dry_run
        ),
    )

    assert cleanup_queue.main([]) == 0
    assert "jobs_removed=4, events_removed=7" in capsys.readouterr().out
