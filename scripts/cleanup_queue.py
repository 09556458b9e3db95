"""Cron entry point for purging finished album jobs and expired notifications."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from albumcraft.config import load_config
from albumcraft.db import build_database
from albumcraft.dependencies import build_queue
from albumcraft.lifecycle import queue_cleanup_once
from albumcraft.notifications.notification_log import NotificationLog
from albumcraft.notifications.notification_service import NotificationPublisher


@dataclass(slots=True)
class CleanupReport:
    jobs_removed: int
    events_removed: int
    dry_run: bool
    jobs_expired: int = 0


def perform_cleanup(*, dry_run: bool, reference_time: datetime | None = None) -> CleanupReport:
    """Execute cleanup logic and return summary counters."""
    config = load_config()
    database = build_database(config.database_url)
    queue = build_queue(config)
    notification_log = NotificationLog(
        database.session_factory,
        limit=config.notification_log_limit,
        ttl_seconds=config.notification_log_ttl_seconds,
    )
    retention = timedelta(hours=config.job_retention_hours)
    now = reference_time or datetime.now(timezone.utc)

    try:
        if dry_run:
            stats = queue.count_by_state()
            return CleanupReport(
                jobs_removed=stats.completed + stats.failed,
                events_removed=0,
                dry_run=True,
            )
        summary = queue_cleanup_once(
            queue=queue,
            notification_log=notification_log,
            retention=retention,
            lease=timedelta(seconds=config.job_lease_seconds),
            publisher=NotificationPublisher(notification_log),
            now=now,
        )
    finally:
        queue.close()
        database.engine.dispose()
    return CleanupReport(
        jobs_removed=summary.purged_jobs,
        events_removed=summary.pruned_events,
        dry_run=False,
        jobs_expired=summary.expired_jobs,
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fail stale album jobs, purge finished ones and expired notifications.")
    parser.add_argument("--dry-run", action="store_true", help="Only report counts without deleting rows.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    try:
        report = perform_cleanup(dry_run=args.dry_run)
    except Exception as exc:
        print(f"cleanup failed: {exc}", file=sys.stderr)
        return 2

    if report.dry_run:
        print(f"cleanup dry-run, terminal_jobs={report.jobs_removed}", file=sys.stdout)
    else:
        print(
            f"cleanup done, jobs_removed={report.jobs_removed}, events_removed={report.events_removed}, "
            f"jobs_expired={report.jobs_expired}",
            file=sys.stdout,
        )
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
