"""Standalone worker process draining the album queue."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from ..config import load_config
from ..dependencies import build_services
from ..logging import configure_logging

logger = logging.getLogger(__name__)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run AlbumCraft queue workers.")
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of concurrent workers (defaults to ALBUMCRAFT_WORKER_COUNT).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one job and exit.",
    )
    return parser.parse_args(argv)


async def run(*, workers: int | None = None, once: bool = False) -> int:
    config = load_config()
    if workers is not None:
        config = config.model_copy(update={"worker_count": workers})
    services = build_services(config)

    if once:
        processed = await services.build_worker().run_once()
        logger.info("worker.runner.once", extra={"processed": processed})
        return 0

    pool = services.build_worker_pool()
    pool.start()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except NotImplementedError:  # pragma: no cover - Windows event loop
            pass
    await stop.wait()
    await pool.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging()
    try:
        return asyncio.run(run(workers=args.workers, once=args.once))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
