"""
Game Watch notification worker.

Consumes the create-notifications queue with rq.

Usage:
    python -m backend.src.worker.main
    python -m backend.src.worker.main --burst
    python -m backend.src.worker.main --concurrency 8
    python -m backend.src.worker.main --list-failed
"""

from __future__ import annotations

import argparse
import logging
import sys

import structlog
from redis import Redis
from rq import Worker
from rq.worker_pool import WorkerPool

from backend.src.config import Settings, settings
from backend.src.worker.queue import dead_letter_job_ids, get_queue

logger = structlog.get_logger(__name__)


def configure_logging(level: str) -> None:
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    # rq logs through the standard library
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def start_worker(app_settings: Settings, burst: bool = False, concurrency: int | None = None) -> None:
    workers = concurrency or app_settings.create_notifications_concurrency
    queue_name = app_settings.create_notifications_queue

    redis_conn = Redis.from_url(app_settings.redis_url)
    redis_conn.ping()
    logger.info(
        "worker_starting",
        queue=queue_name,
        concurrency=workers,
        burst=burst,
    )

    if workers > 1:
        pool = WorkerPool([queue_name], connection=redis_conn, num_workers=workers)
        pool.start(burst=burst, logging_level=app_settings.log_level.upper())
    else:
        # The scheduler moves retried jobs back onto the queue once their interval passes
        worker = Worker([get_queue(redis_conn, app_settings)], connection=redis_conn)
        worker.work(burst=burst, with_scheduler=True, logging_level=app_settings.log_level.upper())


def list_failed_jobs(app_settings: Settings) -> list[str]:
    redis_conn = Redis.from_url(app_settings.redis_url)
    job_ids = dead_letter_job_ids(get_queue(redis_conn, app_settings))
    for job_id in job_ids:
        print(job_id)
    return job_ids


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Game Watch notification worker")
    parser.add_argument("--burst", action="store_true", help="Process all queued jobs and exit")
    parser.add_argument("--concurrency", type=int, default=None, help="Number of worker processes")
    parser.add_argument("--list-failed", action="store_true", help="Print dead-lettered job ids and exit")
    parser.add_argument("--verbose", action="store_true")

    args = parser.parse_args(argv)

    configure_logging("DEBUG" if args.verbose else settings.log_level)

    if args.concurrency is not None and args.concurrency < 1:
        parser.error("--concurrency must be at least 1")

    if args.list_failed:
        list_failed_jobs(settings)
        return 0

    try:
        start_worker(settings, burst=args.burst, concurrency=args.concurrency)
    except KeyboardInterrupt:
        logger.info("worker_stopped")
    except Exception:
        logger.error("worker_crashed", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
