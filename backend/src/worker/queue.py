from __future__ import annotations

from redis import Redis
from rq import Queue, Retry
from rq.job import Job

from backend.src.config import Settings
from backend.src.contracts.models import CreateNotificationsJob
from backend.src.worker.tasks import create_notifications_task


def get_queue(redis_conn: Redis, settings: Settings) -> Queue:
    return Queue(settings.create_notifications_queue, connection=redis_conn)


def build_retry(settings: Settings) -> Retry | None:
    """Retry policy for a job allowed ``job_max_attempts`` runs in total."""
    max_retries = settings.job_max_attempts - 1
    if max_retries < 1:
        return None
    return Retry(max=max_retries, interval=settings.job_retry_intervals)


def enqueue_create_notifications(
    queue: Queue,
    job: CreateNotificationsJob,
    settings: Settings,
) -> Job:
    """Put a create-notifications job on the queue.

    Jobs that exhaust their retries end up in the queue's
    ``failed_job_registry``, which serves as the dead-letter list.
    """
    return queue.enqueue(
        create_notifications_task,
        job.model_dump(mode="json", by_alias=True),
        job_timeout=settings.job_timeout_seconds,
        retry=build_retry(settings),
        failure_ttl=settings.job_failure_ttl_seconds,
        description=f"create-notifications source={job.source_id}",
    )


def dead_letter_job_ids(queue: Queue) -> list[str]:
    return queue.failed_job_registry.get_job_ids()
