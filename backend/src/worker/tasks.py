"""rq task that turns a create-notifications job into notifications.

Job lifecycle: ``received -> processing -> (completed | failed)``.

- Malformed payloads (job or snapshot shape) are logged, reported and
  acknowledged. They are never retried.
- Any other error is logged with the source id, reported, and re-raised so
  rq applies the job's retry policy and, once exhausted, moves it to the
  failed job registry.
"""

from __future__ import annotations

import asyncio
import enum
import uuid
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager, AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import structlog
from pydantic import ValidationError
from redis import Redis
from rq import get_current_job
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.src.config import Settings, settings
from backend.src.contracts.interfaces import IErrorReporter, IMailService, INotificationCreator
from backend.src.contracts.models import CreateNotificationsJob
from backend.src.creators import DEFAULT_CREATORS
from backend.src.database import job_session_factory
from backend.src.errors import JobSchemaError
from backend.src.notifications.service import NotificationService
from backend.src.notifier.email_notifier import ResendMailTransport
from backend.src.notifier.mail_service import MailService
from backend.src.worker.reporting import ErrorReporter
from backend.src.worker.uow import notification_uow

logger = structlog.get_logger(__name__)

SessionFactoryOpener = Callable[[], AbstractAsyncContextManager[async_sessionmaker[AsyncSession]]]
SourceLock = Callable[[uuid.UUID], AbstractContextManager[Any]]


class JobState(str, enum.Enum):
    RECEIVED = "received"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WorkerRuntime:
    """Collaborators shared by every job a worker process runs.

    Nothing here holds per-job state: each job opens its own engine and
    session through ``open_session_factory``.
    """

    settings: Settings
    mail_service: IMailService
    error_reporter: IErrorReporter
    open_session_factory: SessionFactoryOpener
    source_lock: SourceLock
    creators: Sequence[INotificationCreator] = DEFAULT_CREATORS
    clock: Callable[[], datetime] = field(default=_utcnow)


def redis_source_lock(redis_conn: Redis, app_settings: Settings) -> SourceLock:
    """Per-source mutual exclusion, so overlapping jobs for one source run one at a time."""

    def _lock(source_id: uuid.UUID) -> AbstractContextManager[Any]:
        return redis_conn.lock(
            f"notifier:source-lock:{source_id}",
            timeout=app_settings.source_lock_timeout_seconds,
            blocking_timeout=app_settings.source_lock_wait_seconds,
        )

    return _lock


def build_runtime(app_settings: Settings) -> WorkerRuntime:
    redis_conn = Redis.from_url(app_settings.redis_url)
    mail_service = MailService(
        ResendMailTransport(app_settings),
        frontend_url=app_settings.frontend_url,
        timeout_seconds=app_settings.mail_timeout_seconds,
    )
    return WorkerRuntime(
        settings=app_settings,
        mail_service=mail_service,
        error_reporter=ErrorReporter(app_settings.error_report_dir),
        open_session_factory=lambda: job_session_factory(app_settings.database_url),
        source_lock=redis_source_lock(redis_conn, app_settings),
    )


@lru_cache(maxsize=1)
def get_runtime() -> WorkerRuntime:
    return build_runtime(settings)


async def process_job(
    job: CreateNotificationsJob,
    runtime: WorkerRuntime,
    run_key: str | None = None,
) -> list[str]:
    async with runtime.open_session_factory() as session_factory:
        async with notification_uow(session_factory) as session:
            service = NotificationService(
                runtime.creators,
                runtime.mail_service,
                session,
                clock=runtime.clock,
                lookup_timeout_seconds=runtime.settings.lookup_timeout_seconds,
            )
            notifications = await service.create_notifications(
                job.source_id,
                job.existing_game_data,
                job.resolved_game_data,
                run_key=run_key,
            )
            return [str(notification.id) for notification in notifications]


def _current_job_id() -> str | None:
    current = get_current_job()
    return current.id if current is not None else None


def run_create_notifications(payload: dict[str, Any], runtime: WorkerRuntime) -> list[str]:
    job_id = _current_job_id()
    log = logger.bind(job_id=job_id)
    log.info("job_state_changed", state=JobState.RECEIVED.value)

    try:
        job = CreateNotificationsJob.model_validate(payload)
    except ValidationError as exc:
        log.error(
            "job_payload_invalid",
            state=JobState.FAILED.value,
            error_count=exc.error_count(),
            error=str(exc),
        )
        runtime.error_reporter.capture(exc, {"stage": "deserialize", "retried": False})
        return []

    source_id = str(job.source_id)
    log = log.bind(source_id=source_id)

    with structlog.contextvars.bound_contextvars(source_id=source_id):
        log.info("job_state_changed", state=JobState.PROCESSING.value)
        try:
            with runtime.source_lock(job.source_id):
                notification_ids = asyncio.run(process_job(job, runtime, run_key=job_id))
        except JobSchemaError as exc:
            log.error("job_payload_invalid", state=JobState.FAILED.value, error=str(exc))
            runtime.error_reporter.capture(
                exc,
                {"source_id": source_id, "stage": "parse_snapshots", "retried": False},
            )
            return []
        except Exception as exc:
            # Re-raised so rq records the failure and schedules the retry
            log.error("create_notifications_failed", state=JobState.FAILED.value, exc_info=True)
            runtime.error_reporter.capture(exc, {"source_id": source_id, "stage": "processing"})
            raise

        log.info(
            "job_state_changed",
            state=JobState.COMPLETED.value,
            notification_count=len(notification_ids),
        )
        return notification_ids


def create_notifications_task(payload: dict[str, Any]) -> list[str]:
    """Entry point enqueued on the create-notifications queue."""
    return run_create_notifications(payload, get_runtime())
