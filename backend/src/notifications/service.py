from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Sequence
from datetime import date, datetime, timezone
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.contracts.interfaces import IMailService, INotificationCreator
from backend.src.contracts.models import (
    GameData,
    InfoSourceType,
    Notification,
    NotificationDraft,
    NotificationRead,
    parse_game_data,
)
from backend.src.errors import JobSchemaError
from backend.src.notifications.repository import (
    NotificationRepository,
    compute_dedup_hash,
    compute_run_key,
)
from backend.src.sources.repository import SourceRepository, SourceWithOwner

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationService:
    """Turns one (existing, resolved) snapshot pair into persisted notifications.

    Steps, per call:
    1. Look up the info source together with its game and owning user.
    2. Run every creator against the pair. A creator that raises is logged
       and skipped; the others still run.
    3. Persist each detected notification unless this detection run already
       stored it (same source, type, run and payload), then commit. The run
       is ``run_key`` (the rq job id in the worker), else the snapshot pair.
    4. Email each new notification when the user opted in and has an
       address. Mail failures are logged and never undo step 3.

    Lookup and persistence errors propagate to the caller.
    """

    def __init__(
        self,
        creators: Sequence[INotificationCreator],
        mail_service: IMailService,
        session: AsyncSession,
        *,
        clock: Callable[[], datetime] = _utcnow,
        lookup_timeout_seconds: float = 15.0,
    ) -> None:
        self._creators = list(creators)
        self._mail = mail_service
        self._session = session
        self._sources = SourceRepository(session)
        self._notifications = NotificationRepository(session)
        self._clock = clock
        self._lookup_timeout = lookup_timeout_seconds

    async def create_notifications(
        self,
        source_id: uuid.UUID,
        existing_game_data: dict[str, Any] | None,
        resolved_game_data: dict[str, Any],
        *,
        run_key: str | None = None,
    ) -> list[Notification]:
        log = logger.bind(source_id=str(source_id))

        owned = await asyncio.wait_for(
            self._sources.get_source_with_owner(source_id),
            timeout=self._lookup_timeout,
        )
        source_type = InfoSourceType(owned.source.type)
        previous, current = self._parse_snapshots(source_type, existing_game_data, resolved_game_data)

        now = self._clock()
        drafts = self._detect(source_type, previous, current, now.date(), log)
        if not drafts:
            log.info("no_notifications_detected", source_type=source_type.value)
            return []

        if run_key is None:
            run_key = compute_run_key(existing_game_data, resolved_game_data)

        created: list[Notification] = []
        for draft in drafts:
            dedup_hash = compute_dedup_hash(run_key, draft.payload)
            if await self._notifications.exists(source_id, draft.type, dedup_hash):
                log.info("notification_already_exists", notification_type=draft.type.value)
                continue

            notification = await self._notifications.add(
                notification_type=draft.type,
                source_id=owned.source.id,
                game_id=owned.game.id,
                user_id=owned.user.id,
                payload=draft.payload,
                dedup_hash=dedup_hash,
                created_at=now,
            )
            created.append(notification)

        reads = [self._to_read(notification, owned, source_type, current) for notification in created]
        recipient = owned.user.email if owned.user.enable_email_notifications else None

        await self._session.commit()
        log.info(
            "notifications_persisted",
            count=len(created),
            types=[read.type.value for read in reads],
        )

        if reads:
            await self._dispatch_mail(recipient, reads, log)
        return created

    def _parse_snapshots(
        self,
        source_type: InfoSourceType,
        existing_game_data: dict[str, Any] | None,
        resolved_game_data: dict[str, Any],
    ) -> tuple[GameData | None, GameData]:
        try:
            previous = parse_game_data(source_type, existing_game_data)
            current = parse_game_data(source_type, resolved_game_data)
        except ValidationError as exc:
            raise JobSchemaError(
                f"Snapshot does not match {source_type.value} game data: {exc}"
            ) from exc
        if current is None:
            raise JobSchemaError("Resolved game data is missing")
        return previous, current

    def _detect(
        self,
        source_type: InfoSourceType,
        previous: GameData | None,
        current: GameData,
        today: date,
        log: Any,
    ) -> list[NotificationDraft]:
        drafts: list[NotificationDraft] = []
        for creator in self._creators:
            creator_name = getattr(creator, "name", type(creator).__name__)
            try:
                draft = creator.detect(source_type, previous, current, today=today)
            except Exception:
                log.error("notification_creator_failed", creator=creator_name, exc_info=True)
                continue
            if draft is not None:
                log.info(
                    "notification_detected",
                    creator=creator_name,
                    notification_type=draft.type.value,
                )
                drafts.append(draft)
        return drafts

    @staticmethod
    def _to_read(
        notification: Notification,
        owned: SourceWithOwner,
        source_type: InfoSourceType,
        current: GameData,
    ) -> NotificationRead:
        return NotificationRead(
            id=notification.id,
            type=notification.type,
            source_id=owned.source.id,
            source_type=source_type,
            game_id=owned.game.id,
            game_name=owned.game.name or current.full_name,
            store_url=current.store_url,
            thumbnail_url=current.thumbnail_url,
            payload=notification.data,
            created_at=notification.created_at,
        )

    async def _dispatch_mail(
        self,
        recipient: str | None,
        reads: list[NotificationRead],
        log: Any,
    ) -> None:
        if not recipient:
            log.info("email_notifications_disabled")
            return

        for read in reads:
            mail_log = log.bind(notification_id=str(read.id), notification_type=read.type.value)
            try:
                sent = await self._mail.send(recipient, read)
            except Exception:
                mail_log.error("notification_mail_failed", exc_info=True)
                continue

            if sent:
                mail_log.info("notification_mail_sent")
            else:
                mail_log.warning("notification_mail_not_delivered")
