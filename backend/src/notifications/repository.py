from __future__ import annotations

import hashlib
import json
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.contracts.models import Notification, NotificationType


def _canonical_sha256(value: Any) -> str:
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def compute_run_key(
    existing_game_data: dict[str, Any] | None,
    resolved_game_data: dict[str, Any],
) -> str:
    """Identify a detection run by the snapshot pair it compared.

    A redelivered job carries the same pair, so it maps to the same run.
    """
    return _canonical_sha256({"existing": existing_game_data, "resolved": resolved_game_data})


def compute_dedup_hash(run_key: str, payload: dict[str, Any]) -> str:
    """Dedup key of one notification: the run that detected it plus its payload.

    The same event seen again in a later run (a second sale at the same
    prices, a source enabled again) gets a new key.
    """
    return _canonical_sha256({"run": run_key, "payload": payload})


class NotificationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def exists(
        self,
        source_id: uuid.UUID,
        notification_type: NotificationType,
        dedup_hash: str,
    ) -> bool:
        stmt = select(Notification.id).where(
            Notification.info_source_id == source_id,
            Notification.type == notification_type,
            Notification.dedup_hash == dedup_hash,
        )
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def add(
        self,
        *,
        notification_type: NotificationType,
        source_id: uuid.UUID,
        game_id: uuid.UUID,
        user_id: uuid.UUID,
        payload: dict[str, Any],
        dedup_hash: str,
        created_at: datetime,
    ) -> Notification:
        notification = Notification(
            id=uuid.uuid4(),
            type=notification_type,
            info_source_id=source_id,
            game_id=game_id,
            user_id=user_id,
            data=payload,
            dedup_hash=dedup_hash,
            read=False,
            created_at=created_at,
        )
        self._session.add(notification)
        await self._session.flush()
        return notification

    async def list_for_source(self, source_id: uuid.UUID) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.info_source_id == source_id)
            .order_by(Notification.created_at)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
