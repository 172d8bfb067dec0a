from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.src.contracts.models import Game, InfoSource, User
from backend.src.errors import SourceNotFoundError


@dataclass(frozen=True)
class SourceWithOwner:
    source: InfoSource
    game: Game
    user: User


class SourceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, source_id: uuid.UUID) -> InfoSource | None:
        stmt = (
            select(InfoSource)
            .where(InfoSource.id == source_id)
            .options(selectinload(InfoSource.game).selectinload(Game.user))
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_source_with_owner(self, source_id: uuid.UUID) -> SourceWithOwner:
        source = await self.get_by_id(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return SourceWithOwner(source=source, game=source.game, user=source.game.user)
