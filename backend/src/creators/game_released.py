from __future__ import annotations

from datetime import date

import structlog

from backend.src.contracts.models import (
    GameData,
    InfoSourceType,
    NotificationDraft,
    NotificationType,
)
from backend.src.creators.base import ALL_SOURCE_TYPES, is_release_transition, release_info

logger = structlog.get_logger(__name__)


class GameReleasedNotificationCreator:
    """Detect a game going from coming soon (or a future date) to released."""

    name = "game_released"
    supported_types = ALL_SOURCE_TYPES

    def detect(
        self,
        source_type: InfoSourceType,
        previous: GameData | None,
        current: GameData,
        *,
        today: date,
    ) -> NotificationDraft | None:
        if source_type not in self.supported_types or previous is None:
            return None
        if not is_release_transition(previous, current, today):
            return None

        released = release_info(current)
        logger.info("game_release_detected", store_id=current.id, release_date=released.display)
        return NotificationDraft(
            type=NotificationType.GAME_RELEASED,
            payload={"releaseDate": released.display},
        )
