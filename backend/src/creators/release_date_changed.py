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


class ReleaseDateChangedNotificationCreator:
    """Detect a shifted release date.

    A pair that moves the game from upcoming to released belongs to
    GameReleasedNotificationCreator and is skipped here.
    """

    name = "release_date_changed"
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

        old_release = release_info(previous)
        new_release = release_info(current)
        if not old_release.has_date or not new_release.has_date:
            return None
        if old_release.same_date_as(new_release):
            return None
        if is_release_transition(previous, current, today):
            return None

        logger.info(
            "release_date_change_detected",
            store_id=current.id,
            old_release_date=old_release.display,
            new_release_date=new_release.display,
        )
        return NotificationDraft(
            type=NotificationType.RELEASE_DATE_CHANGED,
            payload={
                "oldReleaseDate": old_release.display,
                "newReleaseDate": new_release.display,
            },
        )
