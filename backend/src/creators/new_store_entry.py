from __future__ import annotations

from datetime import date

import structlog

from backend.src.contracts.models import (
    GameData,
    InfoSourceType,
    NotificationDraft,
    NotificationType,
)
from backend.src.creators.base import ALL_SOURCE_TYPES

logger = structlog.get_logger(__name__)


class NewStoreEntryNotificationCreator:
    """Detect a listing seen for the first time, or one that was re-enabled."""

    name = "new_store_entry"
    supported_types = ALL_SOURCE_TYPES

    def detect(
        self,
        source_type: InfoSourceType,
        previous: GameData | None,
        current: GameData,
        *,
        today: date,
    ) -> NotificationDraft | None:
        if source_type not in self.supported_types or current.disabled:
            return None
        if previous is not None and not previous.disabled:
            return None

        logger.info(
            "new_store_entry_detected",
            store_id=current.id,
            reenabled=previous is not None,
        )
        return NotificationDraft(
            type=NotificationType.NEW_STORE_ENTRY,
            payload={
                "storeUrl": current.store_url,
                "thumbnailUrl": current.thumbnail_url,
            },
        )
