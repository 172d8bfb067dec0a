from __future__ import annotations

from datetime import date

import structlog

from backend.src.contracts.models import (
    GameData,
    InfoSourceType,
    NotificationDraft,
    NotificationType,
)
from backend.src.creators.base import ALL_SOURCE_TYPES, final_price_cents

logger = structlog.get_logger(__name__)


class GameReducedNotificationCreator:
    """Detect a drop of the final price between two snapshots."""

    name = "game_reduced"
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

        old_price = final_price_cents(previous)
        new_price = final_price_cents(current)
        if old_price is None or new_price is None:
            return None
        if old_price <= 0 or new_price >= old_price:
            return None

        discount_percentage = (old_price - new_price) * 100 // old_price

        logger.info(
            "price_reduction_detected",
            store_id=current.id,
            old_price=old_price,
            new_price=new_price,
            discount_percentage=discount_percentage,
        )
        return NotificationDraft(
            type=NotificationType.GAME_REDUCED,
            payload={
                "oldPrice": old_price,
                "newPrice": new_price,
                "discountPercentage": discount_percentage,
            },
        )
