from __future__ import annotations

from datetime import date

import structlog

from backend.src.contracts.models import (
    GameData,
    InfoSourceType,
    NotificationDraft,
    NotificationType,
    SteamGameData,
)

logger = structlog.get_logger(__name__)


class NewMetaCriticRatingNotificationCreator:
    """Detect a critic score that is new or differs from the previous one.

    Only Steam listings carry a critic score.
    """

    name = "new_meta_critic_rating"
    supported_types = frozenset({InfoSourceType.STEAM})

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
        if not isinstance(current, SteamGameData) or not isinstance(previous, SteamGameData):
            return None

        rating = current.metacritic
        if rating is None:
            return None

        old_score = previous.metacritic.score if previous.metacritic is not None else None
        if old_score == rating.score:
            return None

        logger.info(
            "critic_rating_detected",
            store_id=current.id,
            old_score=old_score,
            new_score=rating.score,
        )
        return NotificationDraft(
            type=NotificationType.NEW_META_CRITIC_RATING,
            payload={"oldScore": old_score, "newScore": rating.score, "url": rating.url},
        )
