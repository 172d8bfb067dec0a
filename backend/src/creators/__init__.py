from backend.src.creators.game_reduced import GameReducedNotificationCreator
from backend.src.creators.game_released import GameReleasedNotificationCreator
from backend.src.creators.new_meta_critic_rating import NewMetaCriticRatingNotificationCreator
from backend.src.creators.new_store_entry import NewStoreEntryNotificationCreator
from backend.src.creators.release_date_changed import ReleaseDateChangedNotificationCreator

DEFAULT_CREATORS = (
    GameReducedNotificationCreator(),
    GameReleasedNotificationCreator(),
    NewMetaCriticRatingNotificationCreator(),
    NewStoreEntryNotificationCreator(),
    ReleaseDateChangedNotificationCreator(),
)

__all__ = [
    "DEFAULT_CREATORS",
    "GameReducedNotificationCreator",
    "GameReleasedNotificationCreator",
    "NewMetaCriticRatingNotificationCreator",
    "NewStoreEntryNotificationCreator",
    "ReleaseDateChangedNotificationCreator",
]
