from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ── Enums ──────────────────────────────────────────────────────────────────────


class InfoSourceType(str, enum.Enum):
    STEAM = "steam"
    NINTENDO = "nintendo"
    PS_STORE = "psStore"


class NotificationType(str, enum.Enum):
    GAME_REDUCED = "gameReduced"
    GAME_RELEASED = "gameReleased"
    NEW_META_CRITIC_RATING = "newMetaCriticRating"
    NEW_STORE_ENTRY = "newStoreEntry"
    RELEASE_DATE_CHANGED = "releaseDateChanged"


class UserState(str, enum.Enum):
    TRIAL = "trial"
    REGISTERED = "registered"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


# ── Helpers ───────────────────────────────────────────────────────────────────

_RELEASE_DATE_FORMATS = ("%d.%m.%Y", "%d/%m/%Y", "%b %d, %Y", "%d %b, %Y", "%d %b %Y")


def parse_release_date(value: object) -> date | None:
    """Parse the release date formats the stores hand out.

    ISO dates and datetimes (``2030-01-01``, ``2030-01-01T00:00:00.000Z``) and a
    few human formats are understood. Anything else (``TBA``, ``Q4 2030``)
    yields ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass

    for fmt in _RELEASE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


# ── Store snapshots ───────────────────────────────────────────────────────────


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoreGameData(CamelModel):
    id: str
    full_name: str
    store_url: str
    thumbnail_url: str
    disabled: bool = False


class SteamReleaseDate(CamelModel):
    coming_soon: bool
    # Steam sends free text here ("Q4 2030", "Coming soon") as often as a date
    date_text: str | None = Field(default=None, alias="date")

    @property
    def date_value(self) -> date | None:
        return parse_release_date(self.date_text)


class SteamPriceInformation(CamelModel):
    initial: int
    final: int
    discount_percentage: int = 0


class MetacriticRating(CamelModel):
    score: int
    url: str | None = None


class SteamGameData(StoreGameData):
    release_date: SteamReleaseDate
    price_information: SteamPriceInformation | None = None
    categories: list[str] | None = None
    genres: list[str] | None = None
    controller_support: str | None = None
    metacritic: MetacriticRating | None = None


class NintendoPriceInformation(CamelModel):
    initial: str
    final: str


class NintendoGameData(StoreGameData):
    price_information: NintendoPriceInformation | None = None
    release_date: str


class PsStorePriceInformation(CamelModel):
    initial: str
    final: str
    discount_description: str | None = None


class PsStoreGameData(StoreGameData):
    price_information: PsStorePriceInformation | None = None
    release_date: str | None = None


GameData = Union[SteamGameData, NintendoGameData, PsStoreGameData]

GAME_DATA_MODELS: dict[InfoSourceType, type[StoreGameData]] = {
    InfoSourceType.STEAM: SteamGameData,
    InfoSourceType.NINTENDO: NintendoGameData,
    InfoSourceType.PS_STORE: PsStoreGameData,
}


def parse_game_data(source_type: InfoSourceType, raw: dict[str, Any] | None) -> GameData | None:
    """Validate a raw snapshot against the model for its store type.

    Raises ``pydantic.ValidationError`` when the shape does not match.
    """
    if raw is None:
        return None
    return GAME_DATA_MODELS[source_type].model_validate(raw)  # type: ignore[return-value]


# ── Jobs and notifications ───────────────────────────────────────────────────


class CreateNotificationsJob(CamelModel):
    """Payload of one message on the create-notifications queue."""

    source_id: uuid.UUID
    existing_game_data: dict[str, Any] | None = None
    resolved_game_data: dict[str, Any]


class NotificationDraft(BaseModel):
    """What a creator detected, before it is stamped and persisted."""

    type: NotificationType
    payload: dict[str, Any]


class NotificationRead(BaseModel):
    id: uuid.UUID
    type: NotificationType
    source_id: uuid.UUID
    source_type: InfoSourceType
    game_id: uuid.UUID
    game_name: str
    store_url: str
    thumbnail_url: str
    payload: dict[str, Any]
    created_at: datetime


# ── SQLAlchemy ORM ─────────────────────────────────────────────────────────────

JsonColumn = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    enable_email_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
    interested_in_sources: Mapped[list] = mapped_column(JsonColumn, nullable=False, default=list)
    country: Mapped[str] = mapped_column(String(8), nullable=False, default="DE")
    state: Mapped[UserState] = mapped_column(
        Enum(UserState, name="user_state_enum", values_callable=_enum_values),
        nullable=False,
        default=UserState.TRIAL,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    games: Mapped[list["Game"]] = relationship(back_populates="user")


class Game(Base):
    __tablename__ = "games"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    search: Mapped[str] = mapped_column(String(500), nullable=False)
    name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="games")
    info_sources: Mapped[list["InfoSource"]] = relationship(back_populates="game")

    __table_args__ = (Index("ix_games_user_id", "user_id"),)


class InfoSource(Base):
    __tablename__ = "info_sources"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[InfoSourceType] = mapped_column(
        Enum(InfoSourceType, name="info_source_type_enum", values_callable=_enum_values),
        nullable=False,
    )
    remote_game_id: Mapped[str] = mapped_column(String(200), nullable=False)
    disabled: Mapped[bool] = mapped_column(Boolean, default=False)
    data: Mapped[dict | None] = mapped_column(JsonColumn, nullable=True)
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    game: Mapped["Game"] = relationship(back_populates="info_sources")

    __table_args__ = (
        UniqueConstraint("game_id", "type", name="uq_info_sources_game_type"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type_enum", values_callable=_enum_values),
        nullable=False,
    )
    info_source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("info_sources.id"), nullable=False
    )
    game_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    data: Mapped[dict] = mapped_column(JsonColumn, nullable=False, default=dict)
    dedup_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "info_source_id",
            "type",
            "dedup_hash",
            name="uq_notifications_source_type_dedup",
        ),
        Index("ix_notifications_user_id", "user_id"),
    )
