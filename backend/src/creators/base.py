from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from backend.src.contracts.models import (
    GameData,
    InfoSourceType,
    NintendoGameData,
    PsStoreGameData,
    SteamGameData,
    parse_release_date,
)

ALL_SOURCE_TYPES: frozenset[InfoSourceType] = frozenset(InfoSourceType)

_CURRENCY_TOKENS = ("EUR", "USD", "GBP", "CHF", "€", "£", "$", "kr", ",-", ",–")


def parse_price_cents(text: str) -> int | None:
    """Convert a store price string like '59,99 €', '$19.99' or '1.299,00' to cents.

    Returns None when no amount can be read (e.g. 'Free to Play').
    """
    cleaned = text.strip()
    for token in _CURRENCY_TOKENS:
        cleaned = cleaned.replace(token, "")
    # Spaces are only ever thousands separators here
    cleaned = cleaned.replace(" ", "").replace("\xa0", "")

    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            # e.g. "1.299,00" -> "1299.00"
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            # e.g. "1,299.00" -> "1299.00"
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        head, _, tail = cleaned.rpartition(",")
        if len(tail) == 2 and "," not in head:
            # e.g. "59,99" -> "59.99"
            cleaned = f"{head}.{tail}"
        else:
            # e.g. "1,299" -> "1299"
            cleaned = cleaned.replace(",", "")
    elif "." in cleaned:
        head, _, tail = cleaned.rpartition(".")
        if len(tail) == 3 or "." in head:
            # e.g. "1.299" -> "1299"
            cleaned = cleaned.replace(".", "")

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def final_price_cents(data: GameData) -> int | None:
    info = data.price_information
    if info is None:
        return None
    if isinstance(data, SteamGameData):
        return info.final
    return parse_price_cents(info.final)


@dataclass(frozen=True)
class ReleaseInfo:
    released_on: date | None
    raw: str | None
    coming_soon: bool

    @property
    def has_date(self) -> bool:
        return self.released_on is not None or bool(self.raw and self.raw.strip())

    @property
    def display(self) -> str | None:
        if self.released_on is not None:
            return self.released_on.isoformat()
        return self.raw.strip() if self.raw else None

    def is_upcoming(self, today: date) -> bool:
        return self.coming_soon or (self.released_on is not None and self.released_on > today)

    def is_released(self, today: date) -> bool:
        return not self.coming_soon and self.released_on is not None and self.released_on <= today

    def same_date_as(self, other: ReleaseInfo) -> bool:
        if self.released_on is not None and other.released_on is not None:
            return self.released_on == other.released_on
        return (self.display or "").lower() == (other.display or "").lower()


def release_info(data: GameData) -> ReleaseInfo:
    if isinstance(data, SteamGameData):
        return ReleaseInfo(
            released_on=data.release_date.date_value,
            raw=data.release_date.date_text,
            coming_soon=data.release_date.coming_soon,
        )
    if isinstance(data, (NintendoGameData, PsStoreGameData)):
        parsed = parse_release_date(data.release_date)
        # A date the store cannot name yet ("TBA", "Q4 2030") is still upcoming
        unnamed = parsed is None and bool(data.release_date and data.release_date.strip())
        return ReleaseInfo(released_on=parsed, raw=data.release_date, coming_soon=unnamed)
    raise TypeError(f"Unsupported game data: {type(data).__name__}")


def is_release_transition(previous: GameData, current: GameData, today: date) -> bool:
    """True when the pair moves a game from upcoming to released."""
    return release_info(previous).is_upcoming(today) and release_info(current).is_released(today)
