from __future__ import annotations

from datetime import date
from typing import Any, Protocol

from backend.src.contracts.models import (
    GameData,
    InfoSourceType,
    NotificationDraft,
    NotificationRead,
)


class INotificationCreator(Protocol):
    name: str
    supported_types: frozenset[InfoSourceType]

    def detect(
        self,
        source_type: InfoSourceType,
        previous: GameData | None,
        current: GameData,
        *,
        today: date,
    ) -> NotificationDraft | None: ...


class IMailTransport(Protocol):
    async def send(self, address: str, template_id: str, data: dict[str, Any]) -> bool: ...


class IMailService(Protocol):
    async def send(self, to_address: str, notification: NotificationRead) -> bool: ...


class IErrorReporter(Protocol):
    def capture(self, error: BaseException, context: dict[str, Any]) -> None: ...
