from __future__ import annotations

import asyncio
from typing import Any

import structlog

from backend.src.contracts.interfaces import IMailTransport
from backend.src.contracts.models import NotificationRead
from backend.src.notifier.templates import STORE_NAMES, TEMPLATE_IDS

logger = structlog.get_logger(__name__)


def build_template_data(notification: NotificationRead, frontend_url: str) -> dict[str, Any]:
    return {
        **notification.payload,
        "notificationId": str(notification.id),
        "gameName": notification.game_name,
        "storeName": STORE_NAMES.get(notification.source_type.value, notification.source_type.value),
        "storeUrl": notification.store_url,
        "thumbnailUrl": notification.thumbnail_url,
        "frontendUrl": frontend_url,
    }


class MailService:
    """Sends one email per notification through a mail transport.

    Every send is bounded by ``timeout_seconds``. Transport errors and
    timeouts are logged and reported as ``False``; they never raise.
    """

    def __init__(
        self,
        transport: IMailTransport,
        *,
        frontend_url: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._transport = transport
        self._frontend_url = frontend_url
        self._timeout = timeout_seconds

    async def send(self, to_address: str, notification: NotificationRead) -> bool:
        template_id = TEMPLATE_IDS[notification.type]
        data = build_template_data(notification, self._frontend_url)

        log = logger.bind(
            notification_id=str(notification.id),
            template_id=template_id,
        )

        try:
            return await asyncio.wait_for(
                self._transport.send(to_address, template_id, data),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            log.error("mail_send_timeout", timeout_seconds=self._timeout)
            return False
        except Exception:
            log.error("mail_send_error", exc_info=True)
            return False
