from __future__ import annotations

import asyncio
from typing import Any

import resend
import structlog

from backend.src.config import Settings
from backend.src.notifier.templates import render_email

logger = structlog.get_logger(__name__)

_MAX_RETRIES = 3
_BASE_DELAY = 1.0


class ResendMailTransport:
    """IMailTransport implementation that renders templates locally and sends via Resend."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        resend.api_key = settings.resend_api_key

    async def send(self, address: str, template_id: str, data: dict[str, Any]) -> bool:
        subject, html = render_email(template_id, data)

        log = logger.bind(
            email=address,
            template_id=template_id,
            channel="email",
        )

        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                await asyncio.to_thread(
                    resend.Emails.send,
                    {
                        "from": self._settings.resend_from_email,
                        "to": [address],
                        "subject": subject,
                        "html": html,
                    },
                )
                log.info("email_sent", attempt=attempt + 1)
                return True
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                delay = _BASE_DELAY * (2**attempt)
                log.warning(
                    "email_send_failed",
                    attempt=attempt + 1,
                    error=str(exc),
                    retry_in=delay,
                )
                if attempt < _MAX_RETRIES - 1:
                    await asyncio.sleep(delay)

        log.error("email_send_exhausted", error=str(last_exc))
        return False
