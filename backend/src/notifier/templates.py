from __future__ import annotations

from html import escape
from typing import Any

from backend.src.contracts.models import InfoSourceType, NotificationType

TEMPLATE_IDS: dict[NotificationType, str] = {
    NotificationType.GAME_REDUCED: "game-reduced",
    NotificationType.GAME_RELEASED: "game-released",
    NotificationType.NEW_META_CRITIC_RATING: "new-metacritic-rating",
    NotificationType.NEW_STORE_ENTRY: "new-store-entry",
    NotificationType.RELEASE_DATE_CHANGED: "release-date-changed",
}

STORE_NAMES: dict[str, str] = {
    InfoSourceType.STEAM.value: "Steam",
    InfoSourceType.NINTENDO.value: "Nintendo eShop",
    InfoSourceType.PS_STORE.value: "PlayStation Store",
}


def format_price(cents: int | None) -> str:
    if cents is None:
        return "-"
    return f"{cents / 100:.2f}"


def _game_reduced(data: dict[str, Any]) -> tuple[str, str, str]:
    game = data["gameName"]
    pct = data["discountPercentage"]
    return (
        f"{game} is on sale: -{pct}%",
        "Price Drop",
        f"""<p style="margin:0 0 16px;font-size:28px;font-weight:bold;color:#16a34a;">
      {format_price(data["newPrice"])}
      <span style="font-size:16px;color:#9ca3af;text-decoration:line-through;margin-left:8px;">{format_price(data["oldPrice"])}</span>
      <span style="font-size:14px;color:#dc2626;margin-left:8px;">-{pct}%</span>
    </p>""",
    )


def _game_released(data: dict[str, Any]) -> tuple[str, str, str]:
    return (
        f"{data['gameName']} has been released",
        "Released",
        f'<p style="margin:0 0 16px;font-size:16px;color:#374151;">Released on {escape(str(data["releaseDate"]))}</p>',
    )


def _new_metacritic_rating(data: dict[str, Any]) -> tuple[str, str, str]:
    old_score = data.get("oldScore")
    previous = f" (previously {old_score})" if old_score is not None else ""
    return (
        f"{data['gameName']} received a Metacritic score of {data['newScore']}",
        "New Rating",
        f'<p style="margin:0 0 16px;font-size:28px;font-weight:bold;color:#1a1a2e;">{data["newScore"]}'
        f'<span style="font-size:14px;color:#9ca3af;margin-left:8px;">{previous}</span></p>',
    )


def _new_store_entry(data: dict[str, Any]) -> tuple[str, str, str]:
    return (
        f"{data['gameName']} is now listed on {data['storeName']}",
        "New Store Entry",
        f'<p style="margin:0 0 16px;font-size:16px;color:#374151;">Now available on {escape(data["storeName"])}.</p>',
    )


def _release_date_changed(data: dict[str, Any]) -> tuple[str, str, str]:
    old_date = escape(str(data["oldReleaseDate"]))
    new_date = escape(str(data["newReleaseDate"]))
    return (
        f"New release date for {data['gameName']}",
        "Release Date Changed",
        f'<p style="margin:0 0 16px;font-size:16px;color:#374151;">'
        f'<span style="text-decoration:line-through;color:#9ca3af;">{old_date}</span> &rarr; <strong>{new_date}</strong></p>',
    )


_RENDERERS = {
    "game-reduced": _game_reduced,
    "game-released": _game_released,
    "new-metacritic-rating": _new_metacritic_rating,
    "new-store-entry": _new_store_entry,
    "release-date-changed": _release_date_changed,
}


def render_email(template_id: str, data: dict[str, Any]) -> tuple[str, str]:
    """Render a notification template into ``(subject, html)``.

    ``data`` carries the notification payload merged with ``gameName``,
    ``storeName``, ``storeUrl``, ``thumbnailUrl`` and ``frontendUrl``.
    Raises KeyError for an unknown template id.
    """
    subject, label, body = _RENDERERS[template_id](data)
    game_name = escape(data["gameName"])
    thumbnail_url = escape(data["thumbnailUrl"], quote=True)
    store_url = escape(data["storeUrl"], quote=True)
    frontend_url = escape(data["frontendUrl"], quote=True)

    html = f"""\
<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width,initial-scale=1"></head>
<body style="margin:0;padding:0;background:#f4f4f5;font-family:Arial,Helvetica,sans-serif;">
<table width="100%" cellpadding="0" cellspacing="0" style="background:#f4f4f5;padding:24px 0;">
<tr><td align="center">
<table width="600" cellpadding="0" cellspacing="0" style="background:#ffffff;border-radius:8px;overflow:hidden;">
  <tr><td style="background:#1a1a2e;padding:20px 24px;color:#ffffff;font-size:20px;font-weight:bold;">
    Game Watch
  </td></tr>
  <tr><td style="padding:0;">
    <img src="{thumbnail_url}" alt="{game_name}" width="600" style="display:block;width:100%;height:auto;">
  </td></tr>
  <tr><td style="padding:24px;">
    <span style="display:inline-block;background:#e0f2fe;color:#0369a1;font-size:12px;font-weight:600;padding:4px 10px;border-radius:4px;margin-bottom:12px;">{label}</span>
    <h1 style="margin:12px 0 8px;font-size:22px;color:#1a1a2e;">{game_name}</h1>
    {body}
    <a href="{store_url}" style="display:inline-block;background:#1a1a2e;color:#ffffff;text-decoration:none;padding:12px 32px;border-radius:6px;font-size:16px;font-weight:600;">View on {escape(data["storeName"])}</a>
  </td></tr>
  <tr><td style="padding:16px 24px;background:#f9fafb;border-top:1px solid #e5e7eb;font-size:12px;color:#9ca3af;text-align:center;">
    You received this because you enabled email notifications on Game Watch.<br>
    <a href="{frontend_url}" style="color:#6b7280;">Manage notification settings</a>
  </td></tr>
</table>
</td></tr>
</table>
</body>
</html>"""
    return subject, html
