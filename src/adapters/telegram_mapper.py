"""Telegram-to-core event mapping adapter.

This keeps Telethon-specific details out of the core pipeline.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from core.models import InboundEvent

LOGGER = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "Usuario"


def display_name_from_sender(sender: Any) -> str:
    """Return a human-friendly name for a Telegram sender."""

    if sender is None:
        return DEFAULT_DISPLAY_NAME
    first = getattr(sender, "first_name", None)
    last = getattr(sender, "last_name", None)
    if first or last:
        return " ".join(part for part in [first, last] if part)
    title = getattr(sender, "title", None)
    if title:
        return str(title)
    username = getattr(sender, "username", None)
    if username:
        return str(username)
    return DEFAULT_DISPLAY_NAME


async def build_event(event: Any) -> InboundEvent:
    """Build a core InboundEvent from a Telethon NewMessage event."""

    sender: Optional[Any]
    try:
        sender = await event.get_sender()
    except Exception:
        LOGGER.debug("Could not resolve sender for %s", getattr(event, "sender_id", None))
        sender = None

    # Other bots are treated like our own messages to avoid reply loops.
    is_from_bot = bool(getattr(event, "out", False)) or bool(getattr(sender, "bot", False))

    return InboundEvent(
        is_from_bot=is_from_bot,
        is_group_origin=not bool(getattr(event, "is_private", False)),
        sender_id=str(getattr(event, "sender_id", "") or ""),
        text=getattr(event, "raw_text", None) or "",
        sender_display_name=display_name_from_sender(sender),
    )
