"""Telegram messenger adapter.

Sends plain text to a user through the injected Telethon client.
"""

from __future__ import annotations

from typing import Union


def _peer(recipient_id: str) -> Union[int, str]:
    # Sender ids arrive as numeric strings; usernames pass through unchanged.
    try:
        return int(recipient_id)
    except ValueError:
        return recipient_id


class TelegramMessenger:
    """Messenger adapter backed by a Telethon client."""

    def __init__(self, client) -> None:
        self._client = client

    async def send_text(self, recipient_id: str, text: str) -> None:
        await self._client.send_message(_peer(recipient_id), text, link_preview=False)
