"""Telegram client factory for telecampaign.

The client is created here and handed to a TelegramSession that owns its
lifecycle; nothing keeps a process-wide client around.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client(auto_reconnect: bool = False) -> TelegramClient:
    """Create a Telethon client from environment variables.

    API_ID/API_HASH come from the environment (or .env via python-dotenv).
    SESSION_NAME defaults to "telecampaign", which creates a local .session file.

    Telethon's own reconnect loop is off by default: the session supervisor
    decides when and how often to reconnect.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "telecampaign")

    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logging.getLogger(__name__).info("Initializing Telegram client (session %s)", session_name)

    return TelegramClient(
        session_name,
        int(api_id),
        api_hash,
        auto_reconnect=auto_reconnect,
    )
