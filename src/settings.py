"""Static configuration for telecampaign.

All user-editable settings (campaigns, rate limits, dispatch, logging) live
in a single JSON file for quick edits without touching Python.
"""

import json
import os

from core.config import ConversationConfig, DispatchConfig, RateLimitConfig, ReconnectConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# SQLite database shared by conversations and rate limits.
_storage = _CONFIG.get("storage", {})
DB_PATH = _resolve_path(_storage.get("db_path", "src/telecampaign.db"))

# Campaigns are pulled directly from config.json; each carries its trigger
# keywords and its ordered messages.
CAMPAIGNS_CONFIG = _CONFIG.get("campaigns", [])

_rate_limit = _CONFIG.get("rate_limit", {})
RATE_LIMIT = RateLimitConfig(
    enabled=bool(_rate_limit.get("enabled", True)),
    max_per_hour=int(_rate_limit.get("max_per_hour", 3)),
    max_per_day=int(_rate_limit.get("max_per_day", 10)),
    timeout_seconds=float(_rate_limit.get("timeout_seconds", 5)),
)

# - partial_policy: "lenient" completes partially delivered conversations,
#   "strict" fails them
_dispatch = _CONFIG.get("dispatch", {})
_dispatch_timeout = _dispatch.get("timeout_seconds", 300)
DISPATCH = DispatchConfig(
    send_timeout_seconds=float(_dispatch.get("send_timeout_seconds", 30)),
    timeout_seconds=float(_dispatch_timeout) if _dispatch_timeout else None,
    default_delay_seconds=float(_dispatch.get("default_delay_seconds", 1.5)),
    partial_policy=str(_dispatch.get("partial_policy", "lenient")),
)

# - enforce_single_active: unique index on active conversations per user
# - stale_after_minutes: cancel stuck conversations at startup (0 = off)
_conversations = _CONFIG.get("conversations", {})
CONVERSATIONS = ConversationConfig(
    enforce_single_active=bool(_conversations.get("enforce_single_active", False)),
    stale_after_minutes=int(_conversations.get("stale_after_minutes", 0)),
    workers=int(_conversations.get("workers", 4)),
    queue_size=int(_conversations.get("queue_size", 100)),
)

_reconnect = _CONFIG.get("reconnect", {})
RECONNECT = ReconnectConfig(
    max_attempts=int(_reconnect.get("max_attempts", 5)),
    base_delay_seconds=float(_reconnect.get("base_delay_seconds", 2)),
    max_delay_seconds=float(_reconnect.get("max_delay_seconds", 60)),
)

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
