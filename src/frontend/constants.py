"""Shared constants for the Textual UI."""

from __future__ import annotations

from pathlib import Path

TELEGRAM_BLUE = "#2AABEE"
PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_PATH = PROJECT_ROOT / "config.json"
DEFAULT_DB_PATH = "src/telecampaign.db"
