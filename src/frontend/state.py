"""State container for config loading and dirty tracking."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .constants import DEFAULT_DB_PATH, PROJECT_ROOT


@dataclass
class ConfigState:
    data: dict[str, Any] | None = None
    dirty: bool = False
    error: str | None = None

    @property
    def db_path(self) -> Path:
        storage = (self.data or {}).get("storage") or {}
        path = Path(storage.get("db_path") or DEFAULT_DB_PATH)
        if path.is_absolute():
            return path
        return PROJECT_ROOT / path
