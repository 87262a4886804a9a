"""Logging setup driven by the ``logging`` section of config.json.

Console and rotating-file handlers share one formatter that masks the
values of configured environment variables (API hash, phone, 2FA), so
credentials never reach a log line.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Mapping, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FILE = "logs/telecampaign.log"
MASK = "***"


class RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str = LOG_FORMAT, datefmt: Optional[str] = DATE_FORMAT) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first so a secret containing another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, MASK)
        return message


def redaction_values(config: Mapping, environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """Values of the environment variables named in ``redact.patterns``."""

    redact = config.get("redact") or {}
    if not redact.get("enabled", False):
        return []
    environ = os.environ if environ is None else environ
    return [environ[name] for name in redact.get("patterns", []) if environ.get(name)]


def _file_handler(file_cfg: Mapping, project_root: str) -> logging.Handler:
    path = file_cfg.get("path") or DEFAULT_LOG_FILE
    if not os.path.isabs(path):
        path = os.path.join(project_root, path)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def build_handlers(config: Mapping, project_root: str) -> list[logging.Handler]:
    """Create the configured handlers, already formatted and levelled."""

    level = logging.getLevelName(str(config.get("level", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = RedactingFormatter(redaction_values(config))

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_cfg = config.get("file") or {}
    if file_cfg.get("enabled", False):
        handlers.append(_file_handler(file_cfg, project_root))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def configure_logging(config: Optional[Mapping], project_root: str) -> None:
    """Install handlers on the root logger; a disabled section leaves logging alone."""

    if not config or not config.get("enabled", False):
        return
    handlers = build_handlers(config, project_root)
    if handlers:
        logging.basicConfig(level=min(handler.level for handler in handlers), handlers=handlers)
