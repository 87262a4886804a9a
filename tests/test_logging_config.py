from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from logging_config import RedactingFormatter, build_handlers, redaction_values


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("telecampaign", logging.INFO, __file__, 1, message, None, None)


def test_formatter_masks_secrets() -> None:
    formatter = RedactingFormatter(["abc", "abcdef", ""], fmt="%(message)s")
    assert formatter.format(_record("hash=abcdef id=abc")) == "hash=*** id=***"


def test_redaction_values_read_named_variables() -> None:
    config = {"redact": {"enabled": True, "patterns": ["API_HASH", "PHONE", "MISSING"]}}
    environ = {"API_HASH": "deadbeef", "PHONE": "+51987654321"}
    assert redaction_values(config, environ) == ["deadbeef", "+51987654321"]
    assert redaction_values({"redact": {"enabled": False, "patterns": ["API_HASH"]}}, environ) == []
    assert redaction_values({}, environ) == []


def test_build_handlers_console_and_file(tmp_path) -> None:
    config = {
        "level": "debug",
        "console": True,
        "file": {"enabled": True, "path": "logs/bot.log", "max_bytes": 1024, "backup_count": 2},
    }
    handlers = build_handlers(config, str(tmp_path))
    try:
        assert len(handlers) == 2
        file_handler = handlers[1]
        assert isinstance(file_handler, RotatingFileHandler)
        assert file_handler.maxBytes == 1024
        assert (tmp_path / "logs").is_dir()
        assert all(handler.level == logging.DEBUG for handler in handlers)
        assert all(isinstance(handler.formatter, RedactingFormatter) for handler in handlers)
    finally:
        for handler in handlers:
            handler.close()


def test_unknown_level_falls_back_to_info(tmp_path) -> None:
    handlers = build_handlers({"level": "chatty", "console": True}, str(tmp_path))
    assert handlers[0].level == logging.INFO
