"""
tts-relay structured logging.

Numeric levels (1-4), colored console output, optional JSONL file output
and per-request id correlation.

Levels:
    1 = MINIMAL  - Startup, shutdown, errors
    2 = NORMAL   - Request lifecycle, cache status (default)
    3 = VERBOSE  - Stage timing, frame counts
    4 = DEBUG    - Internal state

Configuration:
    export TTS_RELAY_LOG_LEVEL=3
    export TTS_RELAY_NO_COLOR=1

    logging:
      level: 2
      log_dir: logs
      jsonl_file: tts-relay.jsonl

Usage:
    from tts_relay.core.logging import get_logger, info, warn

    log = get_logger("tts-relay.protocol")
    info(log, "session_open", voice="en-US-JennyNeural")
    verbose(log, "audio_frame", bytes=4096)
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .levels import LogLevel, LEVEL_MAP, LEVEL_NAMES, TRACE, coerce_level
from .context import (
    get_request_id,
    set_request_id,
    get_level,
    set_level,
    get_level_name,
    is_configured,
    set_configured,
    get_log_config,
    set_log_config,
    read_logging_config,
)
from .formatters import (
    Colors,
    ColoredConsoleFormatter,
    JsonlFormatter,
    get_tag_color,
    supports_color,
)

_USE_COLORS = supports_color()


def configure_logging(level: Optional[int | str | LogLevel] = None, force: bool = False) -> None:
    """
    Install the console handler (and the JSONL file handler when log_dir is set).

    Args:
        level: Level override; otherwise taken from settings/environment.
        force: Reconfigure even if already configured.
    """
    global _USE_COLORS

    if is_configured() and not force:
        return

    _USE_COLORS = supports_color()

    log_config = read_logging_config()
    set_log_config(log_config)

    current_level = coerce_level(level or log_config.get("level", LogLevel.NORMAL))
    set_level(current_level)

    root = logging.getLogger()
    root.setLevel(TRACE)
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(LEVEL_MAP.get(current_level, logging.INFO))
    console.setFormatter(ColoredConsoleFormatter())
    root.addHandler(console)

    log_dir = log_config.get("log_dir")
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            Path(log_dir) / str(log_config.get("jsonl_file", "tts-relay.jsonl")),
            maxBytes=int(log_config.get("rotate_max_bytes", 10 * 1024 * 1024)),
            backupCount=int(log_config.get("rotate_backup_count", 5)),
            encoding="utf-8",
            delay=True,
        )
        file_handler.setLevel(TRACE)
        file_handler.setFormatter(JsonlFormatter())
        root.addHandler(file_handler)

    # websockets traces every frame at DEBUG
    logging.getLogger("websockets").setLevel(logging.WARNING)

    set_configured(True)


def _log(
    logger: logging.Logger,
    level: int,
    tag: str,
    msg: str,
    numeric_level: int = 2,
    **fields: Any
) -> None:
    if numeric_level > get_level():
        return

    event = fields.pop("event", None)
    seconds = fields.pop("seconds", None)
    logger.log(
        level,
        msg,
        extra={
            "tag": tag,
            "request_id": get_request_id(),
            "event": event,
            "seconds": seconds,
            "extra_data": fields or None,
            "numeric_level": numeric_level,
        },
    )


def get_logger(name: str = "tts-relay") -> logging.Logger:
    """Get a logger, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)


def info(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.INFO, "INFO", msg, numeric_level=2, **fields)


def warn(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.WARNING, "WARN", msg, numeric_level=2, **fields)


def error(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.ERROR, "ERROR", msg, numeric_level=1, **fields)


def success(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.INFO, "SUCCESS", msg, numeric_level=2, **fields)


def fail(logger: logging.Logger, msg: str, **fields: Any) -> None:
    _log(logger, logging.ERROR, "FAIL", msg, numeric_level=1, **fields)


def verbose(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Level 3 (VERBOSE) message."""
    _log(logger, logging.DEBUG, "INFO", msg, numeric_level=3, **fields)


def debug(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Level 4 (DEBUG) message."""
    _log(logger, TRACE, "DEBUG", msg, numeric_level=4, **fields)


__all__ = [
    "LogLevel",
    "LEVEL_MAP",
    "LEVEL_NAMES",
    "coerce_level",
    "Colors",
    "supports_color",
    "get_tag_color",
    "get_request_id",
    "set_request_id",
    "get_level",
    "set_level",
    "get_level_name",
    "get_log_config",
    "JsonlFormatter",
    "ColoredConsoleFormatter",
    "configure_logging",
    "get_logger",
    "info",
    "warn",
    "error",
    "success",
    "fail",
    "verbose",
    "debug",
]
