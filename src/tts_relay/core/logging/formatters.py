"""
Log formatters: JSON Lines for files, ANSI-colored lines for the console.

JSONL:
    {"ts":"2026-01-15T14:30:05+00:00","level":2,"tag":"INFO","message":"cache_hit","request_id":"ab12cd34ef56","extra":{"tier":"fast"}}

Console:
    14:30:05 [ INFO  ] (ab12cd34ef56) cache_hit tier=fast 0.002s

Colors are disabled when stdout is not a TTY, when NO_COLOR is set, or
when TTS_RELAY_NO_COLOR=1.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    GRAY = "\033[90m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


_TAG_COLORS = {
    "SUCCESS": Colors.BRIGHT_GREEN,
    "FAIL": Colors.BRIGHT_RED,
    "ERROR": Colors.BRIGHT_RED,
    "WARN": Colors.BRIGHT_YELLOW,
    "WARNING": Colors.BRIGHT_YELLOW,
    "INFO": Colors.BRIGHT_CYAN,
    "DEBUG": Colors.GRAY,
    "TRACE": Colors.DIM,
}

# Cache tier that served a request
_CACHE_STATUS_COLORS = {
    "fast": Colors.GREEN,
    "durable": Colors.CYAN,
    "miss": Colors.YELLOW,
    "coalesced": Colors.MAGENTA,
}


def supports_color() -> bool:
    if os.getenv("TTS_RELAY_NO_COLOR", "0") == "1":
        return False
    if os.getenv("NO_COLOR"):
        return False
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def get_tag_color(tag: str) -> str:
    return _TAG_COLORS.get(tag.upper(), Colors.WHITE)


def _use_colors() -> bool:
    # Read through the package so tests can flip the flag at runtime
    import tts_relay.core.logging as log_module
    return getattr(log_module, "_USE_COLORS", False)


def _paint(text: str, color: str) -> str:
    if not _use_colors():
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """One JSON object per line, with the request id and any extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    HH:MM:SS [ TAG ] (rid) message key=value 0.123s

    Timings are green under 100ms, yellow under 1s and red beyond.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "request_id", "-")

        parts = [
            _paint(ts, Colors.DIM),
            _paint(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if rid != "-":
            parts.append(_paint(f"({rid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(_paint(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 0.1:
                time_color = Colors.GREEN
            elif seconds < 1.0:
                time_color = Colors.YELLOW
            else:
                time_color = Colors.RED
            parts.append(_paint(f"{seconds:.3f}s", time_color))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                parts.append(_paint(f"{k}={v}", self._field_color(k, v)))

        return " ".join(parts)

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key in ("cache", "cache_status", "tier"):
            return _CACHE_STATUS_COLORS.get(str(value), Colors.DIM)
        if key == "error":
            return Colors.RED
        return Colors.DIM
