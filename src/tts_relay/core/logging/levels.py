"""
Numeric log levels used by tts-relay.

Levels 1-4 map to increasing verbosity and onto stdlib logging levels:
    MINIMAL (1) -> logging.WARNING
    NORMAL (2)  -> logging.INFO
    VERBOSE (3) -> logging.DEBUG
    DEBUG (4)   -> logging.DEBUG - 5 (TRACE)
"""
from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    MINIMAL = 1  # Startup, shutdown, errors
    NORMAL = 2   # Request lifecycle, cache status
    VERBOSE = 3  # Stage timing, frame counts
    DEBUG = 4    # Internal state


TRACE = logging.DEBUG - 5

LEVEL_MAP = {
    LogLevel.MINIMAL: logging.WARNING,
    LogLevel.NORMAL: logging.INFO,
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.DEBUG: TRACE,
}

LEVEL_NAMES = {
    1: "MINIMAL",
    2: "NORMAL",
    3: "VERBOSE",
    4: "DEBUG",
}

_NAME_MAP = {
    "MINIMAL": LogLevel.MINIMAL,
    "NORMAL": LogLevel.NORMAL,
    "VERBOSE": LogLevel.VERBOSE,
    "DEBUG": LogLevel.DEBUG,
    "TRACE": LogLevel.DEBUG,
    "CRITICAL": LogLevel.MINIMAL,
    "ERROR": LogLevel.MINIMAL,
    "WARNING": LogLevel.MINIMAL,
    "WARN": LogLevel.MINIMAL,
    "INFO": LogLevel.NORMAL,
    "1": LogLevel.MINIMAL,
    "2": LogLevel.NORMAL,
    "3": LogLevel.VERBOSE,
    "4": LogLevel.DEBUG,
}


def coerce_level(value: Any) -> LogLevel:
    """
    Convert an int, name or LogLevel into a LogLevel.

    Integers 1-4 are taken as-is; larger integers are read as stdlib
    logging levels. Anything unrecognised falls back to NORMAL.

    >>> coerce_level("verbose")
    <LogLevel.VERBOSE: 3>
    >>> coerce_level(logging.WARNING)
    <LogLevel.MINIMAL: 1>
    """
    if isinstance(value, LogLevel):
        return value

    if isinstance(value, int):
        if 1 <= value <= 4:
            return LogLevel(value)
        if value >= logging.WARNING:
            return LogLevel.MINIMAL
        if value >= logging.INFO:
            return LogLevel.NORMAL
        return LogLevel.DEBUG

    if isinstance(value, str):
        return _NAME_MAP.get(value.upper().strip(), LogLevel.NORMAL)

    return LogLevel.NORMAL
