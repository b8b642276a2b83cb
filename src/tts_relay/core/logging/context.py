"""
Request correlation and process-wide logging state.

The request id lives in a ContextVar so that it follows a request through
FastAPI's threadpool and into the service layer. Level and file settings
are module globals shared by the whole process.

Environment overrides read by read_logging_config():
    TTS_RELAY_LOG_LEVEL  - level (1-4 or a name)
    TTS_RELAY_LOG_DIR    - directory for the JSONL log file
    TTS_RELAY_JSONL_FILE - JSONL file name
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Bind a request id to the current context for log correlation."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging options from settings.yaml and the environment.

    A missing or unreadable settings file leaves the defaults in place;
    environment variables always win.
    """
    cfg: Dict[str, Any] = {}

    from tts_relay.core.config import load_settings, settings_path
    try:
        settings = load_settings(settings_path())
        cfg.update(settings.raw.get("logging", {}) or {})
    except (OSError, ValueError, yaml.YAMLError):
        pass

    if os.getenv("TTS_RELAY_LOG_LEVEL"):
        cfg["level"] = os.environ["TTS_RELAY_LOG_LEVEL"]
    if os.getenv("TTS_RELAY_LOG_DIR"):
        cfg["log_dir"] = os.environ["TTS_RELAY_LOG_DIR"]
    if os.getenv("TTS_RELAY_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["TTS_RELAY_JSONL_FILE"]

    return cfg
