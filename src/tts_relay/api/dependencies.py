"""
FastAPI dependency providers.

    get_settings()    - settings.yaml, loaded once per process
    get_tts_service() - the process-wide TTSService

Tests override these with app.dependency_overrides.
"""
from __future__ import annotations

from functools import lru_cache

from tts_relay.core.config import Settings, load_settings, settings_path
from tts_relay.core.logging import get_logger, warn
from tts_relay.services.tts_service import TTSService, get_service

_LOG = get_logger("tts-relay.api")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    A missing settings file is not fatal: built-in defaults (plus
    environment overrides) are used instead.
    """
    try:
        return load_settings(settings_path())
    except FileNotFoundError as e:
        warn(_LOG, "settings_missing", error=str(e), using="defaults")
        return Settings(raw={})


def get_tts_service() -> TTSService:
    return get_service(get_settings())
