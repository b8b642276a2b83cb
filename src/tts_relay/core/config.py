"""
Configuration Management for tts-relay.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects per section
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (TTS_RELAY_STORAGE_DIR, TTS_RELAY_REDIS_URL, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    tts:
      default_voice: en-US-JennyNeural
      default_format: mp3

    backend:
      receive_timeout_s: 30

    fast_cache:
      backend: redis
      redis_url: redis://localhost:6379/0
      ttl_seconds: 3600
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict
import os
import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or of the wrong type."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - TTS: Request defaults applied by the normalizer
        - Backend: Streaming synthesis backend connection
        - Storage: Audio file directory and sweep settings
        - Database: Durable cache index
        - Fast cache: Optional low-latency key->path tier
        - Coalescing: Sharing of concurrent identical misses
        - Logging: Log level and formatting
    """

    # ─────────────────────────────────────────────────────────────────────────
    # TTS Request Defaults
    # ─────────────────────────────────────────────────────────────────────────
    TTS_DEFAULT_VOICE = "en-US-JennyNeural"
    TTS_DEFAULT_FORMAT = "mp3"
    TTS_DEFAULT_SPEED = 1.0
    TTS_DEFAULT_VOLUME = 1.0
    TTS_MAX_TEXT_CHARS = 4000

    # ─────────────────────────────────────────────────────────────────────────
    # Backend (Edge read-aloud websocket)
    # ─────────────────────────────────────────────────────────────────────────
    BACKEND_BASE_URL = (
        "wss://speech.platform.bing.com/consumer/speech/synthesize/readaloud/edge/v1"
    )
    BACKEND_TRUSTED_CLIENT_TOKEN = "6A5AA1D4EAFF4E9FB37E23D68491D6F4"
    BACKEND_CHROMIUM_VERSION = "130.0.2849.68"
    BACKEND_CONNECT_TIMEOUT_S = 30.0    # Websocket handshake bound
    BACKEND_RECEIVE_TIMEOUT_S = 30.0    # Whole receive loop bound

    # ─────────────────────────────────────────────────────────────────────────
    # Storage (audio files)
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BASE_DIR = "./storage/audio"
    STORAGE_CLEANUP_HOURS = 168         # Age threshold for the sweep (7 days)
    STORAGE_SWEEP_INTERVAL_S = 3600     # Min seconds between background sweeps
    STORAGE_AUDIO_URL_PREFIX = "/api/v1/audio"

    # ─────────────────────────────────────────────────────────────────────────
    # Durable index
    # ─────────────────────────────────────────────────────────────────────────
    DATABASE_PATH = "./data/tts_cache.db"

    # ─────────────────────────────────────────────────────────────────────────
    # Fast cache
    # ─────────────────────────────────────────────────────────────────────────
    FAST_CACHE_BACKEND = "memory"       # memory | redis | none
    FAST_CACHE_REDIS_URL = ""
    FAST_CACHE_TTL_SECONDS = 3600       # Promotion TTL (1 hour)
    FAST_CACHE_MAX_ITEMS = 1024         # Memory backend capacity

    # ─────────────────────────────────────────────────────────────────────────
    # Request coalescing
    # ─────────────────────────────────────────────────────────────────────────
    COALESCING_ENABLED = True
    COALESCING_WAIT_TIMEOUT_S = 60.0

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


FAST_CACHE_BACKENDS = ("memory", "redis", "none")


@dataclass
class TTSDefaultsConfig:
    """Defaults filled in by the request normalizer."""
    default_voice: str = Defaults.TTS_DEFAULT_VOICE
    default_format: str = Defaults.TTS_DEFAULT_FORMAT
    max_text_chars: int = Defaults.TTS_MAX_TEXT_CHARS


@dataclass
class BackendConfig:
    """
    Streaming backend connection settings.

    The connection URL is signed per session (see tts/endpoint.py); only the
    base URL, client token and browser version are configurable.
    """
    base_url: str = Defaults.BACKEND_BASE_URL
    trusted_client_token: str = Defaults.BACKEND_TRUSTED_CLIENT_TOKEN
    chromium_version: str = Defaults.BACKEND_CHROMIUM_VERSION
    connect_timeout_s: float = Defaults.BACKEND_CONNECT_TIMEOUT_S
    receive_timeout_s: float = Defaults.BACKEND_RECEIVE_TIMEOUT_S


@dataclass
class StorageConfig:
    """
    Audio file storage.

    Synthesized audio is written under base_dir and served back under
    audio_url_prefix.
    """
    base_dir: str = Defaults.STORAGE_BASE_DIR
    cleanup_hours: int = Defaults.STORAGE_CLEANUP_HOURS
    sweep_interval_s: int = Defaults.STORAGE_SWEEP_INTERVAL_S
    audio_url_prefix: str = Defaults.STORAGE_AUDIO_URL_PREFIX


@dataclass
class DatabaseConfig:
    """SQLite file holding the durable cache index."""
    path: str = Defaults.DATABASE_PATH


@dataclass
class FastCacheConfig:
    """
    Fast cache tier.

    backend:
        memory = in-process LRU with TTL (default)
        redis  = shared Redis instance at redis_url
        none   = disabled
    """
    backend: str = Defaults.FAST_CACHE_BACKEND
    redis_url: str = Defaults.FAST_CACHE_REDIS_URL
    ttl_seconds: int = Defaults.FAST_CACHE_TTL_SECONDS
    max_items: int = Defaults.FAST_CACHE_MAX_ITEMS


@dataclass
class CoalescingConfig:
    """Sharing of one backend session between concurrent identical misses."""
    enabled: bool = Defaults.COALESCING_ENABLED
    wait_timeout_s: float = Defaults.COALESCING_WAIT_TIMEOUT_S


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Request lifecycle, cache status (default)
        3 = VERBOSE: Per-stage timing, frame counts
        4 = DEBUG: Internal state, full tracing
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ServiceConfig:
    """
    Validated configuration for TTSService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ServiceConfig.from_settings(settings)
        print(config.fast_cache.ttl_seconds)
    """
    tts: TTSDefaultsConfig = field(default_factory=TTSDefaultsConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    fast_cache: FastCacheConfig = field(default_factory=FastCacheConfig)
    coalescing: CoalescingConfig = field(default_factory=CoalescingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ServiceConfig":
        """
        Create ServiceConfig from Settings with validation.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        tts_raw = raw.get("tts", {}) or {}
        tts = TTSDefaultsConfig(
            default_voice=str(tts_raw.get("default_voice", Defaults.TTS_DEFAULT_VOICE)),
            default_format=str(tts_raw.get("default_format", Defaults.TTS_DEFAULT_FORMAT)).lower(),
            max_text_chars=int(tts_raw.get("max_text_chars", Defaults.TTS_MAX_TEXT_CHARS)),
        )
        cls._validate_non_empty("tts.default_voice", tts.default_voice)
        cls._validate_non_empty("tts.default_format", tts.default_format)
        cls._validate_positive("tts.max_text_chars", tts.max_text_chars)

        backend_raw = raw.get("backend", {}) or {}
        backend = BackendConfig(
            base_url=str(backend_raw.get("base_url", Defaults.BACKEND_BASE_URL)),
            trusted_client_token=str(
                backend_raw.get("trusted_client_token", Defaults.BACKEND_TRUSTED_CLIENT_TOKEN)
            ),
            chromium_version=str(backend_raw.get("chromium_version", Defaults.BACKEND_CHROMIUM_VERSION)),
            connect_timeout_s=float(backend_raw.get("connect_timeout_s", Defaults.BACKEND_CONNECT_TIMEOUT_S)),
            receive_timeout_s=float(backend_raw.get("receive_timeout_s", Defaults.BACKEND_RECEIVE_TIMEOUT_S)),
        )
        if not backend.base_url.startswith(("ws://", "wss://")):
            raise ConfigValidationError(
                f"backend.base_url must be a ws:// or wss:// URL, got {backend.base_url!r}"
            )
        cls._validate_non_empty("backend.trusted_client_token", backend.trusted_client_token)
        cls._validate_positive("backend.connect_timeout_s", backend.connect_timeout_s)
        cls._validate_positive("backend.receive_timeout_s", backend.receive_timeout_s)

        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(
            base_dir=os.getenv("TTS_RELAY_STORAGE_DIR")
                or str(storage_raw.get("base_dir", Defaults.STORAGE_BASE_DIR)),
            cleanup_hours=int(storage_raw.get("cleanup_hours", Defaults.STORAGE_CLEANUP_HOURS)),
            sweep_interval_s=int(storage_raw.get("sweep_interval_s", Defaults.STORAGE_SWEEP_INTERVAL_S)),
            audio_url_prefix=str(
                storage_raw.get("audio_url_prefix", Defaults.STORAGE_AUDIO_URL_PREFIX)
            ).rstrip("/"),
        )
        cls._validate_positive("storage.cleanup_hours", storage.cleanup_hours)
        cls._validate_positive("storage.sweep_interval_s", storage.sweep_interval_s)

        database_raw = raw.get("database", {}) or {}
        database = DatabaseConfig(
            path=os.getenv("TTS_RELAY_DB_PATH")
                or str(database_raw.get("path", Defaults.DATABASE_PATH)),
        )

        fast_raw = raw.get("fast_cache", {}) or {}
        fast_cache = FastCacheConfig(
            backend=str(fast_raw.get("backend", Defaults.FAST_CACHE_BACKEND)).lower(),
            redis_url=os.getenv("TTS_RELAY_REDIS_URL")
                or str(fast_raw.get("redis_url", Defaults.FAST_CACHE_REDIS_URL) or ""),
            ttl_seconds=int(fast_raw.get("ttl_seconds", Defaults.FAST_CACHE_TTL_SECONDS)),
            max_items=int(fast_raw.get("max_items", Defaults.FAST_CACHE_MAX_ITEMS)),
        )
        if fast_cache.backend not in FAST_CACHE_BACKENDS:
            raise ConfigValidationError(
                f"fast_cache.backend must be one of {FAST_CACHE_BACKENDS}, got {fast_cache.backend!r}"
            )
        if fast_cache.backend == "redis" and not fast_cache.redis_url:
            raise ConfigValidationError("fast_cache.redis_url is required when backend is redis")
        cls._validate_positive("fast_cache.ttl_seconds", fast_cache.ttl_seconds)
        cls._validate_positive("fast_cache.max_items", fast_cache.max_items)

        coalescing_raw = raw.get("coalescing", {}) or {}
        coalescing = CoalescingConfig(
            enabled=bool(coalescing_raw.get("enabled", Defaults.COALESCING_ENABLED)),
            wait_timeout_s=float(coalescing_raw.get("wait_timeout_s", Defaults.COALESCING_WAIT_TIMEOUT_S)),
        )
        cls._validate_positive("coalescing.wait_timeout_s", coalescing.wait_timeout_s)

        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # String levels ("INFO", "DEBUG", "3") are accepted too
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            tts=tts,
            backend=backend,
            storage=storage,
            database=database,
            fast_cache=fast_cache,
            coalescing=coalescing,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")

    @staticmethod
    def _validate_non_empty(name: str, value: str) -> None:
        if not value.strip():
            raise ConfigValidationError(f"{name} must not be empty")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_service_config() to get a validated ServiceConfig.
    """
    raw: Dict[str, Any]

    @property
    def default_voice(self) -> str:
        return (self.raw.get("tts", {}) or {}).get("default_voice", Defaults.TTS_DEFAULT_VOICE)

    @property
    def default_format(self) -> str:
        return (self.raw.get("tts", {}) or {}).get("default_format", Defaults.TTS_DEFAULT_FORMAT)

    @property
    def voice_mapping(self) -> Dict[str, str]:
        """Custom OpenAI voice -> backend voice overrides (openai.voice_mapping)."""
        return dict((self.raw.get("openai", {}) or {}).get("voice_mapping", {}) or {})

    def get_service_config(self) -> ServiceConfig:
        """
        Get validated ServiceConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return ServiceConfig.from_settings(self)


def settings_path() -> str:
    """Settings file path, overridable with TTS_RELAY_SETTINGS."""
    return os.getenv("TTS_RELAY_SETTINGS", "config/settings.yaml")


def load_settings(path: str | None = None) -> Settings:
    """
    Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML file (defaults to settings_path()).

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path or settings_path())
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=raw)
