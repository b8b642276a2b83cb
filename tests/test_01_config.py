"""
Tests for configuration validation and defaults.

Tests cover:
- Defaults class values
- ServiceConfig.from_settings() for every section
- ConfigValidationError on non-positive timeouts/TTLs and bad values
- String log level coercion ("DEBUG" -> 4)
- Environment overrides
- load_settings() file handling
"""
import pytest

from tts_relay.core.config import (
    ConfigValidationError,
    Defaults,
    ServiceConfig,
    Settings,
    load_settings,
    settings_path,
)


class TestDefaults:
    """Tests for Defaults class values."""

    def test_request_defaults(self):
        assert Defaults.TTS_DEFAULT_VOICE == "en-US-JennyNeural"
        assert Defaults.TTS_DEFAULT_FORMAT == "mp3"

    def test_backend_defaults(self):
        assert Defaults.BACKEND_BASE_URL.startswith("wss://")
        assert Defaults.BACKEND_CHROMIUM_VERSION == "130.0.2849.68"
        assert Defaults.BACKEND_RECEIVE_TIMEOUT_S == 30.0

    def test_cache_defaults(self):
        assert Defaults.FAST_CACHE_BACKEND == "memory"
        assert Defaults.FAST_CACHE_TTL_SECONDS == 3600
        assert Defaults.STORAGE_CLEANUP_HOURS == 168


class TestServiceConfigFromSettings:
    """Tests for ServiceConfig.from_settings()."""

    def test_empty_settings_use_defaults(self):
        config = ServiceConfig.from_settings(Settings(raw={}))
        assert config.tts.default_voice == Defaults.TTS_DEFAULT_VOICE
        assert config.backend.base_url == Defaults.BACKEND_BASE_URL
        assert config.fast_cache.backend == "memory"
        assert config.coalescing.enabled is True
        assert config.logging.level == 2

    def test_sections_are_read(self):
        config = ServiceConfig.from_settings(Settings(raw={
            "tts": {"default_voice": "en-US-GuyNeural", "default_format": "WAV"},
            "backend": {"receive_timeout_s": 12},
            "storage": {"base_dir": "/tmp/x", "audio_url_prefix": "/audio/"},
            "fast_cache": {"backend": "none"},
        }))
        assert config.tts.default_voice == "en-US-GuyNeural"
        assert config.tts.default_format == "wav"
        assert config.backend.receive_timeout_s == 12.0
        assert config.storage.base_dir == "/tmp/x"
        assert config.storage.audio_url_prefix == "/audio"
        assert config.fast_cache.backend == "none"

    @pytest.mark.parametrize("section,key,value", [
        ("backend", "connect_timeout_s", 0),
        ("backend", "receive_timeout_s", -1),
        ("fast_cache", "ttl_seconds", 0),
        ("fast_cache", "max_items", -5),
        ("coalescing", "wait_timeout_s", 0),
        ("storage", "cleanup_hours", 0),
    ])
    def test_non_positive_values_rejected(self, section, key, value):
        with pytest.raises(ConfigValidationError, match=f"{section}.{key}"):
            ServiceConfig.from_settings(Settings(raw={section: {key: value}}))

    def test_http_backend_url_rejected(self):
        with pytest.raises(ConfigValidationError, match="base_url"):
            ServiceConfig.from_settings(Settings(raw={"backend": {"base_url": "https://example.com"}}))

    def test_unknown_fast_cache_backend_rejected(self):
        with pytest.raises(ConfigValidationError, match="fast_cache.backend"):
            ServiceConfig.from_settings(Settings(raw={"fast_cache": {"backend": "memcached"}}))

    def test_redis_requires_url(self, monkeypatch):
        monkeypatch.delenv("TTS_RELAY_REDIS_URL", raising=False)
        with pytest.raises(ConfigValidationError, match="redis_url"):
            ServiceConfig.from_settings(Settings(raw={"fast_cache": {"backend": "redis"}}))

    def test_string_log_level(self):
        config = ServiceConfig.from_settings(Settings(raw={"logging": {"level": "DEBUG"}}))
        assert config.logging.level == 4

    def test_log_level_out_of_range(self):
        with pytest.raises(ConfigValidationError, match="logging.level"):
            ServiceConfig.from_settings(Settings(raw={"logging": {"level": 7}}))

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TTS_RELAY_STORAGE_DIR", "/srv/audio")
        monkeypatch.setenv("TTS_RELAY_DB_PATH", "/srv/db.sqlite")
        monkeypatch.setenv("TTS_RELAY_REDIS_URL", "redis://cache:6379/1")
        config = ServiceConfig.from_settings(Settings(raw={"fast_cache": {"backend": "redis"}}))
        assert config.storage.base_dir == "/srv/audio"
        assert config.database.path == "/srv/db.sqlite"
        assert config.fast_cache.redis_url == "redis://cache:6379/1"


class TestSettings:
    """Tests for Settings properties and loading."""

    def test_properties(self):
        settings = Settings(raw={
            "tts": {"default_voice": "zh-CN-YunxiNeural"},
            "openai": {"voice_mapping": {"alloy": "en-GB-SoniaNeural"}},
        })
        assert settings.default_voice == "zh-CN-YunxiNeural"
        assert settings.default_format == Defaults.TTS_DEFAULT_FORMAT
        assert settings.voice_mapping == {"alloy": "en-GB-SoniaNeural"}

    def test_voice_mapping_absent(self):
        assert Settings(raw={"openai": None}).voice_mapping == {}

    def test_load_settings_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_load_settings_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("tts:\n  default_voice: en-US-GuyNeural\n", encoding="utf-8")
        settings = load_settings(str(path))
        assert settings.default_voice == "en-US-GuyNeural"
        assert settings.get_service_config().tts.default_voice == "en-US-GuyNeural"

    def test_settings_path_env(self, monkeypatch):
        monkeypatch.setenv("TTS_RELAY_SETTINGS", "/etc/tts-relay.yaml")
        assert settings_path() == "/etc/tts-relay.yaml"
