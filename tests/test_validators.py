"""Tests for input validation and request normalization."""
import pytest

from tts_relay.core.config import TTSDefaultsConfig
from tts_relay.services.tts_service import SynthesizeRequest
from tts_relay.services.validators import (
    ValidationError,
    normalize_request,
    validate_format,
    validate_pitch,
    validate_speed,
    validate_text,
    validate_voice,
)

DEFAULTS = TTSDefaultsConfig(default_voice="en-US-JennyNeural", default_format="mp3", max_text_chars=50)


class TestValidateText:

    def test_valid_text_unchanged(self):
        assert validate_text("  Hello  ") == "  Hello  "

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_rejected(self, text):
        with pytest.raises(ValidationError) as exc_info:
            validate_text(text)
        assert exc_info.value.code == "TEXT_REQUIRED"

    def test_too_long(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_text("x" * 11, max_length=10)
        assert exc_info.value.code == "TEXT_TOO_LONG"


class TestValidateFields:

    def test_voice_too_long(self):
        with pytest.raises(ValidationError, match="Voice"):
            validate_voice("v" * 101)

    def test_format_lowercased(self):
        assert validate_format(" MP3 ") == "mp3"

    @pytest.mark.parametrize("fmt", ["../mp3", "mp 3", "a" * 11, ""])
    def test_format_rejected(self, fmt):
        with pytest.raises(ValidationError) as exc_info:
            validate_format(fmt)
        assert exc_info.value.code == "FORMAT_INVALID"

    @pytest.mark.parametrize("speed", [0.05, 4.5, -1.0])
    def test_speed_out_of_range(self, speed):
        with pytest.raises(ValidationError) as exc_info:
            validate_speed(speed)
        assert exc_info.value.code == "SPEED_OUT_OF_RANGE"

    def test_pitch_bounds(self):
        assert validate_pitch(500) == 500
        assert validate_pitch(-500) == -500
        with pytest.raises(ValidationError):
            validate_pitch(501)


class TestNormalizeRequest:

    def test_defaults_filled(self):
        req = normalize_request(SynthesizeRequest(text="Hi", speed=0, volume=0), DEFAULTS)
        assert req.voice == "en-US-JennyNeural"
        assert req.format == "mp3"
        assert req.speed == 1.0
        assert req.volume == 1.0

    def test_explicit_values_kept(self):
        req = normalize_request(
            SynthesizeRequest(text="Hi", voice="en-US-GuyNeural", format="WAV", speed=1.5, pitch=-20),
            DEFAULTS,
        )
        assert (req.voice, req.format, req.speed, req.pitch) == ("en-US-GuyNeural", "wav", 1.5, -20)

    def test_original_untouched(self):
        original = SynthesizeRequest(text="Hi")
        normalize_request(original, DEFAULTS)
        assert original.voice == ""

    def test_max_length_from_defaults(self):
        with pytest.raises(ValidationError):
            normalize_request(SynthesizeRequest(text="x" * 51), DEFAULTS)
