"""
Input validation and request normalization.

Validation runs before any cache lookup so that malformed requests never
reach the backend. Normalization fills the defaults a caller may leave out:

    voice   ""  -> tts.default_voice
    format  ""  -> tts.default_format (lowercased)
    speed   0   -> 1.0
    volume  0   -> 1.0

All validation errors raise ValidationError(message, code), where code is
one of TEXT_REQUIRED, TEXT_TOO_LONG, VOICE_TOO_LONG, FORMAT_INVALID,
SPEED_OUT_OF_RANGE, PITCH_OUT_OF_RANGE.

Usage:
    from tts_relay.services.validators import normalize_request

    request = normalize_request(request, config.tts)
"""
from __future__ import annotations

import dataclasses
import re
from typing import Any, TypeVar

from tts_relay.core.config import TTSDefaultsConfig
from tts_relay.core.logging import debug, get_logger

_LOG = get_logger("tts-relay.validators")

MAX_VOICE_CHARS = 100
MIN_SPEED = 0.1
MAX_SPEED = 4.0
MAX_PITCH_HZ = 500

_FORMAT_RE = re.compile(r"^[a-z0-9]{1,10}$")

R = TypeVar("R")


class ValidationError(Exception):
    """
    Raised when input validation fails.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code.
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


def validate_text(text: str, max_length: int = 4000) -> str:
    """
    Require non-blank text within max_length characters.

    Leading and trailing whitespace is kept: it is part of the content key.
    """
    if not text or not text.strip():
        raise ValidationError("Text is required", "TEXT_REQUIRED")

    if len(text) > max_length:
        raise ValidationError(
            f"Text exceeds maximum length ({len(text)} > {max_length})",
            "TEXT_TOO_LONG",
        )

    return text


def validate_voice(voice: str) -> str:
    if len(voice) > MAX_VOICE_CHARS:
        raise ValidationError(
            f"Voice exceeds maximum length ({len(voice)} > {MAX_VOICE_CHARS})",
            "VOICE_TOO_LONG",
        )
    return voice


def validate_format(fmt: str) -> str:
    fmt = fmt.strip().lower()
    if not _FORMAT_RE.match(fmt):
        raise ValidationError(f"Invalid audio format: {fmt!r}", "FORMAT_INVALID")
    return fmt


def validate_speed(speed: float) -> float:
    if not (MIN_SPEED <= speed <= MAX_SPEED):
        raise ValidationError(
            f"Speed must be between {MIN_SPEED} and {MAX_SPEED}, got {speed}",
            "SPEED_OUT_OF_RANGE",
        )
    return speed


def validate_pitch(pitch: int) -> int:
    if abs(pitch) > MAX_PITCH_HZ:
        raise ValidationError(
            f"Pitch must be within +/-{MAX_PITCH_HZ}Hz, got {pitch}",
            "PITCH_OUT_OF_RANGE",
        )
    return pitch


def normalize_request(request: R, defaults: TTSDefaultsConfig) -> R:
    """
    Return a copy of a request dataclass with defaults filled in and every
    field validated.

    Raises:
        ValidationError: If any field is invalid.
    """
    req: Any = request
    text = validate_text(req.text, defaults.max_text_chars)
    voice = validate_voice(req.voice or defaults.default_voice)
    fmt = validate_format(req.format or defaults.default_format)
    speed = validate_speed(req.speed or 1.0)
    pitch = validate_pitch(int(req.pitch or 0))
    volume = req.volume or 1.0

    normalized = dataclasses.replace(
        req,
        text=text,
        voice=voice,
        format=fmt,
        speed=speed,
        pitch=pitch,
        volume=volume,
    )
    debug(_LOG, "normalized", voice=voice, format=fmt, speed=speed, pitch=pitch)
    return normalized
