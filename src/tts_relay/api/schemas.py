"""
API request/response schemas.

Example request (POST /api/v1/tts/synthesize):
    {
        "text": "Hello there",
        "voice": "en-US-JennyNeural",
        "format": "mp3",
        "speed": 1.2,
        "pitch": 5
    }

Example response:
    {
        "code": 200,
        "message": "ok",
        "data": {
            "audio_url": "/api/v1/audio/0f0e....mp3",
            "size": 18432,
            "task_id": "ab12cd34ef56",
            "cached": false
        }
    }
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class SynthesizeBody(BaseModel):
    """
    Native synthesis request.

    Empty voice/format and zero speed/volume fall back to server defaults.
    Only text, voice and format distinguish cache entries.
    """
    text: str = Field(..., min_length=1, description="Text to synthesize")
    voice: str = Field(default="", description="Backend voice name, e.g. en-US-JennyNeural")
    format: str = Field(default="", description="mp3, wav or ogg")
    speed: float = Field(default=1.0, ge=0.0, description="Rate multiplier; 1.0 is normal")
    pitch: int = Field(default=0, description="Pitch offset in Hz")
    volume: float = Field(default=1.0, ge=0.0)
    style: str = Field(default="")
    ssml: bool = Field(default=False, description="Treat text as an SSML fragment")


class SynthesizeData(BaseModel):
    audio_url: str
    size: int
    task_id: str
    cached: bool


class SynthesizeResponse(BaseModel):
    code: int = 200
    message: str = "ok"
    data: SynthesizeData


class Voice(BaseModel):
    name: str
    language: str
    gender: str
    description: str
