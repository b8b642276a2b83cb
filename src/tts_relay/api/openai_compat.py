"""
OpenAI-Compatible TTS Endpoints.

    POST /v1/audio/speech - returns audio bytes, like OpenAI's speech API
    GET  /v1/models       - lists tts-1 and tts-1-hd

Voice Mapping:
    OpenAI voice names are mapped to backend voices. settings.yaml entries
    win over the built-in table; names found in neither are passed through
    unchanged, so a backend voice such as "en-US-GuyNeural" also works.

    openai:
      voice_mapping:
        alloy: "en-GB-SoniaNeural"

Formats:
    response_format is forwarded to the backend as the requested format.
    Formats the backend does not know are synthesized as mp3; the
    Content-Type header always describes the bytes actually returned.

Error Responses:
    {
        "error": {
            "message": "Error description",
            "type": "invalid_request_error",
            "code": "invalid_input"
        }
    }

Example:
    from openai import OpenAI
    client = OpenAI(base_url="http://localhost:8080/v1", api_key="unused")
    response = client.audio.speech.create(model="tts-1", voice="alloy", input="Hello!")
    response.stream_to_file("speech.mp3")
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from tts_relay.api.dependencies import get_tts_service
from tts_relay.api.routes import status_for
from tts_relay.core.config import Settings
from tts_relay.core.logging import debug, fail, get_logger, info, set_request_id
from tts_relay.services.tts_service import ErrorCode, SynthesizeRequest, TTSError, TTSService

router = APIRouter()

_LOG = get_logger("tts-relay.openai")

VOICE_MAPPING = {
    "alloy": "en-US-JennyNeural",
    "echo": "en-US-GuyNeural",
    "fable": "en-US-DavisNeural",
    "onyx": "en-US-JasonNeural",
    "nova": "en-US-SaraNeural",
    "shimmer": "en-US-AriaNeural",
}

MODEL_IDS = ("tts-1", "tts-1-hd")
MODEL_CREATED = 1677610602

ERROR_TYPES = {
    ErrorCode.INVALID_INPUT: "invalid_request_error",
    ErrorCode.INVALID_FILENAME: "invalid_request_error",
    ErrorCode.SYNTHESIS_FAILED: "server_error",
}


class OpenAISpeechRequest(BaseModel):
    """
    OpenAI-compatible speech request.

    model is accepted for compatibility and otherwise ignored.
    """
    model: str = Field(default="tts-1")
    input: str = Field(..., min_length=1, max_length=4096, description="The text to generate audio for.")
    voice: str = Field(..., min_length=1, description="OpenAI voice name or backend voice name.")
    response_format: str = Field(default="mp3")
    speed: float = Field(default=1.0, ge=0.0, le=4.0, description="0 means normal speed.")


def map_voice(voice: str, settings: Optional[Settings] = None) -> str:
    """
    Resolve an OpenAI voice name to a backend voice.

    >>> map_voice("echo")
    'en-US-GuyNeural'
    >>> map_voice("zh-CN-YunxiNeural")
    'zh-CN-YunxiNeural'
    """
    custom = settings.voice_mapping if settings is not None else {}
    if voice in custom:
        return custom[voice]
    return VOICE_MAPPING.get(voice, voice)


def _openai_error_response(message: str, error_type: str, code: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": message,
                "type": error_type,
                "code": code,
            }
        },
    )


@router.post("/v1/audio/speech")
def openai_speech(
    req: OpenAISpeechRequest,
    service: TTSService = Depends(get_tts_service),
):
    """
    Synthesize (or fetch from cache) and return the audio bytes.

    Response headers:
        X-Request-Id: request id
        X-Voice-Mapped-To: backend voice actually used
        X-Cache: "hit" or "miss"
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    voice = map_voice(req.voice, service.settings)
    fmt = (req.response_format or "mp3").lower()
    speed = req.speed if req.speed > 0 else 1.0

    info(_LOG, "openai_request", chars=len(req.input), voice=req.voice, mapped=voice, model=req.model, format=fmt)
    debug(_LOG, "openai_request_full", text=req.input, speed=speed)

    try:
        result = service.synthesize(
            SynthesizeRequest(text=req.input, voice=voice, format=fmt, speed=speed, style="default"),
            rid,
        )
    except TTSError as e:
        return _openai_error_response(
            message=e.message,
            error_type=ERROR_TYPES.get(e.code, "server_error"),
            code=e.code.lower(),
            status_code=status_for(e),
        )
    except Exception as e:
        fail(_LOG, "unhandled", error=str(e), error_type=type(e).__name__)
        return _openai_error_response(
            message="Internal server error",
            error_type="server_error",
            code="internal_error",
            status_code=500,
        )

    headers = {
        "X-Request-Id": rid,
        "X-Voice-Mapped-To": voice,
        "X-Cache": "hit" if result.was_cached else "miss",
    }
    return FileResponse(
        result.audio_path,
        media_type=service.store.content_type(result.audio_path.name),
        headers=headers,
    )


@router.get("/v1/models")
def list_models():
    return {
        "object": "list",
        "data": [
            {
                "id": model_id,
                "object": "model",
                "created": MODEL_CREATED,
                "owned_by": "openai-internal",
                "permission": [],
                "root": model_id,
                "parent": None,
            }
            for model_id in MODEL_IDS
        ],
    }
