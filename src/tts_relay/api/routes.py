"""
Native REST routes.

Endpoints:
    POST /api/v1/tts/synthesize   - Synthesize (or fetch from cache), return an audio URL
    GET  /api/v1/audio/{filename} - Serve a stored audio file
    GET  /api/v1/voices           - Built-in voice list
    GET  /api/v1/health           - Liveness plus cache/storage stats
    GET  /metrics                 - Prometheus metrics

Error Handling:
    Service errors come back as JSON:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "request_id": "<id>"
    }

    Status codes by error code:
        - INVALID_INPUT, INVALID_FILENAME -> 400 Bad Request
        - SYNTHESIS_FAILED -> 502 Bad Gateway
        - anything else -> 500 Internal Server Error

Example:
    curl -X POST http://localhost:8080/api/v1/tts/synthesize \\
        -H "Content-Type: application/json" \\
        -d '{"text": "Hello there", "voice": "en-US-GuyNeural"}'
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from fastapi.responses import FileResponse, JSONResponse

from tts_relay import __version__
from tts_relay.api.dependencies import get_tts_service
from tts_relay.api.schemas import SynthesizeBody, SynthesizeData, SynthesizeResponse, Voice
from tts_relay.core.logging import fail, get_logger, set_request_id, warn
from tts_relay.core.metrics import metrics
from tts_relay.services.tts_service import (
    ErrorCode,
    InvalidFilenameError,
    SynthesizeRequest,
    TTSError,
    TTSService,
)

router = APIRouter()

_LOG = get_logger("tts-relay.api")

SERVICE_NAME = "tts-relay"
AUDIO_CACHE_CONTROL = "public, max-age=3600"

STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.INVALID_FILENAME: 400,
    ErrorCode.SYNTHESIS_FAILED: 502,
}

DEFAULT_VOICES = [
    Voice(name="zh-CN-XiaoxiaoNeural", language="zh-CN", gender="Female", description="Xiaoxiao (Chinese, female)"),
    Voice(name="zh-CN-YunxiNeural", language="zh-CN", gender="Male", description="Yunxi (Chinese, male)"),
    Voice(name="en-US-JennyNeural", language="en-US", gender="Female", description="Jenny (US English, female)"),
    Voice(name="en-US-GuyNeural", language="en-US", gender="Male", description="Guy (US English, male)"),
]


def status_for(error: TTSError) -> int:
    return STATUS_MAP.get(error.code, 500)


def _error_response(error: TTSError, request_id: str) -> JSONResponse:
    content = error.to_dict()
    content["request_id"] = request_id
    return JSONResponse(status_code=status_for(error), content=content)


def _internal_error(request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": request_id,
        },
    )


@router.post("/api/v1/tts/synthesize")
def synthesize(
    req: SynthesizeBody,
    service: TTSService = Depends(get_tts_service),
):
    """
    Resolve a request to a stored audio file.

    Repeated requests for the same text, voice and format return the same
    audio_url without contacting the backend. The response carries the
    request id as task_id and in the X-Request-Id header.
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    try:
        result = service.synthesize(
            SynthesizeRequest(
                text=req.text,
                voice=req.voice,
                format=req.format,
                speed=req.speed,
                pitch=req.pitch,
                volume=req.volume,
                style=req.style,
                ssml=req.ssml,
            ),
            rid,
        )
    except TTSError as e:
        return _error_response(e, rid)
    except Exception as e:
        fail(_LOG, "unhandled", error=str(e), error_type=type(e).__name__)
        return _internal_error(rid)

    body = SynthesizeResponse(
        data=SynthesizeData(
            audio_url=result.audio_url,
            size=result.size,
            task_id=result.task_id,
            cached=result.was_cached,
        )
    )
    return JSONResponse(content=body.model_dump(), headers={"X-Request-Id": rid})


@router.get("/api/v1/audio/{filename}")
def get_audio(filename: str, service: TTSService = Depends(get_tts_service)):
    """
    Serve a stored audio file.

    The name is sanitized and confined to the storage root; names that
    cannot be confined get 400, files that do not exist get 404.
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    try:
        path = service.resolve_audio_path(filename)
    except InvalidFilenameError as e:
        return _error_response(e, rid)

    if not service.store.exists(path):
        warn(_LOG, "audio_not_found", file=path.name)
        return JSONResponse(
            status_code=404,
            content={
                "ok": False,
                "error": "NOT_FOUND",
                "message": f"Audio file not found: {path.name}",
                "request_id": rid,
            },
        )

    return FileResponse(
        path,
        media_type=service.store.content_type(path.name),
        headers={"Cache-Control": AUDIO_CACHE_CONTROL},
    )


@router.get("/api/v1/voices")
def voices():
    return {
        "code": 200,
        "message": "success",
        "data": [v.model_dump() for v in DEFAULT_VOICES],
    }


@router.get("/api/v1/health")
def health(service: TTSService = Depends(get_tts_service)):
    """
    Health check for load balancers and probes.

    status/service/version are always present; the rest comes from
    TTSService.get_health_info() (cache tiers, storage usage, coalescing).
    """
    details = service.get_health_info()
    return {
        "status": "ok" if details.pop("ok", True) else "degraded",
        "service": SERVICE_NAME,
        "version": __version__,
        **details,
    }


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
