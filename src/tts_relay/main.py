"""
FastAPI application entry point.

Routers:
    - Native API: /api/v1/tts/synthesize, /api/v1/audio/{filename},
      /api/v1/voices, /api/v1/health, /metrics
    - OpenAI-compatible API: /v1/audio/speech, /v1/models

Usage:
    uvicorn tts_relay.main:app --host 0.0.0.0 --port 8080

    # or the console script (TTS_RELAY_HOST / TTS_RELAY_PORT)
    tts-relay-server
"""
from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tts_relay import __version__
from tts_relay.api.dependencies import get_tts_service
from tts_relay.api.openai_compat import router as openai_router
from tts_relay.api.routes import router
from tts_relay.core.logging import configure_logging, get_logger, info

_LOG = get_logger("tts-relay.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Build the service up front so config errors surface at boot
    provider = app.dependency_overrides.get(get_tts_service, get_tts_service)
    service = provider()
    info(
        _LOG, "startup",
        version=__version__,
        backend=service.config.backend.base_url,
        fast_cache=service.fast_cache.name,
        storage=str(service.store.base_dir),
    )
    yield
    info(_LOG, "shutdown")


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="tts-relay", version=__version__, lifespan=lifespan)
    app.include_router(router)
    app.include_router(openai_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(
        "tts_relay.main:app",
        host=os.getenv("TTS_RELAY_HOST", "0.0.0.0"),
        port=int(os.getenv("TTS_RELAY_PORT", "8080")),
    )
