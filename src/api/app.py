"""FastAPI application factory for the reference transcription backend."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI

from .deps.auth import get_api_key
from .metrics import instrument_app, router as metrics_router
from .routers import live, notes, transcribe
from .schemas import HealthResponse
from .settings import APISettings, get_settings

LOGGER = logging.getLogger("nexia.api")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version=settings.version)
    instrument_app(app)
    app.include_router(transcribe.router)
    app.include_router(notes.router)
    app.include_router(live.router)
    app.include_router(metrics_router)

    @app.get("/healthz", response_model=HealthResponse)
    async def healthz(
        _: str = Depends(get_api_key),
        current: APISettings = Depends(get_settings),
    ) -> HealthResponse:
        if current.whisper_use_openai:
            transcriber = "openai"
        elif current.whisper_mock_transcriber:
            transcriber = "mock"
        else:
            transcriber = "whisper"
        return HealthResponse(
            ok=True,
            transcriber=transcriber,
            openai="configured" if current.openai_api_key else "skip",
            timestamp=datetime.now(timezone.utc),
        )

    LOGGER.info("%s %s ready", settings.app_name, settings.version)
    return app


app = create_app()
