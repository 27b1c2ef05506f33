"""Prometheus metrics helpers."""

from __future__ import annotations

import time
from typing import Callable

from fastapi import APIRouter, Depends, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Summary,
    generate_latest,
)

from .deps.auth import get_api_key

REQUEST_COUNTER = Counter(
    "nexia_api_requests_total",
    "Total API requests",
    labelnames=("path", "method", "status"),
)

REQUEST_LATENCY = Histogram(
    "nexia_api_request_latency_seconds",
    "API request latency",
    labelnames=("path", "method"),
)

SEGMENT_COUNTER = Counter(
    "nexia_segment_transcriptions_total",
    "Uploaded segments transcribed via /v1/transcribe",
    labelnames=("status",),
)

NOTE_COUNTER = Counter(
    "nexia_note_generations_total",
    "Clinical note generations",
    labelnames=("status",),
)

NOTE_DURATION = Summary(
    "nexia_note_generation_seconds",
    "Time spent generating clinical notes",
)

LIVE_SESSIONS = Gauge(
    "nexia_live_sessions",
    "Open real-time transcription websockets",
)

router = APIRouter()


@router.get("/metrics")
async def metrics_endpoint(_: str = Depends(get_api_key)) -> Response:
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


def instrument_app(app):
    @app.middleware("http")
    async def prometheus_middleware(request, call_next: Callable):  # type: ignore
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        method = request.method
        REQUEST_COUNTER.labels(path=path, method=method, status=response.status_code).inc()
        REQUEST_LATENCY.labels(path=path, method=method).observe(duration)
        return response

    return app
