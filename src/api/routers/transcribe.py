"""Transcription endpoint: one uploaded segment per request."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from ..deps.auth import get_api_key
from ..schemas import TranscribeResponse
from ..services.transcript_service import TranscriptService
from ..settings import APISettings, get_settings

router = APIRouter(prefix="/v1", tags=["transcribe"])


def get_service(settings: APISettings = Depends(get_settings)) -> TranscriptService:
    return TranscriptService(settings)


@router.post("/transcribe", response_model=TranscribeResponse)
async def transcribe_audio(
    file: UploadFile = File(...),
    lang: str | None = Form(None),
    segment_id: str | None = Form(None),
    _: str = Depends(get_api_key),
    service: TranscriptService = Depends(get_service),
):
    result = await service.transcribe_upload(file, lang)
    return TranscribeResponse(
        text=result.text,
        lang=result.lang,
        start=result.start,
        end=result.end,
        confidence=result.confidence,
        segment_id=segment_id,
    )
