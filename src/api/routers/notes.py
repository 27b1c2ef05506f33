"""Clinical note generation endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps.auth import get_api_key
from ..schemas import GenerateNotesRequest, NoteResponse
from ..services.note_service import NoteService
from ..settings import APISettings, get_settings

router = APIRouter(prefix="/v1", tags=["notes"])


def get_note_service(settings: APISettings = Depends(get_settings)) -> NoteService:
    return NoteService(settings)


@router.post("/generate-notes", response_model=NoteResponse, response_model_exclude_none=True)
async def generate_notes(
    payload: GenerateNotesRequest,
    _: str = Depends(get_api_key),
    service: NoteService = Depends(get_note_service),
):
    return await service.generate(payload.transcript)
