"""Client for the AI note-generation endpoint."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import EmptyTranscript, NoteGenerationFailed
from .network import ApiClient, ApiError

LOGGER = logging.getLogger("nexia.notes")


class EmotionalAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sentiment: str = ""
    emotions: Dict[str, float] = Field(default_factory=dict)
    confidence_score: Optional[float] = Field(default=None, alias="confidenceScore")


class StructuredNote(BaseModel):
    """SOAP-style note as returned by the backend (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    chief_complaint: str = Field(alias="chiefComplaint")
    history: str
    diagnosis: str
    plan: str
    emotional_analysis: Optional[EmotionalAnalysis] = Field(default=None, alias="emotionalAnalysis")


class NoteGenerationClient(ApiClient):
    async def generate_notes(self, transcript: str) -> StructuredNote:
        text = (transcript or "").strip()
        if not text:
            raise EmptyTranscript()
        try:
            url = self._url("/v1/generate-notes")
            headers = self._headers()
        except ApiError as exc:
            raise NoteGenerationFailed(exc.message) from exc
        try:
            resp = await self._client.post(url, headers=headers, json={"transcript": text}, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise NoteGenerationFailed(f"{NoteGenerationFailed.default_message} ({exc})") from exc
        if resp.status_code >= 400:
            raise NoteGenerationFailed(f"Note generation failed: {resp.status_code} {_detail(resp)}".rstrip())
        try:
            note = StructuredNote.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise NoteGenerationFailed(f"Invalid note payload: {exc}") from exc
        LOGGER.info("Notes generated (%d transcript chars)", len(text))
        return note


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return ""


__all__ = ["EmotionalAnalysis", "NoteGenerationClient", "StructuredNote"]
