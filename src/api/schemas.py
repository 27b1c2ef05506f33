"""Pydantic schemas for API contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TranscribeResponse(BaseModel):
    text: str
    lang: str = Field(default="auto")
    start: float = 0.0
    end: float = 0.0
    confidence: float | None = None
    segment_id: str | None = None


class GenerateNotesRequest(BaseModel):
    transcript: str


class EmotionalAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sentiment: str = ""
    emotions: Dict[str, float] = Field(default_factory=dict)
    confidence_score: float | None = Field(default=None, alias="confidenceScore")


class NoteResponse(BaseModel):
    """Serialised with camelCase keys, matching what the client parses."""

    model_config = ConfigDict(populate_by_name=True)

    chief_complaint: str = Field(alias="chiefComplaint")
    history: str
    diagnosis: str
    plan: str
    emotional_analysis: Optional[EmotionalAnalysis] = Field(default=None, alias="emotionalAnalysis")


class HealthResponse(BaseModel):
    ok: bool
    transcriber: str
    openai: str
    timestamp: datetime
