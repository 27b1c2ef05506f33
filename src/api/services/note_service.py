"""Structured clinical note generation via OpenAI chat completions."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

from fastapi import HTTPException
from openai import AsyncOpenAI, OpenAIError

from ..metrics import NOTE_COUNTER, NOTE_DURATION
from ..schemas import EmotionalAnalysis, NoteResponse
from ..settings import APISettings

LOGGER = logging.getLogger("nexia.api.notes")

SYSTEM_PROMPT = """You are a medical assistant that helps doctors organize patient information.
Analyze the following conversation transcript between a doctor and a patient.
Then generate a structured medical record with the following sections:

1. Chief Complaint: A concise statement of the patient's main issue
2. History of Present Illness: Detailed chronological description of the patient's symptoms
3. Diagnosis: Potential diagnoses based on the information provided
4. Treatment Plan: Recommended next steps, medications, and follow-up
5. Emotional Analysis: Analyze the patient's emotional state during the consultation

Your response should be in JSON format with the following structure:
{
  "chiefComplaint": "string",
  "history": "string",
  "diagnosis": "string",
  "plan": "string",
  "emotionalAnalysis": {
    "sentiment": "positive|negative|neutral",
    "emotions": {"joy": 0-1, "sadness": 0-1, "fear": 0-1, "anger": 0-1, "surprise": 0-1, "disgust": 0-1},
    "confidenceScore": 0-1
  }
}"""


class NoteService:
    def __init__(self, settings: APISettings, client: Optional[AsyncOpenAI] = None) -> None:
        self.settings = settings
        self._client = client
        self._mock = settings.notes_mock or (client is None and not settings.openai_api_key)
        if self._client is None and not self._mock:
            self._client = AsyncOpenAI(api_key=settings.openai_api_key)

    async def generate(self, transcript: str) -> NoteResponse:
        text = transcript.strip()
        if not text:
            NOTE_COUNTER.labels(status="rejected").inc()
            raise HTTPException(status_code=400, detail="Transcript is empty")
        start = time.perf_counter()
        try:
            raw = _mock_note(text) if self._mock else await self._complete(text)
        except OpenAIError as exc:
            NOTE_COUNTER.labels(status="error").inc()
            LOGGER.error("Note generation failed: %s", exc)
            raise HTTPException(status_code=502, detail="Failed to generate medical notes") from exc
        finally:
            NOTE_DURATION.observe(time.perf_counter() - start)
        NOTE_COUNTER.labels(status="success").inc()
        return _to_note(raw)

    async def _complete(self, transcript: str) -> Dict[str, Any]:
        assert self._client
        response = await self._client.chat.completions.create(
            model=self.settings.notes_model,
            temperature=self.settings.notes_temperature,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": transcript},
            ],
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or "{}"
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            NOTE_COUNTER.labels(status="error").inc()
            raise HTTPException(status_code=502, detail="Model returned invalid JSON") from exc
        return data if isinstance(data, dict) else {}


def _to_note(raw: Dict[str, Any]) -> NoteResponse:
    emotional = raw.get("emotionalAnalysis") or {}
    emotions = emotional.get("emotions") if isinstance(emotional, dict) else None
    scores: Dict[str, float] = {}
    if isinstance(emotions, dict):
        for name, value in emotions.items():
            if isinstance(value, (int, float)):
                scores[str(name)] = max(0.0, min(1.0, float(value)))
    confidence = emotional.get("confidenceScore", 0) if isinstance(emotional, dict) else 0
    return NoteResponse(
        chief_complaint=str(raw.get("chiefComplaint") or ""),
        history=str(raw.get("history") or ""),
        diagnosis=str(raw.get("diagnosis") or ""),
        plan=str(raw.get("plan") or ""),
        emotional_analysis=EmotionalAnalysis(
            sentiment=str((emotional.get("sentiment") if isinstance(emotional, dict) else None) or "neutral"),
            emotions=scores,
            confidence_score=float(confidence) if isinstance(confidence, (int, float)) else 0.0,
        ),
    )


def _mock_note(transcript: str) -> Dict[str, Any]:
    first_line = transcript.splitlines()[0][:120]
    return {
        "chiefComplaint": f"[mock] {first_line}",
        "history": f"[mock history, {len(transcript)} characters of transcript]",
        "diagnosis": "[mock diagnosis]",
        "plan": "[mock plan]",
        "emotionalAnalysis": {"sentiment": "neutral", "emotions": {}, "confidenceScore": 0.0},
    }
