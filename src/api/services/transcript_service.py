"""Transcription of uploaded segments and live PCM buffers."""

from __future__ import annotations

import asyncio
import io
import logging
import time
from pathlib import Path
from typing import Optional

import numpy as np
import soundfile as sf
from fastapi import HTTPException, UploadFile
from openai import AsyncOpenAI, OpenAIError

from ..metrics import SEGMENT_COUNTER
from ..settings import APISettings
from .whisper_engine import Transcription, WhisperEngine

LOGGER = logging.getLogger("nexia.api.transcripts")


class TranscriptService:
    """Convert one uploaded audio segment (or a live buffer) into text."""

    def __init__(self, settings: APISettings, whisper: WhisperEngine | None = None) -> None:
        self.settings = settings
        self.whisper = whisper or WhisperEngine(settings)
        self._openai_client: Optional[AsyncOpenAI] = None
        if settings.whisper_use_openai:
            if not settings.openai_api_key:
                raise RuntimeError("WHISPER_USE_OPENAI=1 but OPENAI_API_KEY is missing")
            self._openai_client = AsyncOpenAI(api_key=settings.openai_api_key)

    @property
    def backend(self) -> str:
        if self._openai_client is not None:
            return "openai"
        return "mock" if self.whisper.is_mock else "whisper"

    async def transcribe_upload(self, file: UploadFile, lang: str | None = None) -> Transcription:
        payload = await file.read()
        if not payload:
            SEGMENT_COUNTER.labels(status="rejected").inc()
            raise HTTPException(status_code=400, detail="Empty audio upload")
        if len(payload) > self.settings.max_upload_bytes:
            SEGMENT_COUNTER.labels(status="rejected").inc()
            raise HTTPException(status_code=413, detail="Audio upload too large")
        language = _normalize_lang(lang)
        filename = Path(file.filename or "segment.webm").name
        try:
            if self._openai_client is not None:
                result = await self._transcribe_openai(filename, payload, file.content_type, language)
            else:
                result = await self._transcribe_local(filename, payload, language)
        except OpenAIError as exc:
            SEGMENT_COUNTER.labels(status="error").inc()
            LOGGER.error("OpenAI transcription failed for %s: %s", filename, exc)
            raise HTTPException(status_code=502, detail="Transcription backend failed") from exc
        SEGMENT_COUNTER.labels(status="success").inc()
        return result

    async def transcribe_pcm(self, pcm: bytes, sample_rate: int, lang: str | None = None) -> Transcription:
        language = _normalize_lang(lang)
        if self._openai_client is None:
            return await asyncio.to_thread(self.whisper.transcribe_pcm, pcm, sample_rate, language)
        usable = len(pcm) - len(pcm) % 2
        samples = np.frombuffer(pcm[:usable], dtype=np.int16)
        buffer = io.BytesIO()
        sf.write(buffer, samples, sample_rate, format="WAV", subtype="PCM_16")
        return await self._transcribe_openai("live.wav", buffer.getvalue(), "audio/wav", language)

    async def _transcribe_openai(
        self, filename: str, payload: bytes, content_type: str | None, language: str | None
    ) -> Transcription:
        assert self._openai_client
        kwargs = {"language": language} if language else {}
        transcript = await self._openai_client.audio.transcriptions.create(
            model=self.settings.openai_whisper_model,
            file=(filename, payload, content_type or "application/octet-stream"),
            **kwargs,
        )
        return Transcription((transcript.text or "").strip(), 0.0, 0.0, language or "auto", None)

    async def _transcribe_local(self, filename: str, payload: bytes, language: str | None) -> Transcription:
        upload_dir = Path(self.settings.data_dir) / "uploads"
        upload_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = upload_dir / f"{int(time.time() * 1000)}_{filename}"
        tmp_path.write_bytes(payload)
        try:
            return await asyncio.to_thread(self.whisper.transcribe_path, tmp_path, language)
        finally:
            if not self.settings.keep_uploads:
                tmp_path.unlink(missing_ok=True)


def _normalize_lang(lang: str | None) -> str | None:
    if not lang or lang.strip().lower() == "auto":
        return None
    return lang.strip()
