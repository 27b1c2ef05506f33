"""Lazy Whisper (faster-whisper) loader + mock fallback."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable, NamedTuple

import numpy as np

try:  # pragma: no cover - optional heavy dependency
    from faster_whisper import WhisperModel  # type: ignore
except Exception:  # pragma: no cover
    WhisperModel = None  # type: ignore

from ..settings import APISettings

LOGGER = logging.getLogger("nexia.api.whisper")


class Transcription(NamedTuple):
    text: str
    start: float
    end: float
    lang: str
    confidence: float | None


class WhisperEngine:
    """Loads the model on first use; mock mode returns deterministic placeholders."""

    def __init__(self, settings: APISettings) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._model = None
        self._mock = settings.whisper_mock_transcriber or WhisperModel is None
        if self._mock:
            LOGGER.warning(
                "Whisper mock mode enabled (set WHISPER_USE_MOCK=0 and install "
                "faster-whisper to enable local transcription)."
            )

    @property
    def is_mock(self) -> bool:
        return self._mock

    def _load_model(self):
        if self._mock:
            raise RuntimeError("Mock mode does not load real Whisper models")
        if self._model is None:
            with self._lock:
                if self._model is None:
                    try:
                        self._model = WhisperModel(
                            self.settings.whisper_model,
                            device=self.settings.whisper_device,
                            compute_type=self.settings.whisper_compute_type,
                        )
                    except Exception as exc:  # pragma: no cover - hardware/env dep
                        LOGGER.error("Failed to load Whisper model '%s': %s", self.settings.whisper_model, exc)
                        raise
        return self._model

    def transcribe_path(self, path: Path, language: str | None = None) -> Transcription:
        if self._mock:
            return Transcription(f"[mock transcript for {path.name}]", 0.0, 0.0, language or "auto", None)
        model = self._load_model()
        segments, info = model.transcribe(str(path), language=language, beam_size=5)
        return _summarize_segments(segments, info)

    def transcribe_pcm(self, pcm: bytes, sample_rate: int, language: str | None = None) -> Transcription:
        """Transcribe raw 16-bit mono PCM as received on the live socket."""
        usable = len(pcm) - len(pcm) % 2
        audio = np.frombuffer(pcm[:usable], dtype=np.int16).astype(np.float32) / 32768.0
        if self._mock:
            duration = len(audio) / float(sample_rate)
            return Transcription(f"[mock transcript {len(audio)} samples]", 0.0, duration, language or "auto", None)
        model = self._load_model()
        segments, info = model.transcribe(audio=audio, language=language, beam_size=5, vad_filter=True)
        return _summarize_segments(segments, info)


def _summarize_segments(segments: Iterable, info) -> Transcription:
    pieces = []
    start = None
    end = 0.0
    for segment in segments:
        pieces.append(segment.text.strip())
        if start is None:
            start = getattr(segment, "start", 0.0) or 0.0
        end = max(end, getattr(segment, "end", 0.0) or 0.0)
    text = " ".join(piece for piece in pieces if piece).strip()
    lang = getattr(info, "language", None) or "auto"
    confidence = getattr(info, "language_probability", None)
    return Transcription(text, float(start or 0.0), float(end), lang, confidence)
