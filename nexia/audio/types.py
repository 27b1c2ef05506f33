"""Dataclasses shared across audio helpers."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field


class RecorderState(str, enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"


@dataclass(frozen=True, slots=True)
class AudioSegment:
    """One finalized unit of recorded audio."""

    data: bytes
    media_type: str
    duration_seconds: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    captured_at_ms: int = field(default_factory=lambda: int(time.time() * 1000))

    def __post_init__(self) -> None:
        if not self.data:
            raise ValueError("AudioSegment payload must not be empty")

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        subtype = self.media_type.split("/", 1)[-1].split(";", 1)[0].strip().lower()
        return {"mpeg": "mp3", "x-wav": "wav", "wave": "wav", "l16": "pcm"}.get(subtype, subtype or "bin")

    def filename(self) -> str:
        return f"segment-{self.id}.{self.extension}"
