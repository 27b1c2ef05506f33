"""Segment recorder: one capture session materialised into discrete segments."""

from __future__ import annotations

import io
import logging
import time
from typing import Callable, List, Optional

import numpy as np
import soundfile as sf

from ..config import CONFIG
from ..errors import AudioTooSmall, DeviceError, DeviceUnknown, NexiaError, NoAudioCaptured, NotRecording
from ..services.logger import LogBuffer
from ..store.segment_store import SegmentStore
from .capture import RAW_PCM_MEDIA_TYPE, AudioStream, CaptureConstraints, CaptureDevice
from .types import AudioSegment, RecorderState

LOGGER = logging.getLogger("nexia.recorder")


class SegmentRecorder:
    def __init__(
        self,
        device: CaptureDevice,
        store: SegmentStore,
        logger: LogBuffer,
        *,
        constraints: CaptureConstraints | None = None,
        min_segment_bytes: int = CONFIG.min_segment_bytes,
        clock: Callable[[], float] = time.monotonic,
        on_audio: Callable[[bytes], None] | None = None,
        level_callback: Callable[[float], None] | None = None,
    ) -> None:
        self.device = device
        self.store = store
        self.logger = logger
        self.constraints = constraints or CaptureConstraints()
        self.min_segment_bytes = max(1, int(min_segment_bytes))
        self.on_audio = on_audio
        self.level_callback = level_callback
        self._clock = clock
        self._state = RecorderState.IDLE
        self._stream: Optional[AudioStream] = None
        self._chunks: List[bytes] = []
        self._elapsed_base = 0.0
        self._recording_since = 0.0
        self._segment_start_mark = 0.0

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is RecorderState.RECORDING

    @property
    def elapsed_seconds(self) -> float:
        if self._state is RecorderState.RECORDING:
            return self._elapsed_base + (self._clock() - self._recording_since)
        return self._elapsed_base

    @property
    def segment_start_mark(self) -> float:
        return self._segment_start_mark

    @property
    def buffered_bytes(self) -> int:
        return sum(len(chunk) for chunk in self._chunks)

    async def start(self) -> None:
        if self._stream is not None:
            self._teardown("Previous recording discarded before starting a new one")
        self._chunks = []
        try:
            stream = await self.device.acquire(self.constraints, self._handle_chunk)
        except DeviceError as exc:
            self.logger.add(exc.message, level=logging.WARNING)
            raise
        except Exception as exc:
            error = DeviceUnknown(f"{DeviceUnknown.default_message} ({exc})")
            self.logger.add(error.message, level=logging.WARNING)
            raise error from exc
        if getattr(stream, "channels", 0) < 1:
            stream.release()
            error = DeviceUnknown()
            self.logger.add(error.message, level=logging.WARNING)
            raise error
        self._stream = stream
        self._segment_start_mark = self._elapsed_base
        self._recording_since = self._clock()
        self._state = RecorderState.RECORDING
        self.logger.add("Recording started")

    async def stop(self) -> AudioSegment:
        if self._state is not RecorderState.RECORDING or self._stream is None:
            raise NotRecording()
        self._elapsed_base = self.elapsed_seconds
        duration = self._elapsed_base - self._segment_start_mark
        self._state = RecorderState.STOPPING
        stream = self._stream
        try:
            await stream.flush()
        except Exception as exc:
            LOGGER.warning("Flushing the input stream failed: %s", exc)
        finally:
            stream.release()
            self._stream = None
            chunks, self._chunks = self._chunks, []
            self._state = RecorderState.IDLE
        try:
            segment = self._finalize(chunks, stream, duration)
        except NexiaError as exc:
            self.logger.add(exc.message, level=logging.WARNING)
            raise
        self.store.append(segment)
        self.logger.add(f"Segment recorded ({_format_duration(duration)}, {segment.size} bytes)")
        return segment

    def release(self) -> None:
        """Drop any active capture without producing a segment."""
        if self._stream is not None:
            self._teardown("Recording cancelled")

    def _teardown(self, message: str) -> None:
        stream = self._stream
        self._stream = None
        if self._state is RecorderState.RECORDING:
            self._elapsed_base = self.elapsed_seconds
        self._state = RecorderState.IDLE
        self._chunks = []
        if stream is not None:
            stream.release()
        self.logger.add(message)

    def _handle_chunk(self, chunk: bytes) -> None:
        if self._state is RecorderState.IDLE or not chunk:
            return
        self._chunks.append(chunk)
        if self.on_audio and self._state is RecorderState.RECORDING:
            self.on_audio(chunk)
        self._report_level(chunk)

    def _finalize(self, chunks: List[bytes], stream: AudioStream, duration: float) -> AudioSegment:
        if sum(len(chunk) for chunk in chunks) == 0:
            raise NoAudioCaptured()
        data = b"".join(chunks)
        media_type = stream.media_type
        if media_type == RAW_PCM_MEDIA_TYPE and stream.sample_rate:
            data = self._encode_flac(data, stream.sample_rate, stream.channels)
            media_type = "audio/flac"
        if len(data) < self.min_segment_bytes:
            raise AudioTooSmall()
        return AudioSegment(data=data, media_type=media_type, duration_seconds=max(0.0, duration))

    def _encode_flac(self, pcm: bytes, sample_rate: int, channels: int) -> bytes:
        samples = np.frombuffer(pcm[: len(pcm) - len(pcm) % 2], dtype=np.int16)
        if channels > 1:
            samples = samples[: len(samples) - len(samples) % channels].reshape(-1, channels)
        buffer = io.BytesIO()
        sf.write(buffer, samples, sample_rate, format="FLAC", subtype="PCM_16")
        return buffer.getvalue()

    def _report_level(self, chunk: bytes) -> None:
        if not self.level_callback or self._stream is None:
            return
        if self._stream.media_type != RAW_PCM_MEDIA_TYPE or len(chunk) < 2:
            return
        samples = np.frombuffer(chunk[: len(chunk) - len(chunk) % 2], dtype=np.int16)
        level = float(np.max(np.abs(samples.astype(np.int32)))) / 32768.0 if samples.size else 0.0
        self.level_callback(max(0.0, min(1.0, level)))


def _format_duration(seconds: float) -> str:
    whole = int(round(seconds))
    return f"{whole // 60}:{whole % 60:02d}"


__all__ = ["SegmentRecorder"]
