"""Transcription orchestrator: strategy selection, failover and transcript assembly."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Set

from ..audio.types import AudioSegment
from ..config import CONFIG
from ..errors import NoValidTranscription, SegmentTimeout, SessionReset, TranscriptionError
from .channels import BatchChannel, StreamingChannel
from .logger import LogBuffer
from .messages import STATUS_CLOSED, STATUS_CONNECTED, STATUS_DEGRADED, StatusMessage, TranscriptMessage

LOGGER = logging.getLogger("nexia.orchestrator")

SEGMENT_SEPARATOR = "\n\n"
OFFLINE_NOTICE = "Real-time transcription unavailable. Offline mode: segments will be transcribed after recording."


class TranscriptionMode(str, enum.Enum):
    UNSELECTED = "unselected"
    STREAMING = "streaming"
    BATCH = "batch"


class AttemptStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class TranscriptionAttempt:
    segment_id: str
    status: AttemptStatus = AttemptStatus.PENDING
    text: Optional[str] = None
    error: Optional[str] = None


class TranscriptionOrchestrator:
    """Single ``transcribe()`` entry point regardless of the active channel.

    The mode is chosen lazily by ``ensure_mode()``. When a streaming factory is
    configured the session starts in STREAMING; once the streaming channel
    reports ``closed`` the session is downgraded to BATCH for good and a
    single notice is added to the activity log. ``reset_session()`` starts a
    fresh session that may try streaming again.

    The authoritative transcript always comes from the finalized segments via
    the batch channel; live streaming text is only a preview.
    """

    def __init__(
        self,
        batch: BatchChannel,
        logger: LogBuffer,
        *,
        streaming_factory: Callable[[], StreamingChannel] | None = None,
        timeout: float = CONFIG.batch_timeout,
        max_concurrency: int = CONFIG.max_concurrency,
    ) -> None:
        self.batch = batch
        self.logger = logger
        self.streaming_factory = streaming_factory
        self.timeout = timeout
        self.max_concurrency = max(1, int(max_concurrency))
        self.last_attempts: List[TranscriptionAttempt] = []
        self._mode = TranscriptionMode.UNSELECTED
        self._streaming: Optional[StreamingChannel] = None
        self._generation = 0
        self._notice_shown = False
        self._final_parts: List[str] = []
        self._interim = ""
        self._background: Set[asyncio.Task] = set()

    @property
    def mode(self) -> TranscriptionMode:
        return self._mode

    @property
    def streaming_channel(self) -> Optional[StreamingChannel]:
        return self._streaming

    @property
    def live_transcript(self) -> str:
        parts = list(self._final_parts)
        if self._interim:
            parts.append(self._interim)
        return " ".join(parts)

    def is_streaming_healthy(self) -> bool:
        return (
            self._mode is TranscriptionMode.STREAMING
            and self._streaming is not None
            and self._streaming.is_healthy()
        )

    async def ensure_mode(self) -> TranscriptionMode:
        if self._mode is not TranscriptionMode.UNSELECTED:
            return self._mode
        if self.streaming_factory is None:
            self._mode = TranscriptionMode.BATCH
            return self._mode
        channel = self.streaming_factory()
        self._streaming = channel
        self._mode = TranscriptionMode.STREAMING
        channel.on_transcript(self._handle_live_transcript)
        channel.on_status(lambda message: self._handle_status(channel, message))
        await channel.open()
        return self._mode

    def feed_audio(self, chunk: bytes) -> None:
        if self.is_streaming_healthy():
            self._streaming.send_audio(chunk)  # type: ignore[union-attr]

    async def transcribe(
        self,
        segments: Iterable[AudioSegment],
        *,
        authoritative: bool = True,
        timeout: float | None = None,
    ) -> str:
        ordered = list(segments)
        if not authoritative:
            await self.ensure_mode()
            if self.is_streaming_healthy() and self.live_transcript.strip():
                return self.live_transcript.strip()
        if not ordered:
            raise NoValidTranscription("No audio to transcribe. Record the consultation first.")

        generation = self._generation
        attempts = [TranscriptionAttempt(segment.id) for segment in ordered]
        semaphore = asyncio.Semaphore(self.max_concurrency)
        limit = self.timeout if timeout is None else timeout
        self.logger.add(f"Transcribing {len(ordered)} segment(s)...")
        await asyncio.gather(
            *(self._attempt(segment, attempt, semaphore, limit) for segment, attempt in zip(ordered, attempts))
        )
        if generation != self._generation:
            LOGGER.info("Discarding transcription results from a reset session")
            raise SessionReset()
        self.last_attempts = attempts

        texts = [attempt.text for attempt in attempts if attempt.status is AttemptStatus.SUCCEEDED and attempt.text]
        if not texts:
            self.logger.add(NoValidTranscription.default_message, level=logging.ERROR)
            raise NoValidTranscription()
        self.logger.add(f"Transcription complete ({len(texts)}/{len(attempts)} segments)")
        return SEGMENT_SEPARATOR.join(texts)

    async def reset_session(self) -> None:
        self._generation += 1
        self._mode = TranscriptionMode.UNSELECTED
        self._notice_shown = False
        self._final_parts = []
        self._interim = ""
        self.last_attempts = []
        channel, self._streaming = self._streaming, None
        if channel is not None:
            await channel.close()

    async def aclose(self) -> None:
        await self.reset_session()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.batch.close()

    async def _attempt(
        self,
        segment: AudioSegment,
        attempt: TranscriptionAttempt,
        semaphore: asyncio.Semaphore,
        timeout: float,
    ) -> None:
        async with semaphore:
            try:
                text = await asyncio.wait_for(self.batch.send(segment), timeout)
            except asyncio.TimeoutError:
                error: TranscriptionError = SegmentTimeout()
            except TranscriptionError as exc:
                error = exc
            else:
                attempt.status = AttemptStatus.SUCCEEDED
                attempt.text = text
                return
        attempt.status = AttemptStatus.FAILED
        attempt.error = error.reason
        LOGGER.warning("Segment %s failed (%s): %s", segment.id, error.reason, error.message)
        self.logger.add(f"Segment {segment.id[:6]} skipped: {error.message}", level=logging.WARNING)

    def _handle_live_transcript(self, message: TranscriptMessage) -> None:
        text = message.text.strip()
        if message.is_final:
            if text:
                self._final_parts.append(text)
            self._interim = ""
        else:
            self._interim = text

    def _handle_status(self, channel: StreamingChannel, message: StatusMessage) -> None:
        if channel is not self._streaming:
            return
        if message.status == STATUS_CONNECTED:
            self.logger.add("Real-time transcription connected")
        elif message.status == STATUS_DEGRADED:
            LOGGER.info("Streaming degraded: %s", message.message)
        elif message.status == STATUS_CLOSED:
            self._downgrade(channel)

    def _downgrade(self, channel: StreamingChannel) -> None:
        if self._mode is not TranscriptionMode.STREAMING:
            return
        self._mode = TranscriptionMode.BATCH
        self._streaming = None
        self._interim = ""
        if not self._notice_shown:
            self._notice_shown = True
            self.logger.add(OFFLINE_NOTICE, level=logging.WARNING)
        task = asyncio.create_task(channel.close())
        self._background.add(task)
        task.add_done_callback(self._background.discard)


__all__ = [
    "AttemptStatus",
    "OFFLINE_NOTICE",
    "SEGMENT_SEPARATOR",
    "TranscriptionAttempt",
    "TranscriptionMode",
    "TranscriptionOrchestrator",
]
