"""One consultation: recorder, segment store, orchestrator and note client wired together."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Tuple

from .audio.capture import CaptureConstraints, CaptureDevice
from .audio.recorder import SegmentRecorder
from .audio.types import AudioSegment
from .config import CONFIG
from .services.channels import BatchChannel, StreamingChannel
from .services.logger import LogBuffer
from .services.notes import NoteGenerationClient, StructuredNote
from .services.orchestrator import TranscriptionOrchestrator
from .store.consultation_store import ConsultationRepository
from .store.segment_store import SegmentStore
from .store.settings_store import SettingsStore

LOGGER = logging.getLogger("nexia.session")


class ConsultationSession:
    """Facade used by the CLI (and any UI) to drive a consultation end to end."""

    def __init__(
        self,
        device: CaptureDevice,
        settings: SettingsStore,
        repository: ConsultationRepository,
        *,
        logger: LogBuffer | None = None,
        orchestrator: TranscriptionOrchestrator | None = None,
        notes: NoteGenerationClient | None = None,
        constraints: CaptureConstraints | None = None,
        playback_dir: Optional[Path] = None,
        level_callback: Callable[[float], None] | None = None,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.logger = logger or LogBuffer(CONFIG.log_history)
        self.store = SegmentStore(playback_dir)
        self.orchestrator = orchestrator or TranscriptionOrchestrator(
            BatchChannel(settings),
            self.logger,
            streaming_factory=self._streaming_factory(settings),
        )
        self.notes = notes or NoteGenerationClient(settings, timeout=CONFIG.batch_timeout)
        self.recorder = SegmentRecorder(
            device,
            self.store,
            self.logger,
            constraints=constraints,
            on_audio=self.orchestrator.feed_audio,
            level_callback=level_callback,
        )

    @staticmethod
    def _streaming_factory(settings: SettingsStore) -> Callable[[], StreamingChannel] | None:
        current = settings.get()
        if not current.use_streaming or not current.streaming_url:
            return None

        def factory() -> StreamingChannel:
            latest = settings.get()
            return StreamingChannel(latest.streaming_url, api_key=latest.api_key or None)

        return factory

    @property
    def segments(self) -> Tuple[AudioSegment, ...]:
        return self.store.all()

    async def start_segment(self) -> None:
        await self.orchestrator.ensure_mode()
        await self.recorder.start()

    async def stop_segment(self) -> AudioSegment:
        return await self.recorder.stop()

    def delete_segment(self, segment_id: str) -> bool:
        removed = self.store.delete_by_id(segment_id)
        if removed:
            self.logger.add(f"Segment {segment_id[:6]} deleted")
        return removed

    async def reset(self) -> None:
        """Discard all audio and start a fresh session."""
        self.recorder.release()
        self.store.reset()
        await self.orchestrator.reset_session()
        self.logger.add("Session reset")

    async def transcribe(self, *, authoritative: bool = True) -> str:
        return await self.orchestrator.transcribe(self.store.all(), authoritative=authoritative)

    async def finish(self, consultation_id: str) -> Tuple[str, StructuredNote]:
        transcript = await self.transcribe()
        await self.repository.save_transcript(consultation_id, transcript)
        self.logger.add("Transcript saved")
        note = await self.notes.generate_notes(transcript)
        await self.repository.save_notes(consultation_id, note)
        self.logger.add("Clinical notes generated and saved")
        return transcript, note

    async def close(self) -> None:
        self.recorder.release()
        self.store.reset()
        await self.orchestrator.aclose()
        await self.notes.aclose()


__all__ = ["ConsultationSession"]
