"""Command-line entry point: transcribe recorded files or capture a consultation."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

import soundfile as sf

from .audio.capture import SoundDeviceCapture
from .audio.types import AudioSegment
from .config import CONFIG
from .errors import NexiaError
from .services.channels import BatchChannel
from .services.logger import LogBuffer
from .services.notes import NoteGenerationClient, StructuredNote
from .services.orchestrator import TranscriptionOrchestrator
from .session import ConsultationSession
from .store.consultation_store import ConsultationStore
from .store.settings_store import SettingsStore

LOGGER = logging.getLogger("nexia.cli")


def _load_settings(args: argparse.Namespace) -> SettingsStore:
    store = SettingsStore(args.settings)
    current = store.get()
    # Command-line overrides apply to this run only.
    if args.server_url:
        current.server_url = args.server_url
    if args.api_key:
        current.api_key = args.api_key
    if getattr(args, "streaming_url", None):
        current.streaming_url = args.streaming_url
    if getattr(args, "no_streaming", False):
        current.use_streaming = False
    return store


def _probe_duration(path: Path) -> float:
    try:
        return float(sf.info(str(path)).duration)
    except RuntimeError as exc:
        LOGGER.debug("Could not read duration of %s: %s", path, exc)
        return 0.0


def segment_from_file(path: Path) -> AudioSegment:
    data = path.read_bytes()
    if not data:
        raise ValueError(f"{path} is empty")
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return AudioSegment(data=data, media_type=media_type, duration_seconds=_probe_duration(path))


def _print_note(note: StructuredNote) -> None:
    print(json.dumps(note.model_dump(by_alias=True, exclude_none=True), indent=2, ensure_ascii=False))


async def _run_transcribe(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    logger = LogBuffer(CONFIG.log_history)
    segments: List[AudioSegment] = [segment_from_file(Path(item)) for item in args.files]
    orchestrator = TranscriptionOrchestrator(BatchChannel(settings), logger, timeout=args.timeout)
    notes = NoteGenerationClient(settings, timeout=args.timeout)
    try:
        transcript = await orchestrator.transcribe(segments)
        print(transcript)
        if args.consultation:
            repository = ConsultationStore(Path(args.store))
            await repository.save_transcript(args.consultation, transcript)
        if args.notes:
            note = await notes.generate_notes(transcript)
            _print_note(note)
            if args.consultation:
                await repository.save_notes(args.consultation, note)
    finally:
        await orchestrator.aclose()
        await notes.aclose()
    return 0


async def _prompt(message: str) -> str:
    return (await asyncio.to_thread(input, message)).strip().lower()


async def _run_record(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    consultation_id = args.consultation or uuid.uuid4().hex
    session = ConsultationSession(
        SoundDeviceCapture(args.device),
        settings,
        ConsultationStore(Path(args.store)),
    )
    try:
        while True:
            answer = await _prompt("[Enter] record a segment, [d] delete last, [q] finish: ")
            if answer == "q":
                break
            if answer == "d":
                if session.segments:
                    session.delete_segment(session.segments[-1].id)
                continue
            try:
                await session.start_segment()
                await _prompt("Recording... press Enter to stop. ")
                segment = await session.stop_segment()
            except NexiaError as exc:
                print(exc.message, file=sys.stderr)
                continue
            print(f"Segment {len(session.segments)}: {segment.duration_seconds:.1f}s")
            live = session.orchestrator.live_transcript
            if live:
                print(f"Live: {live}")
        if not session.segments:
            print("No segments recorded.")
            return 1
        transcript, note = await session.finish(consultation_id)
        print(transcript)
        _print_note(note)
        print(f"Saved as consultation {consultation_id}")
    finally:
        await session.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Nexia consultation scribe.")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level (default: WARNING).")
    parser.add_argument("--settings", type=Path, default=Path(CONFIG.settings_file), help="Settings JSON file.")
    parser.add_argument("--server-url", help="Override the transcription server URL.")
    parser.add_argument("--api-key", help="Override the bearer credential.")
    parser.add_argument("--store", default=CONFIG.consultations_file, help="Consultation JSONL file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    transcribe_parser = subparsers.add_parser("transcribe", help="Transcribe audio files as ordered segments")
    transcribe_parser.add_argument("files", nargs="+", help="Audio files, in recording order")
    transcribe_parser.add_argument("--timeout", type=float, default=CONFIG.batch_timeout, help="Per-segment timeout in seconds")
    transcribe_parser.add_argument("--notes", action="store_true", help="Also generate clinical notes")
    transcribe_parser.add_argument("--consultation", help="Save results under this consultation id")

    record_parser = subparsers.add_parser("record", help="Record a consultation from the microphone")
    record_parser.add_argument("--device", help="Input device name or index")
    record_parser.add_argument("--consultation", help="Consultation id (default: random)")
    record_parser.add_argument("--streaming-url", help="Override the real-time websocket URL")
    record_parser.add_argument("--no-streaming", action="store_true", help="Batch transcription only")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "record" and args.device is not None and args.device.isdigit():
        args.device = int(args.device)
    handler = _run_transcribe if args.command == "transcribe" else _run_record
    try:
        return asyncio.run(handler(args))
    except NexiaError as exc:
        print(exc.message, file=sys.stderr)
        return 1
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
