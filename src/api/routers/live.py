"""Real-time transcription websocket."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from ..deps.auth import is_valid_key, websocket_key
from ..metrics import LIVE_SESSIONS
from ..services.note_service import NoteService
from ..services.transcript_service import TranscriptService
from ..settings import APISettings, get_settings
from .notes import get_note_service
from .transcribe import get_service

LOGGER = logging.getLogger("nexia.api.live")

router = APIRouter(tags=["live"])


class LiveBuffer:
    """Accumulates PCM frames until enough audio is available to transcribe."""

    def __init__(self, threshold: int) -> None:
        self.threshold = max(1, threshold)
        self._chunks: list[bytes] = []
        self._size = 0

    def add(self, data: bytes) -> bool:
        self._chunks.append(data)
        self._size += len(data)
        return self._size >= self.threshold

    def take(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks = []
        self._size = 0
        return data

    def __len__(self) -> int:
        return self._size


@router.websocket("/ws")
async def live_transcription(
    websocket: WebSocket,
    settings: APISettings = Depends(get_settings),
    service: TranscriptService = Depends(get_service),
    notes: NoteService = Depends(get_note_service),
):
    if not is_valid_key(websocket_key(websocket), settings):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    LIVE_SESSIONS.inc()
    buffer = LiveBuffer(settings.live_buffer_bytes)
    lang = websocket.query_params.get("lang")
    try:
        await websocket.send_json({"type": "status", "status": "connected"})
        while True:
            message = await websocket.receive()
            if message.get("type") == "websocket.disconnect":
                break
            data = message.get("bytes")
            if data:
                if buffer.add(data):
                    await _flush(websocket, buffer, service, settings.live_sample_rate, lang)
                continue
            text = message.get("text")
            if text:
                await _handle_command(websocket, text, buffer, service, notes, settings.live_sample_rate, lang)
    except WebSocketDisconnect:
        pass
    finally:
        LIVE_SESSIONS.dec()
        LOGGER.info("Live session closed (%d bytes unprocessed)", len(buffer))


async def _handle_command(
    websocket: WebSocket,
    text: str,
    buffer: LiveBuffer,
    service: TranscriptService,
    notes: NoteService,
    sample_rate: int,
    lang: str | None,
) -> None:
    try:
        command = json.loads(text)
    except json.JSONDecodeError:
        await websocket.send_json({"type": "error", "message": "Invalid command"})
        return
    kind = command.get("type") if isinstance(command, dict) else None
    if kind == "ping":
        await websocket.send_json({"type": "pong"})
    elif kind == "flush":
        if len(buffer):
            await _flush(websocket, buffer, service, sample_rate, lang)
    elif kind == "generate_notes":
        try:
            note = await notes.generate(str(command.get("text") or ""))
        except HTTPException as exc:
            await websocket.send_json({"type": "error", "message": str(exc.detail)})
            return
        await websocket.send_json({"type": "notes", "notes": note.model_dump(by_alias=True, exclude_none=True)})
    else:
        await websocket.send_json({"type": "error", "message": f"Unknown command: {kind}"})


async def _flush(
    websocket: WebSocket,
    buffer: LiveBuffer,
    service: TranscriptService,
    sample_rate: int,
    lang: str | None,
) -> None:
    pcm = buffer.take()
    try:
        result = await service.transcribe_pcm(pcm, sample_rate, lang)
    except Exception as exc:
        LOGGER.error("Live transcription failed: %s", exc)
        await websocket.send_json({"type": "error", "message": "Error processing transcription"})
        return
    if result.text:
        await websocket.send_json({"type": "transcript", "text": result.text, "isFinal": True})
