"""Transport strategies that carry audio to the transcription service."""

from __future__ import annotations

import abc
import asyncio
import enum
import json
import logging
from typing import Any, Awaitable, Callable, List, Optional

import httpx
from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from ..audio.types import AudioSegment
from ..config import CONFIG
from ..errors import BackendRejected, SegmentTimeout, TransportError
from ..store.settings_store import SettingsStore
from .messages import (
    STATUS_CLOSED,
    STATUS_CONNECTED,
    STATUS_DEGRADED,
    ErrorMessage,
    NotesMessage,
    PongMessage,
    StatusMessage,
    TranscriptMessage,
    decode_message,
)
from .network import ApiClient, ApiError
from .notes import StructuredNote

LOGGER = logging.getLogger("nexia.channels")

TranscriptListener = Callable[[TranscriptMessage], None]
StatusListener = Callable[[StatusMessage], None]
NotesListener = Callable[[StructuredNote], None]
Connector = Callable[..., Awaitable[Any]]

_TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class TranscriptionChannel(abc.ABC):
    """Common listener plumbing for both strategies."""

    def __init__(self) -> None:
        self._transcript_listeners: List[TranscriptListener] = []

    def on_transcript(self, listener: TranscriptListener) -> None:
        self._transcript_listeners.append(listener)

    @abc.abstractmethod
    def is_healthy(self) -> bool:
        ...

    async def close(self) -> None:
        return None

    def _emit_transcript(self, message: TranscriptMessage) -> None:
        for listener in list(self._transcript_listeners):
            try:
                listener(message)
            except Exception:
                LOGGER.exception("Transcript listener failed")


class BatchChannel(ApiClient, TranscriptionChannel):
    """One independent upload per finalized segment; no retries here."""

    def __init__(
        self,
        settings: SettingsStore,
        *,
        timeout: float = CONFIG.batch_timeout,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        ApiClient.__init__(self, settings, timeout=timeout, client=client)
        TranscriptionChannel.__init__(self)

    def is_healthy(self) -> bool:
        return True

    async def send(self, segment: AudioSegment) -> str:
        try:
            url = self._url("/v1/transcribe")
            headers = self._headers()
        except ApiError as exc:
            raise TransportError(exc.message) from exc
        files = {"file": (segment.filename(), segment.data, segment.media_type)}
        payload = {
            "lang": self.settings_store.get().language or "auto",
            "segment_id": segment.id,
            "duration": f"{segment.duration_seconds:.3f}",
        }
        try:
            resp = await self._client.post(url, headers=headers, files=files, data=payload, timeout=self.timeout)
        except httpx.TimeoutException as exc:
            raise SegmentTimeout() from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{TransportError.default_message} ({exc})") from exc
        if resp.status_code == 401:
            raise BackendRejected("Unauthorized: check API key")
        if resp.status_code >= 400:
            raise BackendRejected(f"Transcription failed: {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise BackendRejected(f"Invalid response: {exc}") from exc
        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise BackendRejected("Empty transcription")
        text = text.strip()
        self._emit_transcript(TranscriptMessage(text=text, is_final=True))
        return text

    async def close(self) -> None:
        await self.aclose()


class ChannelState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    DEGRADED = "degraded"
    CLOSED = "closed"


class StreamingChannel(TranscriptionChannel):
    """Persistent websocket carrying raw audio up and incremental transcripts down.

    ``open()`` connects once; transport errors move the channel to DEGRADED and a
    reconnect is attempted after ``reconnect_delay``. Once
    ``max_reconnect_attempts`` consecutive attempts fail the channel is CLOSED
    and a ``closed`` status is emitted. ``close()`` is a caller-initiated
    shutdown and emits nothing.
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        connect: Connector | None = None,
        heartbeat_interval: float = CONFIG.heartbeat_interval,
        heartbeat_timeout: float = CONFIG.heartbeat_timeout,
        reconnect_delay: float = CONFIG.reconnect_delay,
        max_reconnect_attempts: int = CONFIG.max_reconnect_attempts,
    ) -> None:
        super().__init__()
        self.url = url
        self.api_key = api_key
        self.heartbeat_interval = heartbeat_interval
        self.heartbeat_timeout = heartbeat_timeout
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max(0, int(max_reconnect_attempts))
        self._connect = connect or websocket_connect
        self._state = ChannelState.CONNECTING
        self._ws: Any = None
        self._outbox: asyncio.Queue[bytes | str] = asyncio.Queue()
        self._tasks: List[asyncio.Task] = []
        self._reconnect_task: Optional[asyncio.Task] = None
        self._attempts = 0
        self._closing = False
        self._status_listeners: List[StatusListener] = []
        self._notes_listeners: List[NotesListener] = []

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    def is_healthy(self) -> bool:
        return self._state is ChannelState.OPEN

    def on_status(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def on_notes(self, listener: NotesListener) -> None:
        self._notes_listeners.append(listener)

    def request_notes(self, transcript: str) -> bool:
        """Ask the backend for notes over the open socket; replies reach ``on_notes``."""
        text = (transcript or "").strip()
        if self._state is not ChannelState.OPEN or not text:
            return False
        self._outbox.put_nowait(json.dumps({"type": "generate_notes", "text": text}))
        return True

    async def open(self) -> bool:
        self._closing = False
        self._state = ChannelState.CONNECTING
        if await self._try_connect():
            return True
        self._degrade("initial connection failed")
        return False

    def send_audio(self, data: bytes) -> None:
        if self._state is not ChannelState.OPEN or not data:
            return
        self._outbox.put_nowait(data)

    async def close(self) -> None:
        self._closing = True
        pending = [task for task in [self._reconnect_task, *self._tasks] if task is not None]
        self._reconnect_task = None
        self._tasks = []
        await _cancel(pending)
        ws, self._ws = self._ws, None
        await _close_quietly(ws)
        self._drain_outbox()
        self._state = ChannelState.CLOSED

    async def _try_connect(self) -> bool:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        try:
            ws = await self._connect(self.url, additional_headers=headers, ping_interval=None)
        except _TRANSPORT_ERRORS as exc:
            LOGGER.warning("Streaming connection to %s failed: %s", self.url, exc)
            return False
        if self._closing:
            await _close_quietly(ws)
            return False
        self._ws = ws
        self._attempts = 0
        self._drain_outbox()
        self._state = ChannelState.OPEN
        self._tasks = [
            asyncio.create_task(self._read_loop(ws)),
            asyncio.create_task(self._send_loop(ws)),
            asyncio.create_task(self._heartbeat_loop(ws)),
        ]
        LOGGER.info("Streaming channel open: %s", self.url)
        self._emit_status(StatusMessage(status=STATUS_CONNECTED))
        return True

    async def _read_loop(self, ws: Any) -> None:
        try:
            while True:
                raw = await ws.recv()
                message = decode_message(raw)
                if message is None:
                    continue
                if isinstance(message, TranscriptMessage):
                    self._emit_transcript(message)
                elif isinstance(message, StatusMessage):
                    self._emit_status(message)
                elif isinstance(message, NotesMessage):
                    self._emit_notes(message.notes)
                elif isinstance(message, ErrorMessage):
                    LOGGER.warning("Streaming backend error: %s", message.message)
                elif isinstance(message, PongMessage):
                    LOGGER.debug("pong")
        except ConnectionClosedOK:
            if ws is self._ws and not self._closing:
                LOGGER.info("Streaming backend closed the connection")
                self._shutdown_connection()
                self._state = ChannelState.CLOSED
                self._emit_status(StatusMessage(status=STATUS_CLOSED, message="closed by backend"))
        except _TRANSPORT_ERRORS as exc:
            if ws is self._ws:
                self._handle_transport_error(f"connection lost: {exc}")

    async def _send_loop(self, ws: Any) -> None:
        try:
            while True:
                data = await self._outbox.get()
                await ws.send(data)
        except _TRANSPORT_ERRORS as exc:
            if ws is self._ws:
                self._handle_transport_error(f"send failed: {exc}")

    async def _heartbeat_loop(self, ws: Any) -> None:
        try:
            while True:
                await asyncio.sleep(self.heartbeat_interval)
                pong_waiter = await ws.ping()
                await asyncio.wait_for(pong_waiter, self.heartbeat_timeout)
        except asyncio.TimeoutError:
            if ws is self._ws:
                self._handle_transport_error("heartbeat timed out")
        except _TRANSPORT_ERRORS as exc:
            if ws is self._ws:
                self._handle_transport_error(f"heartbeat failed: {exc}")

    def _handle_transport_error(self, reason: str) -> None:
        if self._closing or self._state is not ChannelState.OPEN:
            return
        LOGGER.warning("Streaming channel degraded: %s", reason)
        stale = self._shutdown_connection()
        self._degrade(reason, stale)

    def _degrade(self, reason: str, stale: Any = None) -> None:
        self._state = ChannelState.DEGRADED
        self._emit_status(StatusMessage(status=STATUS_DEGRADED, message=reason))
        self._reconnect_task = asyncio.create_task(self._reconnect_loop(stale))

    def _shutdown_connection(self) -> Any:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()
        self._tasks = []
        stale, self._ws = self._ws, None
        self._drain_outbox()
        return stale

    async def _reconnect_loop(self, stale: Any) -> None:
        await _close_quietly(stale)
        while not self._closing:
            if self._attempts >= self.max_reconnect_attempts:
                LOGGER.warning("Giving up on streaming after %s reconnect attempt(s)", self._attempts)
                self._state = ChannelState.CLOSED
                self._emit_status(StatusMessage(status=STATUS_CLOSED, message="reconnect attempts exhausted"))
                return
            await asyncio.sleep(self.reconnect_delay)
            if self._closing:
                return
            self._attempts += 1
            LOGGER.info("Reconnecting streaming channel (attempt %s/%s)", self._attempts, self.max_reconnect_attempts)
            if await self._try_connect():
                return

    def _emit_status(self, message: StatusMessage) -> None:
        for listener in list(self._status_listeners):
            try:
                listener(message)
            except Exception:
                LOGGER.exception("Status listener failed")

    def _emit_notes(self, note: StructuredNote) -> None:
        for listener in list(self._notes_listeners):
            try:
                listener(note)
            except Exception:
                LOGGER.exception("Notes listener failed")

    def _drain_outbox(self) -> None:
        while not self._outbox.empty():
            self._outbox.get_nowait()


async def _cancel(tasks: List[asyncio.Task]) -> None:
    current = asyncio.current_task()
    tasks = [task for task in tasks if task is not current and not task.done()]
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


async def _close_quietly(ws: Any) -> None:
    if ws is None:
        return
    try:
        await ws.close()
    except _TRANSPORT_ERRORS as exc:
        LOGGER.debug("Ignoring error while closing websocket: %s", exc)


__all__ = ["BatchChannel", "ChannelState", "StreamingChannel", "TranscriptionChannel"]
