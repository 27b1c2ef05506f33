"""Pytest configuration helpers and shared fakes."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Callable, List, Optional


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without setting PYTHONPATH."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

import pytest  # noqa: E402

from nexia.audio.types import AudioSegment  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class FakeStream:
    def __init__(self, channels: int = 1, media_type: str = "audio/webm", sample_rate: Optional[int] = None) -> None:
        self.channels = channels
        self.media_type = media_type
        self.sample_rate = sample_rate
        self.on_chunk: Optional[Callable[[bytes], None]] = None
        self.pending: List[bytes] = []
        self.flushed = False
        self.release_count = 0

    async def flush(self) -> None:
        self.flushed = True
        for chunk in self.pending:
            assert self.on_chunk is not None
            self.on_chunk(chunk)
        self.pending = []

    def release(self) -> None:
        self.release_count += 1


class FakeDevice:
    """Hands out FakeStreams; ``error`` is raised by the next acquire."""

    def __init__(self, **stream_kwargs) -> None:
        self.stream_kwargs = stream_kwargs
        self.streams: List[FakeStream] = []
        self.error: Optional[Exception] = None

    async def acquire(self, constraints, on_chunk):
        if self.error is not None:
            raise self.error
        stream = FakeStream(**self.stream_kwargs)
        stream.on_chunk = on_chunk
        self.streams.append(stream)
        return stream

    @property
    def current(self) -> FakeStream:
        return self.streams[-1]

    def emit(self, chunk: bytes) -> None:
        stream = self.current
        assert stream.on_chunk is not None
        stream.on_chunk(chunk)


class FakeBatch:
    """Stands in for BatchChannel: scripted texts, delays and failures per segment id."""

    def __init__(self, texts=None, delays=None, failures=None) -> None:
        self.texts = dict(texts or {})
        self.delays = dict(delays or {})
        self.failures = dict(failures or {})
        self.sent: List[str] = []
        self.closed = False

    async def send(self, segment: AudioSegment) -> str:
        self.sent.append(segment.id)
        await asyncio.sleep(self.delays.get(segment.id, 0.0))
        if segment.id in self.failures:
            raise self.failures[segment.id]
        return self.texts[segment.id]

    async def close(self) -> None:
        self.closed = True


def make_segment(segment_id: str, size: int = 2048, duration: float = 1.0) -> AudioSegment:
    return AudioSegment(data=b"\x01" * size, media_type="audio/webm", duration_seconds=duration, id=segment_id)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def device() -> FakeDevice:
    return FakeDevice()
