"""Ordered in-memory collection of finalized audio segments."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..audio.types import AudioSegment

LOGGER = logging.getLogger("nexia.segments")


class SegmentStore:
    """Keeps segments in recording order and owns their playback files."""

    def __init__(self, playback_dir: Optional[Path] = None) -> None:
        self._segments: List[AudioSegment] = []
        self._playback: Dict[str, Path] = {}
        self._playback_dir = Path(playback_dir) if playback_dir else None

    def append(self, segment: AudioSegment) -> None:
        self._segments.append(segment)

    def delete_by_id(self, segment_id: str) -> bool:
        for index, segment in enumerate(self._segments):
            if segment.id == segment_id:
                del self._segments[index]
                self._release(segment_id)
                return True
        return False

    def reset(self) -> None:
        for segment_id in list(self._playback):
            self._release(segment_id)
        self._segments = []

    def all(self) -> Tuple[AudioSegment, ...]:
        return tuple(self._segments)

    def get(self, segment_id: str) -> Optional[AudioSegment]:
        for segment in self._segments:
            if segment.id == segment_id:
                return segment
        return None

    def total_duration(self) -> float:
        return sum(segment.duration_seconds for segment in self._segments)

    def playback_path(self, segment_id: str) -> Path:
        """Materialise the segment as a temporary file the UI can play."""
        existing = self._playback.get(segment_id)
        if existing is not None:
            return existing
        segment = self.get(segment_id)
        if segment is None:
            raise KeyError(segment_id)
        if self._playback_dir is not None:
            self._playback_dir.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            prefix="nexia-",
            suffix=f".{segment.extension}",
            dir=self._playback_dir,
            delete=False,
        )
        with handle:
            handle.write(segment.data)
        path = Path(handle.name)
        self._playback[segment_id] = path
        return path

    def _release(self, segment_id: str) -> None:
        path = self._playback.pop(segment_id, None)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Could not remove playback file %s: %s", path, exc)

    def __len__(self) -> int:
        return len(self._segments)

    def __contains__(self, segment_id: object) -> bool:
        return any(segment.id == segment_id for segment in self._segments)


__all__ = ["SegmentStore"]
