"""Append-only JSONL record of transcripts and notes per consultation."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Protocol

from ..services.notes import StructuredNote


class ConsultationRepository(Protocol):
    async def save_transcript(self, consultation_id: str, text: str) -> None:
        ...

    async def save_notes(self, consultation_id: str, note: StructuredNote) -> None:
        ...


class ConsultationStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    async def save_transcript(self, consultation_id: str, text: str) -> None:
        self._append({"consultation_id": consultation_id, "kind": "transcript", "text": text})

    async def save_notes(self, consultation_id: str, note: StructuredNote) -> None:
        self._append(
            {
                "consultation_id": consultation_id,
                "kind": "notes",
                "notes": note.model_dump(by_alias=True),
            }
        )

    def records(self, consultation_id: str | None = None) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        items: List[Dict[str, Any]] = []
        with self.path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                item = json.loads(line)
                if consultation_id is None or item.get("consultation_id") == consultation_id:
                    items.append(item)
        return items

    def latest_transcript(self, consultation_id: str) -> str | None:
        for item in reversed(self.records(consultation_id)):
            if item.get("kind") == "transcript":
                return item.get("text")
        return None

    def _append(self, record: Dict[str, Any]) -> None:
        record["saved_at"] = datetime.now(timezone.utc).isoformat()
        with self._lock:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, ensure_ascii=False) + "\n")


__all__ = ["ConsultationRepository", "ConsultationStore"]
