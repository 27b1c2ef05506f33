"""Persistent settings: endpoints, bearer credential and transport preference."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict

LOGGER = logging.getLogger("nexia.settings")


@dataclass(slots=True)
class AppSettings:
    server_url: str = ""
    streaming_url: str = ""
    api_key: str = ""
    language: str = "auto"
    use_streaming: bool = True


class SettingsStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._settings = self._load()

    def _load(self) -> AppSettings:
        settings = AppSettings()
        if not self.path.exists():
            return settings
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable settings file %s: %s", self.path, exc)
            return settings
        if isinstance(raw, dict):
            self._apply(settings, raw)
        if not settings.language:
            settings.language = "auto"
        return settings

    def get(self) -> AppSettings:
        return self._settings

    def update(self, **kwargs) -> AppSettings:
        self._apply(self._settings, kwargs)
        self._persist()
        return self._settings

    @staticmethod
    def _apply(settings: AppSettings, values: Dict[str, Any]) -> None:
        for item in fields(settings):
            if item.name not in values:
                continue
            value = values[item.name]
            if isinstance(getattr(settings, item.name), bool):
                setattr(settings, item.name, _as_bool(value))
            else:
                setattr(settings, item.name, str(value or ""))

    def _persist(self) -> None:
        self.path.write_text(json.dumps(asdict(self._settings), indent=2), encoding="utf-8")


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)
