"""API settings resolved from the environment."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class APISettings(BaseModel):
    app_name: str = Field(default="Nexia Scribe API")
    version: str = Field(default="0.1.0")
    data_dir: str = Field(default=os.getenv("DATA_DIR", "data"))
    keep_uploads: bool = Field(default=_env_flag("KEEP_UPLOADS"))
    api_keys: List[str] = Field(default_factory=lambda: _split_keys())
    openai_api_key: str | None = Field(default=os.getenv("OPENAI_API_KEY"))
    notes_model: str = Field(default=os.getenv("NOTES_MODEL", "gpt-4o"))
    notes_temperature: float = Field(default=float(os.getenv("NOTES_TEMPERATURE", "0.3")))
    notes_mock: bool = Field(default=_env_flag("NOTES_USE_MOCK"))
    whisper_model: str = Field(default=os.getenv("WHISPER_MODEL", "tiny"))
    whisper_device: str = Field(default=os.getenv("WHISPER_DEVICE", "cpu"))
    whisper_compute_type: str = Field(default=os.getenv("WHISPER_COMPUTE_TYPE", "int8"))
    whisper_mock_transcriber: bool = Field(default=_env_flag("WHISPER_USE_MOCK"))
    whisper_use_openai: bool = Field(default=_env_flag("WHISPER_USE_OPENAI"))
    openai_whisper_model: str = Field(default=os.getenv("OPENAI_WHISPER_MODEL", "whisper-1"))
    live_buffer_bytes: int = Field(default=int(os.getenv("LIVE_BUFFER_BYTES", "10240")))
    live_sample_rate: int = Field(default=int(os.getenv("LIVE_SAMPLE_RATE", "16000")))
    max_upload_bytes: int = Field(default=int(os.getenv("MAX_UPLOAD_BYTES", str(25 * 1024 * 1024))))
    host: str = Field(default=os.getenv("API_HOST", "0.0.0.0"))
    port: int = Field(default=int(os.getenv("API_PORT", "8000")))


def _split_keys() -> List[str]:
    raw = os.getenv("API_KEYS") or os.getenv("API_KEY") or ""
    return [key.strip() for key in raw.split(",") if key.strip()]


@lru_cache()
def get_settings() -> APISettings:
    return APISettings()
