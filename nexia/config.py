"""Static client configuration with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass(frozen=True, slots=True)
class ClientConfig:
    sample_rate: int = 16_000
    channels: int = 1
    chunk_interval_ms: int = 250
    min_segment_bytes: int = 1024
    batch_timeout: float = 30.0
    max_concurrency: int = 4
    heartbeat_interval: float = 25.0
    heartbeat_timeout: float = 10.0
    reconnect_delay: float = 2.0
    max_reconnect_attempts: int = 3
    log_history: int = 200
    settings_file: str = "settings.json"
    consultations_file: str = "consultations.jsonl"


def load_config() -> ClientConfig:
    return ClientConfig(
        sample_rate=_getenv_int("NEXIA_SAMPLE_RATE", 16_000),
        channels=_getenv_int("NEXIA_CHANNELS", 1),
        chunk_interval_ms=_getenv_int("NEXIA_CHUNK_INTERVAL_MS", 250),
        min_segment_bytes=_getenv_int("NEXIA_MIN_SEGMENT_BYTES", 1024),
        batch_timeout=_getenv_float("NEXIA_BATCH_TIMEOUT", 30.0),
        max_concurrency=_getenv_int("NEXIA_MAX_CONCURRENCY", 4),
        heartbeat_interval=_getenv_float("NEXIA_HEARTBEAT_INTERVAL", 25.0),
        heartbeat_timeout=_getenv_float("NEXIA_HEARTBEAT_TIMEOUT", 10.0),
        reconnect_delay=_getenv_float("NEXIA_RECONNECT_DELAY", 2.0),
        max_reconnect_attempts=_getenv_int("NEXIA_MAX_RECONNECT_ATTEMPTS", 3),
        log_history=_getenv_int("NEXIA_LOG_HISTORY", 200),
    )


CONFIG = load_config()
