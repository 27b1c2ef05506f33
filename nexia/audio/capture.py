"""Microphone capture contract and the sounddevice-backed implementation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..config import CONFIG
from ..errors import DeviceBusy, DeviceError, DeviceNotFound, DeviceUnknown, PermissionDenied

LOGGER = logging.getLogger("nexia.capture")

RAW_PCM_MEDIA_TYPE = "audio/L16"

ChunkCallback = Callable[[bytes], None]


@dataclass(frozen=True, slots=True)
class CaptureConstraints:
    sample_rate: int = CONFIG.sample_rate
    channels: int = CONFIG.channels
    chunk_interval_ms: int = CONFIG.chunk_interval_ms
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True


class AudioStream(Protocol):
    """An acquired input stream; chunks are delivered through the acquire callback."""

    channels: int
    media_type: str
    sample_rate: Optional[int]

    async def flush(self) -> None:
        """Deliver every chunk still buffered by the device."""

    def release(self) -> None:
        """Free the hardware handle. Must be safe to call twice."""


class CaptureDevice(Protocol):
    async def acquire(self, constraints: CaptureConstraints, on_chunk: ChunkCallback) -> AudioStream:
        ...


def classify_device_error(exc: Exception) -> DeviceError:
    """Map a backend exception onto the typed device errors by its message."""
    text = str(exc).lower()
    if "permission" in text or "denied" in text or "not allowed" in text:
        return PermissionDenied()
    if "no default input" in text or "invalid device" in text or "not found" in text or "no device" in text:
        return DeviceNotFound()
    if "unavailable" in text or "busy" in text or "in use" in text:
        return DeviceBusy()
    return DeviceUnknown(f"{DeviceUnknown.default_message} ({exc})")


class SoundDeviceStream:
    media_type = RAW_PCM_MEDIA_TYPE

    def __init__(self, stream, channels: int, sample_rate: int) -> None:
        self._stream = stream
        self.channels = channels
        self.sample_rate = sample_rate
        self._released = False

    async def flush(self) -> None:
        if self._released:
            return
        # PortAudio drains pending buffers before stop() returns.
        await asyncio.to_thread(self._stream.stop)
        # Run the chunk callbacks the audio thread queued on the loop.
        await asyncio.sleep(0)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            self._stream.close()
        except Exception as exc:  # pragma: no cover - hardware dependent
            LOGGER.warning("Failed to close input stream: %s", exc)


class SoundDeviceCapture:
    """Capture 16-bit PCM from the default input device."""

    def __init__(self, device: int | str | None = None) -> None:
        self.device = device
        self._sd = self._try_import_sounddevice()

    def _try_import_sounddevice(self):
        try:
            import sounddevice as sd  # type: ignore

            return sd
        except Exception:
            return None

    async def acquire(self, constraints: CaptureConstraints, on_chunk: ChunkCallback) -> SoundDeviceStream:
        sd = self._sd
        if sd is None:
            raise DeviceNotFound("Audio backend unavailable: install sounddevice and PortAudio.")
        loop = asyncio.get_running_loop()
        try:
            info = await asyncio.to_thread(sd.query_devices, self.device, "input")
        except Exception as exc:
            raise classify_device_error(exc) from exc
        available = int(info.get("max_input_channels", 0)) if isinstance(info, dict) else 0
        if available < 1:
            raise DeviceUnknown()
        channels = min(constraints.channels, available)
        blocksize = max(1, int(constraints.sample_rate * constraints.chunk_interval_ms / 1000))

        def _callback(indata, frames, time_info, status) -> None:  # noqa: ARG001
            if status:
                LOGGER.debug("Input status: %s", status)
            loop.call_soon_threadsafe(on_chunk, bytes(indata))

        try:
            stream = sd.RawInputStream(
                samplerate=constraints.sample_rate,
                channels=channels,
                dtype="int16",
                blocksize=blocksize,
                device=self.device,
                callback=_callback,
            )
            stream.start()
        except Exception as exc:
            raise classify_device_error(exc) from exc
        LOGGER.info("Input stream opened (%s Hz, %s channel(s))", constraints.sample_rate, channels)
        return SoundDeviceStream(stream, channels, constraints.sample_rate)


__all__ = [
    "AudioStream",
    "CaptureConstraints",
    "CaptureDevice",
    "RAW_PCM_MEDIA_TYPE",
    "SoundDeviceCapture",
    "SoundDeviceStream",
    "classify_device_error",
]
