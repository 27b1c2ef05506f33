"""Typed failures surfaced by the capture and transcription pipeline.

Every public operation either returns a value or raises one of these, so the
caller can map each kind to a specific message for the clinician.
"""

from __future__ import annotations


class NexiaError(Exception):
    """Base class; ``message`` is safe to show to the user."""

    default_message = "Unexpected error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class DeviceError(NexiaError):
    default_message = "Could not access the microphone."


class PermissionDenied(DeviceError):
    default_message = "Microphone permission was denied. Allow microphone access and try again."


class DeviceNotFound(DeviceError):
    default_message = "No microphone was found. Connect a microphone and try again."


class DeviceBusy(DeviceError):
    default_message = "The microphone is in use by another application. Close it and try again."


class DeviceUnknown(DeviceError):
    default_message = "The microphone is connected but is not sending audio."


class SegmentError(NexiaError):
    default_message = "The recorded segment could not be saved."


class NoAudioCaptured(SegmentError):
    default_message = "No audio was captured. Please record this segment again."


class AudioTooSmall(SegmentError):
    default_message = "The recording is too short or empty. Please record this segment again."


class NotRecording(SegmentError):
    default_message = "No recording in progress."


class TranscriptionError(NexiaError):
    default_message = "Transcription failed."
    reason = "Unknown"


class SegmentTimeout(TranscriptionError):
    default_message = "Transcription timed out."
    reason = "Timeout"


class TransportError(TranscriptionError):
    default_message = "Could not reach the transcription service."
    reason = "TransportError"


class BackendRejected(TranscriptionError):
    default_message = "The transcription service rejected the audio."
    reason = "BackendRejected"


class NoValidTranscription(TranscriptionError):
    default_message = "No valid transcription could be obtained. Try recording again."
    reason = "NoValidTranscription"


class SessionReset(TranscriptionError):
    default_message = "The session was reset while transcription was running."
    reason = "SessionReset"


class NoteError(NexiaError):
    default_message = "Clinical notes could not be generated."


class EmptyTranscript(NoteError):
    default_message = "The transcript is empty; nothing to summarise."


class NoteGenerationFailed(NoteError):
    default_message = "Clinical note generation failed."


__all__ = [
    "AudioTooSmall",
    "BackendRejected",
    "DeviceBusy",
    "DeviceError",
    "DeviceNotFound",
    "DeviceUnknown",
    "EmptyTranscript",
    "NexiaError",
    "NoAudioCaptured",
    "NoValidTranscription",
    "NoteError",
    "NoteGenerationFailed",
    "NotRecording",
    "PermissionDenied",
    "SegmentError",
    "SegmentTimeout",
    "SessionReset",
    "TranscriptionError",
    "TransportError",
]
