"""Nexia consultation scribe: segmented capture, transcription and clinical notes."""

from .errors import NexiaError
from .session import ConsultationSession

__version__ = "0.1.0"

__all__ = ["ConsultationSession", "NexiaError", "__version__"]
