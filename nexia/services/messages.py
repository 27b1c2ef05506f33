"""Messages exchanged with the real-time transcription backend."""

from __future__ import annotations

import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .notes import StructuredNote

LOGGER = logging.getLogger("nexia.messages")

STATUS_CONNECTED = "connected"
STATUS_DEGRADED = "degraded"
STATUS_CLOSED = "closed"


class TranscriptMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["transcript"] = "transcript"
    text: str = ""
    is_final: bool = Field(default=False, alias="isFinal")


class StatusMessage(BaseModel):
    type: Literal["status"] = "status"
    status: str
    message: Optional[str] = None


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str = ""


class PongMessage(BaseModel):
    type: Literal["pong"] = "pong"


class NotesMessage(BaseModel):
    """Reply to a ``generate_notes`` command sent over the live socket."""

    type: Literal["notes"] = "notes"
    notes: StructuredNote


ChannelMessage = Annotated[
    Union[TranscriptMessage, StatusMessage, ErrorMessage, PongMessage, NotesMessage],
    Field(discriminator="type"),
]

_ADAPTER: TypeAdapter[ChannelMessage] = TypeAdapter(ChannelMessage)


def decode_message(raw: str | bytes) -> Optional[ChannelMessage]:
    """Decode one frame; unknown or malformed frames yield ``None``."""
    try:
        return _ADAPTER.validate_json(raw)
    except ValidationError as exc:
        LOGGER.debug("Dropping undecodable frame: %s", exc.errors(include_url=False))
        return None


__all__ = [
    "ChannelMessage",
    "ErrorMessage",
    "NotesMessage",
    "PongMessage",
    "STATUS_CLOSED",
    "STATUS_CONNECTED",
    "STATUS_DEGRADED",
    "StatusMessage",
    "TranscriptMessage",
    "decode_message",
]
