import json

from nexia.services.messages import (
    ErrorMessage,
    NotesMessage,
    PongMessage,
    StatusMessage,
    TranscriptMessage,
    decode_message,
)


def test_decode_transcript_alias():
    message = decode_message(json.dumps({"type": "transcript", "text": "ola", "isFinal": True}))
    assert isinstance(message, TranscriptMessage)
    assert message.text == "ola"
    assert message.is_final is True


def test_decode_other_variants():
    assert isinstance(decode_message('{"type": "status", "status": "connected"}'), StatusMessage)
    assert isinstance(decode_message(b'{"type": "error", "message": "x"}'), ErrorMessage)
    assert isinstance(decode_message('{"type": "pong"}'), PongMessage)


def test_undecodable_frames_dropped():
    assert decode_message("not json") is None
    assert decode_message('{"type": "notes"}') is None
    assert decode_message('{"text": "missing type"}') is None


def test_decode_notes_reply():
    raw = json.dumps(
        {
            "type": "notes",
            "notes": {"chiefComplaint": "Tosse", "history": "h", "diagnosis": "d", "plan": "p"},
        }
    )
    message = decode_message(raw)
    assert isinstance(message, NotesMessage)
    assert message.notes.chief_complaint == "Tosse"
