import io

import numpy as np
import pytest
import soundfile as sf
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect


@pytest.fixture()
def api_client(tmp_path):
    from src.api.app import create_app
    from src.api.settings import APISettings, get_settings

    get_settings.cache_clear()  # type: ignore
    settings = APISettings(
        api_keys=["test-key"],
        data_dir=str(tmp_path),
        openai_api_key=None,
        whisper_mock_transcriber=True,
        whisper_use_openai=False,
        notes_mock=True,
        live_buffer_bytes=4000,
    )

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    return TestClient(app), tmp_path


def _auth_headers():
    return {"X-API-Key": "test-key"}


def _wav_bytes() -> bytes:
    buffer = io.BytesIO()
    sf.write(buffer, np.zeros(1600, dtype=np.int16), 16000, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


def test_auth_required(api_client):
    client, _ = api_client
    assert client.get("/healthz").status_code == 401
    assert client.get("/healthz", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_health_ok(api_client):
    client, _ = api_client
    resp = client.get("/healthz", headers={"Authorization": "Bearer test-key"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["transcriber"] == "mock"
    assert body["openai"] == "skip"


def test_transcribe_segment(api_client):
    client, tmp_path = api_client
    resp = client.post(
        "/v1/transcribe",
        headers=_auth_headers(),
        files={"file": ("segment-abc.wav", _wav_bytes(), "audio/wav")},
        data={"lang": "auto", "segment_id": "abc"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert "mock transcript" in body["text"]
    assert body["segment_id"] == "abc"
    assert list((tmp_path / "uploads").iterdir()) == []


def test_transcribe_rejects_empty_upload(api_client):
    client, _ = api_client
    resp = client.post(
        "/v1/transcribe",
        headers=_auth_headers(),
        files={"file": ("empty.wav", b"", "audio/wav")},
    )
    assert resp.status_code == 400


def test_generate_notes_camel_case(api_client):
    client, _ = api_client
    resp = client.post(
        "/v1/generate-notes",
        headers=_auth_headers(),
        json={"transcript": "Paciente relata febre.\nSem outros sintomas."},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["chiefComplaint"] == "[mock] Paciente relata febre."
    assert set(body) >= {"history", "diagnosis", "plan", "emotionalAnalysis"}
    assert body["emotionalAnalysis"]["sentiment"] == "neutral"


def test_generate_notes_rejects_blank(api_client):
    client, _ = api_client
    resp = client.post("/v1/generate-notes", headers=_auth_headers(), json={"transcript": "  "})
    assert resp.status_code == 400


def test_metrics_exposed(api_client):
    client, _ = api_client
    client.post("/v1/generate-notes", headers=_auth_headers(), json={"transcript": "texto"})
    resp = client.get("/metrics", headers=_auth_headers())
    assert resp.status_code == 200
    assert "nexia_note_generations_total" in resp.text


def test_live_socket_flow(api_client):
    client, _ = api_client
    with client.websocket_connect("/ws?token=test-key") as ws:
        assert ws.receive_json() == {"type": "status", "status": "connected"}
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        ws.send_bytes(b"\x00\x00" * 1000)
        ws.send_bytes(b"\x00\x00" * 1000)
        message = ws.receive_json()
        assert message["type"] == "transcript"
        assert message["isFinal"] is True
        assert message["text"] == "[mock transcript 2000 samples]"
        ws.send_bytes(b"\x00\x00" * 10)
        ws.send_json({"type": "flush"})
        assert ws.receive_json()["text"] == "[mock transcript 10 samples]"
        ws.send_json({"type": "bogus"})
        assert ws.receive_json()["type"] == "error"


def test_live_socket_requires_key(api_client):
    client, _ = api_client
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()


def test_live_socket_generates_notes(api_client):
    client, _ = api_client
    with client.websocket_connect("/ws", headers={"Authorization": "Bearer test-key"}) as ws:
        assert ws.receive_json()["status"] == "connected"
        ws.send_json({"type": "generate_notes", "text": "Paciente com tosse.\nHa tres dias."})
        message = ws.receive_json()
        assert message["type"] == "notes"
        assert message["notes"]["chiefComplaint"] == "[mock] Paciente com tosse."
        assert message["notes"]["emotionalAnalysis"]["sentiment"] == "neutral"
        ws.send_json({"type": "generate_notes", "text": "   "})
        assert ws.receive_json() == {"type": "error", "message": "Transcript is empty"}


def test_serve_entry_point_runs_uvicorn(monkeypatch):
    import uvicorn

    from src.api import __main__ as serve
    from src.api.settings import APISettings

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
    monkeypatch.setattr(serve, "get_settings", lambda: APISettings(host="127.0.0.1", port=8123))
    serve.main()
    assert calls == [("src.api.app:app", {"host": "127.0.0.1", "port": 8123, "log_config": None})]
