import asyncio

import httpx
import pytest

from nexia.errors import EmptyTranscript, NoteGenerationFailed
from nexia.services.notes import NoteGenerationClient
from nexia.store.settings_store import SettingsStore

NOTE_PAYLOAD = {
    "chiefComplaint": "Cefaleia",
    "history": "Dor ha tres dias",
    "diagnosis": "Enxaqueca",
    "plan": "Analgesico e retorno",
    "emotionalAnalysis": {"sentiment": "neutral", "emotions": {"fear": 0.2}, "confidenceScore": 0.8},
}


def make_client(tmp_path, handler):
    store = SettingsStore(tmp_path / "settings.json")
    store.update(server_url="https://api.example.com", api_key="k")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NoteGenerationClient(store, client=client)


def generate(client, transcript):
    async def run():
        try:
            return await client.generate_notes(transcript)
        finally:
            await client.aclose()

    return asyncio.run(run())


def test_blank_transcript_makes_no_request(tmp_path):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=NOTE_PAYLOAD)

    client = make_client(tmp_path, handler)
    with pytest.raises(EmptyTranscript):
        generate(client, "   \n ")
    assert calls == []


def test_generate_notes_parses_camel_case(tmp_path):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["json"] = request.read().decode()
        return httpx.Response(200, json=NOTE_PAYLOAD)

    client = make_client(tmp_path, handler)
    note = generate(client, "  paciente com dor de cabeca  ")
    assert seen["path"] == "/v1/generate-notes"
    assert '"transcript"' in seen["json"]
    assert "paciente com dor de cabeca" in seen["json"]
    assert note.chief_complaint == "Cefaleia"
    assert note.plan == "Analgesico e retorno"
    assert note.emotional_analysis.emotions == {"fear": 0.2}
    assert note.emotional_analysis.confidence_score == 0.8


def test_server_error_maps_to_failure(tmp_path):
    client = make_client(tmp_path, lambda request: httpx.Response(502, json={"detail": "model down"}))
    with pytest.raises(NoteGenerationFailed) as excinfo:
        generate(client, "texto")
    assert "502" in excinfo.value.message
    assert "model down" in excinfo.value.message


def test_invalid_payload_maps_to_failure(tmp_path):
    client = make_client(tmp_path, lambda request: httpx.Response(200, json={"history": "x"}))
    with pytest.raises(NoteGenerationFailed):
        generate(client, "texto")


def test_network_error_maps_to_failure(tmp_path):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = make_client(tmp_path, handler)
    with pytest.raises(NoteGenerationFailed) as excinfo:
        generate(client, "texto")
    assert "refused" in excinfo.value.message
