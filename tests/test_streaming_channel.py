import asyncio
import json
import socket

from nexia.services.channels import ChannelState, StreamingChannel


class FakeWebSocket:
    def __init__(self, answer_pings: bool = True) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent = []
        self.closed = False
        self.answer_pings = answer_pings
        self.pings = 0

    async def recv(self):
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, data):
        self.sent.append(data)

    async def ping(self):
        self.pings += 1
        waiter = asyncio.get_running_loop().create_future()
        if self.answer_pings:
            waiter.set_result(0.0)
        return waiter

    async def close(self):
        self.closed = True


class FakeConnector:
    """Returns the queued outcomes in order; exceptions are raised."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls = []

    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0) if self.outcomes else OSError("unreachable")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_channel(connector, **kwargs):
    options = {"heartbeat_interval": 60.0, "heartbeat_timeout": 1.0, "reconnect_delay": 0.0, "max_reconnect_attempts": 2}
    options.update(kwargs)
    channel = StreamingChannel("wss://live.example.com/ws", api_key="k", connect=connector, **options)
    statuses = []
    transcripts = []
    channel.on_status(lambda message: statuses.append(message.status))
    channel.on_transcript(lambda message: transcripts.append((message.text, message.is_final)))
    return channel, statuses, transcripts


def test_open_emits_connected_and_delivers_in_order():
    async def scenario():
        ws = FakeWebSocket()
        connector = FakeConnector(ws)
        channel, statuses, transcripts = make_channel(connector)
        assert await channel.open() is True
        assert channel.state is ChannelState.OPEN
        assert channel.is_healthy() is True
        ws.incoming.put_nowait(json.dumps({"type": "transcript", "text": "bom", "isFinal": False}))
        ws.incoming.put_nowait("{not json")
        ws.incoming.put_nowait(json.dumps({"type": "transcript", "text": "bom dia", "isFinal": True}))
        ws.incoming.put_nowait(json.dumps({"type": "pong"}))
        channel.send_audio(b"\x00\x01")
        await asyncio.sleep(0.05)
        await channel.close()
        return ws, connector, channel, statuses, transcripts

    ws, connector, channel, statuses, transcripts = asyncio.run(scenario())
    assert statuses == ["connected"]
    assert transcripts == [("bom", False), ("bom dia", True)]
    assert ws.sent == [b"\x00\x01"]
    assert ws.closed is True
    assert channel.state is ChannelState.CLOSED
    assert connector.calls[0][1]["additional_headers"] == {"Authorization": "Bearer k"}


def test_reconnect_budget_exhausted_closes_channel():
    async def scenario():
        connector = FakeConnector(OSError("down"), OSError("down"), OSError("down"))
        channel, statuses, _ = make_channel(connector)
        opened = await channel.open()
        await asyncio.sleep(0.05)
        return opened, connector, channel, statuses

    opened, connector, channel, statuses = asyncio.run(scenario())
    assert opened is False
    assert statuses == ["degraded", "closed"]
    assert channel.state is ChannelState.CLOSED
    assert channel.reconnect_attempts == 2
    assert len(connector.calls) == 3


def test_transport_error_reconnects():
    async def scenario():
        first, second = FakeWebSocket(), FakeWebSocket()
        connector = FakeConnector(first, second)
        channel, statuses, transcripts = make_channel(connector)
        await channel.open()
        first.incoming.put_nowait(OSError("connection reset"))
        await asyncio.sleep(0.05)
        second.incoming.put_nowait(json.dumps({"type": "transcript", "text": "de volta", "isFinal": True}))
        await asyncio.sleep(0.02)
        state = channel.state
        await channel.close()
        return first, channel, state, statuses, transcripts

    first, channel, state, statuses, transcripts = asyncio.run(scenario())
    assert statuses == ["connected", "degraded", "connected"]
    assert state is ChannelState.OPEN
    assert first.closed is True
    assert channel.reconnect_attempts == 0
    assert transcripts == [("de volta", True)]


def test_missing_pong_degrades_channel():
    async def scenario():
        ws = FakeWebSocket(answer_pings=False)
        connector = FakeConnector(ws)
        channel, statuses, _ = make_channel(
            connector, heartbeat_interval=0.01, heartbeat_timeout=0.01, max_reconnect_attempts=0
        )
        await channel.open()
        await asyncio.sleep(0.1)
        return ws, channel, statuses

    ws, channel, statuses = asyncio.run(scenario())
    assert ws.pings == 1
    assert statuses == ["connected", "degraded", "closed"]
    assert channel.state is ChannelState.CLOSED
    assert ws.closed is True


def test_audio_dropped_when_not_open():
    async def scenario():
        connector = FakeConnector(OSError("down"))
        channel, _, _ = make_channel(connector, max_reconnect_attempts=0)
        await channel.open()
        channel.send_audio(b"lost")
        await channel.close()
        return channel

    channel = asyncio.run(scenario())
    assert channel.state is ChannelState.CLOSED


def test_notes_request_and_reply():
    async def scenario():
        ws = FakeWebSocket()
        channel, _, _ = make_channel(FakeConnector(ws))
        notes = []
        channel.on_notes(notes.append)
        assert channel.request_notes("  ") is False
        await channel.open()
        assert channel.request_notes("Paciente com tosse") is True
        await asyncio.sleep(0.02)
        reply = {"chiefComplaint": "Tosse", "history": "h", "diagnosis": "d", "plan": "p"}
        ws.incoming.put_nowait(json.dumps({"type": "notes", "notes": reply}))
        await asyncio.sleep(0.02)
        await channel.close()
        return ws, notes

    ws, notes = asyncio.run(scenario())
    assert json.loads(ws.sent[0]) == {"type": "generate_notes", "text": "Paciente com tosse"}
    assert [note.chief_complaint for note in notes] == ["Tosse"]


def test_real_connector_unreachable_closes_channel():
    with socket.socket() as listener:
        listener.bind(("127.0.0.1", 0))
        port = listener.getsockname()[1]

    async def scenario():
        channel = StreamingChannel(f"ws://127.0.0.1:{port}/ws", api_key="k", max_reconnect_attempts=0)
        statuses = []
        channel.on_status(lambda message: statuses.append(message.status))
        opened = await channel.open()
        await asyncio.sleep(0.05)
        return opened, channel, statuses

    opened, channel, statuses = asyncio.run(scenario())
    assert opened is False
    assert channel.state is ChannelState.CLOSED
    assert statuses == ["degraded", "closed"]
