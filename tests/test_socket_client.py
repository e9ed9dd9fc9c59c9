"""Client socket facade against an in-memory transport."""

import asyncio
import json

import pytest

from recruitdesk.client.events import EventEmitter
from recruitdesk.client.socket_client import ConnectionState, SocketClient, resolve_socket_url
from recruitdesk.config import settings

pytestmark = pytest.mark.anyio

IDENTITY = {"userId": 3, "userRole": "candidate", "userName": "Cara Candidate"}


class FakeTransport:
    """Async-iterable socket: ``None`` ends the stream cleanly, an exception drops it."""

    def __init__(self, number):
        self.number = number
        self.inbox = asyncio.Queue()
        self.sent = []
        self.closed = False

    def push(self, event, data=None):
        self.inbox.put_nowait(json.dumps({"event": event, "data": data}))

    def drop(self):
        self.inbox.put_nowait(ConnectionResetError("connection reset"))

    def close_cleanly(self):
        self.inbox.put_nowait(None)

    def events_sent(self):
        return [frame["event"] for frame in self.sent]

    async def send(self, raw):
        frame = json.loads(raw)
        self.sent.append(frame)
        if frame["event"] == "user:register":
            self.push(
                "user:registered",
                {"success": True, "userId": frame["data"]["userId"], "socketId": f"sid-{self.number}"},
            )

    async def close(self):
        self.closed = True
        self.inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.inbox.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeServer:
    def __init__(self, failures=0):
        self.failures = failures
        self.transports = []
        self.calls = 0

    async def __call__(self, url):
        self.calls += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionRefusedError("server unavailable")
        transport = FakeTransport(len(self.transports) + 1)
        self.transports.append(transport)
        return transport


def _client(server, **kwargs):
    options = dict(
        connect_timeout=1.0,
        reconnection_attempts=3,
        reconnection_delay=0.001,
        reconnection_delay_max=0.005,
    )
    options.update(kwargs)
    return SocketClient("ws://testserver/ws", connector=server, **options)


def _recorder(client, *events):
    seen = {event: [] for event in events}
    signals = {event: asyncio.Event() for event in events}
    for event in events:
        def _record(data, event=event):
            seen[event].append(data)
            signals[event].set()
        client.on(event, _record)
    return seen, signals


async def _wait(signal):
    await asyncio.wait_for(signal.wait(), 1.0)


async def test_connect_registers_the_pending_identity():
    server = FakeServer()
    client = _client(server)
    states = []
    client.on("connect", lambda _: states.append(client.state))

    await client.connect(IDENTITY)
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    assert states == [ConnectionState.CONNECTED]
    assert server.transports[0].sent == [{"event": "user:register", "data": IDENTITY}]
    status = client.get_connection_status()
    assert status["state"] == "registered"
    assert status["socketId"] == "sid-1"
    assert status["pendingIdentity"] == IDENTITY
    await client.disconnect()


async def test_connect_while_open_re_registers_without_a_new_transport():
    server = FakeServer()
    client = _client(server)
    await client.connect(IDENTITY)
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    other = {**IDENTITY, "userName": "Cara C."}
    await client.connect(other)

    assert server.calls == 1
    assert server.transports[0].sent[-1] == {"event": "user:register", "data": other}
    await client.disconnect()


async def test_unexpected_drop_reconnects_and_registers_again():
    server = FakeServer()
    client = _client(server)
    seen, signals = _recorder(client, "disconnect", "reconnect")
    await client.connect(IDENTITY)
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    server.transports[0].drop()
    await _wait(signals["reconnect"])
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    assert seen["disconnect"] == [{"reason": "transport close"}]
    assert len(server.transports) == 2
    assert server.transports[1].events_sent() == ["user:register"]
    assert client.socket_id == "sid-2"
    await client.disconnect()


async def test_reconnection_gives_up_after_the_configured_attempts():
    server = FakeServer(failures=100)
    client = _client(server, reconnection_attempts=2)
    seen, signals = _recorder(client, "connect_error", "reconnect_attempt", "reconnect_failed")

    await client.connect(IDENTITY)
    await _wait(signals["reconnect_failed"])

    assert len(seen["connect_error"]) == 3
    assert [d["attempt"] for d in seen["reconnect_attempt"]] == [1, 2]
    assert seen["reconnect_failed"] == [{"attempts": 2}]
    assert client.state == ConnectionState.DISCONNECTED
    # the identity survives, so a manual retry still registers
    assert client.pending_identity == IDENTITY
    await client.disconnect()


async def test_transient_failures_are_retried():
    server = FakeServer(failures=2)
    client = _client(server)

    await client.connect(IDENTITY)
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    assert server.calls == 3
    await client.disconnect()


async def test_server_close_does_not_reconnect_until_forced():
    server = FakeServer()
    client = _client(server)
    seen, signals = _recorder(client, "disconnect")
    await client.connect(IDENTITY)
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    server.transports[0].close_cleanly()
    await _wait(signals["disconnect"])
    await asyncio.sleep(0.02)

    assert seen["disconnect"] == [{"reason": "io server disconnect"}]
    assert client.state == ConnectionState.DISCONNECTED
    assert server.calls == 1

    await client.force_reconnect()
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)
    assert server.calls == 2
    await client.disconnect()


async def test_disconnect_drops_the_identity_and_silences_emits():
    server = FakeServer()
    client = _client(server)
    await client.connect(IDENTITY)
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    await client.disconnect()

    assert client.pending_identity is None
    assert client.state == ConnectionState.DISCONNECTED
    assert server.transports[0].closed
    assert await client.join_ticket("t1") is False
    await asyncio.sleep(0.02)
    assert server.calls == 1


async def test_emits_are_dropped_before_the_socket_opens():
    client = _client(FakeServer())
    assert await client.send_message("t1", "hello") is False
    assert await client.start_typing("t1") is False


async def test_emit_helpers_frame_their_payloads():
    server = FakeServer()
    client = _client(server)
    await client.connect(IDENTITY)
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    assert await client.join_ticket("t1")
    assert await client.send_message("t1", "hello")
    assert await client.mark_messages_read("t1", ["m1"])
    assert await client.update_ticket_status("t1", "resolved", "done")

    sent = server.transports[0].sent[1:]
    assert sent == [
        {"event": "ticket:join", "data": {"ticketId": "t1"}},
        {
            "event": "message:send",
            "data": {"ticketId": "t1", "message": "hello", "messageType": "text", "attachments": []},
        },
        {"event": "messages:mark_read", "data": {"ticketId": "t1", "messageIds": ["m1"]}},
        {"event": "ticket:update_status", "data": {"ticketId": "t1", "status": "resolved", "resolutionNotes": "done"}},
    ]
    await client.disconnect()


async def test_a_failing_listener_does_not_starve_the_others():
    server = FakeServer()
    client = _client(server)
    received = asyncio.Event()
    payloads = []

    def broken(_):
        raise RuntimeError("render failed")

    async def working(data):
        payloads.append(data)
        received.set()

    client.on("message:received", broken)
    client.on("message:received", working)
    await client.connect(IDENTITY)
    await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    server.transports[0].push("message:received", {"ticketId": "t1"})
    await _wait(received)

    assert payloads == [{"ticketId": "t1"}]
    assert client.connected
    await client.disconnect()


def test_listener_scope_cancels_only_its_own_subscriptions():
    emitter = EventEmitter()
    kept = emitter.on("message:received", print)

    with emitter.listener_scope() as scope:
        scope.on("message:received", print)
        scope.on("typing:user_started", print)
        assert emitter.listener_count() == 3

    assert emitter.listener_count() == 1
    assert kept.active
    kept.cancel()
    kept.cancel()
    assert emitter.listener_count() == 0


def test_off_and_cleanup_counts():
    emitter = EventEmitter()
    scope = emitter.listener_scope()
    scope.on("a", print)
    scope.on("a", repr)
    assert emitter.off("a", repr) == 1
    assert scope.cleanup() == 1
    assert scope.cleanup() == 0


@pytest.mark.parametrize(
    "socket_url, api_url, expected",
    [
        ("wss://sockets.example.com/ws", "https://api.example.com", "wss://sockets.example.com/ws"),
        ("", "https://api.example.com/", "wss://api.example.com/ws"),
        ("", "http://localhost:8000", "ws://localhost:8000/ws"),
        ("", "", "/ws"),
    ],
)
def test_socket_url_resolution(monkeypatch, socket_url, api_url, expected):
    monkeypatch.setattr(settings, "SOCKET_URL", socket_url)
    monkeypatch.setattr(settings, "API_URL", api_url)
    assert resolve_socket_url() == expected
    assert resolve_socket_url("ws://explicit/ws") == "ws://explicit/ws"


class SlowServer(FakeServer):
    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    async def __call__(self, url):
        await asyncio.sleep(self.delay)
        return await super().__call__(url)


async def test_slow_handshake_warns_but_still_registers(caplog):
    server = SlowServer(delay=0.2)
    client = _client(server, connect_timeout=0.05)
    seen, _ = _recorder(client, "connect_error")

    with caplog.at_level("WARNING", logger="recruitdesk.client.socket_client"):
        await client.connect(IDENTITY)
        await client.wait_for(ConnectionState.REGISTERED, timeout=1.0)

    assert any("Socket not connected after" in record.getMessage() for record in caplog.records)
    assert seen["connect_error"] == []
    assert server.calls == 1
    await client.disconnect()


async def test_handshake_limit_is_separate_from_the_warning():
    server = SlowServer(delay=0.2)
    client = _client(server, connect_timeout=5.0, handshake_timeout=0.02, reconnection_attempts=0)
    seen, signals = _recorder(client, "connect_error", "reconnect_failed")

    await client.connect(IDENTITY)
    await _wait(signals["reconnect_failed"])

    assert seen["connect_error"] == [{"message": "TimeoutError"}]
    assert client.state == ConnectionState.DISCONNECTED
    await client.disconnect()
