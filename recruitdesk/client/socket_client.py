"""
Client socket facade — one connection to the support socket server per client.

Lifecycle::

    disconnected → connecting → connected → registered
                        ↑            │
                        └ reconnecting (unexpected drop, bounded retries)

The identity passed to ``connect()`` is kept as the *pending identity* and
re-sent on every (re)connect until ``disconnect()`` clears it.
"""

import asyncio
import enum
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets

from recruitdesk.client.events import EventEmitter
from recruitdesk.config import settings

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    REGISTERED = "registered"
    RECONNECTING = "reconnecting"


OPEN_STATES = (ConnectionState.CONNECTED, ConnectionState.REGISTERED)


def resolve_socket_url(url: Optional[str] = None) -> str:
    """Explicit URL, else ``SOCKET_URL``, else ``API_URL`` as ws(s), else the same-origin path."""
    if url:
        return url
    if settings.SOCKET_URL:
        return settings.SOCKET_URL
    if settings.API_URL:
        base = settings.API_URL.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return base + "/ws"
    return "/ws"


async def _default_connector(url: str):
    return await websockets.connect(url)


class SocketClient(EventEmitter):
    def __init__(
        self,
        url: Optional[str] = None,
        *,
        connector: Optional[Connector] = None,
        connect_timeout: float = settings.SOCKET_CONNECT_TIMEOUT,
        handshake_timeout: Optional[float] = settings.SOCKET_HANDSHAKE_TIMEOUT,
        reconnection_attempts: int = settings.SOCKET_RECONNECTION_ATTEMPTS,
        reconnection_delay: float = settings.SOCKET_RECONNECTION_DELAY,
        reconnection_delay_max: float = settings.SOCKET_RECONNECTION_DELAY_MAX,
    ):
        super().__init__()
        self.url = resolve_socket_url(url)
        self.connector = connector or _default_connector
        self.connect_timeout = connect_timeout
        self.handshake_timeout = handshake_timeout
        self.reconnection_attempts = reconnection_attempts
        self.reconnection_delay = reconnection_delay
        self.reconnection_delay_max = reconnection_delay_max

        self.state = ConnectionState.DISCONNECTED
        self.socket_id: Optional[str] = None
        self.reconnect_attempt = 0
        self._pending_identity: Optional[Dict[str, Any]] = None
        self._transport: Any = None
        self._runner: Optional[asyncio.Task] = None
        self._watchdog: Optional[asyncio.Task] = None
        self._closing = False
        self._ever_connected = False
        self._state_changed = asyncio.Event()

    # ── Public lifecycle ──

    @property
    def connected(self) -> bool:
        return self.state in OPEN_STATES

    @property
    def registered(self) -> bool:
        return self.state == ConnectionState.REGISTERED

    @property
    def pending_identity(self) -> Optional[Dict[str, Any]]:
        return dict(self._pending_identity) if self._pending_identity else None

    async def connect(self, identity: Dict[str, Any]) -> None:
        """Remember ``{userId, userRole, userName}`` and register it as soon as the socket is open."""
        self._pending_identity = dict(identity)

        if self.connected:
            await self._send_registration()
            return
        if self._runner is not None and not self._runner.done():
            return

        self._start()

    async def disconnect(self) -> None:
        """Close for good: the pending identity is dropped and nothing reconnects."""
        self._pending_identity = None
        await self._stop()
        self.socket_id = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def force_reconnect(self) -> None:
        """Tear down the current transport and open a fresh one, keeping the pending identity."""
        await self._stop()
        self._start()

    def cleanup(self) -> None:
        """Cancel every listener registered on this client."""
        self.remove_all_listeners()

    def get_connection_status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "connected": self.connected,
            "registered": self.registered,
            "socketId": self.socket_id,
            "url": self.url,
            "reconnectAttempt": self.reconnect_attempt,
            "pendingIdentity": self.pending_identity,
        }

    async def wait_for(self, *states: ConnectionState, timeout: Optional[float] = None) -> ConnectionState:
        """Wait until the client enters one of ``states``."""
        async def _wait():
            while self.state not in states:
                self._state_changed.clear()
                await self._state_changed.wait()
            return self.state

        return await asyncio.wait_for(_wait(), timeout)

    # ── Emit helpers ──

    async def emit(self, event: str, data: Optional[Dict[str, Any]] = None) -> bool:
        if not self.connected or self._transport is None:
            logger.warning("Socket not connected, dropping %s", event)
            return False
        try:
            await self._transport.send(json.dumps({"event": event, "data": data or {}}, default=str))
        except Exception as exc:
            logger.warning("Could not send %s: %s", event, exc)
            return False
        return True

    async def join_ticket(self, ticket_id: str) -> bool:
        return await self.emit("ticket:join", {"ticketId": ticket_id})

    async def leave_ticket(self, ticket_id: str) -> bool:
        return await self.emit("ticket:leave", {"ticketId": ticket_id})

    async def send_message(
        self,
        ticket_id: str,
        message: str,
        message_type: str = "text",
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> bool:
        return await self.emit(
            "message:send",
            {
                "ticketId": ticket_id,
                "message": message,
                "messageType": message_type,
                "attachments": attachments or [],
            },
        )

    async def start_typing(self, ticket_id: str) -> bool:
        return await self.emit("typing:start", {"ticketId": ticket_id})

    async def stop_typing(self, ticket_id: str) -> bool:
        return await self.emit("typing:stop", {"ticketId": ticket_id})

    async def mark_messages_read(self, ticket_id: str, message_ids: List[str]) -> bool:
        return await self.emit("messages:mark_read", {"ticketId": ticket_id, "messageIds": list(message_ids)})

    async def update_ticket_status(
        self, ticket_id: str, status: str, resolution_notes: Optional[str] = None
    ) -> bool:
        return await self.emit(
            "ticket:update_status",
            {"ticketId": ticket_id, "status": status, "resolutionNotes": resolution_notes},
        )

    # ── Internals ──

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.debug("Socket state %s -> %s", self.state.value, state.value)
            self.state = state
        self._state_changed.set()

    def _start(self) -> None:
        self._closing = False
        self.reconnect_attempt = 0
        self._set_state(ConnectionState.CONNECTING)
        self._runner = asyncio.create_task(self._run())
        self._start_watchdog()

    async def _stop(self) -> None:
        self._closing = True
        # a listener may call disconnect() from inside the runner itself
        current = asyncio.current_task()
        tasks = [t for t in (self._watchdog, self._runner) if t is not None and t is not current]
        for task in tasks:
            if not task.done():
                task.cancel()
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                await transport.close()
            except Exception as exc:
                logger.debug("Error closing transport: %s", exc)
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._watchdog = self._runner = None

    def _start_watchdog(self) -> None:
        if self._watchdog is not None and not self._watchdog.done():
            self._watchdog.cancel()
        self._watchdog = asyncio.create_task(self._check_connected())

    async def _check_connected(self) -> None:
        await asyncio.sleep(self.connect_timeout)
        if not self.connected:
            logger.warning(
                "Socket not connected after %.0fs (state=%s, url=%s)",
                self.connect_timeout, self.state.value, self.url,
            )

    def _backoff(self, attempt: int) -> float:
        return min(self.reconnection_delay * (2 ** (attempt - 1)), self.reconnection_delay_max)

    async def _open_transport(self):
        # connect_timeout only drives the watchdog warning; the handshake has its own limit
        return await asyncio.wait_for(self.connector(self.url), self.handshake_timeout)

    async def _run(self) -> None:
        reconnecting = False
        while True:
            if reconnecting:
                if self.reconnect_attempt >= self.reconnection_attempts:
                    logger.error("Socket reconnection failed after %d attempts", self.reconnect_attempt)
                    self._set_state(ConnectionState.DISCONNECTED)
                    await self._dispatch("reconnect_failed", {"attempts": self.reconnect_attempt})
                    return
                self.reconnect_attempt += 1
                self._set_state(ConnectionState.RECONNECTING)
                await self._dispatch("reconnect_attempt", {"attempt": self.reconnect_attempt})
                await asyncio.sleep(self._backoff(self.reconnect_attempt))

            try:
                transport = await self._open_transport()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Socket connection error: %s", exc)
                await self._dispatch("connect_error", {"message": str(exc) or type(exc).__name__})
                reconnecting = True
                continue

            await self._on_open(transport)
            normal_close = await self._read(transport)
            if self._closing or self._runner is not asyncio.current_task():
                return
            self._transport = None
            self.socket_id = None

            if normal_close:
                # server said goodbye; wait for force_reconnect()
                logger.info("Socket closed by server")
                self._set_state(ConnectionState.DISCONNECTED)
                await self._dispatch("disconnect", {"reason": "io server disconnect"})
                return

            logger.warning("Socket connection lost, reconnecting")
            self._set_state(ConnectionState.RECONNECTING)
            await self._dispatch("disconnect", {"reason": "transport close"})
            self.reconnect_attempt = 0
            reconnecting = True

    async def _on_open(self, transport: Any) -> None:
        reconnected = self._ever_connected
        attempts = self.reconnect_attempt
        self._transport = transport
        self._ever_connected = True
        self.reconnect_attempt = 0
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Socket connected to %s", self.url)

        await self._dispatch("connect")
        if reconnected:
            await self._dispatch("reconnect", {"attempts": attempts})
        if self._pending_identity:
            await self._send_registration()

    async def _read(self, transport: Any) -> bool:
        """Consume frames until the transport closes; True when it closed cleanly."""
        try:
            async for raw in transport:
                await self._handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Socket read failed: %s", exc)
            return False
        return True

    async def _handle_frame(self, raw: Any) -> None:
        try:
            frame = json.loads(raw)
            event = frame["event"]
        except (ValueError, TypeError, KeyError):
            logger.warning("Ignoring malformed frame: %r", raw)
            return
        data = frame.get("data")

        if event == "user:registered":
            if isinstance(data, dict) and data.get("success"):
                self.socket_id = data.get("socketId")
                self._set_state(ConnectionState.REGISTERED)
            else:
                logger.warning("Socket registration rejected: %s", data)
        elif event == "error":
            logger.warning("Socket error: %s", data)

        await self._dispatch(event, data)

    async def _send_registration(self) -> bool:
        return await self.emit("user:register", self._pending_identity)
