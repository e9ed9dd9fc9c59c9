"""
Transport hub — live connections and the room membership table.

Every connection owns an outbound queue. Publishing only enqueues, and it does
so synchronously, so all subscribers of a room see that room's events in the
order they were published. A writer task per connection (``Connection.pump``)
drains the queue onto the socket.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set

from recruitdesk.realtime.errors import ConnectionNotReady

logger = logging.getLogger(__name__)


class Connection:
    """One accepted transport session."""

    def __init__(self, websocket: Any = None, sid: Optional[str] = None):
        self.sid = sid or uuid.uuid4().hex
        self.websocket = websocket
        self.outbox: "asyncio.Queue[Optional[dict]]" = asyncio.Queue()
        self.open = True

    def push(self, event: str, data: Any) -> bool:
        if not self.open:
            return False
        self.outbox.put_nowait({"event": event, "data": data})
        return True

    def close(self) -> None:
        if self.open:
            self.open = False
            self.outbox.put_nowait(None)

    async def pump(self) -> None:
        """Write queued frames until the connection is closed."""
        while True:
            frame = await self.outbox.get()
            if frame is None:
                return
            try:
                await self.websocket.send_text(json.dumps(frame, default=str))
            except Exception as exc:  # the peer is gone; stop writing
                logger.debug("Dropping writer for %s: %s", self.sid, exc)
                self.open = False
                return


class SocketHub:
    """Connections keyed by id, plus room -> members and member -> rooms."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        # dicts used as insertion-ordered sets
        self._rooms: Dict[str, Dict[str, None]] = {}
        self._memberships: Dict[str, Set[str]] = {}

    # ── Connections ──

    def add(self, connection: Connection) -> Connection:
        self._connections[connection.sid] = connection
        self._memberships.setdefault(connection.sid, set())
        return connection

    def has(self, sid: str) -> bool:
        return sid in self._connections

    def get(self, sid: str) -> Optional[Connection]:
        return self._connections.get(sid)

    def discard(self, sid: str) -> Set[str]:
        """Forget a connection and remove it from every room it was in."""
        connection = self._connections.pop(sid, None)
        rooms = self._memberships.pop(sid, set())
        for room in rooms:
            self._remove_member(room, sid)
        if connection is not None:
            connection.close()
        return rooms

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # ── Rooms ──

    def join(self, sid: str, room: str) -> bool:
        """Add ``sid`` to ``room``. Returns False if it was already a member."""
        if sid not in self._connections:
            raise ConnectionNotReady(sid)
        members = self._rooms.setdefault(room, {})
        if sid in members:
            return False
        members[sid] = None
        self._memberships[sid].add(room)
        return True

    def leave(self, sid: str, room: str) -> bool:
        rooms = self._memberships.get(sid)
        if not rooms or room not in rooms:
            return False
        rooms.discard(room)
        self._remove_member(room, sid)
        return True

    def _remove_member(self, room: str, sid: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.pop(sid, None)
        if not members:
            del self._rooms[room]

    def rooms_of(self, sid: str) -> frozenset:
        return frozenset(self._memberships.get(sid, ()))

    def members(self, room: str) -> List[str]:
        return list(self._rooms.get(room, ()))

    # ── Delivery ──

    def emit(self, sid: str, event: str, data: Any) -> bool:
        connection = self._connections.get(sid)
        if connection is None:
            return False
        return connection.push(event, data)

    def broadcast(
        self, room: str, event: str, data: Any, exclude: Optional[Iterable[str]] = None
    ) -> int:
        """Queue ``event`` for every member of ``room``; returns the number queued."""
        skip = set(exclude or ())
        delivered = 0
        for sid in self.members(room):
            if sid in skip:
                continue
            if self.emit(sid, event, data):
                delivered += 1
        return delivered
