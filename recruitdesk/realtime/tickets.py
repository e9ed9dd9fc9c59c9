"""Ticket room router — per-ticket broadcast scopes, active viewers and typing state."""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from recruitdesk.realtime.hub import SocketHub

logger = logging.getLogger(__name__)


def ticket_room(ticket_id: Any) -> str:
    return f"ticket:{ticket_id}"


class TicketRoomRouter:
    """Joins, leaves and publishes within ``ticket:<id>`` rooms.

    Viewers and typists are tracked per connection (``{sid: user_id}``) so a
    user with two tabs open stays active while either tab remains.
    """

    def __init__(self, hub: SocketHub):
        self.hub = hub
        self._active: Dict[str, Dict[str, int]] = {}
        self._typing: Dict[str, Dict[str, int]] = {}

    # ── Membership ──

    def join(self, sid: str, ticket_id: str, user_id: int) -> List[int]:
        """Subscribe ``sid`` to the ticket; returns the ticket's active user ids."""
        self.hub.join(sid, ticket_room(ticket_id))
        self._active.setdefault(ticket_id, {})[sid] = user_id
        return self.active_users(ticket_id)

    def leave(self, sid: str, ticket_id: str) -> bool:
        left = self.hub.leave(sid, ticket_room(ticket_id))
        self._pop(self._active, ticket_id, sid)
        self._pop(self._typing, ticket_id, sid)
        return left

    def is_member(self, sid: str, ticket_id: str) -> bool:
        return ticket_room(ticket_id) in self.hub.rooms_of(sid)

    def active_users(self, ticket_id: str) -> List[int]:
        return list(dict.fromkeys(self._active.get(ticket_id, {}).values()))

    # ── Typing ──

    def start_typing(self, sid: str, ticket_id: str, user_id: int) -> bool:
        typists = self._typing.setdefault(ticket_id, {})
        started = sid not in typists
        typists[sid] = user_id
        return started

    def stop_typing(self, sid: str, ticket_id: str) -> bool:
        return self._pop(self._typing, ticket_id, sid)

    def typing_users(self, ticket_id: str) -> List[int]:
        return list(dict.fromkeys(self._typing.get(ticket_id, {}).values()))

    # ── Delivery ──

    def publish(
        self, ticket_id: str, event: str, data: Any, exclude: Optional[Iterable[str]] = None
    ) -> int:
        return self.hub.broadcast(ticket_room(ticket_id), event, data, exclude=exclude)

    # ── Disconnect ──

    def drop_connection(self, sid: str) -> Tuple[List[str], List[str]]:
        """Clear all state of ``sid``; returns (tickets it was viewing, tickets it was typing in)."""
        viewing = [t for t, viewers in list(self._active.items()) if sid in viewers]
        typing = [t for t, typists in list(self._typing.items()) if sid in typists]
        for ticket_id in viewing:
            self._pop(self._active, ticket_id, sid)
            self.hub.leave(sid, ticket_room(ticket_id))
        for ticket_id in typing:
            self._pop(self._typing, ticket_id, sid)
        return viewing, typing

    # ── Stats ──

    def active_ticket_count(self) -> int:
        return len(self._active)

    def typing_count(self) -> int:
        return sum(len(set(typists.values())) for typists in self._typing.values())

    @staticmethod
    def _pop(table: Dict[str, Dict[str, int]], ticket_id: str, sid: str) -> bool:
        entries = table.get(ticket_id)
        if not entries or sid not in entries:
            return False
        del entries[sid]
        if not entries:
            del table[ticket_id]
        return True
