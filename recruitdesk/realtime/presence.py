"""Presence registry — which user (and role) each live connection belongs to."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from recruitdesk.realtime.errors import ConnectionNotReady, SocketError
from recruitdesk.realtime.hub import SocketHub
from recruitdesk.roles import USER, is_staff

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = "admin:notifications"
GLOBAL_CHANNEL = "global:notifications"


def user_channel(user_id: Any) -> str:
    return f"user:{user_id}"


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str
    name: str

    @property
    def is_staff(self) -> bool:
        return is_staff(self.role)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Identity":
        """Parse a ``user:register`` payload ``{userId, userRole, userName}``."""
        raw_id = data.get("userId")
        try:
            user_id = int(raw_id)
        except (TypeError, ValueError):
            raise SocketError("Invalid user id") from None
        role = str(data.get("userRole") or USER)
        name = str(data.get("userName") or f"User {user_id}")
        return cls(user_id=user_id, role=role, name=name)

    def to_payload(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "userRole": self.role, "userName": self.name}


class PresenceRegistry:
    """Maps connections to identities; many connections may share one user."""

    def __init__(self, hub: SocketHub):
        self.hub = hub
        self._by_connection: Dict[str, Identity] = {}
        self._by_user: Dict[int, Set[str]] = {}

    def register(self, sid: str, identity: Identity) -> Optional[Identity]:
        """Bind ``sid`` to ``identity``, replacing any earlier binding of the same connection.

        Joins the user's private channel, the global channel and, for staff,
        the admin channel. Returns the identity that was replaced, if any.
        """
        if not self.hub.has(sid):
            raise ConnectionNotReady(sid)

        previous = self._by_connection.get(sid)
        if previous is not None and previous != identity:
            self._unbind(sid, previous)

        self._by_connection[sid] = identity
        self._by_user.setdefault(identity.user_id, set()).add(sid)

        self.hub.join(sid, user_channel(identity.user_id))
        self.hub.join(sid, GLOBAL_CHANNEL)
        if identity.is_staff:
            self.hub.join(sid, ADMIN_CHANNEL)
        return previous

    def forget(self, sid: str) -> Optional[Identity]:
        identity = self._by_connection.pop(sid, None)
        if identity is not None:
            self._unbind(sid, identity)
            self.hub.leave(sid, GLOBAL_CHANNEL)
        return identity

    def _unbind(self, sid: str, identity: Identity) -> None:
        sids = self._by_user.get(identity.user_id)
        if sids is not None:
            sids.discard(sid)
            if not sids:
                del self._by_user[identity.user_id]
        self.hub.leave(sid, user_channel(identity.user_id))
        if identity.is_staff:
            self.hub.leave(sid, ADMIN_CHANNEL)

    def identity_of(self, sid: str) -> Optional[Identity]:
        return self._by_connection.get(sid)

    def connections_for(self, user_id: int) -> List[str]:
        return sorted(self._by_user.get(user_id, ()))

    def is_online(self, user_id: int) -> bool:
        return bool(self._by_user.get(user_id))

    def online_count(self) -> int:
        return len(self._by_user)
