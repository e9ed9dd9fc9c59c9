"""
Support socket server — dispatches client events to presence, ticket rooms and
persistence, and emits the resulting server events.

Handlers never raise into the receive loop: application errors become an
``error`` event on the offending connection, everything else is logged.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from recruitdesk.database import async_session
from recruitdesk.models.support_ticket import (
    MESSAGE_MAX_LENGTH,
    RESOLUTION_NOTES_MAX_LENGTH,
    MessageType,
    SupportTicket,
    TicketStatus,
)
from recruitdesk.realtime.errors import ConnectionNotReady, SocketError
from recruitdesk.realtime.fanout import NotificationFanout
from recruitdesk.realtime.hub import Connection, SocketHub
from recruitdesk.realtime.presence import ADMIN_CHANNEL, Identity, PresenceRegistry
from recruitdesk.realtime.tickets import TicketRoomRouter
from recruitdesk.services import support as ticket_store
from recruitdesk.utils.timefmt import isoformat, utcnow

logger = logging.getLogger(__name__)

Handler = Callable[[str, Dict[str, Any]], Awaitable[None]]

MESSAGE_TYPES = {t.value for t in MessageType}
STATUSES = {s.value for s in TicketStatus}


def _now() -> str:
    return isoformat(utcnow())


class SupportSocketServer:
    def __init__(self, session_factory=async_session, hub: Optional[SocketHub] = None):
        self.session_factory = session_factory
        self.hub = hub or SocketHub()
        self.presence = PresenceRegistry(self.hub)
        self.tickets = TicketRoomRouter(self.hub)
        self.fanout = NotificationFanout(self.hub)
        self._handlers: Dict[str, Tuple[Handler, Optional[str]]] = {
            "user:register": (self.on_register, None),
            "ticket:join": (self.on_ticket_join, "Failed to join ticket"),
            "ticket:leave": (self.on_ticket_leave, None),
            "message:send": (self.on_message_send, "Failed to send message"),
            "typing:start": (self.on_typing_start, None),
            "typing:stop": (self.on_typing_stop, None),
            "messages:mark_read": (self.on_messages_mark_read, None),
            "ticket:update_status": (self.on_update_status, "Failed to update ticket status"),
        }

    # ── Connection lifecycle ──

    def connect(self, connection: Connection) -> Connection:
        logger.info("Socket connected: %s", connection.sid)
        return self.hub.add(connection)

    async def dispatch(self, sid: str, event: str, data: Any) -> None:
        entry = self._handlers.get(event)
        if entry is None:
            self.hub.emit(sid, "error", {"message": f"Unknown event: {event}"})
            return
        handler, failure_message = entry
        if data is None:
            data = {}
        if not isinstance(data, dict):
            self.hub.emit(sid, "error", {"message": "Invalid payload"})
            return

        try:
            await handler(sid, data)
        except SocketError as exc:
            self.hub.emit(sid, "error", exc.payload())
        except ConnectionNotReady:
            logger.debug("Connection %s went away while handling %s", sid, event)
        except Exception as exc:
            logger.exception("Error handling %s for %s", event, sid)
            if failure_message:
                self.hub.emit(sid, "error", {"message": failure_message, "details": str(exc)})

    def disconnect(self, sid: str) -> None:
        identity = self.presence.forget(sid)
        viewing, typing = self.tickets.drop_connection(sid)
        self.hub.discard(sid)
        logger.info("Socket disconnected: %s", sid)
        if identity is None:
            return

        for ticket_id in viewing:
            self.tickets.publish(
                ticket_id,
                "ticket:user_left",
                {"userId": identity.user_id, "userName": identity.name, "timestamp": _now()},
            )
        for ticket_id in typing:
            self.tickets.publish(
                ticket_id,
                "typing:user_stopped",
                {"userId": identity.user_id, "userName": identity.name, "ticketId": ticket_id, "timestamp": _now()},
            )
        if not self.presence.is_online(identity.user_id):
            self.hub.broadcast(
                ADMIN_CHANNEL,
                "user:offline",
                {"userId": identity.user_id, "userName": identity.name, "timestamp": _now()},
            )

    # ── Helpers ──

    def _identity(self, sid: str) -> Identity:
        identity = self.presence.identity_of(sid)
        if identity is None:
            raise SocketError("User not authenticated")
        return identity

    @staticmethod
    def _ticket_id(data: Dict[str, Any]) -> str:
        ticket_id = data.get("ticketId")
        if ticket_id is None or str(ticket_id).strip() == "":
            raise SocketError("Ticket ID is required")
        return str(ticket_id)

    async def _accessible_ticket(self, db, ticket_id: str, identity: Identity) -> SupportTicket:
        ticket = await ticket_store.get_ticket(db, ticket_id)
        if ticket is None:
            raise SocketError("Ticket not found")
        if not ticket.has_access(identity.user_id, identity.role):
            raise SocketError("Access denied to this ticket")
        return ticket

    # ── Handlers ──

    async def on_register(self, sid: str, data: Dict[str, Any]) -> None:
        try:
            identity = Identity.from_payload(data)
        except SocketError as exc:
            logger.warning("Rejected registration on %s: %s", sid, exc.message)
            self.hub.emit(sid, "user:registered", {"success": False, "message": "Failed to register user"})
            return

        self.presence.register(sid, identity)
        logger.info("User %s (%s) registered with socket %s", identity.name, identity.role, sid)

        self.hub.emit(
            sid,
            "user:registered",
            {
                "success": True,
                "message": "Connected to support system",
                "userId": identity.user_id,
                "socketId": sid,
            },
        )
        self.hub.broadcast(
            ADMIN_CHANNEL,
            "user:online",
            {**identity.to_payload(), "timestamp": _now()},
        )

    async def on_ticket_join(self, sid: str, data: Dict[str, Any]) -> None:
        identity = self._identity(sid)
        ticket_id = self._ticket_id(data)
        async with self.session_factory() as db:
            await self._accessible_ticket(db, ticket_id, identity)

        active_users = self.tickets.join(sid, ticket_id, identity.user_id)
        logger.info("User %s joined ticket %s", identity.name, ticket_id)

        self.tickets.publish(
            ticket_id,
            "ticket:user_joined",
            {**identity.to_payload(), "timestamp": _now()},
            exclude=[sid],
        )
        self.hub.emit(sid, "ticket:joined", {"success": True, "ticketId": ticket_id, "activeUsers": active_users})

    async def on_ticket_leave(self, sid: str, data: Dict[str, Any]) -> None:
        ticket_id = self._ticket_id(data)
        if not self.tickets.leave(sid, ticket_id):
            return
        identity = self.presence.identity_of(sid)
        self.tickets.publish(
            ticket_id,
            "ticket:user_left",
            {
                "userId": identity.user_id if identity else None,
                "userName": identity.name if identity else None,
                "timestamp": _now(),
            },
        )

    async def on_message_send(self, sid: str, data: Dict[str, Any]) -> None:
        identity = self._identity(sid)
        ticket_id = self._ticket_id(data)
        text = data.get("message")
        if not isinstance(text, str) or not text.strip():
            raise SocketError("Message content cannot be empty")
        if len(text.strip()) > MESSAGE_MAX_LENGTH:
            raise SocketError(f"Message cannot exceed {MESSAGE_MAX_LENGTH} characters")
        message_type = data.get("messageType") or MessageType.TEXT.value
        if message_type not in MESSAGE_TYPES:
            raise SocketError("Invalid message type")
        attachments = data.get("attachments") or []
        if not isinstance(attachments, list):
            raise SocketError("Attachments must be a list")

        async with self.session_factory() as db:
            ticket = await self._accessible_ticket(db, ticket_id, identity)

            # 1. persist
            entry = await ticket_store.append_message(
                db,
                ticket,
                sender_id=identity.user_id,
                sender_name=identity.name,
                sender_role=identity.role,
                message=text.strip(),
                message_type=message_type,
                attachments=attachments,
            )
            new_status = ticket_store.next_status_after_message(ticket.status, identity.role)

            # 2. publish
            self.announce_message(ticket_id, entry.to_dict(), new_status, sender_sid=sid)

            # 3. status transition, a separate write
            await ticket_store.apply_status(db, ticket, new_status)

        self.fanout.send_ticket_message_alert(ticket, entry)
        logger.info("Message sent in ticket %s by %s", ticket_id, identity.name)

    async def on_typing_start(self, sid: str, data: Dict[str, Any]) -> None:
        identity = self._identity(sid)
        ticket_id = self._ticket_id(data)
        self.tickets.start_typing(sid, ticket_id, identity.user_id)
        self.tickets.publish(
            ticket_id,
            "typing:user_started",
            {"userId": identity.user_id, "userName": identity.name, "ticketId": ticket_id, "timestamp": _now()},
            exclude=[sid],
        )

    async def on_typing_stop(self, sid: str, data: Dict[str, Any]) -> None:
        identity = self._identity(sid)
        ticket_id = self._ticket_id(data)
        self.tickets.stop_typing(sid, ticket_id)
        self.tickets.publish(
            ticket_id,
            "typing:user_stopped",
            {"userId": identity.user_id, "userName": identity.name, "ticketId": ticket_id, "timestamp": _now()},
            exclude=[sid],
        )

    async def on_messages_mark_read(self, sid: str, data: Dict[str, Any]) -> None:
        identity = self._identity(sid)
        ticket_id = self._ticket_id(data)
        message_ids = data.get("messageIds") or []
        if not isinstance(message_ids, list):
            raise SocketError("Message IDs array is required")

        async with self.session_factory() as db:
            ticket = await self._accessible_ticket(db, ticket_id, identity)
            updated = await ticket_store.mark_messages_read(db, ticket, identity.user_id, message_ids)

        if updated:
            self.tickets.publish(
                ticket_id,
                "messages:read_status",
                {
                    "ticketId": ticket_id,
                    "messageIds": message_ids,
                    "readBy": identity.user_id,
                    "readByName": identity.name,
                    "timestamp": _now(),
                },
                exclude=[sid],
            )

    async def on_update_status(self, sid: str, data: Dict[str, Any]) -> None:
        identity = self._identity(sid)
        if not identity.is_staff:
            raise SocketError("Permission denied")
        ticket_id = self._ticket_id(data)
        status = data.get("status")
        if status not in STATUSES:
            raise SocketError("Invalid status")
        resolution_notes = data.get("resolutionNotes")
        if resolution_notes is not None and not isinstance(resolution_notes, str):
            raise SocketError("Resolution notes must be text")
        if resolution_notes and len(resolution_notes) > RESOLUTION_NOTES_MAX_LENGTH:
            raise SocketError(f"Resolution notes cannot exceed {RESOLUTION_NOTES_MAX_LENGTH} characters")

        async with self.session_factory() as db:
            ticket = await ticket_store.get_ticket(db, ticket_id)
            if ticket is None:
                raise SocketError("Ticket not found")
            old_status, system_message = await ticket_store.change_status(
                db,
                ticket,
                status,
                actor_id=identity.user_id,
                actor_name=identity.name,
                actor_role=identity.role,
                resolution_notes=resolution_notes,
            )

        self.announce_status(
            ticket_id,
            old_status=old_status,
            new_status=status,
            updated_by=identity.name,
            resolution_notes=resolution_notes,
            system_message=system_message.to_dict(),
        )
        logger.info("Ticket %s status updated to %s by %s", ticket_id, status, identity.name)

    # ── Announcements shared with the REST controllers ──

    def announce_message(
        self,
        ticket_id: str,
        message: Dict[str, Any],
        ticket_status: str,
        sender_sid: Optional[str] = None,
    ) -> int:
        if sender_sid is not None:
            self.hub.emit(
                sender_sid,
                "message:sent",
                {"success": True, "ticketId": ticket_id, "message": message, "ticket_status": ticket_status},
            )
        return self.tickets.publish(
            ticket_id,
            "message:received",
            {"ticketId": ticket_id, "message": message, "ticket_status": ticket_status},
        )

    def announce_status(
        self,
        ticket_id: str,
        *,
        old_status: str,
        new_status: str,
        updated_by: str,
        resolution_notes: Optional[str],
        system_message: Dict[str, Any],
    ) -> int:
        return self.tickets.publish(
            ticket_id,
            "ticket:status_updated",
            {
                "ticketId": ticket_id,
                "oldStatus": old_status,
                "newStatus": new_status,
                "updatedBy": updated_by,
                "resolutionNotes": resolution_notes,
                "systemMessage": system_message,
                "timestamp": _now(),
            },
        )

    # ── Stats ──

    def statistics(self) -> Dict[str, int]:
        return {
            "connectedUsers": self.presence.online_count(),
            "activeTickets": self.tickets.active_ticket_count(),
            "typingUsers": self.tickets.typing_count(),
        }
