"""
Notification fan-out.

The stored record is the source of truth; the socket push is a latency
optimisation. ``create_and_send`` commits first and pushes afterwards, and a
failed push is logged, never rolled back. Clients catch up through
``GET /api/notifications`` on mount and on reconnect.
"""

import logging
from typing import Any, Dict, Iterable, List

from sqlalchemy.ext.asyncio import AsyncSession

from recruitdesk.models.notification import Notification
from recruitdesk.models.support_ticket import SupportTicket, TicketMessage
from recruitdesk.realtime.hub import SocketHub
from recruitdesk.realtime.presence import ADMIN_CHANNEL, user_channel
from recruitdesk.roles import CANDIDATE
from recruitdesk.services import notifications as notification_store
from recruitdesk.utils.timefmt import isoformat

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


class NotificationFanout:
    def __init__(self, hub: SocketHub):
        self.hub = hub

    async def create_and_send(self, db: AsyncSession, data: Dict[str, Any]) -> Notification:
        notification = await notification_store.create_notification(db, data)
        self.push(notification)
        return notification

    async def create_and_send_many(
        self, db: AsyncSession, user_ids: Iterable[int], content: Dict[str, Any]
    ) -> List[Notification]:
        """One notification per recipient, created and pushed one after another."""
        created = []
        for user_id in user_ids:
            created.append(await self.create_and_send(db, {**content, "user_id": user_id}))
        return created

    def push(self, notification: Notification) -> Dict[str, int]:
        """Best-effort realtime delivery of a stored notification."""
        delivered = {"user": 0, "admin": 0}
        try:
            payload = notification.to_push_payload()
            delivered["user"] = self.hub.broadcast(
                user_channel(notification.user_id), "notification:new", payload
            )
            if notification.is_escalated:
                delivered["admin"] = self.hub.broadcast(ADMIN_CHANNEL, "notification:priority", payload)
        except Exception:
            logger.exception("Realtime delivery failed for notification %s", notification.id)
        return delivered

    def push_update(self, notification: Notification) -> int:
        """Tell the owner's other tabs that a notification changed (e.g. was read)."""
        return self.hub.broadcast(
            user_channel(notification.user_id), "notification:updated", notification.to_push_payload()
        )

    def send_ticket_message_alert(self, ticket: SupportTicket, message: TicketMessage) -> None:
        """Alert the requester, the assignee and (for candidate messages) all staff."""
        text = message.message or ""
        preview = text[:PREVIEW_LENGTH] + ("..." if len(text) > PREVIEW_LENGTH else "")
        alert = {
            "type": "new_message",
            "ticketId": ticket.id,
            "ticketNumber": ticket.ticket_id,
            "subject": ticket.subject,
            "message": {
                "sender": message.sender_name,
                "preview": preview,
                "timestamp": isoformat(message.timestamp),
            },
            "priority": ticket.priority,
        }

        if message.sender_id != ticket.user_id:
            self.hub.broadcast(user_channel(ticket.user_id), "notification:new_message", alert)
        if ticket.assigned_to is not None and message.sender_id != ticket.assigned_to:
            self.hub.broadcast(user_channel(ticket.assigned_to), "notification:new_message", alert)
        if message.sender_role == CANDIDATE:
            self.hub.broadcast(ADMIN_CHANNEL, "notification:new_message", alert)
