"""Support ticket and its embedded, append-only message thread."""

import enum
import random
import string
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recruitdesk.database import Base
from recruitdesk.roles import is_staff, role_label
from recruitdesk.utils.timefmt import isoformat, utcnow


class TicketStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    WAITING_RESPONSE = "waiting_response"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketCategory(str, enum.Enum):
    TECHNICAL = "technical"
    ACCOUNT = "account"
    TEST_RELATED = "test_related"
    GENERAL = "general"
    BILLING = "billing"


class MessageType(str, enum.Enum):
    TEXT = "text"
    FILE = "file"
    SYSTEM = "system"


CLOSING_STATUSES = frozenset({TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value})
MESSAGE_MAX_LENGTH = 2000
RESOLUTION_NOTES_MAX_LENGTH = 500


def _suffix(upper: bool) -> str:
    alphabet = string.digits + (string.ascii_uppercase if upper else string.ascii_lowercase)
    return "".join(random.choices(alphabet, k=4))


def generate_ticket_number() -> str:
    return f"TICK-{int(time.time() * 1000)}-{_suffix(upper=True)}"


def generate_message_id() -> str:
    return f"MSG-{int(time.time() * 1000)}-{_suffix(upper=False)}"


def _new_id() -> str:
    return uuid.uuid4().hex


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    ticket_id: Mapped[str] = mapped_column(
        String(40), unique=True, index=True, default=generate_ticket_number
    )

    # ── Requester ──
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_name: Mapped[str] = mapped_column(String(200), nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Content & triage ──
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), default=TicketPriority.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(20), default=TicketStatus.OPEN.value, index=True)
    category: Mapped[str] = mapped_column(String(20), default=TicketCategory.GENERAL.value)
    assigned_to: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    assigned_to_name: Mapped[Optional[str]] = mapped_column(String(200))
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)

    # ── Timestamps ──
    last_activity: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    resolution_notes: Mapped[Optional[str]] = mapped_column(String(500))

    # ── Thread ──
    messages: Mapped[List["TicketMessage"]] = relationship(
        "TicketMessage",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketMessage.seq",
        lazy="selectin",
    )

    @property
    def latest_message(self) -> Optional["TicketMessage"]:
        return self.messages[-1] if self.messages else None

    def unread_count_for(self, viewer_id: Optional[int]) -> int:
        """Messages the viewer holds no read receipt for."""
        return sum(1 for m in self.messages if not m.is_read_by(viewer_id))

    def has_access(self, user_id: Optional[int], role: Optional[str]) -> bool:
        if user_id is None:
            return False
        return (
            self.user_id == user_id
            or is_staff(role)
            or (self.assigned_to is not None and self.assigned_to == user_id)
        )

    def to_dict(self, viewer_id: Optional[int] = None, include_messages: bool = True) -> Dict[str, Any]:
        latest = self.latest_message
        payload = {
            "_id": self.id,
            "id": self.id,
            "ticket_id": self.ticket_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_email": self.user_email,
            "subject": self.subject,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "category": self.category,
            "assigned_to": self.assigned_to,
            "assigned_to_name": self.assigned_to_name,
            "tags": list(self.tags or []),
            "last_activity": isoformat(self.last_activity),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
            "resolved_at": isoformat(self.resolved_at),
            "resolution_notes": self.resolution_notes,
            "latest_message": latest.to_dict() if latest else None,
            "unread_count": self.unread_count_for(viewer_id),
        }
        if include_messages:
            payload["messages"] = [m.to_dict() for m in self.messages]
        return payload


class TicketMessage(Base):
    __tablename__ = "ticket_messages"

    # Autoincrement key doubles as the append order within a ticket.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String(40), index=True, default=generate_message_id)
    ticket_pk: Mapped[str] = mapped_column(
        ForeignKey("support_tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )

    sender_id: Mapped[int] = mapped_column(Integer, nullable=False)
    sender_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sender_role: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(10), default=MessageType.TEXT.value)
    attachments: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    read_by: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)

    ticket: Mapped["SupportTicket"] = relationship("SupportTicket", back_populates="messages")

    def is_read_by(self, user_id: Optional[int]) -> bool:
        return any(receipt.get("user_id") == user_id for receipt in (self.read_by or []))

    def add_receipt(self, user_id: int) -> bool:
        if self.is_read_by(user_id):
            return False
        # JSON columns only track reassignment, not in-place mutation.
        self.read_by = [*(self.read_by or []), {"user_id": user_id, "read_at": isoformat(utcnow())}]
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.message_id,
            "message_id": self.message_id,
            "sender_id": self.sender_id,
            "sender_name": self.sender_name,
            "sender_role": self.sender_role,
            "sender_role_label": role_label(self.sender_role),
            "message": self.message,
            "message_type": self.message_type,
            "attachments": list(self.attachments or []),
            "timestamp": isoformat(self.timestamp),
            "read_by": list(self.read_by or []),
        }
