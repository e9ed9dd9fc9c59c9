"""Notification model — in-app notifications pushed to portal users."""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from recruitdesk.database import Base
from recruitdesk.utils.timefmt import isoformat, time_ago, utcnow


class NotificationType(str, enum.Enum):
    SYSTEM = "system"
    CANDIDATE_REGISTRATION = "candidate_registration"
    TEST_COMPLETION = "test_completion"
    TEST_ASSIGNMENT = "test_assignment"
    TEST_SLOT = "test_slot"
    BOARD_CREATION = "board_creation"
    USER_ACTION = "user_action"
    REMINDER = "reminder"
    ALERT = "alert"
    INFO = "info"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationCategory(str, enum.Enum):
    CANDIDATES = "candidates"
    TESTS = "tests"
    BOARDS = "boards"
    USERS = "users"
    SYSTEM = "system"
    REPORTS = "reports"
    GENERAL = "general"


class DeliveryChannel(str, enum.Enum):
    WEBSOCKET = "websocket"
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


ESCALATED_PRIORITIES = frozenset({NotificationPriority.HIGH.value, NotificationPriority.URGENT.value})


def _new_id() -> str:
    return uuid.uuid4().hex


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read_created", "user_id", "read", "created_at"),
        Index("ix_notifications_priority_read", "priority", "read"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    type: Mapped[str] = mapped_column(String(40), default=NotificationType.INFO.value, index=True)
    priority: Mapped[str] = mapped_column(String(10), default=NotificationPriority.MEDIUM.value)
    category: Mapped[str] = mapped_column(String(20), default=NotificationCategory.GENERAL.value)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    # ── Read state: read_at is set iff read ──
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    action_url: Mapped[Optional[str]] = mapped_column(String(500))
    action_text: Mapped[Optional[str]] = mapped_column(String(100))
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    sent_via: Mapped[List[str]] = mapped_column(
        JSON, default=lambda: [DeliveryChannel.WEBSOCKET.value]
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def mark_as_read(self, when: Optional[datetime] = None) -> bool:
        """Flip to read. Returns False (and changes nothing) when already read."""
        if self.read:
            return False
        self.read = True
        self.read_at = when or utcnow()
        return True

    @property
    def time_ago(self) -> str:
        return time_ago(self.created_at)

    @property
    def is_escalated(self) -> bool:
        return self.priority in ESCALATED_PRIORITIES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "priority": self.priority,
            "category": self.category,
            "data": self.data or {},
            "read": bool(self.read),
            "read_at": isoformat(self.read_at),
            "action_url": self.action_url,
            "action_text": self.action_text,
            "expires_at": isoformat(self.expires_at),
            "sent_via": list(self.sent_via or []),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def to_push_payload(self) -> Dict[str, Any]:
        """Full record plus ``timeAgo``, as pushed over the socket."""
        payload = self.to_dict()
        payload["timeAgo"] = self.time_ago
        return payload
