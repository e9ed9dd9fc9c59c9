"""User model — the portal account the support and notification layers refer to."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from recruitdesk.database import Base
from recruitdesk.roles import role_name
from recruitdesk.utils.timefmt import utcnow


class User(Base):
    __tablename__ = "users"

    # ── Identity ──
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(200))
    role_id: Mapped[int] = mapped_column(Integer, default=4, nullable=False)

    # ── Timestamps ──
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    @property
    def role(self) -> str:
        return role_name(self.role_id)

    @property
    def display_name(self) -> str:
        return self.full_name or self.username
