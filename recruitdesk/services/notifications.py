"""Notification persistence — queries and read-state transitions.

All functions take an ``AsyncSession`` and commit their own writes; each
commit touches a single logical document (or a filtered batch of one user's
notifications), never a notification together with something else.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from recruitdesk.models.notification import Notification
from recruitdesk.utils.timefmt import utcnow

logger = logging.getLogger(__name__)


def _not_expired(now: Optional[datetime] = None):
    now = now or utcnow()
    return or_(Notification.expires_at.is_(None), Notification.expires_at > now)


def _user_filter(
    user_id: int,
    *,
    unread_only: bool = False,
    type: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
) -> List[Any]:
    clauses = [Notification.user_id == user_id, _not_expired()]
    if unread_only:
        clauses.append(Notification.read.is_(False))
    if type:
        clauses.append(Notification.type == type)
    if priority:
        clauses.append(Notification.priority == priority)
    if category:
        clauses.append(Notification.category == category)
    return clauses


async def create_notification(db: AsyncSession, data: Dict[str, Any]) -> Notification:
    """Persist one notification and return it with defaults populated."""
    notification = Notification(**data)
    db.add(notification)
    await db.commit()
    return notification


async def count_unread(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(*_user_filter(user_id, unread_only=True))
    )
    return result.scalar() or 0


async def get_user_notifications(
    db: AsyncSession,
    user_id: int,
    *,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
    type: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """One page of a user's notifications, newest first, plus totals."""
    page = max(page, 1)
    limit = max(limit, 1)
    clauses = _user_filter(
        user_id, unread_only=unread_only, type=type, priority=priority, category=category
    )

    result = await db.execute(
        select(Notification)
        .where(*clauses)
        .order_by(desc(Notification.created_at), desc(Notification.id))
        .limit(limit)
        .offset((page - 1) * limit)
    )
    notifications = list(result.scalars().all())

    total = (await db.execute(select(func.count(Notification.id)).where(*clauses))).scalar() or 0
    unread_count = await count_unread(db, user_id)

    return {
        "notifications": notifications,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
        "unreadCount": unread_count,
    }


async def get_owned(db: AsyncSession, notification_id: str, user_id: int) -> Optional[Notification]:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def mark_as_read(db: AsyncSession, notification: Notification) -> bool:
    """Idempotent: an already-read notification keeps its original ``read_at``."""
    changed = notification.mark_as_read()
    if changed:
        await db.commit()
    return changed


async def mark_many_as_read(
    db: AsyncSession, user_id: int, notification_ids: Optional[Iterable[str]] = None
) -> int:
    """Mark unread notifications read; all of the user's when ``notification_ids`` is None."""
    now = utcnow()
    stmt = update(Notification).where(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    )
    if notification_ids is not None:
        ids = list(notification_ids)
        if not ids:
            return 0
        stmt = stmt.where(Notification.id.in_(ids))
    result = await db.execute(
        stmt.values(read=True, read_at=now, updated_at=now).execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def delete_owned(db: AsyncSession, notification_id: str, user_id: int) -> bool:
    notification = await get_owned(db, notification_id, user_id)
    if notification is None:
        return False
    await db.delete(notification)
    await db.commit()
    return True


async def purge_expired(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Delete notifications whose ``expires_at`` has passed."""
    now = now or utcnow()
    result = await db.execute(
        delete(Notification)
        .where(Notification.expires_at.is_not(None), Notification.expires_at <= now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    purged = result.rowcount or 0
    if purged:
        logger.info("Purged %d expired notifications", purged)
    return purged


async def get_stats(db: AsyncSession) -> Dict[str, Any]:
    total = (await db.execute(select(func.count(Notification.id)))).scalar() or 0
    unread = (
        await db.execute(select(func.count(Notification.id)).where(Notification.read.is_(False)))
    ).scalar() or 0

    by_type = await db.execute(
        select(Notification.type, func.count(Notification.id)).group_by(Notification.type)
    )
    by_priority = await db.execute(
        select(Notification.priority, func.count(Notification.id)).group_by(Notification.priority)
    )
    recent = await db.execute(
        select(Notification).order_by(desc(Notification.created_at)).limit(10)
    )

    return {
        "totals": {"total": total, "unread": unread, "read": total - unread},
        "byType": [{"_id": t, "count": c} for t, c in by_type.all()],
        "byPriority": [{"_id": p, "count": c} for p, c in by_priority.all()],
        "recentActivity": [n.to_dict() for n in recent.scalars().all()],
    }
