"""Support ticket persistence shared by the REST controllers and the socket server."""

import logging
import math
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from recruitdesk.models.support_ticket import (
    CLOSING_STATUSES,
    MessageType,
    SupportTicket,
    TicketMessage,
    TicketStatus,
)
from recruitdesk.models.user import User
from recruitdesk.roles import CANDIDATE
from recruitdesk.utils.timefmt import ensure_aware, utcnow

logger = logging.getLogger(__name__)

TIMEFRAMES = {"7d": 7, "30d": 30, "90d": 90}
SORTABLE = {"created_at", "updated_at", "last_activity", "priority", "status", "subject"}


def next_status_after_message(status: str, sender_role: str) -> str:
    """Status a ticket moves to when ``sender_role`` posts in it."""
    if sender_role == CANDIDATE:
        if status == TicketStatus.IN_PROGRESS.value:
            return TicketStatus.WAITING_RESPONSE.value
        return status
    if status in (TicketStatus.OPEN.value, TicketStatus.WAITING_RESPONSE.value):
        return TicketStatus.IN_PROGRESS.value
    return status


async def get_ticket(db: AsyncSession, ticket_id: str) -> Optional[SupportTicket]:
    result = await db.execute(select(SupportTicket).where(SupportTicket.id == str(ticket_id)))
    return result.scalar_one_or_none()


async def create_ticket(
    db: AsyncSession,
    user: User,
    *,
    subject: str,
    description: str,
    priority: str,
    category: str,
) -> SupportTicket:
    """Open a ticket whose thread starts with the description as first message."""
    ticket = SupportTicket(
        user_id=user.id,
        user_name=user.display_name,
        user_email=user.email,
        subject=subject,
        description=description,
        priority=priority,
        category=category,
    )
    ticket.messages.append(
        TicketMessage(
            sender_id=user.id,
            sender_name=user.display_name,
            sender_role=user.role,
            message=description,
            message_type=MessageType.TEXT.value,
        )
    )
    db.add(ticket)
    await db.commit()
    logger.info("Ticket %s opened by user %s", ticket.ticket_id, user.id)
    return ticket


async def append_message(
    db: AsyncSession,
    ticket: SupportTicket,
    *,
    sender_id: int,
    sender_name: str,
    sender_role: str,
    message: str,
    message_type: str = MessageType.TEXT.value,
    attachments: Optional[List[Dict[str, Any]]] = None,
) -> TicketMessage:
    """Append one message and commit. Status is left untouched."""
    entry = TicketMessage(
        sender_id=sender_id,
        sender_name=sender_name,
        sender_role=sender_role,
        message=message,
        message_type=message_type,
        attachments=list(attachments or []),
    )
    ticket.messages.append(entry)
    ticket.last_activity = utcnow()
    await db.commit()
    return entry


async def apply_status(db: AsyncSession, ticket: SupportTicket, status: str) -> bool:
    """Persist a status transition on its own. Returns whether anything changed."""
    if ticket.status == status:
        return False
    ticket.status = status
    ticket.last_activity = utcnow()
    await db.commit()
    return True


async def change_status(
    db: AsyncSession,
    ticket: SupportTicket,
    status: str,
    *,
    actor_id: int,
    actor_name: str,
    actor_role: str,
    resolution_notes: Optional[str] = None,
) -> Tuple[str, TicketMessage]:
    """Staff status change: write the status, then append the system message.

    Two separate commits; a crash in between leaves the new status without its
    system message.
    """
    old_status = ticket.status
    ticket.status = status
    if status in CLOSING_STATUSES:
        ticket.resolved_at = utcnow()
        if resolution_notes:
            ticket.resolution_notes = resolution_notes
    await db.commit()

    text = f'Ticket status changed from "{old_status}" to "{status}"'
    if resolution_notes:
        text += f". Resolution: {resolution_notes}"
    system_message = await append_message(
        db,
        ticket,
        sender_id=actor_id,
        sender_name=actor_name,
        sender_role=actor_role,
        message=text,
        message_type=MessageType.SYSTEM.value,
    )
    return old_status, system_message


async def update_ticket(
    db: AsyncSession,
    ticket: SupportTicket,
    actor: User,
    *,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    assigned_to: Optional[Any] = None,
    resolution_notes: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> Tuple[List[str], Optional[TicketMessage]]:
    """Apply staff edits; returns the change descriptions and the system message, if any."""
    old_status = ticket.status
    old_priority = ticket.priority
    old_assignee = ticket.assigned_to_name

    if status:
        ticket.status = status
    if priority:
        ticket.priority = priority
    if resolution_notes:
        ticket.resolution_notes = resolution_notes
    if tags is not None:
        ticket.tags = list(tags)

    if assigned_to is not None:
        if assigned_to == "unassign":
            ticket.assigned_to = None
            ticket.assigned_to_name = None
        else:
            assignee = await db.get(User, int(assigned_to))
            if assignee is not None:
                ticket.assigned_to = assignee.id
                ticket.assigned_to_name = assignee.display_name

    if status in CLOSING_STATUSES and status != old_status:
        ticket.resolved_at = utcnow()

    await db.commit()

    changes = []
    if status and status != old_status:
        changes.append(f"Status: {old_status} → {status}")
    if priority and priority != old_priority:
        changes.append(f"Priority: {old_priority} → {priority}")
    if assigned_to is not None and ticket.assigned_to_name != old_assignee:
        changes.append(
            f"Assigned: {old_assignee or 'Unassigned'} → {ticket.assigned_to_name or 'Unassigned'}"
        )

    if not changes:
        return changes, None

    text = f"Ticket updated: {', '.join(changes)}"
    if resolution_notes:
        text += f". Resolution: {resolution_notes}"
    system_message = await append_message(
        db,
        ticket,
        sender_id=actor.id,
        sender_name=actor.display_name,
        sender_role=actor.role,
        message=text,
        message_type=MessageType.SYSTEM.value,
    )
    return changes, system_message


async def mark_messages_read(
    db: AsyncSession, ticket: SupportTicket, user_id: int, message_ids: List[str]
) -> bool:
    wanted = set(message_ids)
    updated = False
    for entry in ticket.messages:
        if entry.message_id in wanted and entry.add_receipt(user_id):
            updated = True
    if updated:
        await db.commit()
    return updated


async def list_tickets(
    db: AsyncSession,
    *,
    user_id: Optional[int] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    assigned_to: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Tuple[List[SupportTicket], Dict[str, int]]:
    page = max(page, 1)
    limit = max(limit, 1)

    clauses = []
    if user_id is not None:
        clauses.append(SupportTicket.user_id == user_id)
    if status:
        clauses.append(SupportTicket.status == status)
    if priority:
        clauses.append(SupportTicket.priority == priority)
    if category:
        clauses.append(SupportTicket.category == category)
    if assigned_to is not None:
        clauses.append(SupportTicket.assigned_to == assigned_to)
    if search:
        pattern = f"%{search}%"
        clauses.append(
            or_(
                SupportTicket.subject.ilike(pattern),
                SupportTicket.description.ilike(pattern),
                SupportTicket.user_name.ilike(pattern),
                SupportTicket.user_email.ilike(pattern),
                SupportTicket.ticket_id.ilike(pattern),
            )
        )

    column = getattr(SupportTicket, sort_by if sort_by in SORTABLE else "created_at")
    order = asc(column) if sort_order == "asc" else desc(column)

    result = await db.execute(
        select(SupportTicket).where(*clauses).order_by(order).offset((page - 1) * limit).limit(limit)
    )
    tickets = list(result.scalars().all())
    total = (await db.execute(select(func.count(SupportTicket.id)).where(*clauses))).scalar() or 0

    return tickets, {
        "current_page": page,
        "total_pages": math.ceil(total / limit),
        "total_items": total,
        "items_per_page": limit,
    }


async def get_analytics(db: AsyncSession, timeframe: str = "30d") -> Dict[str, Any]:
    now = utcnow()
    start = now - timedelta(days=TIMEFRAMES.get(timeframe, 30))

    async def _distribution(column) -> Dict[str, int]:
        rows = await db.execute(select(column, func.count(SupportTicket.id)).group_by(column))
        return {key: count for key, count in rows.all()}

    total = (await db.execute(select(func.count(SupportTicket.id)))).scalar() or 0
    recent = (
        await db.execute(select(func.count(SupportTicket.id)).where(SupportTicket.created_at >= start))
    ).scalar() or 0
    recent_resolved = (
        await db.execute(
            select(func.count(SupportTicket.id)).where(
                SupportTicket.resolved_at >= start, SupportTicket.resolved_at <= now
            )
        )
    ).scalar() or 0

    resolved_rows = await db.execute(
        select(SupportTicket.created_at, SupportTicket.resolved_at).where(
            SupportTicket.resolved_at.is_not(None), SupportTicket.created_at >= start
        )
    )
    durations = [
        (ensure_aware(resolved) - ensure_aware(created)).total_seconds()
        for created, resolved in resolved_rows.all()
    ]
    avg_hours = round(sum(durations) / len(durations) / 3600) if durations else 0

    created_rows = await db.execute(
        select(SupportTicket.created_at).where(SupportTicket.created_at >= start)
    )
    daily: Dict[str, int] = {}
    for (created,) in created_rows.all():
        day = ensure_aware(created).strftime("%Y-%m-%d")
        daily[day] = daily.get(day, 0) + 1

    return {
        "overview": {
            "total_tickets": total,
            "recent_tickets": recent,
            "recent_resolved": recent_resolved,
            "avg_resolution_hours": avg_hours,
        },
        "status_distribution": await _distribution(SupportTicket.status),
        "priority_distribution": await _distribution(SupportTicket.priority),
        "category_distribution": await _distribution(SupportTicket.category),
        "daily_trends": [{"_id": day, "count": daily[day]} for day in sorted(daily)],
        "timeframe": timeframe,
    }


