"""
Support router — tickets, their message threads, read receipts and analytics.

Endpoints:
    POST /api/support/tickets                       → open a ticket
    GET  /api/support/tickets/my                    → the caller's tickets
    GET  /api/support/tickets                       → all tickets (staff)
    GET  /api/support/tickets/{id}                  → one ticket with its thread
    PUT  /api/support/tickets/{id}                  → staff edits
    POST /api/support/tickets/{id}/messages         → reply in the thread
    POST /api/support/tickets/{id}/messages/read    → read receipts
    GET  /api/support/analytics                     → dashboard figures (staff)
    GET  /api/support/socket-stats                  → live socket counters (staff)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from recruitdesk.database import get_db
from recruitdesk.models.support_ticket import (
    SupportTicket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from recruitdesk.models.user import User
from recruitdesk.realtime import get_socket_server
from recruitdesk.realtime.server import SupportSocketServer
from recruitdesk.routers.auth import require_staff, require_user
from recruitdesk.schemas.support import MarkMessagesRead, MessageCreate, TicketCreate, TicketUpdate
from recruitdesk.services import support as ticket_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/support", tags=["support"])


async def _load_accessible(db: AsyncSession, ticket_id: str, user: User) -> SupportTicket:
    ticket = await ticket_store.get_ticket(db, ticket_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Ticket not found")
    if not ticket.has_access(user.id, user.role):
        raise HTTPException(status_code=403, detail="Access denied to this ticket")
    return ticket


# ── Tickets ──

@router.post("/tickets", status_code=status.HTTP_201_CREATED)
async def create_ticket(
    body: TicketCreate,
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    ticket = await ticket_store.create_ticket(
        db,
        current_user,
        subject=body.subject.strip(),
        description=body.description.strip(),
        priority=body.priority.value,
        category=body.category.value,
    )
    return {
        "success": True,
        "message": "Support ticket created successfully",
        "data": ticket.to_dict(viewer_id=current_user.id),
    }


@router.get("/tickets/my")
async def get_my_tickets(
    status: Optional[TicketStatus] = None,
    priority: Optional[TicketPriority] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    tickets, pagination = await ticket_store.list_tickets(
        db,
        user_id=current_user.id,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        page=page,
        limit=limit,
    )
    return {
        "success": True,
        "data": {
            "tickets": [t.to_dict(viewer_id=current_user.id) for t in tickets],
            "pagination": pagination,
        },
    }


@router.get("/tickets")
async def get_all_tickets(
    status: Optional[TicketStatus] = None,
    priority: Optional[TicketPriority] = None,
    category: Optional[TicketCategory] = None,
    assigned_to: Optional[int] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    tickets, pagination = await ticket_store.list_tickets(
        db,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        category=category.value if category else None,
        assigned_to=assigned_to,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {
        "success": True,
        "data": {
            "tickets": [t.to_dict(viewer_id=current_user.id) for t in tickets],
            "pagination": pagination,
        },
    }


@router.get("/tickets/{ticket_id}")
async def get_ticket(
    ticket_id: str,
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    ticket = await _load_accessible(db, ticket_id, current_user)
    return {"success": True, "data": ticket.to_dict(viewer_id=current_user.id)}


@router.put("/tickets/{ticket_id}")
async def update_ticket(
    ticket_id: str,
    body: TicketUpdate,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    sockets: SupportSocketServer = Depends(get_socket_server),
):
    """Staff edits; a summary of what changed is appended as a system message."""
    ticket = await ticket_store.get_ticket(db, ticket_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Ticket not found")

    assigned_to = body.assigned_to
    if isinstance(assigned_to, str) and assigned_to != "unassign":
        if not assigned_to.isdigit():
            raise HTTPException(status_code=400, detail="Invalid assignee")
        assigned_to = int(assigned_to)

    old_status = ticket.status
    changes, system_message = await ticket_store.update_ticket(
        db,
        ticket,
        current_user,
        status=body.status.value if body.status else None,
        priority=body.priority.value if body.priority else None,
        assigned_to=assigned_to,
        resolution_notes=body.resolution_notes,
        tags=body.tags,
    )

    if system_message is not None:
        if ticket.status != old_status:
            sockets.announce_status(
                ticket.id,
                old_status=old_status,
                new_status=ticket.status,
                updated_by=current_user.display_name,
                resolution_notes=body.resolution_notes,
                system_message=system_message.to_dict(),
            )
        else:
            sockets.announce_message(ticket.id, system_message.to_dict(), ticket.status)
        logger.info("Ticket %s updated by %s: %s", ticket.ticket_id, current_user.id, "; ".join(changes))

    return {
        "success": True,
        "message": "Ticket updated successfully",
        "data": ticket.to_dict(viewer_id=current_user.id),
    }


# ── Messages ──

@router.post("/tickets/{ticket_id}/messages")
async def add_message(
    ticket_id: str,
    body: MessageCreate,
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    sockets: SupportSocketServer = Depends(get_socket_server),
):
    text = body.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message content is required")
    ticket = await _load_accessible(db, ticket_id, current_user)

    entry = await ticket_store.append_message(
        db,
        ticket,
        sender_id=current_user.id,
        sender_name=current_user.display_name,
        sender_role=current_user.role,
        message=text,
        message_type=body.message_type.value,
        attachments=body.attachments,
    )
    new_status = ticket_store.next_status_after_message(ticket.status, current_user.role)
    sockets.announce_message(ticket.id, entry.to_dict(), new_status)
    await ticket_store.apply_status(db, ticket, new_status)
    sockets.fanout.send_ticket_message_alert(ticket, entry)

    return {
        "success": True,
        "message": "Message added successfully",
        "data": {"message": entry.to_dict(), "ticket_status": ticket.status},
    }


@router.post("/tickets/{ticket_id}/messages/read")
async def mark_messages_read(
    ticket_id: str,
    body: MarkMessagesRead,
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    ticket = await _load_accessible(db, ticket_id, current_user)
    updated = await ticket_store.mark_messages_read(db, ticket, current_user.id, body.messageIds)
    return {"success": True, "message": "Messages marked as read", "updated": updated}


# ── Staff dashboards ──

@router.get("/analytics")
async def get_analytics(
    timeframe: str = Query("30d", pattern="^(7d|30d|90d)$"),
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await ticket_store.get_analytics(db, timeframe)}


@router.get("/socket-stats")
async def get_socket_stats(
    current_user: User = Depends(require_staff),
    sockets: SupportSocketServer = Depends(get_socket_server),
):
    return {"success": True, "data": sockets.statistics()}
