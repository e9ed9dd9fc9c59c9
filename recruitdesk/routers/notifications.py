"""Notifications router — list, count, read state, delete, and staff creation."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from recruitdesk.config import settings
from recruitdesk.database import get_db
from recruitdesk.models.notification import (
    NotificationCategory,
    NotificationPriority,
    NotificationType,
)
from recruitdesk.models.user import User
from recruitdesk.realtime import get_socket_server
from recruitdesk.realtime.server import SupportSocketServer
from recruitdesk.routers.auth import require_staff, require_user
from recruitdesk.schemas.notification import (
    MarkMultipleRead,
    NotificationBulkCreate,
    NotificationCreate,
    NotificationTestCreate,
)
from recruitdesk.services import notifications as notification_store

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

SAMPLE_NOTIFICATIONS = [
    {
        "title": "New Candidate Registered",
        "message": "John Doe has registered and is awaiting approval.",
        "type": NotificationType.CANDIDATE_REGISTRATION.value,
        "priority": NotificationPriority.MEDIUM.value,
        "category": NotificationCategory.CANDIDATES.value,
        "data": {"candidate_name": "John Doe", "candidate_email": "john.doe@example.com"},
        "action_url": "/candidates",
        "action_text": "View Candidates",
    },
    {
        "title": "Test Completed",
        "message": "Alice Smith has completed the Personality Assessment test with a score of 85%.",
        "type": NotificationType.TEST_COMPLETION.value,
        "priority": NotificationPriority.HIGH.value,
        "category": NotificationCategory.TESTS.value,
        "data": {"candidate_name": "Alice Smith", "test_name": "Personality Assessment", "score": 85},
        "action_url": "/results",
        "action_text": "View Results",
    },
    {
        "title": "System Maintenance",
        "message": "The system will undergo maintenance tonight from 2:00 AM to 4:00 AM.",
        "type": NotificationType.SYSTEM.value,
        "priority": NotificationPriority.LOW.value,
        "category": NotificationCategory.SYSTEM.value,
        "data": {"maintenance_time": "2:00 AM - 4:00 AM"},
    },
]


# ── Reading ──

@router.get("")
async def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.NOTIFICATION_PAGE_SIZE, ge=1, le=100),
    unreadOnly: bool = False,
    type: Optional[NotificationType] = None,
    priority: Optional[NotificationPriority] = None,
    category: Optional[NotificationCategory] = None,
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Return one page of the current user's notifications plus the unread count."""
    result = await notification_store.get_user_notifications(
        db,
        current_user.id,
        page=page,
        limit=limit,
        unread_only=unreadOnly,
        type=type.value if type else None,
        priority=priority.value if priority else None,
        category=category.value if category else None,
    )
    return {
        "success": True,
        "data": [n.to_dict() for n in result["notifications"]],
        "pagination": result["pagination"],
        "unreadCount": result["unreadCount"],
    }


@router.get("/count")
async def get_unread_count(
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "count": await notification_store.count_unread(db, current_user.id)}


@router.get("/stats")
async def get_notification_stats(
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await notification_store.get_stats(db)}


# ── Read state ──

@router.put("/read-multiple")
async def mark_multiple_read(
    body: MarkMultipleRead,
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.notificationIds:
        raise HTTPException(status_code=400, detail="Invalid notification IDs provided")
    modified = await notification_store.mark_many_as_read(db, current_user.id, body.notificationIds)
    return {
        "success": True,
        "message": f"{modified} notifications marked as read",
        "modifiedCount": modified,
    }


@router.put("/read-all")
async def mark_all_read(
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    modified = await notification_store.mark_many_as_read(db, current_user.id)
    return {
        "success": True,
        "message": "All notifications marked as read",
        "modifiedCount": modified,
    }


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    sockets: SupportSocketServer = Depends(get_socket_server),
):
    """Mark one notification read. Repeating the call changes nothing."""
    notification = await notification_store.get_owned(db, notification_id, current_user.id)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")

    if await notification_store.mark_as_read(db, notification):
        sockets.fanout.push_update(notification)

    return {
        "success": True,
        "message": "Notification marked as read",
        "data": notification.to_dict(),
    }


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    current_user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    if not await notification_store.delete_owned(db, notification_id, current_user.id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "message": "Notification deleted successfully"}


# ── Creation (staff) ──

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(
    body: NotificationCreate,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    sockets: SupportSocketServer = Depends(get_socket_server),
):
    if await db.get(User, body.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    notification = await sockets.fanout.create_and_send(db, body.to_record(body.user_id))
    return {
        "success": True,
        "message": "Notification created and sent successfully",
        "data": notification.to_dict(),
    }


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
async def create_bulk_notifications(
    body: NotificationBulkCreate,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    sockets: SupportSocketServer = Depends(get_socket_server),
):
    user_ids = list(dict.fromkeys(body.user_ids))
    if not user_ids:
        raise HTTPException(status_code=400, detail="Valid user IDs array is required")

    found = (
        await db.execute(select(func.count(User.id)).where(User.id.in_(user_ids)))
    ).scalar() or 0
    if found != len(user_ids):
        raise HTTPException(status_code=404, detail="One or more users not found")

    created = await sockets.fanout.create_and_send_many(db, user_ids, body.content())
    return {
        "success": True,
        "message": f"{len(created)} notifications created and sent successfully",
        "data": [n.to_dict() for n in created],
    }


@router.post("/test", status_code=status.HTTP_201_CREATED)
async def create_test_notifications(
    body: Optional[NotificationTestCreate] = None,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    sockets: SupportSocketServer = Depends(get_socket_server),
):
    """Send three sample notifications to ``target_user_id`` (default: the caller)."""
    target_id = (body.target_user_id if body else None) or current_user.id
    if await db.get(User, target_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    created = []
    for sample in SAMPLE_NOTIFICATIONS:
        created.append(await sockets.fanout.create_and_send(db, {**sample, "user_id": target_id}))
    return {
        "success": True,
        "message": f"{len(created)} test notifications created successfully",
        "data": [n.to_dict() for n in created],
    }
