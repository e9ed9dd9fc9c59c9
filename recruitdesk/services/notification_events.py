"""
Domain-event notifications — what the rest of the portal calls when something
happens to a candidate, a test, a board or a job slot.

Each helper builds the notification content for its event and hands it to the
fan-out, one recipient at a time. Emails are a side channel: a failed email is
logged and the notifications are still returned.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from recruitdesk.models.notification import (
    Notification,
    NotificationCategory,
    NotificationPriority,
    NotificationType,
)
from recruitdesk.realtime.fanout import NotificationFanout
from recruitdesk.services import email
from recruitdesk.utils.timefmt import isoformat, utcnow

logger = logging.getLogger(__name__)


async def _send_email(email_type: str, recipient: Optional[str], variables: Dict[str, Any]) -> None:
    if not recipient:
        return
    result = await email.send(email_type, recipient, variables)
    if result["success"]:
        logger.info("%s email sent to %s", email_type, recipient)
    else:
        logger.error("Error sending %s email to %s: %s", email_type, recipient, result.get("error"))


# ── Candidates ──

async def notify_candidate_registration(
    db: AsyncSession,
    fanout: NotificationFanout,
    candidate: Dict[str, Any],
    admin_ids: Iterable[int],
    username: Optional[str] = None,
) -> List[Notification]:
    """Tell every admin about a new candidate and send the candidate a welcome email.

    ``candidate`` carries ``id``, ``name`` and ``email``.
    """
    content = {
        "title": "New Candidate Registered",
        "message": f"{candidate['name']} has registered and is awaiting approval.",
        "type": NotificationType.CANDIDATE_REGISTRATION.value,
        "priority": NotificationPriority.MEDIUM.value,
        "category": NotificationCategory.CANDIDATES.value,
        "data": {
            "candidate_id": candidate.get("id"),
            "candidate_name": candidate["name"],
            "candidate_email": candidate.get("email"),
        },
        "action_url": f"/candidates/{candidate.get('id')}",
        "action_text": "View Candidate",
    }
    notifications = await fanout.create_and_send_many(db, admin_ids, content)

    await _send_email(
        "candidate_registration",
        candidate.get("email"),
        {"candidate_name": candidate["name"], "username": username},
    )
    return notifications


# ── Tests ──

async def notify_test_completion(
    db: AsyncSession,
    fanout: NotificationFanout,
    result: Dict[str, Any],
    supervisor_ids: Iterable[int],
) -> List[Notification]:
    """``result`` carries ``test_id``, ``test_name``, ``candidate_id``, ``candidate_name``, ``score``, ``result_id``."""
    content = {
        "title": "Test Completed",
        "message": f"{result['candidate_name']} has completed the {result['test_name']} test.",
        "type": NotificationType.TEST_COMPLETION.value,
        "priority": NotificationPriority.HIGH.value,
        "category": NotificationCategory.TESTS.value,
        "data": {
            "test_id": result.get("test_id"),
            "candidate_id": result.get("candidate_id"),
            "candidate_name": result["candidate_name"],
            "test_name": result["test_name"],
            "score": result.get("score"),
        },
        "action_url": f"/results/{result.get('result_id')}",
        "action_text": "View Results",
    }
    return await fanout.create_and_send_many(db, supervisor_ids, content)


async def notify_test_assignment(
    db: AsyncSession,
    fanout: NotificationFanout,
    assignment: Dict[str, Any],
    candidate_id: int,
    candidate_email: Optional[str] = None,
    candidate_name: Optional[str] = None,
) -> Notification:
    """Notify the candidate of a new test; the notification expires at the due date.

    Medium priority, so the assignment does not escalate to the admin channel.
    """
    due_date = assignment.get("due_date")
    notification = await fanout.create_and_send(
        db,
        {
            "user_id": candidate_id,
            "title": "New Test Assigned",
            "message": (
                f"You have been assigned a new test: {assignment['test_name']}. "
                f"Please complete it by {isoformat(due_date) if due_date else 'the due date'}."
            ),
            "type": NotificationType.TEST_ASSIGNMENT.value,
            "priority": NotificationPriority.MEDIUM.value,
            "category": NotificationCategory.TESTS.value,
            "data": {
                "assignment_id": assignment.get("id"),
                "test_name": assignment["test_name"],
                "due_date": isoformat(due_date),
                "test_id": assignment.get("test_id"),
            },
            "action_url": f"/take-test/{assignment.get('id')}",
            "action_text": "Take Test",
            "expires_at": due_date,
        },
    )

    await _send_email(
        "test_assignment",
        candidate_email,
        {
            "candidate_name": candidate_name or "Candidate",
            "test_name": assignment["test_name"],
            "due_date": isoformat(due_date),
        },
    )
    return notification


async def notify_job_slot_booked(
    db: AsyncSession,
    fanout: NotificationFanout,
    slot: Dict[str, Any],
    candidate_id: int,
    candidate_name: str,
    admin_ids: Iterable[int],
) -> List[Notification]:
    """Confirm the slot to the candidate, then tell each admin about the booking.

    ``slot`` carries ``job_id``, ``job_name``, ``slot_date`` and ``slot_time``.
    """
    slot_data = {
        "job_id": slot.get("job_id"),
        "job_name": slot["job_name"],
        "slot_date": slot["slot_date"],
        "slot_time": slot["slot_time"],
    }
    notifications = [
        await fanout.create_and_send(
            db,
            {
                "user_id": candidate_id,
                "title": "Test Slot Booked",
                "message": (
                    f"Your test slot for {slot['job_name']} has been confirmed for "
                    f"{slot['slot_date']} at {slot['slot_time']}."
                ),
                "type": NotificationType.TEST_SLOT.value,
                "priority": NotificationPriority.HIGH.value,
                "category": NotificationCategory.TESTS.value,
                "data": slot_data,
                "action_url": "/my-assessments",
                "action_text": "View Assessments",
            },
        )
    ]

    admin_content = {
        "title": "Test Slot Booked",
        "message": f"{candidate_name} has booked a test slot for {slot['job_name']}.",
        "type": NotificationType.TEST_SLOT.value,
        "priority": NotificationPriority.MEDIUM.value,
        "category": NotificationCategory.TESTS.value,
        "data": {"candidate_id": candidate_id, "candidate_name": candidate_name, **slot_data},
        "action_url": f"/jobs/{slot.get('job_id')}/candidates",
        "action_text": "View Candidates",
    }
    notifications.extend(await fanout.create_and_send_many(db, admin_ids, admin_content))
    return notifications


# ── Boards ──

async def notify_board_creation(
    db: AsyncSession,
    fanout: NotificationFanout,
    board: Dict[str, Any],
    user_ids: Iterable[int],
) -> List[Notification]:
    content = {
        "title": "New Evaluation Board Created",
        "message": f'A new evaluation board "{board["board_name"]}" has been created for {board["job_name"]}.',
        "type": NotificationType.BOARD_CREATION.value,
        "priority": NotificationPriority.MEDIUM.value,
        "category": NotificationCategory.BOARDS.value,
        "data": {
            "board_id": board.get("id"),
            "board_name": board["board_name"],
            "job_name": board["job_name"],
            "candidate_count": board.get("candidate_count", 0),
        },
        "action_url": f"/boards/{board.get('id')}",
        "action_text": "View Board",
    }
    return await fanout.create_and_send_many(db, user_ids, content)


# ── System and reminders ──

async def notify_system_update(
    db: AsyncSession,
    fanout: NotificationFanout,
    title: str,
    message: str,
    user_ids: Iterable[int],
    priority: str = NotificationPriority.MEDIUM.value,
) -> List[Notification]:
    content = {
        "title": title,
        "message": message,
        "type": NotificationType.SYSTEM.value,
        "priority": priority,
        "category": NotificationCategory.SYSTEM.value,
        "data": {"timestamp": isoformat(utcnow())},
    }
    return await fanout.create_and_send_many(db, user_ids, content)


async def notify_reminder(
    db: AsyncSession,
    fanout: NotificationFanout,
    user_id: int,
    reminder: Dict[str, Any],
    recipient_email: Optional[str] = None,
    recipient_name: Optional[str] = None,
) -> Notification:
    """``reminder`` carries ``title`` and ``message`` and may override priority, category, data, action and expiry."""
    notification = await fanout.create_and_send(
        db,
        {
            "user_id": user_id,
            "title": reminder["title"],
            "message": reminder["message"],
            "type": NotificationType.REMINDER.value,
            "priority": reminder.get("priority", NotificationPriority.MEDIUM.value),
            "category": reminder.get("category", NotificationCategory.GENERAL.value),
            "data": reminder.get("data") or {},
            "action_url": reminder.get("action_url"),
            "action_text": reminder.get("action_text"),
            "expires_at": reminder.get("expires_at"),
        },
    )
    await _send_email(
        "reminder",
        recipient_email,
        {"name": recipient_name or "there", "title": reminder["title"], "message": reminder["message"]},
    )
    return notification


async def notify_bulk(
    db: AsyncSession,
    fanout: NotificationFanout,
    user_ids: Iterable[int],
    content: Dict[str, Any],
) -> List[Notification]:
    return await fanout.create_and_send_many(db, user_ids, content)
