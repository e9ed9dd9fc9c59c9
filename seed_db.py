"""Seed a development database with portal users, a support ticket and a few notifications.

Run with:
    python seed_db.py
"""

import asyncio

from recruitdesk.database import Base, async_session, engine
from recruitdesk.models.user import User
from recruitdesk.realtime import socket_server
from recruitdesk.services import notification_events
from recruitdesk.services import support as ticket_store


async def async_main():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        admin = User(email="admin@example.com", username="admin", full_name="Asha Admin", role_id=1)
        supervisor = User(email="sup@example.com", username="supervisor", full_name="Sam Supervisor", role_id=3)
        candidate = User(email="cara@example.com", username="cara", full_name="Cara Candidate", role_id=4)
        session.add_all([admin, supervisor, candidate])
        await session.commit()

        ticket = await ticket_store.create_ticket(
            session,
            candidate,
            subject="Cannot start my assessment",
            description="The start button stays disabled on the test page.",
            priority="high",
            category="test_related",
        )

        await notification_events.notify_candidate_registration(
            session,
            socket_server.fanout,
            {"id": candidate.id, "name": candidate.display_name, "email": candidate.email},
            [admin.id, supervisor.id],
            username=candidate.username,
        )
        await notification_events.notify_system_update(
            session,
            socket_server.fanout,
            "Welcome to RecruitDesk",
            "Support chat and live notifications are now enabled.",
            [admin.id, supervisor.id, candidate.id],
        )

    print(f"Seeded users {admin.id}, {supervisor.id}, {candidate.id} and ticket {ticket.ticket_id}")


if __name__ == "__main__":
    asyncio.run(async_main())
