"""Shared fixtures: a throwaway SQLite database, seeded users, the app client and a fresh socket server."""

import asyncio
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="recruitdesk-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["NOTIFICATION_PURGE_INTERVAL"] = "3600"
os.environ["SMTP_USERNAME"] = ""
os.environ["SMTP_PASSWORD"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from recruitdesk.database import Base, async_session, engine  # noqa: E402
from recruitdesk.main import app  # noqa: E402
from recruitdesk.models.user import User  # noqa: E402
from recruitdesk.realtime import get_socket_server  # noqa: E402
from recruitdesk.realtime.hub import Connection  # noqa: E402
from recruitdesk.realtime.server import SupportSocketServer  # noqa: E402
from recruitdesk.routers.auth import create_access_token  # noqa: E402

ADMIN_ID = 1
SUPERVISOR_ID = 2
CANDIDATE_ID = 3
OTHER_CANDIDATE_ID = 4

USERS = [
    dict(id=ADMIN_ID, email="admin@example.com", username="admin", full_name="Asha Admin", role_id=1),
    dict(id=SUPERVISOR_ID, email="sup@example.com", username="sup", full_name="Sam Supervisor", role_id=3),
    dict(id=CANDIDATE_ID, email="cara@example.com", username="cara", full_name="Cara Candidate", role_id=4),
    dict(id=OTHER_CANDIDATE_ID, email="cole@example.com", username="cole", full_name="Cole Candidate", role_id=4),
]


async def _reset_database() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as session:
        session.add_all([User(**fields) for fields in USERS])
        await session.commit()


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


def drain(connection: Connection) -> list:
    """Every frame queued on ``connection`` so far, oldest first."""
    frames = []
    while not connection.outbox.empty():
        frame = connection.outbox.get_nowait()
        if frame is not None:
            frames.append(frame)
    return frames


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def database():
    asyncio.run(_reset_database())
    return {u["username"]: u["id"] for u in USERS}


@pytest.fixture
async def db(database):
    async with async_session() as session:
        yield session


@pytest.fixture
def socket_server():
    server = SupportSocketServer()
    app.dependency_overrides[get_socket_server] = lambda: server
    yield server
    app.dependency_overrides.pop(get_socket_server, None)


@pytest.fixture
def client(database, socket_server):
    with TestClient(app) as test_client:
        yield test_client
