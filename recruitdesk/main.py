"""
RecruitDesk — FastAPI application entry-point.

Run with:
    uvicorn recruitdesk.main:app --reload
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from recruitdesk import __version__
from recruitdesk.config import settings
from recruitdesk.database import Base, async_session, engine
from recruitdesk.exceptions import register_exception_handlers
from recruitdesk.services.notifications import purge_expired

# ── Import routers ──
from recruitdesk.routers import auth, notifications, socket, support

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def _purge_expired_notifications() -> None:
    """Delete expired notifications every ``NOTIFICATION_PURGE_INTERVAL`` seconds."""
    while True:
        await asyncio.sleep(settings.NOTIFICATION_PURGE_INTERVAL)
        try:
            async with async_session() as db:
                await purge_expired(db)
        except Exception:
            logger.exception("Expired notification purge failed")


# ── Lifespan: create tables, start the expiry purge ──
@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    purger = asyncio.create_task(_purge_expired_notifications())
    logger.info("%s started (%s)", settings.APP_NAME, settings.ENVIRONMENT)
    yield
    purger.cancel()
    try:
        await purger
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title=settings.APP_NAME,
    description="Recruitment portal — support ticket chat and realtime notifications.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=("*",))

register_exception_handlers(app)

# ── Register API routers ──
app.include_router(auth.router)
app.include_router(notifications.router)
app.include_router(support.router)
app.include_router(socket.router)


@app.get("/health")
async def health():
    return {"success": True, "status": "ok"}


if not settings.is_production:
    from recruitdesk.routers.auth import _set_auth_cookie

    @app.get("/mock-login/{user_id}")
    def mock_login(user_id: int):
        resp = JSONResponse({"success": True, "userId": user_id})
        return _set_auth_cookie(resp, user_id)
