"""
WebSocket router — the ``/ws`` transport for the support socket server.

Frames are JSON objects ``{"event": <name>, "data": <payload>}`` in both
directions.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from recruitdesk.realtime import get_socket_server
from recruitdesk.realtime.hub import Connection
from recruitdesk.realtime.server import SupportSocketServer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["socket"])


@router.websocket("/ws")
async def support_socket(
    websocket: WebSocket,
    server: SupportSocketServer = Depends(get_socket_server),
):
    await websocket.accept()

    connection = server.connect(Connection(websocket))
    writer = asyncio.create_task(connection.pump())
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                logger.debug("Undecodable frame from %s", connection.sid)
                connection.push("error", {"message": "Malformed frame"})
                continue
            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                connection.push("error", {"message": "Malformed frame"})
                continue
            await server.dispatch(connection.sid, frame["event"], frame.get("data"))
    except WebSocketDisconnect:
        pass
    finally:
        server.disconnect(connection.sid)
        await writer
