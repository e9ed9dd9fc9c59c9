"""Realtime layer: one socket server per process, shared by the WebSocket endpoint and the REST routers."""

from recruitdesk.realtime.server import SupportSocketServer

socket_server = SupportSocketServer()


def get_socket_server() -> SupportSocketServer:
    """FastAPI dependency; override it in tests to isolate rooms and presence."""
    return socket_server
