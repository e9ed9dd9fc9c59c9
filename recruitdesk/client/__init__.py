"""Python client for the support socket and the notifications REST API."""

from recruitdesk.client.events import ListenerScope, Subscription
from recruitdesk.client.notification_cache import NotificationCache, NotificationCacheError
from recruitdesk.client.socket_client import ConnectionState, SocketClient

__all__ = [
    "ConnectionState",
    "ListenerScope",
    "NotificationCache",
    "NotificationCacheError",
    "SocketClient",
    "Subscription",
]
