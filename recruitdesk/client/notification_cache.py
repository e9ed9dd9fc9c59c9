"""
Client notification cache — a local mirror of one user's notifications.

Pull (REST) is authoritative; push (socket events) keeps the mirror fresh
between pulls. Mutations are optimistic: the local change is applied first,
the request is sent, and if the request fails the recorded inverse of that
change is applied, so only the entries the failed operation touched revert.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from recruitdesk.client.events import EventEmitter, ListenerScope
from recruitdesk.config import settings
from recruitdesk.utils.timefmt import isoformat, utcnow

logger = logging.getLogger(__name__)

API_PREFIX = "/api/notifications"

Inverse = Callable[[], None]


class NotificationCacheError(Exception):
    """A notifications request failed; any optimistic change has already been undone."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotificationCache(EventEmitter):
    def __init__(
        self,
        *,
        user_id: Optional[int] = None,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        rollback_on_failure: bool = True,
        page_size: int = settings.NOTIFICATION_PAGE_SIZE,
    ):
        super().__init__()
        self.user_id = user_id
        self.rollback_on_failure = rollback_on_failure
        self.page_size = page_size
        if http_client is None:
            headers = {"Authorization": f"Bearer {token}"} if token else {}
            http_client = httpx.AsyncClient(base_url=base_url or settings.API_URL, headers=headers)
            self._owns_client = True
        else:
            self._owns_client = False
        self.http = http_client

        self.notifications: List[Dict[str, Any]] = []
        self.unread_count = 0
        self.pagination: Dict[str, Any] = {}
        # unread notifications the server counted that are not in the loaded page
        self._unread_elsewhere = 0
        self._socket_scope: Optional[ListenerScope] = None

    async def aclose(self) -> None:
        self.detach()
        if self._owns_client:
            await self.http.aclose()

    # ── REST ──

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self.http.request(method, API_PREFIX + path, **kwargs)
        except httpx.HTTPError as exc:
            raise NotificationCacheError(f"Request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_error or not body.get("success", False):
            message = body.get("message") or f"HTTP {response.status_code}"
            raise NotificationCacheError(message, status_code=response.status_code)
        return body

    async def get_notifications(
        self,
        page: int = 1,
        limit: Optional[int] = None,
        unread_only: bool = False,
        type: Optional[str] = None,
        priority: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Replace the cached list and count with one page from the server."""
        params: Dict[str, Any] = {"page": page, "limit": limit or self.page_size}
        if unread_only:
            params["unreadOnly"] = "true"
        for key, value in (("type", type), ("priority", priority), ("category", category)):
            if value:
                params[key] = value

        body = await self._request("GET", "", params=params)
        self.notifications = list(body.get("data", []))
        self.pagination = body.get("pagination", {})
        self._sync_unread(int(body.get("unreadCount", 0)))

        await self._dispatch("notifications:loaded", self.notifications)
        await self._dispatch("unread:count:updated", self.unread_count)
        return self.notifications

    async def get_unread_count(self) -> int:
        body = await self._request("GET", "/count")
        self._sync_unread(int(body.get("count", 0)))
        await self._dispatch("unread:count:updated", self.unread_count)
        return self.unread_count

    async def mark_as_read(self, notification_id: str) -> Dict[str, Any]:
        entry = self._find(notification_id)
        inverse = None
        if entry is not None and not entry.get("read"):
            inverse = self._apply_read([entry])

        try:
            body = await self._request("PUT", f"/{notification_id}/read")
        except NotificationCacheError:
            await self._undo(inverse)
            raise

        if body.get("data"):
            self._replace(body["data"])
        if entry is None:
            # read outside the loaded page
            self._forget_unread_elsewhere()
        self._recount()
        await self._dispatch("notification:read", notification_id)
        await self._dispatch("unread:count:updated", self.unread_count)
        return body

    async def mark_all_as_read(self) -> Dict[str, Any]:
        unread = [n for n in self.notifications if not n.get("read")]
        elsewhere = self._unread_elsewhere
        inverse = self._apply_read(unread)
        self._unread_elsewhere = 0

        try:
            body = await self._request("PUT", "/read-all")
        except NotificationCacheError:
            if self.rollback_on_failure:
                self._unread_elsewhere = elsewhere
            await self._undo(inverse)
            raise

        self._recount()
        await self._dispatch("notifications:all:read", body.get("modifiedCount", 0))
        await self._dispatch("unread:count:updated", self.unread_count)
        return body

    async def delete_notification(self, notification_id: str) -> Dict[str, Any]:
        inverse = None
        index = self._index(notification_id)
        if index is not None:
            removed = self.notifications.pop(index)
            self._recount()

            def inverse():
                if self._index(notification_id) is None:
                    self.notifications.insert(min(index, len(self.notifications)), removed)

        try:
            body = await self._request("DELETE", f"/{notification_id}")
        except NotificationCacheError:
            await self._undo(inverse)
            raise

        if index is None:
            self._forget_unread_elsewhere()
            self._recount()
        await self._dispatch("notification:deleted", notification_id)
        await self._dispatch("unread:count:updated", self.unread_count)
        return body

    # ── Push ──

    async def handle_new(self, notification: Dict[str, Any]) -> bool:
        """Prepend a pushed notification unless it is already cached."""
        if not isinstance(notification, dict) or self._index(notification.get("_id") or notification.get("id")) is not None:
            return False
        self.notifications.insert(0, notification)
        self._recount()
        await self._dispatch("notification:new", notification)
        await self._dispatch("unread:count:updated", self.unread_count)
        return True

    async def handle_priority(self, notification: Dict[str, Any]) -> bool:
        """Surface an escalated notification; cache it only if it is ours."""
        await self._dispatch("notification:priority", notification)
        if not isinstance(notification, dict) or self.user_id is None:
            return False
        if notification.get("user_id") != self.user_id:
            return False
        if self._index(notification.get("_id") or notification.get("id")) is not None:
            return False
        self.notifications.insert(0, notification)
        self._recount()
        await self._dispatch("unread:count:updated", self.unread_count)
        return True

    async def handle_updated(self, notification: Dict[str, Any]) -> bool:
        if not isinstance(notification, dict) or not self._replace(notification):
            return False
        self._recount()
        await self._dispatch("notifications:updated", self.notifications)
        await self._dispatch("unread:count:updated", self.unread_count)
        return True

    def attach(self, socket_client) -> ListenerScope:
        """Follow a socket client's push events and reload on every (re)connect."""
        self.detach()
        scope = socket_client.listener_scope()
        scope.on("notification:new", self.handle_new)
        scope.on("notification:priority", self.handle_priority)
        scope.on("notification:updated", self.handle_updated)
        scope.on("connect", self._reload)
        scope.on("reconnect", self._reload)
        self._socket_scope = scope
        return scope

    def detach(self) -> None:
        if self._socket_scope is not None:
            self._socket_scope.cleanup()
            self._socket_scope = None

    async def _reload(self, _data: Any = None) -> None:
        try:
            await self.get_notifications()
        except NotificationCacheError as exc:
            logger.warning("Could not reload notifications: %s", exc.message)

    # ── Local state ──

    def _index(self, notification_id: Optional[str]) -> Optional[int]:
        if notification_id is None:
            return None
        for index, entry in enumerate(self.notifications):
            if notification_id in (entry.get("_id"), entry.get("id")):
                return index
        return None

    def _find(self, notification_id: str) -> Optional[Dict[str, Any]]:
        index = self._index(notification_id)
        return self.notifications[index] if index is not None else None

    def _replace(self, notification: Dict[str, Any]) -> bool:
        index = self._index(notification.get("_id") or notification.get("id"))
        if index is None:
            return False
        self.notifications[index] = {**self.notifications[index], **notification}
        return True

    def _apply_read(self, entries: List[Dict[str, Any]]) -> Inverse:
        """Mark ``entries`` read in place; returns the function that restores them."""
        before = [(entry, entry.get("read"), entry.get("read_at")) for entry in entries]
        now = isoformat(utcnow())
        for entry in entries:
            entry["read"] = True
            entry["read_at"] = now
        self._recount()

        def inverse():
            for entry, read, read_at in before:
                entry["read"] = read
                entry["read_at"] = read_at

        return inverse

    async def _undo(self, inverse: Optional[Inverse]) -> None:
        if inverse is None or not self.rollback_on_failure:
            return
        inverse()
        self._recount()
        await self._dispatch("notifications:updated", self.notifications)
        await self._dispatch("unread:count:updated", self.unread_count)

    def _local_unread(self) -> int:
        return sum(1 for entry in self.notifications if not entry.get("read"))

    def _sync_unread(self, server_count: int) -> None:
        self._unread_elsewhere = max(server_count - self._local_unread(), 0)
        self._recount()

    def _forget_unread_elsewhere(self) -> None:
        self._unread_elsewhere = max(self._unread_elsewhere - 1, 0)

    def _recount(self) -> None:
        self.unread_count = self._local_unread() + self._unread_elsewhere
