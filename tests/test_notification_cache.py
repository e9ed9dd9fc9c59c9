"""Client notification cache against a mocked notifications API."""

import httpx
import pytest

from recruitdesk.client.events import EventEmitter
from recruitdesk.client.notification_cache import NotificationCache, NotificationCacheError

pytestmark = pytest.mark.anyio

OWNER = 3


def _notification(nid, read=False, user_id=OWNER, **extra):
    return {
        "_id": nid,
        "id": nid,
        "user_id": user_id,
        "title": f"Notification {nid}",
        "message": "m",
        "priority": "medium",
        "read": read,
        "read_at": "2026-10-01T09:00:00+00:00" if read else None,
        **extra,
    }


class FakeApi:
    """Just enough of ``/api/notifications`` to drive the cache."""

    def __init__(self, notifications, unread_elsewhere=0):
        self.notifications = notifications
        self.unread_elsewhere = unread_elsewhere
        self.fail = set()
        self.requests = []

    def unread(self):
        return sum(1 for n in self.notifications if not n["read"]) + self.unread_elsewhere

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if (request.method, path) in self.fail:
            return httpx.Response(500, json={"success": False, "message": "Internal server error"})

        if request.method == "GET" and path == "/api/notifications":
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "data": [dict(n) for n in self.notifications],
                    "pagination": {"page": 1, "limit": 20, "total": len(self.notifications), "pages": 1},
                    "unreadCount": self.unread(),
                },
            )
        if request.method == "GET" and path == "/api/notifications/count":
            return httpx.Response(200, json={"success": True, "count": self.unread()})
        if request.method == "PUT" and path == "/api/notifications/read-all":
            modified = self.unread()
            for n in self.notifications:
                n["read"] = True
            self.unread_elsewhere = 0
            return httpx.Response(200, json={"success": True, "modifiedCount": modified})
        if request.method == "PUT" and path.endswith("/read"):
            nid = path.split("/")[-2]
            for n in self.notifications:
                if n["_id"] == nid:
                    if not n["read"]:
                        n["read"] = True
                        n["read_at"] = "2026-10-17T10:00:00+00:00"
                    return httpx.Response(200, json={"success": True, "data": dict(n)})
            return httpx.Response(404, json={"success": False, "message": "Notification not found"})
        if request.method == "DELETE":
            nid = path.split("/")[-1]
            self.notifications = [n for n in self.notifications if n["_id"] != nid]
            return httpx.Response(200, json={"success": True, "message": "Notification deleted successfully"})
        return httpx.Response(404, json={"success": False, "message": "Not found"})


@pytest.fixture
def api():
    return FakeApi([_notification("a"), _notification("b"), _notification("c", read=True)])


@pytest.fixture
async def cache(api):
    http = httpx.AsyncClient(transport=httpx.MockTransport(api), base_url="http://testserver")
    cache = NotificationCache(user_id=OWNER, http_client=http)
    yield cache
    await cache.aclose()
    await http.aclose()


def _counts(cache):
    counts = []
    cache.on("unread:count:updated", counts.append)
    return counts


async def test_load_replaces_the_list_and_count(cache):
    counts = _counts(cache)
    loaded = await cache.get_notifications()

    assert [n["_id"] for n in loaded] == ["a", "b", "c"]
    assert cache.unread_count == 2
    assert counts == [2]


async def test_count_includes_unread_outside_the_loaded_page(api, cache):
    api.unread_elsewhere = 5
    await cache.get_notifications()
    assert cache.unread_count == 7

    await cache.mark_as_read("a")
    assert cache.unread_count == 6
    assert await cache.get_unread_count() == 6


async def test_mark_as_read_applies_the_server_record(cache):
    await cache.get_notifications()
    read_events = []
    cache.on("notification:read", read_events.append)

    await cache.mark_as_read("a")

    entry = cache.notifications[0]
    assert entry["read"] is True
    assert entry["read_at"] == "2026-10-17T10:00:00+00:00"
    assert cache.unread_count == 1
    assert read_events == ["a"]


async def test_failed_mark_as_read_rolls_back_and_raises(api, cache):
    await cache.get_notifications()
    api.fail.add(("PUT", "/api/notifications/a/read"))
    counts = _counts(cache)

    with pytest.raises(NotificationCacheError) as excinfo:
        await cache.mark_as_read("a")

    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "Internal server error"
    assert cache.notifications[0]["read"] is False
    assert cache.notifications[0]["read_at"] is None
    assert cache.unread_count == 2
    assert counts == [2]


async def test_failed_mark_as_read_without_rollback_keeps_the_change(api):
    api.fail.add(("PUT", "/api/notifications/a/read"))
    async with httpx.AsyncClient(transport=httpx.MockTransport(api), base_url="http://testserver") as http:
        cache = NotificationCache(user_id=OWNER, http_client=http, rollback_on_failure=False)
        await cache.get_notifications()

        with pytest.raises(NotificationCacheError):
            await cache.mark_as_read("a")

        assert cache.notifications[0]["read"] is True
        assert cache.unread_count == 1


async def test_failed_mark_all_only_restores_what_it_touched(api, cache):
    api.unread_elsewhere = 4
    await cache.get_notifications()
    api.fail.add(("PUT", "/api/notifications/read-all"))

    with pytest.raises(NotificationCacheError):
        await cache.mark_all_as_read()

    assert [n["read"] for n in cache.notifications] == [False, False, True]
    assert cache.notifications[2]["read_at"] == "2026-10-01T09:00:00+00:00"
    assert cache.unread_count == 6


async def test_mark_all_clears_the_count(api, cache):
    api.unread_elsewhere = 4
    await cache.get_notifications()
    all_read = []
    cache.on("notifications:all:read", all_read.append)

    await cache.mark_all_as_read()

    assert cache.unread_count == 0
    assert all(n["read"] for n in cache.notifications)
    assert all_read == [6]


async def test_failed_delete_puts_the_entry_back_in_place(api, cache):
    await cache.get_notifications()
    api.fail.add(("DELETE", "/api/notifications/b"))

    with pytest.raises(NotificationCacheError):
        await cache.delete_notification("b")

    assert [n["_id"] for n in cache.notifications] == ["a", "b", "c"]
    assert cache.unread_count == 2


async def test_delete_removes_locally(cache):
    await cache.get_notifications()
    await cache.delete_notification("a")
    assert [n["_id"] for n in cache.notifications] == ["b", "c"]
    assert cache.unread_count == 1


async def test_reading_past_the_loaded_page_lowers_the_count(api, cache):
    api.unread_elsewhere = 2
    await cache.get_notifications()
    api.notifications.append(_notification("z"))
    counts = _counts(cache)

    await cache.mark_as_read("z")

    assert cache._index("z") is None
    assert cache.unread_count == 3
    assert counts == [3]


async def test_deleting_past_the_loaded_page_lowers_the_count(api, cache):
    api.unread_elsewhere = 1
    await cache.get_notifications()
    counts = _counts(cache)

    await cache.delete_notification("z")
    await cache.delete_notification("y")

    assert [n["_id"] for n in cache.notifications] == ["a", "b", "c"]
    assert cache.unread_count == 2
    assert counts == [2, 2]


async def test_transport_errors_surface_as_cache_errors(api):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://testserver") as http:
        cache = NotificationCache(user_id=OWNER, http_client=http)
        with pytest.raises(NotificationCacheError) as excinfo:
            await cache.get_notifications()
    assert excinfo.value.status_code is None


async def test_pushed_notifications_are_deduplicated(cache):
    await cache.get_notifications()
    new_events = []
    cache.on("notification:new", new_events.append)

    assert await cache.handle_new(_notification("d")) is True
    assert await cache.handle_new(_notification("d")) is False
    assert await cache.handle_new(_notification("a")) is False

    assert [n["_id"] for n in cache.notifications] == ["d", "a", "b", "c"]
    assert cache.unread_count == 3
    assert len(new_events) == 1


async def test_priority_pushes_are_cached_only_when_owned(cache):
    await cache.get_notifications()
    surfaced = []
    cache.on("notification:priority", surfaced.append)

    assert await cache.handle_priority(_notification("x", user_id=99, priority="urgent")) is False
    assert await cache.handle_priority(_notification("y", priority="high")) is True

    assert [n["_id"] for n in surfaced] == ["x", "y"]
    assert [n["_id"] for n in cache.notifications][:1] == ["y"]
    assert cache.unread_count == 3


async def test_updates_from_other_tabs_are_merged(cache):
    await cache.get_notifications()

    assert await cache.handle_updated({"_id": "b", "read": True, "read_at": "2026-10-17T10:00:00+00:00"})
    assert await cache.handle_updated({"_id": "zzz", "read": True}) is False

    assert cache.notifications[1]["title"] == "Notification b"
    assert cache.unread_count == 1


class StubSocket(EventEmitter):
    async def fire(self, event, data=None):
        await self._dispatch(event, data)


async def test_attach_follows_socket_events_and_reloads_on_reconnect(api, cache):
    socket = StubSocket()
    cache.attach(socket)

    await socket.fire("connect")
    assert [n["_id"] for n in cache.notifications] == ["a", "b", "c"]

    await socket.fire("notification:new", _notification("d"))
    assert cache.unread_count == 3

    api.notifications.append(_notification("e"))
    await socket.fire("reconnect", {"attempts": 1})
    assert [n["_id"] for n in cache.notifications] == ["a", "b", "c", "e"]
    assert api.requests.count(("GET", "/api/notifications")) == 2

    cache.detach()
    assert socket.listener_count() == 0
    await socket.fire("notification:new", _notification("f"))
    assert cache._index("f") is None


async def test_reload_failure_keeps_the_cache(api, cache):
    socket = StubSocket()
    cache.attach(socket)
    await socket.fire("connect")
    api.fail.add(("GET", "/api/notifications"))

    await socket.fire("reconnect")

    assert len(cache.notifications) == 3

