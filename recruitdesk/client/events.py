"""Listener bookkeeping shared by the client socket facade and the notification cache."""

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Callback = Callable[[Any], Any]


class Subscription:
    """Handle for one registered callback. ``cancel()`` is idempotent."""

    def __init__(self, emitter: "EventEmitter", event: str, callback: Callback):
        self.emitter = emitter
        self.event = event
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self.emitter._remove(self)

    def __repr__(self) -> str:
        state = "active" if self.active else "cancelled"
        return f"<Subscription {self.event} {state}>"


class ListenerScope:
    """Subscriptions made by one view; ``cleanup()`` cancels exactly those.

    Usable as a context manager::

        with client.listener_scope() as scope:
            scope.on("message:received", render)
    """

    def __init__(self, emitter: "EventEmitter"):
        self.emitter = emitter
        self.subscriptions: List[Subscription] = []

    def on(self, event: str, callback: Callback) -> Subscription:
        subscription = self.emitter.on(event, callback)
        self.subscriptions.append(subscription)
        return subscription

    def cleanup(self) -> int:
        cancelled = 0
        for subscription in self.subscriptions:
            if subscription.active:
                subscription.cancel()
                cancelled += 1
        self.subscriptions.clear()
        return cancelled

    def __enter__(self) -> "ListenerScope":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()


class EventEmitter:
    def __init__(self):
        self._listeners: Dict[str, List[Subscription]] = {}

    def on(self, event: str, callback: Callback) -> Subscription:
        subscription = Subscription(self, event, callback)
        self._listeners.setdefault(event, []).append(subscription)
        return subscription

    def off(self, event: str, callback: Optional[Callback] = None) -> int:
        """Cancel every subscription to ``event`` (only those for ``callback`` when given)."""
        matching = [
            s for s in self._listeners.get(event, [])
            if callback is None or s.callback is callback
        ]
        for subscription in matching:
            subscription.cancel()
        return len(matching)

    def listener_scope(self) -> ListenerScope:
        return ListenerScope(self)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(subs) for subs in self._listeners.values())

    def remove_all_listeners(self) -> None:
        for subscriptions in list(self._listeners.values()):
            for subscription in list(subscriptions):
                subscription.cancel()
        self._listeners.clear()

    def _remove(self, subscription: Subscription) -> None:
        subscriptions = self._listeners.get(subscription.event)
        if not subscriptions:
            return
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            del self._listeners[subscription.event]

    async def _dispatch(self, event: str, data: Any = None) -> None:
        """Call every listener of ``event``; a failing callback does not stop the others."""
        for subscription in list(self._listeners.get(event, [])):
            if not subscription.active:
                continue
            try:
                result = subscription.callback(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener for %s failed", event)
