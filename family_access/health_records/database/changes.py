"""Change notification for record collections.

Repositories publish an event after each committed write; UI components
subscribe to a collection and keep the returned Subscription so they can
cancel it on teardown.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    collection: str
    action: str          # created, updated, deleted
    record_id: str


class Subscription:
    """Handle returned by ChangeFeed.subscribe."""

    def __init__(self, feed: "ChangeFeed", collection: str, callback: Callable[[ChangeEvent], None]):
        self._feed = feed
        self.collection = collection
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if self.active:
            self.active = False
            self._feed._remove(self)


class ChangeFeed:
    """In-process registry of collection listeners."""

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, collection: str, callback: Callable[[ChangeEvent], None]) -> Subscription:
        """Register a callback for changes to a collection."""
        subscription = Subscription(self, collection, callback)
        with self._lock:
            self._subscriptions.setdefault(collection, []).append(subscription)
        return subscription

    def publish(self, collection: str, action: str, record_id: str) -> None:
        """Notify subscribers of a committed change."""
        event = ChangeEvent(collection=collection, action=action, record_id=record_id)
        with self._lock:
            listeners = list(self._subscriptions.get(collection, []))
        for subscription in listeners:
            try:
                subscription.callback(event)
            except Exception:
                # Listener errors are logged; the write stays committed
                logger.exception("Change listener failed for %s %s", collection, record_id)

    def subscriber_count(self, collection: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(collection, []))

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            listeners = self._subscriptions.get(subscription.collection, [])
            if subscription in listeners:
                listeners.remove(subscription)
