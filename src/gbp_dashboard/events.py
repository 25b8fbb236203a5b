"""
In-process publish/subscribe for dashboard refreshes and table changes
"""
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DASHBOARD_REFRESH = "dashboard:refresh"
SYNC_COMPLETE = "gmb-sync-complete"


def table_topic(table: str) -> str:
    """Change channel for a database table"""
    return f"table:{table}"


Callback = Callable[[str, Dict[str, Any]], None]


class Subscription:
    """Handle returned by EventBus.subscribe; usable as a context manager"""

    def __init__(self, bus: "EventBus", topic: str, callback: Callback):
        self.bus = bus
        self.topic = topic
        self.callback = callback
        self.active = True

    def unsubscribe(self):
        if self.active:
            self.bus._remove(self)
            self.active = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unsubscribe()


class EventBus:
    """
    Topic-based event bus

    Subscribers receive (topic, payload). A failing subscriber is logged
    and does not prevent delivery to the others.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Callback) -> Subscription:
        subscription = Subscription(self, topic, callback)
        with self._lock:
            self._subscribers[topic].append(subscription)
        logger.debug(f"Subscribed to {topic}")
        return subscription

    def _remove(self, subscription: Subscription):
        with self._lock:
            subs = self._subscribers.get(subscription.topic, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscribers.pop(subscription.topic, None)

    def publish(self, topic: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """
        Deliver an event to every subscriber of a topic

        Returns:
            Number of subscribers that handled the event without error
        """
        with self._lock:
            subs = list(self._subscribers.get(topic, []))

        delivered = 0
        for sub in subs:
            try:
                sub.callback(topic, payload or {})
                delivered += 1
            except Exception as e:
                logger.error(f"Subscriber for {topic} failed: {e}")
        return delivered

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def clear(self):
        with self._lock:
            self._subscribers.clear()
