"""Process-wide live update channel with best-effort delivery."""

from __future__ import annotations

import logging
import queue
from functools import lru_cache
from threading import Lock
from typing import Any, Dict, Optional

from settings import get_settings

logger = logging.getLogger(__name__)

LiveMessage = Dict[str, Any]


class Subscription:
    """A bounded inbox for one subscriber; messages beyond capacity are dropped."""

    def __init__(self, channel: "LiveChannel", maxsize: int) -> None:
        self._channel = channel
        self._queue: "queue.Queue[LiveMessage]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def offer(self, message: LiveMessage) -> bool:
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.dropped += 1
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[LiveMessage]:
        """Return the next message, or ``None`` if nothing arrives in time."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self.closed = True
        self._channel.unsubscribe(self)


class LiveChannel:
    """Fan-out of live events to zero or more subscribers.

    ``publish`` never blocks: a subscriber whose inbox is full simply misses
    the message.
    """

    def __init__(self, default_maxsize: int = 100) -> None:
        self.default_maxsize = default_maxsize
        self._subscribers: list[Subscription] = []
        self._lock = Lock()

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        subscription = Subscription(self, maxsize or self.default_maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event_type: str, data: Dict[str, Any]) -> int:
        """Offer a message to every subscriber and return how many accepted it."""
        message = {"type": event_type, "data": data}
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscription in subscribers:
            if subscription.offer(message):
                delivered += 1
            else:
                logger.debug(
                    "Dropping live update for slow subscriber",
                    extra={"event_type": event_type, "dropped": subscription.dropped},
                )
        return delivered


@lru_cache
def build_default_channel() -> LiveChannel:
    return LiveChannel(default_maxsize=get_settings().live_queue_size)
