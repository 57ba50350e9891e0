"""
Change feed for job mutations.

Every store mutation is published here as a ``JobEvent`` and broadcast to
all current subscribers. Each subscriber owns a bounded buffer; a
subscriber that falls behind far enough to fill it is dropped rather than
allowed to block the producer.
"""

import itertools
import logging
import queue
import threading
import uuid
from typing import Dict, Optional

from .errors import SubscriptionDropped
from .types import Job, JobEvent


logger = logging.getLogger(__name__)


class Subscription:
    """A subscriber's view of the feed, from its join point onward."""

    def __init__(self, max_queue_size: int):
        self.subscription_id = str(uuid.uuid4())
        self._queue: "queue.Queue[JobEvent]" = queue.Queue(maxsize=max_queue_size)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: JobEvent) -> bool:
        """Buffer an event without blocking. Returns False if the buffer is full."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            return False
        return True

    def close(self) -> None:
        self._closed.set()

    def get(self, timeout: Optional[float] = None) -> Optional[JobEvent]:
        """
        Return the next event, or None if none arrived within ``timeout``.

        Events buffered before a close are still delivered; after that
        ``SubscriptionDropped`` is raised.
        """
        try:
            return self._queue.get(block=not self.closed, timeout=timeout)
        except queue.Empty:
            if self.closed:
                raise SubscriptionDropped(
                    f"Subscription {self.subscription_id} is closed"
                ) from None
            return None

    def pending(self) -> int:
        return self._queue.qsize()


class ChangeFeed:
    """
    Totally ordered stream of job events with broadcast fan-out.

    Publishing never blocks on subscribers, so it is safe to call while
    holding the store lock.
    """

    def __init__(self, max_queue_size: int = 1000):
        self._max_queue_size = max_queue_size
        self._subscriptions: Dict[str, Subscription] = {}
        self._sequence = itertools.count(1)
        self._last_sequence = 0
        self._lock = threading.Lock()
        self._closed = False

    @property
    def last_sequence(self) -> int:
        return self._last_sequence

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, job: Job) -> JobEvent:
        """Append an event for ``job`` and offer it to every subscriber."""
        with self._lock:
            event = JobEvent(sequence=next(self._sequence), job=job)
            self._last_sequence = event.sequence
            for sub_id, subscription in list(self._subscriptions.items()):
                if not subscription.offer(event):
                    logger.warning(
                        f"Dropping subscriber {sub_id}: buffer of "
                        f"{self._max_queue_size} events is full"
                    )
                    subscription.close()
                    del self._subscriptions[sub_id]
        return event

    def subscribe(self) -> Subscription:
        """Create a subscription that receives events published from now on."""
        subscription = Subscription(self._max_queue_size)
        with self._lock:
            if self._closed:
                subscription.close()
            else:
                self._subscriptions[subscription.subscription_id] = subscription
        logger.info(f"Subscriber {subscription.subscription_id} joined")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.subscription_id, None)
        subscription.close()
        logger.info(f"Subscriber {subscription.subscription_id} left")

    def close(self) -> None:
        """Close every subscription and refuse new ones."""
        with self._lock:
            self._closed = True
            for subscription in self._subscriptions.values():
                subscription.close()
            self._subscriptions.clear()
