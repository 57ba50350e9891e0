import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from sjfqueue.feed import ChangeFeed
from sjfqueue.store import JobStore


SECOND = 1_000_000_000


class TickingClock:
    """Clock that advances one millisecond per reading."""

    def __init__(self, start=None, step=timedelta(milliseconds=1)):
        self.now = start or datetime(2024, 2, 13, 10, 0, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


class GatedSleep:
    """Sleep replacement that blocks until the test opens the gate."""

    def __init__(self):
        self.gate = threading.Event()
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)
        assert self.gate.wait(timeout=5), "gate was never opened"

    def open(self):
        self.gate.set()


def no_sleep(seconds):
    pass


def wait_for(predicate, timeout=5.0):
    """Poll until predicate() is true."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def drain(subscription, timeout=0.05):
    """Collect every buffered event from a subscription."""
    events = []
    while True:
        event = subscription.get(timeout=timeout)
        if event is None:
            return events
        events.append(event)


@pytest.fixture
def feed():
    return ChangeFeed(max_queue_size=100)


@pytest.fixture
def store(feed):
    return JobStore(feed=feed, clock=TickingClock())
