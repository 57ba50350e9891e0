"""
Integration tests for the observer client against a running server.

Run with: pytest tests/test_observer.py
"""

import asyncio
import json
import threading
from contextlib import suppress

import aiohttp
import pytest
from werkzeug.serving import make_server

from sjfqueue.client import JobObserver
from sjfqueue.feed import ChangeFeed
from sjfqueue.store import JobStore
from sjfqueue.server import create_app, ready_frame, EXTENSION_KEY


@pytest.fixture
def live_server():
    app = create_app({'TESTING': True, 'POLL_INTERVAL': 0.02, 'WORKER_COUNT': 2})
    server = make_server('127.0.0.1', 0, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield app.extensions[EXTENSION_KEY], f"http://127.0.0.1:{server.server_port}"
    server.shutdown()
    app.extensions[EXTENSION_KEY]['scheduler'].stop()


class RecordingObserver(JobObserver):
    """Notes how many server-side subscriptions exist at each snapshot pull."""

    def __init__(self, feed, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.feed = feed
        self.subscribers_at_fetch = []

    async def fetch_jobs(self, session):
        self.subscribers_at_fetch.append(self.feed.subscriber_count)
        return await super().fetch_jobs(session)


async def eventually(predicate, timeout=5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


def converged(observer, store):
    return observer.view.jobs() == [job.to_dict() for job in store.list()]


def all_completed(observer):
    return all(job['status'] == 'Completed' for job in observer.view.jobs())


async def follow_in_background(observer):
    task = asyncio.create_task(observer.follow())
    await asyncio.sleep(0)
    return task


async def cancel(task):
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task


class TestLiveSync:
    """Test seeding, streaming and re-syncing against the real gateway."""

    def test_seeds_from_snapshot_then_applies_pushes(self, live_server):
        parts, base_url = live_server
        store = parts['store']
        store.create('before', 0)
        assert parts['scheduler'].wait_until_idle(timeout=5)

        async def scenario():
            observer = RecordingObserver(parts['feed'], base_url, reconnect_delay=0.05)
            task = await follow_in_background(observer)
            try:
                assert await eventually(lambda: observer.sync_count == 1)
                assert [j['name'] for j in observer.view.jobs()] == ['before']
                assert observer.view.get(0)['status'] == 'Completed'

                async with aiohttp.ClientSession() as session:
                    for i in range(5):
                        await observer.create_job(session, f'job{i}', (i % 3) * 1000)
                    with pytest.raises(ValueError):
                        await observer.create_job(session, '', 1)

                assert await eventually(
                    lambda: len(observer.view) == 6 and all_completed(observer)
                )
                assert converged(observer, store)
                assert observer.sync_count == 1
            finally:
                await cancel(task)
            return observer

        observer = asyncio.run(scenario())

        # the snapshot is only pulled once the server holds the subscription
        assert observer.subscribers_at_fetch == [1]

    def test_resyncs_after_server_drops_subscriber(self, live_server):
        parts, base_url = live_server
        store, feed = parts['store'], parts['feed']

        async def scenario():
            observer = RecordingObserver(feed, base_url, reconnect_delay=0.05)
            task = await follow_in_background(observer)
            try:
                assert await eventually(lambda: observer.sync_count == 1)

                for subscription in list(feed._subscriptions.values()):
                    feed.unsubscribe(subscription)
                store.create('while-away', 0)

                assert await eventually(lambda: observer.sync_count == 2)
                store.create('after-return', 0)

                assert await eventually(
                    lambda: len(observer.view) == 2 and all_completed(observer)
                )
                assert converged(observer, store)
            finally:
                await cancel(task)
            return observer

        observer = asyncio.run(scenario())

        assert all(count >= 1 for count in observer.subscribers_at_fetch)


class FakeClientWebSocket:
    """Yields queued messages from ``receive``."""

    def __init__(self, *messages):
        self.messages = list(messages)

    async def receive(self, timeout=None):
        return self.messages.pop(0)


def text(data):
    return aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, json.dumps(data), None)


class TestReadyFrame:
    """The snapshot waits for the server's ready marker."""

    def test_ready_frame_reports_sequence(self):
        feed = ChangeFeed()
        JobStore(feed=feed).create('A', 0)

        assert ready_frame(feed) == {'type': 'ready', 'sequence': 1}

    def test_accepts_ready_frame(self):
        observer = JobObserver()
        ws = FakeClientWebSocket(text({'type': 'ready', 'sequence': 7}))

        assert asyncio.run(observer.wait_until_ready(ws)) == 7

    @pytest.mark.parametrize("message", [
        text({'id': 0, 'status': 'Pending'}),
        text([]),
        aiohttp.WSMessage(aiohttp.WSMsgType.CLOSE, 1000, None),
    ])
    def test_rejects_anything_else(self, message):
        observer = JobObserver()

        with pytest.raises(ValueError):
            asyncio.run(observer.wait_until_ready(FakeClientWebSocket(message)))


class FlakyObserver(JobObserver):
    """Fails its first syncs the way malformed frames would."""

    def __init__(self, failures):
        super().__init__(reconnect_delay=0)
        self.failures = list(failures)
        self.attempts = 0

    async def sync_once(self, session):
        self.attempts += 1
        if self.failures:
            raise self.failures.pop(0)
        self.stop()


class TestMalformedFrames:
    """A bad frame triggers a re-sync instead of ending the observer."""

    def test_handle_message_rejects_non_object(self):
        with pytest.raises(ValueError):
            JobObserver().handle_message('[1, 2]')

    def test_handle_message_rejects_invalid_json(self):
        with pytest.raises(ValueError):
            JobObserver().handle_message('{not json')

    def test_handle_message_rejects_missing_id(self):
        with pytest.raises(KeyError):
            JobObserver().handle_message('{"status": "Pending"}')

    def test_follow_survives_bad_frames(self):
        observer = FlakyObserver([
            json.JSONDecodeError('Expecting value', '{not json', 0),
            KeyError('id'),
            asyncio.TimeoutError(),
        ])

        asyncio.run(observer.follow())

        assert observer.attempts == 4
