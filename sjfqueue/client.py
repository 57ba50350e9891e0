"""
Observer client for the job scheduler.

An observer keeps a local view of every job in sync with the server by
combining the two read channels: one GET /jobs snapshot to seed the view,
then every websocket push applied as an upsert keyed by job id.
"""

import asyncio
import json
import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, List, Optional

import aiohttp

from .types import JobStatus

logger = logging.getLogger(__name__)

_RANKS = {status.value: status.rank for status in JobStatus}


def status_rank(job: Dict[str, Any]) -> int:
    """Lifecycle position of a wire-format job; unknown statuses rank first."""
    return _RANKS.get(job.get('status'), -1)


class JobView:
    """
    Client-side view of all jobs, reconciled by upsert.

    A job whose id is known is replaced, an unknown one is appended. An
    update carrying an earlier status than the one already held is
    ignored, so replays and late events can never move a job backward.
    """

    def __init__(self, jobs: Optional[Iterable[Dict[str, Any]]] = None):
        self._jobs: "OrderedDict[Any, Dict[str, Any]]" = OrderedDict()
        if jobs is not None:
            self.seed(jobs)

    def seed(self, jobs: Iterable[Dict[str, Any]]) -> None:
        """Replace the view with a snapshot, keeping snapshot order"""
        self._jobs = OrderedDict((job['id'], dict(job)) for job in jobs)

    def apply(self, job: Dict[str, Any]) -> bool:
        """Upsert one pushed job. Returns True if the view changed."""
        current = self._jobs.get(job['id'])
        if current is not None:
            if status_rank(job) < status_rank(current) or current == job:
                return False
        self._jobs[job['id']] = dict(job)
        return True

    def get(self, job_id) -> Optional[Dict[str, Any]]:
        return self._jobs.get(job_id)

    def jobs(self) -> List[Dict[str, Any]]:
        return list(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)


class JobObserver:
    """
    Follows a scheduler server and keeps a ``JobView`` current.

    The websocket is opened first and the snapshot is pulled only after
    the server's ready frame, which it sends once the subscription
    exists, so no mutation can fall between the two. Events that predate
    the snapshot are absorbed by the view's monotonic upsert.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        view: Optional[JobView] = None,
        reconnect_delay: float = 1.0,
        ready_timeout: float = 10.0,
        on_update: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.view = view if view is not None else JobView()
        self.reconnect_delay = reconnect_delay
        self.ready_timeout = ready_timeout
        self.on_update = on_update
        self.running = True
        self.sync_count = 0

    @property
    def ws_url(self) -> str:
        if self.base_url.startswith('https://'):
            return 'wss://' + self.base_url[len('https://'):] + '/ws'
        if self.base_url.startswith('http://'):
            return 'ws://' + self.base_url[len('http://'):] + '/ws'
        return self.base_url + '/ws'

    async def fetch_jobs(self, session: aiohttp.ClientSession) -> List[Dict[str, Any]]:
        """Pull the current snapshot"""
        async with session.get(f"{self.base_url}/jobs") as resp:
            resp.raise_for_status()
            return await resp.json()

    async def create_job(
        self, session: aiohttp.ClientSession, name: str, duration: int
    ) -> Dict[str, Any]:
        """Submit a job; duration is in nanoseconds"""
        async with session.post(
            f"{self.base_url}/jobs", json={'name': name, 'duration': duration}
        ) as resp:
            data = await resp.json()
            if resp.status != 201:
                raise ValueError(data.get('error', f"HTTP {resp.status}"))
            return data

    def handle_message(self, data: str) -> bool:
        """Apply one websocket text frame to the view"""
        job = json.loads(data)
        if not isinstance(job, dict):
            raise ValueError(f"Expected a job object, got {data!r}")
        changed = self.view.apply(job)
        if changed and self.on_update is not None:
            self.on_update(job)
        return changed

    async def wait_until_ready(self, ws: aiohttp.ClientWebSocketResponse) -> int:
        """Wait for the ready frame; returns the feed sequence it reports"""
        msg = await ws.receive(timeout=self.ready_timeout)
        if msg.type != aiohttp.WSMsgType.TEXT:
            raise ValueError(f"Expected ready frame, got {msg.type.name}")
        frame = json.loads(msg.data)
        if not isinstance(frame, dict) or frame.get('type') != 'ready':
            raise ValueError(f"Expected ready frame, got {msg.data!r}")
        return frame.get('sequence', 0)

    async def sync_once(self, session: aiohttp.ClientSession) -> None:
        """Subscribe, seed from a snapshot, then apply pushes until the socket closes"""
        async with session.ws_connect(self.ws_url) as ws:
            sequence = await self.wait_until_ready(ws)
            self.view.seed(await self.fetch_jobs(session))
            self.sync_count += 1
            logger.info(f"Seeded view with {len(self.view)} jobs from {self.base_url} at event {sequence}")

            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"Websocket error: {ws.exception()}")
                    break
                if not self.running:
                    break

    async def follow(self):
        """Main observer loop; re-subscribes and re-pulls after every disconnect"""
        logger.info(f"Following {self.base_url}...")

        async with aiohttp.ClientSession() as session:
            while self.running:
                try:
                    await self.sync_once(session)
                    logger.info("Push channel closed")
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    logger.error(f"Sync failed: {e}")
                except (ValueError, KeyError) as e:
                    logger.error(f"Malformed frame from {self.ws_url}, re-syncing: {e}")
                if self.running:
                    await asyncio.sleep(self.reconnect_delay)

    def stop(self):
        self.running = False

    def run(self):
        """Run the observer"""
        asyncio.run(self.follow())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    observer = JobObserver(on_update=lambda job: logger.info(f"Job update: {job}"))
    observer.run()
