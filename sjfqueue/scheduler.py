import logging
import threading
from typing import List, Optional

from .algorithm import PendingQueue
from .executor import Executor
from .store import JobStore
from .types import Job

logger = logging.getLogger(__name__)

IDLE = "idle"
BUSY = "busy"


class JobScheduler:
    """Non-preemptive SJF dispatcher in front of an Executor."""

    def __init__(self, store: JobStore, executor: Executor):
        self.store = store
        self.executor = executor
        self.capacity = executor.worker_count
        self.running = False
        self.stopped = False
        self.dispatch_order: List[int] = []
        self._pending = PendingQueue()
        self._available = self.capacity
        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        store.add_listener(self.submit)

    @property
    def state(self) -> str:
        """IDLE when nothing is pending or running, BUSY otherwise"""
        with self._cond:
            return IDLE if self._is_idle() else BUSY

    @property
    def pending_count(self) -> int:
        with self._cond:
            return len(self._pending)

    @property
    def running_count(self) -> int:
        with self._cond:
            return self.capacity - self._available

    def _is_idle(self) -> bool:
        return not self._pending and self._available == self.capacity

    def submit(self, job: Job) -> None:
        """Queue a newly created job and wake the dispatch loop"""
        with self._cond:
            self._pending.push(job)
            self._cond.notify_all()

    def _release(self, job: Job) -> None:
        with self._cond:
            self._available += 1
            self._cond.notify_all()

    def _next_job(self) -> Optional[Job]:
        with self._cond:
            while self.running and not (self._pending and self._available):
                self._cond.wait()
            if not self.running:
                return None
            job = self._pending.pop()
            self._available -= 1
            self.dispatch_order.append(job.id)
            return job

    def schedule_loop(self):
        """Main scheduling loop"""
        logger.info(f"Starting SJF scheduler with {self.capacity} worker(s)...")

        while True:
            job = self._next_job()
            if job is None:
                break
            logger.info(f"Dispatching job {job.id} ({job.duration}ns), {self.pending_count} still pending")
            try:
                self.executor.run(job, on_complete=self._release)
            except Exception as e:
                logger.error(f"Failed to dispatch job {job.id}: {e}", exc_info=True)
                self._release(job)

        logger.info("Scheduler stopped")

    def start(self):
        """Run the dispatch loop in a background thread. A stopped scheduler cannot restart."""
        with self._cond:
            if self.stopped:
                raise RuntimeError("Scheduler was stopped and its executor shut down")
            if self.running:
                return
            self.running = True
        self._thread = threading.Thread(
            target=self.schedule_loop, name="sjf-scheduler", daemon=True
        )
        self._thread.start()

    def stop(self, wait: bool = True):
        """Stop dispatching; jobs already running are left to finish"""
        with self._cond:
            self.running = False
            self.stopped = True
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self.executor.shutdown(wait=wait)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no job is pending or running. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(self._is_idle, timeout=timeout)
