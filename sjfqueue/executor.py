"""
Job executor.

Runs a dispatched job for its declared duration on a bounded thread pool.
The wait is the only intentionally blocking step in the system and it
never runs on the caller's thread.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from .store import JobStore
from .types import Job


logger = logging.getLogger(__name__)

# One day, in nanoseconds
MAX_SLEEP_CHUNK = 86_400 * 1_000_000_000


class Executor:
    """
    Pool of ``worker_count`` threads that simulate running jobs.

    Args:
        store: Store used to record the job's transitions
        worker_count: Maximum number of jobs running at once
        sleep: Wait function taking seconds; ``time.sleep`` by default
    """

    def __init__(
        self,
        store: JobStore,
        worker_count: int = 1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.worker_count = worker_count
        self._sleep = sleep
        self._shutdown = False
        self._pool = ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix="sjf-worker"
        )

    def run(self, job: Job, on_complete: Optional[Callable[[Job], None]] = None) -> Future:
        """
        Start a job.

        The In Progress transition happens before this returns, so
        dispatch order and event order agree. Waiting and completion
        happen on a pool thread.

        Args:
            job: Pending job chosen by the scheduler
            on_complete: Called with the completed job once its slot is free

        Returns:
            Future resolving to the completed job

        Raises:
            RuntimeError: if the executor was shut down; the job stays Pending
        """
        if self._shutdown:
            raise RuntimeError(f"Executor is shut down, cannot run job {job.id}")
        started = self.store.mark_in_progress(job.id)
        logger.info(f"Started job {started.id} ({started.name!r}) for {started.duration_seconds:.3f}s")
        return self._pool.submit(self._execute, started, on_complete)

    def _wait(self, duration: int) -> None:
        """Wait ``duration`` nanoseconds in chunks any platform's sleep accepts."""
        remaining = duration
        while True:
            chunk = min(remaining, MAX_SLEEP_CHUNK)
            self._sleep(chunk / 1_000_000_000)
            remaining -= chunk
            if remaining <= 0:
                break

    def _execute(self, job: Job, on_complete: Optional[Callable[[Job], None]]) -> Job:
        try:
            self._wait(job.duration)
        except Exception as e:
            logger.error(f"Wait for job {job.id} ended early: {e}", exc_info=True)
            raise
        finally:
            completed = self.store.mark_completed(job.id)
            logger.info(f"Completed job {completed.id} ({completed.name!r})")
            if on_complete is not None:
                on_complete(completed)
        return completed

    def shutdown(self, wait: bool = True) -> None:
        self._shutdown = True
        self._pool.shutdown(wait=wait)
