"""
In-memory job store.

The store owns the canonical set of jobs and is the only place their
state changes. All reads and writes go through one lock, and each
mutation publishes exactly one change feed event while that lock is held,
so the feed order matches the commit order.
"""

import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .errors import InvalidInput, InvalidTransition, NotFound
from .feed import ChangeFeed
from .types import Job, JobStatus


logger = logging.getLogger(__name__)

# Largest signed 64-bit nanosecond count, about 292 years
MAX_DURATION = 2 ** 63 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_job_request(name, duration) -> None:
    """
    Check a creation request.

    Raises:
        InvalidInput: if name is not a non-blank string or duration is
            not a non-negative integer
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidInput("name must be a non-empty string")
    # bool is an int subclass
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise InvalidInput("duration must be an integer number of nanoseconds")
    if duration < 0:
        raise InvalidInput(f"duration cannot be negative, got {duration}")
    if duration > MAX_DURATION:
        raise InvalidInput(f"duration cannot exceed {MAX_DURATION} nanoseconds, got {duration}")


class JobStore:
    """Append-only store of jobs, listed in submission order."""

    def __init__(
        self,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.feed = feed if feed is not None else ChangeFeed()
        self._clock = clock
        self._jobs: List[int] = []
        self._by_id: Dict[int, Job] = {}
        self._ids = itertools.count()
        self._lock = threading.RLock()
        self._listeners: List[Callable[[Job], None]] = []

    def add_listener(self, callback: Callable[[Job], None]) -> None:
        """Register a callback invoked with every newly created job."""
        self._listeners.append(callback)

    def create(self, name, duration) -> Job:
        """
        Create a pending job.

        Args:
            name: Job label
            duration: Declared run length in nanoseconds

        Returns:
            The created job

        Raises:
            InvalidInput: if the request is malformed
        """
        validate_job_request(name, duration)

        with self._lock:
            job = Job(
                id=next(self._ids),
                name=name,
                duration=duration,
                created_at=self._clock(),
            )
            self._jobs.append(job.id)
            self._by_id[job.id] = job
            self.feed.publish(job)

        logger.info(f"Created job {job.id} ({job.name!r}, {job.duration}ns)")

        for listener in self._listeners:
            listener(job)
        return job

    def list(self) -> List[Job]:
        """Return a snapshot of every job in submission order."""
        with self._lock:
            return [self._by_id[job_id] for job_id in self._jobs]

    def get(self, job_id) -> Job:
        """
        Look up one job.

        Raises:
            NotFound: if no job has this id
        """
        with self._lock:
            job = self._by_id.get(job_id)
        if job is None:
            raise NotFound(job_id)
        return job

    def mark_in_progress(self, job_id) -> Job:
        """Move a job from Pending to In Progress and stamp started_at."""
        return self._advance(job_id, JobStatus.PENDING)

    def mark_completed(self, job_id) -> Job:
        """Move a job from In Progress to Completed and stamp completed_at."""
        return self._advance(job_id, JobStatus.IN_PROGRESS)

    def _advance(self, job_id, expected: JobStatus) -> Job:
        with self._lock:
            current = self._by_id.get(job_id)
            if current is None:
                raise NotFound(job_id)
            if current.status is not expected:
                raise InvalidTransition(
                    f"Job {job_id} is {current.status.value}, expected {expected.value}"
                )
            job = current.advance(self._clock())
            self._by_id[job_id] = job
            self.feed.publish(job)
        return job

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
