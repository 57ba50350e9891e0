"""
Data models for the job scheduler.

This module defines the core data structures used in scheduling:
- Jobs submitted by clients
- Events describing a job mutation
- Configuration for the scheduler and the push channel
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional
from enum import Enum


class JobStatus(Enum):
    """Lifecycle state of a job. Values are the wire strings."""
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

    @property
    def rank(self) -> int:
        """Position in the lifecycle; transitions only ever increase it."""
        return _STATUS_ORDER.index(self)

    def next(self) -> "JobStatus":
        """Return the only status this one may advance to."""
        if self is JobStatus.COMPLETED:
            raise ValueError("Completed is a terminal status")
        return _STATUS_ORDER[self.rank + 1]


_STATUS_ORDER = (JobStatus.PENDING, JobStatus.IN_PROGRESS, JobStatus.COMPLETED)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Job:
    """
    A job known to the store.

    Instances are immutable snapshots; the store swaps in a new snapshot
    on every status transition.

    Attributes:
        id: Unique identifier assigned by the store
        name: User-supplied label
        duration: Declared run length in nanoseconds (the SJF key)
        status: Current lifecycle status
        created_at: When the job was submitted
        started_at: When the job was dispatched, if it has been
        completed_at: When the job finished, if it has
    """
    id: int
    name: str
    duration: int
    created_at: datetime
    status: JobStatus = JobStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate job fields."""
        if self.duration < 0:
            raise ValueError(f"Duration cannot be negative, got {self.duration}")
        if (self.started_at is None) != (self.status is JobStatus.PENDING):
            raise ValueError(f"started_at inconsistent with status {self.status.value}")
        if (self.completed_at is None) != (self.status is not JobStatus.COMPLETED):
            raise ValueError(f"completed_at inconsistent with status {self.status.value}")

    @property
    def duration_seconds(self) -> float:
        return self.duration / 1_000_000_000

    def advance(self, now: datetime) -> "Job":
        """Return the snapshot for the next lifecycle status."""
        status = self.status.next()
        if status is JobStatus.IN_PROGRESS:
            return replace(self, status=status, started_at=now)
        return replace(self, status=status, completed_at=now)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire format shared by REST and the push channel."""
        return {
            'id': self.id,
            'name': self.name,
            'duration': self.duration,
            'status': self.status.value,
            'createdAt': _isoformat(self.created_at),
            'startedAt': _isoformat(self.started_at),
            'completedAt': _isoformat(self.completed_at),
        }


@dataclass(frozen=True)
class JobEvent:
    """
    One entry of the change feed.

    Attributes:
        sequence: Feed-wide position, starting at 1
        job: Full job snapshot after the mutation
    """
    sequence: int
    job: Job


@dataclass
class SchedulerConfig:
    """
    Configuration for the scheduler and its push channel.

    Attributes:
        worker_count: Number of jobs that may be In Progress at once
        subscriber_queue_size: Events buffered per push subscriber before it is dropped
        poll_interval: Seconds a push loop waits for an event before re-checking its socket
    """
    worker_count: int = 1
    subscriber_queue_size: int = 1000
    poll_interval: float = 0.5
    policy: str = field(default="sjf", init=False)

    def __post_init__(self):
        if self.worker_count < 1:
            raise ValueError(f"Worker count must be at least 1, got {self.worker_count}")
        if self.subscriber_queue_size < 1:
            raise ValueError(
                f"Subscriber queue size must be at least 1, got {self.subscriber_queue_size}"
            )
        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval}")
