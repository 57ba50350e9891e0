"""
Core scheduling algorithm.

This module implements the pure Shortest-Job-First policy: the ordering
key, a heap of pending jobs, and metrics over scheduling outcomes.

The algorithm is deterministic: given the same jobs, it will always
select them in the same order.
"""

import heapq
from datetime import datetime
from typing import List, Optional, Tuple

from .types import Job, JobStatus


SJFKey = Tuple[int, datetime, int]


def sjf_key(job: Job) -> SJFKey:
    """
    Ordering key for SJF selection.

    Shorter duration wins; equal durations fall back to the earlier
    submission time, then to the lower id so the order is total.
    """
    return (job.duration, job.created_at, job.id)


def sort_jobs(jobs: List[Job]) -> List[Job]:
    """
    Sort jobs in the order SJF would dispatch them.

    Args:
        jobs: List of jobs to sort

    Returns:
        Sorted list of jobs
    """
    return sorted(jobs, key=sjf_key)


class PendingQueue:
    """
    Min-heap of pending jobs keyed by ``sjf_key``.

    push and pop are O(log n). Ids are unique, so heap entries never
    compare the Job objects themselves.
    """

    def __init__(self, jobs: Optional[List[Job]] = None):
        self._heap: List[Tuple[SJFKey, Job]] = []
        for job in jobs or []:
            self.push(job)

    def push(self, job: Job) -> None:
        if job.status is not JobStatus.PENDING:
            raise ValueError(f"Only pending jobs can be queued, job {job.id} is {job.status.value}")
        heapq.heappush(self._heap, (sjf_key(job), job))

    def pop(self) -> Optional[Job]:
        """Remove and return the next job to dispatch, or None when empty."""
        if not self._heap:
            return None
        _, job = heapq.heappop(self._heap)
        return job

    def peek(self) -> Optional[Job]:
        return self._heap[0][1] if self._heap else None

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)


def calculate_scheduling_metrics(jobs: List[Job]) -> dict:
    """
    Calculate metrics about scheduling outcomes.

    Waiting time runs from submission to dispatch, turnaround from
    submission to completion. Averages are in seconds.

    Args:
        jobs: Snapshot of all jobs

    Returns:
        Dictionary containing scheduling metrics
    """
    started = [j for j in jobs if j.started_at is not None]
    completed = [j for j in jobs if j.completed_at is not None]

    def average(values):
        return sum(values) / len(values) if values else 0

    return {
        "jobs_total": len(jobs),
        "jobs_pending": sum(1 for j in jobs if j.status is JobStatus.PENDING),
        "jobs_in_progress": sum(1 for j in jobs if j.status is JobStatus.IN_PROGRESS),
        "jobs_completed": len(completed),
        "average_wait_seconds": average(
            [(j.started_at - j.created_at).total_seconds() for j in started]
        ),
        "average_turnaround_seconds": average(
            [(j.completed_at - j.created_at).total_seconds() for j in completed]
        ),
        "average_duration_seconds": average([j.duration_seconds for j in jobs]),
    }
