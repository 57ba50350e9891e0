"""
Exceptions raised by the job scheduler.

Every error is surfaced synchronously to the caller that triggered it;
nothing is retried internally.
"""


class SchedulerError(Exception):
    """Base class for all scheduler errors."""


class InvalidInput(SchedulerError, ValueError):
    """A creation request was malformed or out of range. No job was created."""


class NotFound(SchedulerError, LookupError):
    """No job exists with the requested id."""

    def __init__(self, job_id):
        super().__init__(f"Job {job_id!r} not found")
        self.job_id = job_id


class InvalidTransition(SchedulerError):
    """A status change did not follow Pending -> In Progress -> Completed."""


class SubscriptionDropped(SchedulerError):
    """A push subscriber was removed from the change feed."""
