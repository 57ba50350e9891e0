"""
SJF Job Scheduler Package

Runs submitted jobs in Shortest-Job-First order and keeps any number of
observers in sync through a REST snapshot and a websocket change stream.
"""

__version__ = '0.1.0'

from .types import (
    Job,
    JobEvent,
    JobStatus,
    SchedulerConfig,
)

from .errors import (
    SchedulerError,
    InvalidInput,
    NotFound,
    InvalidTransition,
    SubscriptionDropped,
)

from .algorithm import (
    sjf_key,
    sort_jobs,
    PendingQueue,
    calculate_scheduling_metrics
)

from .feed import ChangeFeed, Subscription
from .store import JobStore
from .executor import Executor
from .scheduler import JobScheduler
from .client import JobView, JobObserver
from .server import create_app, run_server

__all__ = [
    'Job',
    'JobEvent',
    'JobStatus',
    'SchedulerConfig',
    'SchedulerError',
    'InvalidInput',
    'NotFound',
    'InvalidTransition',
    'SubscriptionDropped',
    'sjf_key',
    'sort_jobs',
    'PendingQueue',
    'calculate_scheduling_metrics',
    'ChangeFeed',
    'Subscription',
    'JobStore',
    'Executor',
    'JobScheduler',
    'JobView',
    'JobObserver',
    'create_app',
    'run_server',
]
