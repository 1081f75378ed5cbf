"""Idempotent submission queue."""

from .events import EventDispatcher, TransactionConfirmed, TransactionFailed
from .jobs import JobState, SubmissionJob, compute_backoff
from .lease import InMemoryLeaseStore, LeaseStore, RedisLeaseStore
from .submission import InMemoryTaskQueue, SubmissionQueue, TaskQueue

__all__ = [
    "EventDispatcher",
    "InMemoryLeaseStore",
    "InMemoryTaskQueue",
    "JobState",
    "LeaseStore",
    "RedisLeaseStore",
    "SubmissionJob",
    "SubmissionQueue",
    "TaskQueue",
    "TransactionConfirmed",
    "TransactionFailed",
    "compute_backoff",
]
