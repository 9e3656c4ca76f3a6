"""Job queue engine: queues, workers, store adapters and the registry."""

from .definitions import (
    QUEUE_AI_PREDICTIONS,
    QUEUE_DATA_PROCESSING,
    QUEUE_DEFINITIONS,
    QUEUE_EMAIL,
    QUEUE_EXPORTS,
    QUEUE_NOTIFICATIONS,
    QUEUE_REPORTS,
    QUEUE_SCHEDULED,
)
from .degraded import DegradedQueue
from .job_queue import Queue
from .models import BackoffPolicy, Job, JobOptions, JobState, QueueOptions
from .registry import QueueRegistry, create_registry
from .store import JobStore, MemoryJobStore, RedisJobStore, create_store, probe_store
from .worker import Worker

__all__ = [
    "Queue",
    "DegradedQueue",
    "Worker",
    "Job",
    "JobState",
    "JobOptions",
    "QueueOptions",
    "BackoffPolicy",
    "QueueRegistry",
    "create_registry",
    "JobStore",
    "MemoryJobStore",
    "RedisJobStore",
    "create_store",
    "probe_store",
    "QUEUE_DEFINITIONS",
    "QUEUE_EMAIL",
    "QUEUE_REPORTS",
    "QUEUE_DATA_PROCESSING",
    "QUEUE_AI_PREDICTIONS",
    "QUEUE_NOTIFICATIONS",
    "QUEUE_EXPORTS",
    "QUEUE_SCHEDULED",
]
