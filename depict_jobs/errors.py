"""Error taxonomy for the job queue subsystem."""

from typing import Optional


class QueueError(Exception):
    """Base class for all queue errors."""


class StoreUnavailable(QueueError):
    """The durable store could not be reached at boot.

    Only raised by the startup probe; callers switch to degraded mode.
    """


class HandlerError(QueueError):
    """A registered handler failed while executing a job."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class TimeoutExceeded(HandlerError):
    """A single attempt ran longer than the job's timeout."""

    def __init__(self, timeout_ms: int):
        super().__init__(f"Job exceeded timeout of {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class JobNotFound(QueueError):
    """Admin operation referenced a job id that does not exist."""

    def __init__(self, queue_name: str, job_id: str):
        super().__init__(f"Job {job_id} not found in queue {queue_name}")
        self.queue_name = queue_name
        self.job_id = job_id


class QueueNotFound(QueueError):
    """Producer or admin call referenced an unregistered queue."""

    def __init__(self, queue_name: str):
        super().__init__(f"Queue '{queue_name}' not found")
        self.queue_name = queue_name
