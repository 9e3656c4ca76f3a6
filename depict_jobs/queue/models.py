"""Job, option and retry-policy models for the queue engine.

Timestamps are epoch milliseconds so they can double as sorted-set scores.
"""

from enum import Enum
from typing import Any, Literal, Optional, TYPE_CHECKING

from pydantic import BaseModel, Field, PrivateAttr

if TYPE_CHECKING:
    from .job_queue import Queue

MIN_PRIORITY = 0
MAX_PRIORITY = 1_000_000
DEFAULT_PRIORITY = 5


class JobState(str, Enum):
    """Job lifecycle states.

    ``failed`` is terminal: all attempts are exhausted.
    """
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = (JobState.COMPLETED, JobState.FAILED)


class BackoffPolicy(BaseModel):
    """Delay before a failed job becomes eligible again."""
    type: Literal["fixed", "exponential"] = "exponential"
    delay: int = Field(default=1000, ge=0, description="Base delay in ms")

    def delay_for(self, attempts_made: int) -> int:
        """Delay in ms after the given number of attempts has been made."""
        if self.type == "fixed":
            return self.delay
        return self.delay * (2 ** max(attempts_made - 1, 0))


class RepeatOptions(BaseModel):
    """Schedule of a repeatable job."""
    cron: str
    key: str


class JobOptions(BaseModel):
    """Per-job overrides of the queue defaults."""
    priority: int = Field(default=DEFAULT_PRIORITY, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    delay_ms: int = Field(default=0, ge=0)
    attempts: Optional[int] = Field(default=None, ge=1)
    backoff: Optional[BackoffPolicy] = None
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    job_id: Optional[str] = None


class QueueOptions(BaseModel):
    """Default job options of a queue."""
    attempts: int = Field(default=1, ge=1)
    backoff: Optional[BackoffPolicy] = None
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    keep_completed: Optional[int] = Field(default=None, ge=0)
    keep_failed: Optional[int] = Field(default=None, ge=0)


class Job(BaseModel):
    """A job in a queue."""
    id: str
    queue: str
    category: str
    payload: dict = Field(default_factory=dict)
    priority: int = DEFAULT_PRIORITY
    delay_until: Optional[int] = None
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    max_attempts: int = 1
    backoff: Optional[BackoffPolicy] = None
    timeout_ms: Optional[int] = None
    progress: int = 0
    result: Any = None
    failure_reason: Optional[str] = None
    error_history: list[str] = Field(default_factory=list)
    repeat: Optional[RepeatOptions] = None
    created_at: int
    processed_at: Optional[int] = None
    finished_at: Optional[int] = None

    _queue: Any = PrivateAttr(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def bind(self, queue: "Queue") -> "Job":
        """Attach the owning queue so handlers can report progress."""
        self._queue = queue
        return self

    async def set_progress(self, progress: int) -> None:
        """Report handler progress (0-100). Observability only."""
        if self._queue is None:
            raise RuntimeError(f"Job {self.id} is not bound to a queue")
        await self._queue.update_progress(self, progress)

    def snapshot(self) -> dict:
        """JSON-safe view for the admin surface."""
        return self.model_dump(mode="json")
