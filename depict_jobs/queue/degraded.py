"""Stand-in queues used when the durable store is unavailable at boot.

Producers keep working: enqueue hands back a synthetic job immediately.
Nothing is persisted, executed or retried, and admin calls answer with
empty results instead of raising. Selected once at boot; a store that
comes back later is only picked up after a restart.
"""

import logging
import uuid
from typing import Any, Callable, Iterable, Optional

from .job_queue import now_ms
from .models import Job, JobOptions, JobState, QueueOptions

logger = logging.getLogger(__name__)


def _noop_unsubscribe() -> None:
    return None


class DegradedQueue:
    """Queue-compatible object that accepts jobs and drops them."""

    is_degraded = True

    def __init__(
        self,
        name: str,
        options: Optional[QueueOptions] = None,
        *,
        payload_validator: Optional[Callable[[str, str, Any], dict]] = None,
    ):
        self.name = name
        self.options = options or QueueOptions()
        self._validate = payload_validator
        self._closing = False
        self._warned = False

    def __repr__(self) -> str:
        return f"<DegradedQueue {self.name}>"

    @property
    def is_closed(self) -> bool:
        return self._closing

    @property
    def workers(self) -> list:
        return []

    def now(self) -> int:
        return now_ms()

    async def enqueue(
        self,
        category: str,
        payload: Any = None,
        options: Optional[JobOptions] = None,
        **overrides,
    ) -> Job:
        payload = payload if payload is not None else {}
        if self._validate is not None:
            payload = self._validate(self.name, category, payload)
        data = options.model_dump(exclude_unset=True) if options else {}
        data.update(overrides)
        opts = JobOptions(**data)

        if not self._warned:
            logger.warning(f"Store unavailable - jobs on queue {self.name} are not persisted or executed")
            self._warned = True

        return Job(
            id=f"sync-{uuid.uuid4().hex[:12]}",
            queue=self.name,
            category=category,
            payload=payload,
            priority=opts.priority,
            state=JobState.WAITING,
            max_attempts=opts.attempts or self.options.attempts,
            created_at=now_ms(),
        )

    async def add_repeatable(self, category: str, payload: Any, cron: str, options=None, **overrides) -> Job:
        return await self.enqueue(category, payload, options, **overrides)

    async def remove_repeatable(self, category: str, cron: str) -> bool:
        return False

    async def dequeue_next(self, categories: Optional[Iterable[str]] = None) -> Optional[Job]:
        return None

    async def get_job(self, job_id: str) -> Optional[Job]:
        return None

    async def get_jobs(self, state: str, start: int = 0, end: int = 49) -> list[Job]:
        JobState(state)
        return []

    async def get_stats(self) -> dict:
        return {
            "queue_name": self.name,
            "waiting": 0,
            "active": 0,
            "completed": 0,
            "failed": 0,
            "delayed": 0,
            "paused": 0,
            "total": 0,
        }

    async def is_paused(self) -> bool:
        return False

    async def pause(self) -> None:
        return None

    async def resume(self) -> None:
        return None

    async def clean(self, grace_ms: int, state: str = JobState.COMPLETED.value) -> list[str]:
        return []

    async def retry_job(self, job_id: str) -> Optional[Job]:
        return None

    async def remove_job(self, job_id: str) -> Optional[Job]:
        return None

    def process(self, category: Optional[str], concurrency: int, handler: Callable, **worker_options) -> None:
        logger.info(f"Store unavailable - no worker started for {self.name}")
        return None

    def on_completed(self, listener: Callable) -> Callable[[], None]:
        return _noop_unsubscribe

    def on_failed(self, listener: Callable) -> Callable[[], None]:
        return _noop_unsubscribe

    def on_stalled(self, listener: Callable) -> Callable[[], None]:
        return _noop_unsubscribe

    def on_progress(self, listener: Callable) -> Callable[[], None]:
        return _noop_unsubscribe

    async def close(self, grace_ms: int = 10_000) -> None:
        self._closing = True
