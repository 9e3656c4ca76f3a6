"""Operator-facing queue administration.

Thin layer over the registry that turns "nothing there" answers from the
queues into ``JobNotFound`` so the HTTP surface can map them to 404.
"""

import logging

from depict_jobs.errors import JobNotFound
from depict_jobs.queue.models import JobState
from depict_jobs.queue.registry import QueueRegistry

logger = logging.getLogger(__name__)

DEFAULT_CLEAN_GRACE_MS = 86_400_000  # 24 hours


class QueueAdmin:
    """Inspect and operate queues by name."""

    def __init__(self, registry: QueueRegistry):
        self.registry = registry

    async def get_job(self, queue_name: str, job_id: str) -> dict:
        """
        Snapshot of a single job.

        Raises:
            QueueNotFound: unknown queue
            JobNotFound: no such job (always the case in degraded mode)
        """
        job = await self.registry.get(queue_name).get_job(job_id)
        if job is None:
            raise JobNotFound(queue_name, job_id)
        return job.snapshot()

    async def get_jobs(
        self,
        queue_name: str,
        state: str = JobState.FAILED.value,
        start: int = 0,
        end: int = 49,
    ) -> list[dict]:
        jobs = await self.registry.get(queue_name).get_jobs(state, start, end)
        return [job.snapshot() for job in jobs]

    async def get_queue_stats(self, queue_name: str) -> dict:
        return await self.registry.get(queue_name).get_stats()

    async def get_all_queues_stats(self) -> dict[str, dict]:
        stats = {}
        for queue in self.registry:
            stats[queue.name] = await queue.get_stats()
        return stats

    async def pause_queue(self, queue_name: str) -> None:
        await self.registry.get(queue_name).pause()

    async def resume_queue(self, queue_name: str) -> None:
        await self.registry.get(queue_name).resume()

    async def clean_queue(
        self,
        queue_name: str,
        grace_ms: int = DEFAULT_CLEAN_GRACE_MS,
        state: str = JobState.COMPLETED.value,
    ) -> int:
        """Remove finished jobs older than grace_ms; returns the count."""
        removed = await self.registry.get(queue_name).clean(grace_ms, state)
        return len(removed)

    async def retry_job(self, queue_name: str, job_id: str) -> dict:
        """Re-run a failed or delayed job. Active/completed jobs are left as they are."""
        job = await self.registry.get(queue_name).retry_job(job_id)
        if job is None:
            raise JobNotFound(queue_name, job_id)
        return job.snapshot()

    async def remove_job(self, queue_name: str, job_id: str) -> dict:
        job = await self.registry.get(queue_name).remove_job(job_id)
        if job is None:
            raise JobNotFound(queue_name, job_id)
        return job.snapshot()
