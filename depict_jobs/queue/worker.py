"""Worker dispatch loop.

A worker pulls jobs of one category (or any category) from its queue and
runs the registered coroutine handler on up to ``concurrency`` of them at a
time. Handler errors and timeouts are reported back to the queue, which
decides between retry and terminal failure; nothing a handler does can
stop the loop.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Optional, TYPE_CHECKING

from depict_jobs.errors import HandlerError, TimeoutExceeded
from depict_jobs.lib.json_logger import job_logger

from .models import Job

if TYPE_CHECKING:
    from .job_queue import Queue

logger = logging.getLogger(__name__)

WILDCARD = "*"


class Worker:
    """One handler registration on a queue."""

    def __init__(
        self,
        queue: "Queue",
        handler: Callable,
        *,
        category: Optional[str] = None,
        concurrency: int = 1,
        poll_interval_ms: int = 1000,
        stall_check_interval_ms: int = 30_000,
    ):
        if not inspect.iscoroutinefunction(handler):
            raise TypeError("Job handlers must be coroutine functions")
        if concurrency < 1:
            raise ValueError("Worker concurrency must be at least 1")

        self.queue = queue
        self.handler = handler
        self.category = None if category in (None, WILDCARD) else category
        self.concurrency = concurrency
        self.poll_interval = poll_interval_ms / 1000
        self.stall_check_interval_ms = stall_check_interval_ms
        self.name = f"{queue.name}:{self.category or WILDCARD}"

        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._active: set[asyncio.Task] = set()
        self._last_stall_check: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_count(self) -> int:
        return len(self._active)

    def start(self) -> asyncio.Task:
        """Start the dispatch loop on the running event loop."""
        if self._loop_task is None or self._loop_task.done():
            self._running = True
            self._loop_task = asyncio.create_task(self.run(), name=f"worker:{self.name}")
        return self._loop_task

    async def run(self) -> None:
        """Dispatch until stopped."""
        self._running = True
        categories = None if self.category is None else (self.category,)
        logger.info(
            f"Worker {self.name} started (concurrency {self.concurrency})",
            extra={"queue": self.queue.name, "worker": self.name},
        )

        while self._running:
            try:
                await self._check_stalled()

                if len(self._active) >= self.concurrency:
                    await asyncio.wait(
                        list(self._active),
                        timeout=self.poll_interval,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                    continue

                job = await self.queue.dequeue_next(categories)
                if job is None:
                    await self.queue.wait_for_job(self.poll_interval)
                    continue

                self._spawn(job)

            except asyncio.CancelledError:
                logger.info(f"Worker {self.name} cancelled")
                break
            except Exception as e:
                # Store hiccups must not kill the loop
                logger.exception(f"Worker {self.name} loop error: {e}")
                await asyncio.sleep(self.poll_interval)

        logger.info(f"Worker {self.name} stopped", extra={"queue": self.queue.name, "worker": self.name})

    async def _check_stalled(self) -> None:
        now = self.queue.now()
        if self._last_stall_check is not None and now - self._last_stall_check < self.stall_check_interval_ms:
            return
        self._last_stall_check = now
        await self.queue.recover_stalled()

    def _spawn(self, job: Job) -> None:
        task = asyncio.create_task(self._execute(job), name=f"job:{self.queue.name}:{job.id}")
        self._active.add(task)
        task.add_done_callback(self._active.discard)

    async def _execute(self, job: Job) -> None:
        log = job_logger(job.id, self.queue.name, job.category)
        heartbeat = asyncio.create_task(self._heartbeat(job))
        started = time.monotonic()

        try:
            result = await self._invoke(job)
        except asyncio.CancelledError:
            await self._stop(heartbeat)
            log.warning(f"Job {job.id} cancelled during shutdown")
            raise
        except Exception as e:
            await self._stop(heartbeat)
            error = e if isinstance(e, HandlerError) else HandlerError(str(e) or type(e).__name__, cause=e)
            log.exception(
                f"Job {job.id} handler error",
                extra={"duration_ms": int((time.monotonic() - started) * 1000)},
            )
            await self._report_failure(job, error)
        else:
            await self._stop(heartbeat)
            await self._report_success(job, result)

    async def _invoke(self, job: Job) -> Any:
        if job.timeout_ms:
            try:
                return await asyncio.wait_for(self.handler(job), timeout=job.timeout_ms / 1000)
            except asyncio.TimeoutError as e:
                raise TimeoutExceeded(job.timeout_ms) from e
        return await self.handler(job)

    async def _heartbeat(self, job: Job) -> None:
        interval = max(self.queue.stall_interval_ms / 2000, 0.01)
        while True:
            await asyncio.sleep(interval)
            try:
                if not await self.queue.extend_lock(job):
                    return
            except Exception as e:
                logger.warning(f"Heartbeat for job {job.id} failed: {e}")

    @staticmethod
    async def _stop(task: asyncio.Task) -> None:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _report_success(self, job: Job, result: Any) -> None:
        try:
            await self.queue.complete(job, result)
        except Exception as e:
            job_logger(job.id, self.queue.name, job.category).exception(
                f"Could not store result of job {job.id}, counting the attempt as failed"
            )
            await self._report_failure(job, e)

    async def _report_failure(self, job: Job, error: BaseException) -> None:
        try:
            await self.queue.fail(job, error)
        except Exception:
            job_logger(job.id, self.queue.name, job.category).exception(
                f"Could not record failure of job {job.id}; it will be recovered as stalled"
            )

    async def close(self, grace_ms: int = 10_000) -> None:
        """Stop dequeuing, then wait up to grace_ms for running handlers."""
        self._running = False
        if self._loop_task is not None and not self._loop_task.done():
            done, _ = await asyncio.wait([self._loop_task], timeout=self.poll_interval + 0.5)
            if not done:
                self._loop_task.cancel()
                await asyncio.gather(self._loop_task, return_exceptions=True)

        if self._active:
            _, pending = await asyncio.wait(list(self._active), timeout=grace_ms / 1000)
            if pending:
                logger.warning(
                    f"Worker {self.name}: cancelling {len(pending)} jobs still running after {grace_ms}ms"
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
