"""Store-backed job queue engine.

Features:
- Priority queue with FIFO tie-breaking using sorted sets
- Delayed jobs and retry with fixed or exponential backoff
- Stalled job recovery via expiring locks on active jobs
- Retention caps for completed and failed jobs
- Pause / resume, clean, retry and remove for operators
- Repeatable (cron) jobs
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from depict_jobs.lib.json_logger import job_logger

from .cron import CronSchedule
from .events import COMPLETED, FAILED, PROGRESS, STALLED, QueueEvents
from .models import (
    TERMINAL_STATES,
    Job,
    JobOptions,
    JobState,
    QueueOptions,
    RepeatOptions,
)
from .store import JobStore
from .worker import Worker

logger = logging.getLogger(__name__)

# waiting score = priority * SEQUENCE_SPAN + sequence; exact in a double for
# priority <= MAX_PRIORITY
SEQUENCE_SPAN = 2 ** 32
# How many waiting jobs a category-filtered dequeue inspects
DEQUEUE_SCAN = 100
STALLED_REASON = "job stalled more than allowable limit"

PayloadValidator = Callable[[str, str, Any], dict]


def now_ms() -> int:
    return int(time.time() * 1000)


def _failure_reason(error: Any) -> str:
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return str(error)


def _history_entry(now: int, attempt: int, reason: str) -> str:
    stamp = datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat()
    return f"[{stamp}] attempt {attempt}: {reason}"


class Queue:
    """A named, independently configured job queue bound to a store."""

    is_degraded = False

    def __init__(
        self,
        name: str,
        store: JobStore,
        options: Optional[QueueOptions] = None,
        *,
        key_prefix: str = "depict",
        stall_interval_ms: int = 30_000,
        payload_validator: Optional[PayloadValidator] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.name = name
        self.store = store
        self.options = options or QueueOptions()
        self.stall_interval_ms = stall_interval_ms
        self.events = QueueEvents(name)
        self._clock = clock or now_ms
        self._validate = payload_validator
        self._workers: list[Worker] = []
        self._closing = False
        self._job_added = asyncio.Event()

        prefix = f"{key_prefix}:{name}"
        self._prefix = prefix
        self._waiting_key = f"{prefix}:waiting"
        self._delayed_key = f"{prefix}:delayed"
        self._active_key = f"{prefix}:active"
        self._completed_key = f"{prefix}:completed"
        self._failed_key = f"{prefix}:failed"
        self._repeat_key = f"{prefix}:repeat"
        self._paused_key = f"{prefix}:paused"
        self._id_key = f"{prefix}:id"
        self._seq_key = f"{prefix}:seq"

        self._state_sets = {
            JobState.WAITING: self._waiting_key,
            JobState.DELAYED: self._delayed_key,
            JobState.ACTIVE: self._active_key,
            JobState.COMPLETED: self._completed_key,
            JobState.FAILED: self._failed_key,
        }

    def __repr__(self) -> str:
        return f"<Queue {self.name}>"

    @property
    def is_closed(self) -> bool:
        return self._closing

    @property
    def workers(self) -> list[Worker]:
        return list(self._workers)

    def now(self) -> int:
        return self._clock()

    # ==================== Persistence helpers ====================

    def _job_key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    async def _save(self, job: Job) -> None:
        await self.store.set(self._job_key(job.id), job.model_dump_json())

    async def _order_score(self, priority: int) -> int:
        seq = await self.store.incr(self._seq_key)
        return priority * SEQUENCE_SPAN + seq % SEQUENCE_SPAN

    async def _push_waiting(self, job: Job) -> None:
        await self.store.zadd(self._waiting_key, job.id, await self._order_score(job.priority))
        self._notify()

    async def _trim(self, set_key: str, keep: Optional[int]) -> None:
        """Drop the oldest terminal jobs beyond the retention cap."""
        if keep is None:
            return
        excess = await self.store.zcard(set_key) - keep
        if excess <= 0:
            return
        for job_id in await self.store.zrange(set_key, 0, excess - 1):
            if await self.store.zrem(set_key, job_id):
                await self.store.delete(self._job_key(job_id))

    def _notify(self) -> None:
        self._job_added.set()

    async def wait_for_job(self, timeout: float) -> None:
        """Sleep until a job is added locally or the timeout passes."""
        try:
            await asyncio.wait_for(self._job_added.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        self._job_added.clear()

    # ==================== Producing ====================

    def _resolve_options(self, options: Optional[JobOptions], overrides: dict) -> JobOptions:
        data = options.model_dump(exclude_unset=True) if options else {}
        data.update(overrides)
        return JobOptions(**data)

    async def enqueue(
        self,
        category: str,
        payload: Any = None,
        options: Optional[JobOptions] = None,
        **overrides,
    ) -> Job:
        """
        Add a job to the queue.

        Caller options override the queue defaults. A caller-supplied
        ``job_id`` that already exists returns the existing job.

        Args:
            category: Selects the handler that processes the job
            payload: Job data (validated against the category schema)
            options: Per-job options; keyword overrides win over it

        Returns:
            The persisted job, ``waiting`` or ``delayed``
        """
        opts = self._resolve_options(options, overrides)
        return await self._add(category, payload if payload is not None else {}, opts)

    async def _add(
        self,
        category: str,
        payload: Any,
        opts: JobOptions,
        repeat: Optional[RepeatOptions] = None,
    ) -> Job:
        if self._validate is not None:
            payload = self._validate(self.name, category, payload)

        if opts.job_id is not None:
            existing = await self.get_job(opts.job_id)
            if existing is not None:
                logger.info(f"Job {opts.job_id} already exists in {self.name}, not enqueued again")
                return existing
            job_id = opts.job_id
        else:
            job_id = str(await self.store.incr(self._id_key))

        now = self.now()
        delayed = opts.delay_ms > 0
        job = Job(
            id=job_id,
            queue=self.name,
            category=category,
            payload=payload,
            priority=opts.priority,
            delay_until=now + opts.delay_ms if delayed else None,
            state=JobState.DELAYED if delayed else JobState.WAITING,
            max_attempts=opts.attempts or self.options.attempts,
            backoff=opts.backoff or self.options.backoff,
            timeout_ms=opts.timeout_ms or self.options.timeout_ms,
            repeat=repeat,
            created_at=now,
        )

        await self._save(job)
        if delayed:
            await self.store.zadd(self._delayed_key, job.id, job.delay_until)
        else:
            await self._push_waiting(job)

        job_logger(job.id, self.name, category).info(
            f"Enqueued job {job.id} ({category}) to {self.name}",
            extra={"state": job.state.value},
        )
        return job.bind(self)

    async def add_repeatable(
        self,
        category: str,
        payload: Any,
        cron: str,
        options: Optional[JobOptions] = None,
        **overrides,
    ) -> Job:
        """Register a cron schedule and enqueue its first occurrence."""
        schedule = CronSchedule.parse(cron)
        repeat = RepeatOptions(cron=cron, key=f"{category}:{cron}")
        fire_at = schedule.next_after_ms(self.now())
        await self.store.zadd(self._repeat_key, repeat.key, fire_at)
        opts = self._resolve_options(options, overrides)
        logger.info(f"Scheduled {category} on {self.name} (cron: {cron})")
        return await self._add_occurrence(category, payload, opts, repeat, fire_at)

    async def _add_occurrence(
        self,
        category: str,
        payload: Any,
        opts: JobOptions,
        repeat: RepeatOptions,
        fire_at: int,
    ) -> Job:
        opts = opts.model_copy(update={
            "job_id": f"repeat:{repeat.key}:{fire_at}",
            "delay_ms": max(fire_at - self.now(), 0),
        })
        return await self._add(category, payload, opts, repeat=repeat)

    async def _schedule_next_repeat(self, job: Job) -> None:
        fire_at = await self.store.zscore(self._repeat_key, job.repeat.key)
        if fire_at is None:
            return  # schedule was removed
        schedule = CronSchedule.parse(job.repeat.cron)
        next_fire = schedule.next_after_ms(max(int(fire_at), self.now()))
        await self.store.zadd(self._repeat_key, job.repeat.key, next_fire)
        opts = JobOptions(
            priority=job.priority,
            attempts=job.max_attempts,
            backoff=job.backoff,
            timeout_ms=job.timeout_ms,
        )
        await self._add_occurrence(job.category, job.payload, opts, job.repeat, next_fire)

    async def remove_repeatable(self, category: str, cron: str) -> bool:
        """Stop a cron schedule and drop its pending occurrence."""
        key = f"{category}:{cron}"
        fire_at = await self.store.zscore(self._repeat_key, key)
        if fire_at is None:
            return False
        await self.store.zrem(self._repeat_key, key)
        await self.remove_job(f"repeat:{key}:{int(fire_at)}")
        logger.info(f"Removed schedule {key} from {self.name}")
        return True

    # ==================== Consuming ====================

    async def promote_delayed(self) -> int:
        """Move delayed jobs whose time has come to waiting."""
        due = await self.store.zrangebyscore(self._delayed_key, float("-inf"), self.now())
        promoted = 0
        for job_id in due:
            if not await self.store.zrem(self._delayed_key, job_id):
                continue  # another consumer got it
            job = await self.get_job(job_id)
            if job is None:
                continue
            job.state = JobState.WAITING
            if not await self.store.replace(self._job_key(job_id), job.model_dump_json()):
                continue
            await self._push_waiting(job)
            promoted += 1
        return promoted

    async def dequeue_next(self, categories: Optional[Iterable[str]] = None) -> Optional[Job]:
        """
        Claim the next eligible job and mark it active.

        Args:
            categories: Only claim jobs of these categories (None = any)

        Returns:
            The claimed job, or None when paused, closing or nothing is ready
        """
        if self._closing or await self.is_paused():
            return None

        await self.promote_delayed()
        wanted = set(categories) if categories is not None else None

        for job_id in await self.store.zrange(self._waiting_key, 0, DEQUEUE_SCAN - 1):
            if wanted is not None:
                candidate = await self.get_job(job_id)
                if candidate is None:
                    await self.store.zrem(self._waiting_key, job_id)
                    continue
                if candidate.category not in wanted:
                    continue
            if not await self.store.zrem(self._waiting_key, job_id):
                continue  # claimed by another worker
            job = await self.get_job(job_id)
            if job is None:
                continue

            now = self.now()
            job.state = JobState.ACTIVE
            job.attempts_made += 1
            job.processed_at = now
            job.progress = 0
            await self.store.zadd(self._active_key, job.id, now + self.stall_interval_ms)
            if not await self.store.replace(self._job_key(job.id), job.model_dump_json()):
                await self.store.zrem(self._active_key, job.id)
                continue  # removed meanwhile

            if job.repeat is not None:
                await self._schedule_next_repeat(job)

            job_logger(job.id, self.name, job.category).info(
                f"Dequeued job {job.id} from {self.name}",
                extra={"attempts": job.attempts_made},
            )
            return job.bind(self)

        return None

    async def extend_lock(self, job: Job) -> bool:
        """Heartbeat for an active job; False when it is no longer held."""
        await self.store.zadd(
            self._active_key, job.id, self.now() + self.stall_interval_ms, only_existing=True
        )
        return await self.store.zscore(self._active_key, job.id) is not None

    async def update_progress(self, job: Job, progress: int) -> None:
        if not 0 <= progress <= 100:
            raise ValueError(f"Progress must be between 0 and 100, got {progress}")
        job.progress = progress
        stored = await self._load_owned(job)
        if stored is None or await self.store.zscore(self._active_key, job.id) is None:
            return
        stored.progress = progress
        if not await self.store.replace(self._job_key(job.id), stored.model_dump_json()):
            return  # removed meanwhile
        await self.events.emit(PROGRESS, job.id, job.category, progress)

    async def _load_owned(self, job: Job) -> Optional[Job]:
        """Current record if ``job`` is still the active attempt, else None."""
        stored = await self.get_job(job.id)
        if (
            stored is None
            or stored.state != JobState.ACTIVE
            or stored.attempts_made != job.attempts_made
        ):
            return None
        return stored

    async def _claim_outcome(self, job_id: str) -> bool:
        if await self.store.zrem(self._active_key, job_id):
            return True
        logger.warning(f"Job {job_id} no longer active in {self.name}, outcome discarded")
        return False

    async def _hand_back(self, job_id: str, filed_in: Optional[str] = None) -> None:
        """
        Undo a partial write-back.

        The job leaves ``filed_in`` and is re-added under an expired lock so
        stall recovery finds it.
        """
        try:
            if filed_in is not None:
                await self.store.zrem(filed_in, job_id)
            await self.store.zadd(self._active_key, job_id, 0)
        except Exception as e:
            logger.error(f"Job {job_id} could not be handed back for recovery: {e}")

    async def _write_terminal(self, job_id: str, set_key: str, data: str, finished_at: int) -> bool:
        """
        File a claimed job in its terminal set, then persist its record.

        Returns:
            False when the job was removed meanwhile
        """
        try:
            await self.store.zadd(set_key, job_id, finished_at)
            written = await self.store.replace(self._job_key(job_id), data)
        except Exception:
            await self._hand_back(job_id, filed_in=set_key)
            raise
        if not written:
            await self.store.zrem(set_key, job_id)
            logger.warning(f"Job {job_id} was removed from {self.name}, outcome discarded")
        return written

    async def complete(self, job: Job, result: Any = None) -> bool:
        """
        Mark an active job as completed.

        Returns:
            False when the job was removed or recovered meanwhile and the
            result was discarded
        """
        stored = await self._load_owned(job)
        if stored is None:
            logger.warning(f"Job {job.id} was removed or reassigned, result discarded")
            return False

        now = self.now()
        stored.state = JobState.COMPLETED
        stored.result = result
        stored.failure_reason = None
        stored.finished_at = now
        data = stored.model_dump_json()  # fail before releasing the lock

        if not await self._claim_outcome(job.id):
            return False
        if not await self._write_terminal(job.id, self._completed_key, data, now):
            return False
        await self._trim(self._completed_key, self.options.keep_completed)

        job_logger(job.id, self.name, job.category).info(
            f"Job {job.id} completed",
            extra={"duration_ms": now - (stored.processed_at or now), "attempts": stored.attempts_made},
        )
        await self.events.emit(COMPLETED, job.id, job.category, result)
        return True

    async def fail(self, job: Job, error: Any) -> bool:
        """
        Record a failed attempt.

        Retries with the job's backoff while attempts remain, otherwise the
        job becomes terminally ``failed`` and a failed event is emitted.
        """
        reason = _failure_reason(error)
        stored = await self._load_owned(job)
        if stored is None:
            logger.warning(f"Job {job.id} was removed or reassigned, failure discarded: {reason}")
            return False

        now = self.now()
        stored.failure_reason = reason
        stored.error_history.append(_history_entry(now, stored.attempts_made, reason))
        log = job_logger(job.id, self.name, job.category)

        if stored.attempts_made < stored.max_attempts:
            delay = stored.backoff.delay_for(stored.attempts_made) if stored.backoff else 0
            stored.state = JobState.RETRYING
            stored.delay_until = now + delay if delay > 0 else None
            if not await self._claim_outcome(job.id):
                return False
            try:
                written = await self.store.replace(self._job_key(job.id), stored.model_dump_json())
                if written and delay > 0:
                    await self.store.zadd(self._delayed_key, job.id, stored.delay_until)
                elif written:
                    await self._push_waiting(stored)
            except Exception:
                await self._hand_back(job.id)
                raise
            if not written:
                logger.warning(f"Job {job.id} was removed from {self.name}, retry discarded")
                return False
            log.warning(
                f"Job {job.id} failed, retry {stored.attempts_made}/{stored.max_attempts} in {delay}ms: {reason}",
                extra={"attempts": stored.attempts_made, "delay_ms": delay},
            )
            return True

        stored.state = JobState.FAILED
        stored.finished_at = now
        if not await self._claim_outcome(job.id):
            return False
        if not await self._write_terminal(job.id, self._failed_key, stored.model_dump_json(), now):
            return False
        await self._trim(self._failed_key, self.options.keep_failed)
        log.error(
            f"Job {job.id} failed after {stored.attempts_made} attempts: {reason}",
            extra={"attempts": stored.attempts_made},
        )
        await self.events.emit(FAILED, job.id, job.category, reason)
        return True

    async def recover_stalled(self) -> list[str]:
        """
        Return active jobs whose lock expired to waiting.

        Jobs that already used all attempts fail instead. Best effort: a
        slow handler that misses its heartbeats may run twice.
        """
        now = self.now()
        recovered = []
        for job_id in await self.store.zrangebyscore(self._active_key, float("-inf"), now):
            if not await self.store.zrem(self._active_key, job_id):
                continue
            job = await self.get_job(job_id)
            if job is None:
                continue
            if job.state in TERMINAL_STATES:
                # outcome already written; only its set entry is missing
                await self.store.zadd(self._state_sets[job.state], job_id, job.finished_at or now)
                continue

            log = job_logger(job_id, self.name, job.category)
            await self.events.emit(STALLED, job_id)
            if job.attempts_made >= job.max_attempts:
                job.state = JobState.FAILED
                job.failure_reason = STALLED_REASON
                job.error_history.append(_history_entry(now, job.attempts_made, STALLED_REASON))
                job.finished_at = now
                if not await self._write_terminal(job_id, self._failed_key, job.model_dump_json(), now):
                    continue
                await self._trim(self._failed_key, self.options.keep_failed)
                log.error(f"Stalled job {job_id} has no attempts left")
                await self.events.emit(FAILED, job_id, job.category, STALLED_REASON)
            else:
                job.state = JobState.WAITING
                if not await self.store.replace(self._job_key(job_id), job.model_dump_json()):
                    continue
                await self._push_waiting(job)
                log.warning(f"Stalled job {job_id} moved back to waiting")
            recovered.append(job_id)
        return recovered

    # ==================== Inspection ====================

    async def get_job(self, job_id: str) -> Optional[Job]:
        data = await self.store.get(self._job_key(job_id))
        if not data:
            return None
        return Job.model_validate_json(data).bind(self)

    async def get_jobs(self, state: str, start: int = 0, end: int = 49) -> list[Job]:
        """Jobs in a state; terminal states are listed newest first."""
        job_state = JobState(state)
        if job_state == JobState.RETRYING:
            raise ValueError("Retrying jobs are listed under 'waiting' or 'delayed'")
        set_key = self._state_sets[job_state]
        if job_state in TERMINAL_STATES:
            ids = list(reversed(await self.store.zrange(set_key, 0, -1)))[start:end + 1]
        else:
            ids = await self.store.zrange(set_key, start, end)
        jobs = []
        for job_id in ids:
            job = await self.get_job(job_id)
            if job is not None:
                jobs.append(job)
        return jobs

    async def get_stats(self) -> dict:
        """Point-in-time counts per state."""
        waiting = await self.store.zcard(self._waiting_key)
        active = await self.store.zcard(self._active_key)
        completed = await self.store.zcard(self._completed_key)
        failed = await self.store.zcard(self._failed_key)
        delayed = await self.store.zcard(self._delayed_key)
        paused = await self.is_paused()
        return {
            "queue_name": self.name,
            "waiting": 0 if paused else waiting,
            "active": active,
            "completed": completed,
            "failed": failed,
            "delayed": delayed,
            "paused": waiting if paused else 0,
            "total": waiting + active + completed + failed + delayed,
        }

    # ==================== Administration ====================

    async def is_paused(self) -> bool:
        return await self.store.get(self._paused_key) == "1"

    async def pause(self) -> None:
        await self.store.set(self._paused_key, "1")
        logger.info(f"Queue paused: {self.name}")

    async def resume(self) -> None:
        await self.store.delete(self._paused_key)
        self._notify()
        logger.info(f"Queue resumed: {self.name}")

    async def clean(self, grace_ms: int, state: str = JobState.COMPLETED.value) -> list[str]:
        """
        Remove terminal jobs of ``state`` that finished before now - grace.

        Raises:
            ValueError: for a non-terminal state
        """
        job_state = JobState(state)
        if job_state not in TERMINAL_STATES:
            raise ValueError(f"Only completed or failed jobs can be cleaned, got '{job_state.value}'")
        set_key = self._state_sets[job_state]
        cutoff = self.now() - grace_ms
        removed = []
        for job_id in await self.store.zrangebyscore(set_key, float("-inf"), cutoff):
            if await self.store.zrem(set_key, job_id):
                await self.store.delete(self._job_key(job_id))
                removed.append(job_id)
        logger.info(f"Cleaned {len(removed)} {job_state.value} jobs from {self.name}")
        return removed

    async def retry_job(self, job_id: str) -> Optional[Job]:
        """
        Reset a job to waiting with a fresh attempt budget.

        Active and completed jobs are returned unchanged. Returns None if
        the job does not exist.
        """
        job = await self.get_job(job_id)
        if job is None:
            return None
        if job.state in (JobState.ACTIVE, JobState.COMPLETED):
            logger.info(f"Job {job_id} is {job.state.value}, retry ignored")
            return job
        if job.state in (JobState.WAITING, JobState.DELAYED) and job.attempts_made == 0:
            return job  # never ran; keeps its place and delay

        for set_key in (self._delayed_key, self._failed_key, self._waiting_key):
            await self.store.zrem(set_key, job_id)
        job.state = JobState.WAITING
        job.attempts_made = 0
        job.progress = 0
        job.result = None
        job.failure_reason = None
        job.delay_until = None
        job.processed_at = None
        job.finished_at = None
        if not await self.store.replace(self._job_key(job_id), job.model_dump_json()):
            return None
        await self._push_waiting(job)
        logger.info(f"Job {job_id} retried in queue {self.name}")
        return job

    async def remove_job(self, job_id: str) -> Optional[Job]:
        """
        Delete a job in any state.

        An active job keeps running; its outcome is discarded on write-back.
        """
        job = await self.get_job(job_id)
        if job is None:
            return None
        # record first: write-backs only replace an existing record
        await self.store.delete(self._job_key(job_id))
        for set_key in self._state_sets.values():
            await self.store.zrem(set_key, job_id)
        logger.info(f"Job {job_id} removed from queue {self.name}")
        return job

    # ==================== Workers & events ====================

    def process(
        self,
        category: Optional[str],
        concurrency: int,
        handler: Callable,
        **worker_options,
    ) -> Worker:
        """Register and start a worker for ``category`` (None or '*' = all)."""
        if self._closing:
            raise RuntimeError(f"Queue {self.name} is closed")
        worker = Worker(self, handler, category=category, concurrency=concurrency, **worker_options)
        self._workers.append(worker)
        worker.start()
        return worker

    def on_completed(self, listener: Callable) -> Callable[[], None]:
        """listener(job_id, category, result)"""
        return self.events.on(COMPLETED, listener)

    def on_failed(self, listener: Callable) -> Callable[[], None]:
        """listener(job_id, category, reason)"""
        return self.events.on(FAILED, listener)

    def on_stalled(self, listener: Callable) -> Callable[[], None]:
        """listener(job_id)"""
        return self.events.on(STALLED, listener)

    def on_progress(self, listener: Callable) -> Callable[[], None]:
        """listener(job_id, category, progress)"""
        return self.events.on(PROGRESS, listener)

    async def close(self, grace_ms: int = 10_000) -> None:
        """Stop dequeuing and let in-flight handlers finish within grace_ms."""
        if self._closing:
            return
        self._closing = True
        self._notify()
        await asyncio.gather(*(worker.close(grace_ms) for worker in self._workers))
        self._workers.clear()
        logger.info(f"Queue closed: {self.name}")
