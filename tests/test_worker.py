"""End-to-end tests for the worker dispatch loop on the in-memory store."""

import asyncio

import pytest

from depict_jobs.queue.job_queue import Queue
from depict_jobs.queue.models import BackoffPolicy, JobState, QueueOptions
from depict_jobs.queue.store import MemoryJobStore
from depict_jobs.queue.worker import Worker

FAST = {"poll_interval_ms": 10}


async def wait_until(predicate, timeout: float = 5.0):
    """Poll an async predicate until it holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not await predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class FlakyStore(MemoryJobStore):
    """Fails the first write of a completed job record."""

    def __init__(self):
        super().__init__()
        self.failures_left = 1

    async def replace(self, key, value):
        if self.failures_left and '"state":"completed"' in value:
            self.failures_left -= 1
            raise ConnectionError("store went away")
        return await super().replace(key, value)


def test_processes_jobs_in_order_with_bounded_concurrency(store):
    queue = Queue("work", store, QueueOptions())
    started = []
    running = 0
    peak = 0

    async def handler(job):
        nonlocal running, peak
        started.append(job.payload["n"])
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.02)
        running -= 1
        return job.payload["n"] * 2

    async def scenario():
        results = {}
        queue.on_completed(lambda job_id, category, result: results.setdefault(job_id, result))
        for n in range(5):
            await queue.enqueue("calc", {"n": n})
        queue.process("calc", 2, handler, **FAST)

        async def all_done():
            return len(results) == 5

        await wait_until(all_done)
        await queue.close(1000)
        return results, await queue.get_stats()

    results, stats = asyncio.run(scenario())
    assert started == [0, 1, 2, 3, 4]
    assert peak <= 2
    assert sorted(results.values()) == [0, 2, 4, 6, 8]
    assert stats["completed"] == 5
    assert stats["active"] == 0


def test_always_failing_handler_fails_once_after_all_attempts(store):
    queue = Queue("work", store, QueueOptions(attempts=3, backoff=BackoffPolicy(type="fixed", delay=20)))
    failed = []
    calls = 0

    async def handler(job):
        nonlocal calls
        calls += 1
        raise RuntimeError("smtp down")

    async def scenario():
        queue.on_failed(lambda job_id, category, reason: failed.append(reason))
        job = await queue.enqueue("send", {})
        queue.process(None, 1, handler, **FAST)

        async def gave_up():
            return bool(failed)

        await wait_until(gave_up)
        await asyncio.sleep(0.1)
        await queue.close(1000)
        return await queue.get_job(job.id)

    stored = asyncio.run(scenario())
    assert failed == ["smtp down"]
    assert calls == 3
    assert stored.state == JobState.FAILED
    assert stored.attempts_made == 3


def test_timeout_fails_the_attempt(store):
    queue = Queue("work", store, QueueOptions())

    async def handler(job):
        await asyncio.sleep(5)

    async def scenario():
        job = await queue.enqueue("slow", {}, timeout_ms=50)
        queue.process("slow", 1, handler, **FAST)

        async def finished():
            return (await queue.get_job(job.id)).state == JobState.FAILED

        await wait_until(finished)
        await queue.close(1000)
        return await queue.get_job(job.id)

    stored = asyncio.run(scenario())
    assert stored.failure_reason == "Job exceeded timeout of 50ms"


def test_handler_error_does_not_stop_the_loop(store):
    queue = Queue("work", store, QueueOptions())

    async def handler(job):
        if job.payload["bad"]:
            raise ValueError("bad payload")
        return "ok"

    async def scenario():
        await queue.enqueue("mixed", {"bad": True})
        good = await queue.enqueue("mixed", {"bad": False})
        queue.process("mixed", 1, handler, **FAST)

        async def good_done():
            return (await queue.get_job(good.id)).state == JobState.COMPLETED

        await wait_until(good_done)
        await queue.close(1000)
        return await queue.get_stats()

    stats = asyncio.run(scenario())
    assert stats["completed"] == 1
    assert stats["failed"] == 1


def test_store_error_on_write_back_counts_as_failed_attempt():
    store = FlakyStore()
    queue = Queue("work", store, QueueOptions(attempts=2))

    async def handler(job):
        return "done"

    async def scenario():
        job = await queue.enqueue("write", {})
        queue.process(None, 1, handler, **FAST)

        async def completed():
            return (await queue.get_job(job.id)).state == JobState.COMPLETED

        await wait_until(completed)
        await queue.close(1000)
        return await queue.get_job(job.id)

    stored = asyncio.run(scenario())
    assert stored.attempts_made == 2
    assert stored.error_history and "store went away" in stored.error_history[0]


def test_close_waits_for_running_jobs(store):
    queue = Queue("work", store, QueueOptions())

    async def handler(job):
        await asyncio.sleep(0.1)
        return "finished"

    async def scenario():
        job = await queue.enqueue("drain", {})
        queue.process("drain", 1, handler, **FAST)

        async def picked_up():
            return (await queue.get_stats())["active"] == 1

        await wait_until(picked_up)
        await queue.close(2000)
        return await queue.get_job(job.id)

    assert asyncio.run(scenario()).state == JobState.COMPLETED


def test_close_abandons_jobs_past_the_grace_period(store):
    queue = Queue("work", store, QueueOptions())

    async def handler(job):
        await asyncio.sleep(10)

    async def scenario():
        job = await queue.enqueue("stuck", {})
        queue.process("stuck", 1, handler, **FAST)

        async def picked_up():
            return (await queue.get_stats())["active"] == 1

        await wait_until(picked_up)
        await asyncio.wait_for(queue.close(50), timeout=3)
        return await queue.get_job(job.id)

    # left for stall recovery on the next start
    assert asyncio.run(scenario()).state == JobState.ACTIVE


def test_closed_queue_hands_out_nothing(store):
    queue = Queue("work", store, QueueOptions())

    async def scenario():
        await queue.enqueue("x", {})
        await queue.close()
        return await queue.dequeue_next()

    assert asyncio.run(scenario()) is None


def test_handler_must_be_a_coroutine_function(store):
    queue = Queue("work", store)

    def handler(job):
        return None

    with pytest.raises(TypeError):
        Worker(queue, handler)


def test_concurrency_must_be_positive(store):
    queue = Queue("work", store)

    async def handler(job):
        return None

    with pytest.raises(ValueError):
        Worker(queue, handler, concurrency=0)


def test_process_on_closed_queue_raises(store):
    queue = Queue("work", store)

    async def handler(job):
        return None

    asyncio.run(queue.close())
    with pytest.raises(RuntimeError):
        queue.process(None, 1, handler)
