"""Tests for boot probing and degraded mode."""

import asyncio

import pytest
from pydantic import ValidationError

from depict_jobs.config import Settings
from depict_jobs.errors import QueueNotFound, StoreUnavailable
from depict_jobs.queue.degraded import DegradedQueue
from depict_jobs.queue.registry import create_registry
from depict_jobs.queue.store import MemoryJobStore, probe_store


class DeadStore(MemoryJobStore):
    def __init__(self):
        super().__init__()
        self.closed = False

    async def ping(self):
        raise ConnectionError("connection refused")

    async def close(self):
        self.closed = True


class HangingStore(MemoryJobStore):
    async def ping(self):
        await asyncio.sleep(10)
        return True


def test_probe_raises_store_unavailable():
    with pytest.raises(StoreUnavailable):
        asyncio.run(probe_store(DeadStore()))


def test_probe_times_out():
    with pytest.raises(StoreUnavailable):
        asyncio.run(probe_store(HangingStore(), timeout=0.05))


def test_unreachable_store_yields_degraded_registry(settings):
    store = DeadStore()
    registry = asyncio.run(create_registry(settings, store=store))
    assert registry.is_degraded
    assert store.closed
    assert all(isinstance(queue, DegradedQueue) for queue in registry)


def test_redis_disabled_skips_the_probe():
    settings = Settings(redis_enabled=False, log_format="text")
    registry = asyncio.run(create_registry(settings, store=DeadStore()))
    assert registry.is_degraded


def test_reachable_store_yields_live_registry(settings):
    registry = asyncio.run(create_registry(settings, store=MemoryJobStore()))
    assert not registry.is_degraded
    assert "email" in registry


class TestDegradedQueue:

    @pytest.fixture
    def degraded(self, settings):
        return asyncio.run(create_registry(settings, store=DeadStore()))

    def test_enqueue_returns_synthetic_job(self, degraded):
        job = asyncio.run(degraded.get("reports").enqueue(
            "generate",
            {"report_type": "ghg", "company_id": "c1", "user_id": "u1"},
        ))
        assert job.id.startswith("sync-")
        assert job.queue == "reports"

    def test_synthetic_ids_are_unique(self, degraded):
        queue = degraded.get("scheduled")

        async def scenario():
            return {(await queue.enqueue("tick", {})).id for _ in range(10)}

        assert len(asyncio.run(scenario())) == 10

    def test_invalid_payload_still_rejected(self, degraded):
        with pytest.raises(ValidationError):
            asyncio.run(degraded.get("email").enqueue("welcome", {"to": "a@b.de"}))

    def test_admin_calls_return_empty(self, degraded):
        queue = degraded.get("email")

        async def scenario():
            return (
                await queue.get_stats(),
                await queue.get_job("1"),
                await queue.get_jobs("failed"),
                await queue.clean(0, "completed"),
                await queue.retry_job("1"),
                await queue.remove_job("1"),
            )

        stats, job, jobs, cleaned, retried, removed = asyncio.run(scenario())
        assert stats["total"] == 0
        assert stats["queue_name"] == "email"
        assert job is None
        assert jobs == []
        assert cleaned == []
        assert retried is None
        assert removed is None

    def test_no_workers_are_started(self, degraded):
        async def handler(job):
            return None

        assert degraded.register_handler("email", "*", 5, handler) is None

    def test_listeners_subscribe_as_noop(self, degraded):
        unsubscribe = degraded.on_completed("email", lambda *args: None)
        unsubscribe()

    def test_unknown_queue(self, degraded):
        with pytest.raises(QueueNotFound):
            degraded.get("nope")
