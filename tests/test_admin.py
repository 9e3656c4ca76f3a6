"""Tests for the admin facade."""

import asyncio

import pytest

from depict_jobs.admin import QueueAdmin
from depict_jobs.errors import JobNotFound, QueueNotFound
from depict_jobs.queue.definitions import QUEUE_DEFINITIONS


@pytest.fixture
def admin(registry):
    return QueueAdmin(registry)


def test_all_queue_stats_cover_every_definition(admin):
    stats = asyncio.run(admin.get_all_queues_stats())
    assert set(stats) == set(QUEUE_DEFINITIONS)
    assert stats["email"]["total"] == 0


def test_get_job_snapshot(admin, registry):
    async def scenario():
        job = await registry.get("scheduled").enqueue("tick", {"x": 1})
        return job, await admin.get_job("scheduled", job.id)

    job, snapshot = asyncio.run(scenario())
    assert snapshot["id"] == job.id
    assert snapshot["state"] == "waiting"
    assert snapshot["payload"] == {"x": 1}


def test_missing_job_raises(admin):
    with pytest.raises(JobNotFound):
        asyncio.run(admin.get_job("email", "404"))


def test_unknown_queue_raises(admin):
    with pytest.raises(QueueNotFound):
        asyncio.run(admin.get_queue_stats("nope"))


def test_pause_and_resume(admin, registry):
    async def scenario():
        await admin.pause_queue("exports")
        paused = await registry.get("exports").is_paused()
        await admin.resume_queue("exports")
        return paused, await registry.get("exports").is_paused()

    assert asyncio.run(scenario()) == (True, False)


def test_clean_returns_removed_count(admin, registry, clock):
    queue = registry.get("scheduled")

    async def scenario():
        for _ in range(3):
            await queue.enqueue("tick", {})
            await queue.complete(await queue.dequeue_next())
        clock.advance(86_400_001)
        return await admin.clean_queue("scheduled")

    assert asyncio.run(scenario()) == 3


def test_clean_rejects_waiting_state(admin):
    with pytest.raises(ValueError):
        asyncio.run(admin.clean_queue("scheduled", 0, "waiting"))


def test_retry_failed_job(admin, registry):
    queue = registry.get("scheduled")

    async def scenario():
        job = await queue.enqueue("tick", {}, attempts=1)
        await queue.fail(await queue.dequeue_next(), "boom")
        failed = await admin.get_jobs("scheduled", "failed")
        retried = await admin.retry_job("scheduled", job.id)
        return failed, retried

    failed, retried = asyncio.run(scenario())
    assert [j["failure_reason"] for j in failed] == ["boom"]
    assert retried["state"] == "waiting"
    assert retried["attempts_made"] == 0


def test_retry_active_job_is_noop(admin, registry):
    queue = registry.get("scheduled")

    async def scenario():
        job = await queue.enqueue("tick", {})
        await queue.dequeue_next()
        return await admin.retry_job("scheduled", job.id)

    assert asyncio.run(scenario())["state"] == "active"


def test_retry_and_remove_missing_job(admin):
    with pytest.raises(JobNotFound):
        asyncio.run(admin.retry_job("email", "x"))
    with pytest.raises(JobNotFound):
        asyncio.run(admin.remove_job("email", "x"))


def test_remove_job(admin, registry):
    async def scenario():
        job = await registry.get("scheduled").enqueue("tick", {})
        removed = await admin.remove_job("scheduled", job.id)
        return removed, await registry.get("scheduled").get_job(job.id)

    removed, stored = asyncio.run(scenario())
    assert removed["state"] == "waiting"
    assert stored is None
