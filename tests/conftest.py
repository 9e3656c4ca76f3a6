"""Shared fixtures: in-memory store, fake clock, registries."""

import pytest

from depict_jobs.config import Settings, clear_settings_cache
from depict_jobs.queue.job_queue import Queue
from depict_jobs.queue.models import BackoffPolicy, QueueOptions
from depict_jobs.queue.registry import QueueRegistry
from depict_jobs.queue.store import MemoryJobStore

START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryJobStore()


@pytest.fixture
def settings():
    return Settings(
        queue_backend="memory",
        poll_interval_ms=10,
        stall_interval_ms=30_000,
        stall_check_interval_ms=30_000,
        shutdown_grace_ms=2_000,
        start_workers=False,
        log_format="text",
    )


@pytest.fixture
def queue(store, clock):
    """Queue with retries and retention, driven by the fake clock."""
    return Queue(
        "test",
        store,
        QueueOptions(
            attempts=3,
            backoff=BackoffPolicy(type="exponential", delay=1000),
            keep_completed=5,
            keep_failed=5,
        ),
        stall_interval_ms=30_000,
        clock=clock,
    )


@pytest.fixture
def registry(store, settings, clock):
    return QueueRegistry(store, settings=settings, clock=clock)


@pytest.fixture
def live_registry(store, settings):
    """Registry on the real clock, for tests that run workers."""
    return QueueRegistry(store, settings=settings)
