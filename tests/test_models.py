"""Tests for job, option and backoff models."""

import asyncio

import pytest
from pydantic import ValidationError

from depict_jobs.queue.models import (
    BackoffPolicy,
    DEFAULT_PRIORITY,
    Job,
    JobOptions,
    JobState,
)


def test_fixed_backoff_is_constant():
    policy = BackoffPolicy(type="fixed", delay=500)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [500, 500, 500, 500]


def test_exponential_backoff_doubles_per_attempt():
    policy = BackoffPolicy(type="exponential", delay=2000)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [2000, 4000, 8000, 16000]


def test_exponential_backoff_is_monotonic():
    policy = BackoffPolicy(delay=100)
    delays = [policy.delay_for(n) for n in range(1, 12)]
    assert delays == sorted(delays)


def test_job_options_defaults():
    opts = JobOptions()
    assert opts.priority == DEFAULT_PRIORITY
    assert opts.delay_ms == 0
    assert opts.attempts is None


@pytest.mark.parametrize("field,value", [
    ("priority", -1),
    ("priority", 1_000_001),
    ("delay_ms", -5),
    ("attempts", 0),
    ("timeout_ms", 0),
])
def test_job_options_reject_out_of_range(field, value):
    with pytest.raises(ValidationError):
        JobOptions(**{field: value})


def test_terminal_states():
    job = Job(id="1", queue="q", category="c", created_at=0)
    assert not job.is_terminal
    job.state = JobState.FAILED
    assert job.is_terminal
    job.state = JobState.COMPLETED
    assert job.is_terminal


def test_unbound_job_cannot_report_progress():
    job = Job(id="1", queue="q", category="c", created_at=0)
    with pytest.raises(RuntimeError):
        asyncio.run(job.set_progress(10))


def test_snapshot_is_json_safe():
    job = Job(id="7", queue="q", category="c", payload={"a": 1}, created_at=5)
    snap = job.snapshot()
    assert snap["state"] == "waiting"
    assert snap["payload"] == {"a": 1}
    assert snap["error_history"] == []
