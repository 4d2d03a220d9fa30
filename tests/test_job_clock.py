"""
Job Clock Tests

Run with:
    python -m pytest tests/test_job_clock.py -v
"""

import os
import sys
from datetime import datetime, timedelta, timezone

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.generation.job_clock import JobClock


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class TestJobClock:
    """Per-job creation times and elapsed seconds."""

    def test_elapsed_seconds(self):
        clock = FakeClock()
        jobs = JobClock(clock=clock)
        jobs.register("a")
        clock.advance(2.5)
        assert jobs.elapsed_seconds("a") == 2.5

    def test_unknown_job(self):
        assert JobClock().elapsed_seconds("missing") is None

    def test_jobs_are_independent(self):
        clock = FakeClock()
        jobs = JobClock(clock=clock)
        jobs.register("a")
        clock.advance(5)
        jobs.register("b")
        clock.advance(1)
        assert jobs.elapsed_seconds("a") == 6
        assert jobs.elapsed_seconds("b") == 1

    def test_expired_entries_evicted_on_register(self):
        clock = FakeClock()
        jobs = JobClock(clock=clock, max_age_seconds=60)
        jobs.register("old")
        clock.advance(61)
        jobs.register("new")
        assert jobs.elapsed_seconds("old") is None
        assert len(jobs) == 1

    def test_explicit_created_at(self):
        clock = FakeClock()
        jobs = JobClock(clock=clock)
        created = clock.now - timedelta(seconds=10)
        assert jobs.register("a", created_at=created) == created
        assert jobs.elapsed_seconds("a") == 10

    def test_forget(self):
        jobs = JobClock()
        jobs.register("a")
        jobs.forget("a")
        assert jobs.created_at("a") is None
