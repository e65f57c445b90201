"""Tests for the deduplicated prefetch scheduler."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from prepgen.infrastructure.scheduler import PrefetchScheduler


@pytest.fixture
def scheduler(no_sleep):
    """Create a scheduler whose delays return immediately."""
    return PrefetchScheduler(sleep=no_sleep)


class TestPrefetchScheduler:
    """Tests for PrefetchScheduler."""

    @pytest.mark.asyncio
    async def test_schedule_runs_job_after_delay(self, scheduler, no_sleep):
        """Test that a scheduled job runs after the injected delay."""
        job = AsyncMock()

        assert scheduler.schedule(1, 0.5, job) is True
        await scheduler.drain()

        no_sleep.assert_awaited_once_with(0.5)
        job.assert_awaited_once()
        assert scheduler.in_flight(1) is False

    @pytest.mark.asyncio
    async def test_zero_delay_skips_sleep(self, scheduler, no_sleep):
        """Test that a zero delay does not call sleep."""
        job = AsyncMock()
        scheduler.schedule(1, 0.0, job)
        await scheduler.drain()
        no_sleep.assert_not_awaited()
        job.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_schedule_is_dropped(self, scheduler):
        """Test that an index already in flight is not scheduled again."""
        release = asyncio.Event()
        calls = []

        async def job():
            calls.append("first")
            await release.wait()

        second = AsyncMock()

        assert scheduler.schedule(2, 0.1, job) is True
        assert scheduler.schedule(2, 0.1, second) is False
        assert scheduler.pending_indices() == [2]

        release.set()
        await scheduler.drain()

        assert calls == ["first"]
        second.assert_not_awaited()
        assert scheduler.pending_indices() == []

    @pytest.mark.asyncio
    async def test_index_can_be_rescheduled_after_completion(self, scheduler):
        """Test that an index leaves the set when its job finishes."""
        job = AsyncMock()
        scheduler.schedule(3, 0.0, job)
        await scheduler.drain()

        assert scheduler.schedule(3, 0.0, job) is True
        await scheduler.drain()
        assert job.await_count == 2

    @pytest.mark.asyncio
    async def test_job_errors_are_logged_and_swallowed(self, scheduler, caplog):
        """Test that a failing job does not propagate its exception."""
        job = AsyncMock(side_effect=RuntimeError("generation exploded"))

        with caplog.at_level(logging.ERROR, logger="prepgen.infrastructure.scheduler"):
            scheduler.schedule(1, 0.0, job)
            await scheduler.drain()

        assert scheduler.in_flight(1) is False
        assert "slot 1 failed" in caplog.text
        assert "generation exploded" in caplog.text

    @pytest.mark.asyncio
    async def test_wait_for(self, scheduler):
        """Test that wait_for awaits the in-flight job."""
        finished = []

        async def job():
            await asyncio.sleep(0)
            finished.append(True)

        assert await scheduler.wait_for(5) is False

        scheduler.schedule(5, 0.0, job)
        assert await scheduler.wait_for(5) is True
        assert finished == [True]

    @pytest.mark.asyncio
    async def test_reset_forgets_membership_without_cancelling(self, scheduler):
        """Test that reset clears the set while orphaned jobs still finish."""
        release = asyncio.Event()
        finished = []

        async def job():
            await release.wait()
            finished.append("orphan")

        scheduler.schedule(1, 0.0, job)
        await asyncio.sleep(0)
        scheduler.reset()

        assert scheduler.in_flight(1) is False
        assert scheduler.task_count == 1

        release.set()
        await scheduler.drain()

        assert finished == ["orphan"]
        assert scheduler.task_count == 0
        assert scheduler.in_flight(1) is False

    @pytest.mark.asyncio
    async def test_index_with_live_orphan_is_not_rescheduled(self, scheduler):
        """Test that a slot whose orphaned job is still running cannot be scheduled again."""
        release = asyncio.Event()

        async def job():
            await release.wait()

        scheduler.schedule(1, 0.0, job)
        await asyncio.sleep(0)
        scheduler.reset()

        duplicate = AsyncMock()
        assert scheduler.schedule(1, 0.0, duplicate) is False
        other = AsyncMock()
        assert scheduler.schedule(2, 0.0, other) is True

        release.set()
        await scheduler.drain()
        duplicate.assert_not_awaited()
        other.assert_awaited_once()

        replacement = AsyncMock()
        assert scheduler.schedule(1, 0.0, replacement) is True
        await scheduler.drain()
        replacement.assert_awaited_once()
