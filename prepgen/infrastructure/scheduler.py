"""
Deduplicated background prefetch scheduling.

The scheduler owns the set of slot indices with an in-flight background
generation. An index joins the set when it is scheduled (not when its delay
elapses) and leaves it when the job finishes, so two schedules for the same
slot can never overlap.

Jobs are fire-and-forget: exceptions are caught and logged, and nothing is
cancelled. ``reset()`` forgets current membership for a new session while the
orphaned tasks run to completion; an index is not scheduled again until its
orphan has finished. ``drain()`` awaits everything still running.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

PrefetchJob = Callable[[], Awaitable[Any]]


class PrefetchScheduler:
    """Schedules delayed background jobs keyed by slot index."""

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        """
        Initialize the scheduler.

        Args:
            sleep: Coroutine used for the pre-job delay (injectable for tests)
        """
        self._sleep = sleep
        self._in_flight: Dict[int, asyncio.Task] = {}
        self._orphans: Dict[int, Set[asyncio.Task]] = {}
        self._all_tasks: Set[asyncio.Task] = set()

    def schedule(self, index: int, delay: float, job: PrefetchJob) -> bool:
        """
        Schedule ``job`` to run after ``delay`` seconds unless ``index`` is in flight.

        Must be called from within a running event loop.

        Args:
            index: Slot index the job fills
            delay: Seconds to wait before starting the job
            job: Zero-argument coroutine function

        Returns:
            True if scheduled, False if the index was already in flight or an
            orphan from before the last reset() is still running for it
        """
        if index in self._in_flight:
            logger.debug(f"Prefetch for slot {index} already in flight, skipping")
            return False
        if self._orphans.get(index):
            logger.debug(f"Orphaned prefetch for slot {index} still running, skipping")
            return False

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(index, delay, job), name=f"prefetch-slot-{index}")
        self._in_flight[index] = task
        self._all_tasks.add(task)
        task.add_done_callback(self._all_tasks.discard)
        logger.debug(f"Scheduled prefetch for slot {index} in {delay:.2f}s")
        return True

    async def _run(self, index: int, delay: float, job: PrefetchJob) -> None:
        name = getattr(job, "__name__", repr(job))
        try:
            if delay > 0:
                await self._sleep(delay)
            await job()
        except Exception:
            logger.exception(f"Background prefetch '{name}' for slot {index} failed")
        finally:
            # Jobs orphaned by reset() are tracked apart from current membership
            task = asyncio.current_task()
            if self._in_flight.get(index) is task:
                del self._in_flight[index]
            elif index in self._orphans:
                self._orphans[index].discard(task)
                if not self._orphans[index]:
                    del self._orphans[index]

    def in_flight(self, index: int) -> bool:
        """Whether a background job for ``index`` is scheduled or running."""
        return index in self._in_flight

    def pending_indices(self) -> List[int]:
        """Sorted indices with an in-flight job."""
        return sorted(self._in_flight)

    async def wait_for(self, index: int) -> bool:
        """
        Wait for the in-flight job for ``index``, if any.

        The job is shielded so a cancelled waiter does not cancel the prefetch.

        Returns:
            True if there was a job to wait for
        """
        task: Optional[asyncio.Task] = self._in_flight.get(index)
        if task is None:
            return False
        await asyncio.shield(task)
        return True

    def reset(self) -> None:
        """Forget in-flight membership without cancelling running jobs."""
        for index, task in self._in_flight.items():
            self._orphans.setdefault(index, set()).add(task)
        self._in_flight.clear()

    async def drain(self) -> None:
        """Wait until every job, including ones orphaned by reset(), has finished."""
        while self._all_tasks:
            await asyncio.gather(*list(self._all_tasks), return_exceptions=True)

    @property
    def task_count(self) -> int:
        """Number of jobs still running, orphans included."""
        return len(self._all_tasks)
