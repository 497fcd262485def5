"""
MODULE OVERVIEW:
A bounded pool of asynchronous worker slots for fire-and-forget writes.

WHAT IS HAPPENING HERE:
`try_spawn()` never waits. If a slot is free it starts the job as a background task and
returns True; the job's failure is logged here and never reaches the caller. If every
slot is busy (or the pool is draining) it returns False and the caller must run the
job itself, on its own path, and deal with the error. That second branch is the
backpressure: publish throughput degrades to what the store can absorb instead of
piling up tasks in memory.

A slot is released by the task's done-callback, so it comes back on success, on failure
and on cancellation alike.
"""
import asyncio
from typing import Awaitable, Callable

from loguru import logger

Job = Callable[[], Awaitable[None]]


class WorkerSlotPool:
    def __init__(self, capacity: int, name: str = "publish"):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.name = name
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def closed(self) -> bool:
        return self._closed

    def try_spawn(self, job: Job, label: str = "") -> bool:
        """Run `job` on a free slot. Returns False, without starting it, if none is free."""
        if self._closed or len(self._tasks) >= self.capacity:
            return False
        task = asyncio.create_task(self._run(job, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, job: Job, label: str) -> None:
        try:
            await job()
        except asyncio.CancelledError:
            logger.warning(f"pool={self.name} job={label} event=cancelled")
            raise
        except Exception as e:
            logger.error(f"pool={self.name} job={label} event=failed reason='{e}'")

    async def join(self, timeout: float | None = None) -> set[asyncio.Task]:
        """Wait for the jobs in flight right now. Returns those still running."""
        if not self._tasks:
            return set()
        _, not_done = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not_done

    async def drain(self, timeout: float | None = None) -> None:
        """Stop handing out slots and wait for in-flight jobs.

        Jobs still running after `timeout` seconds are cancelled.
        """
        self._closed = True
        if not self._tasks:
            return
        logger.info(f"pool={self.name} event=draining in_flight={len(self._tasks)}")
        not_done = await self.join(timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning(f"pool={self.name} event=drain_timeout cancelled={len(not_done)}")
            await asyncio.gather(*not_done, return_exceptions=True)
