"""
MODULE OVERVIEW:
The Long-Poll Waiter: hold a poll open until there is news or the deadline passes.

WHAT IS HAPPENING HERE:
A dedicated ticker task calls the fetch function once per tick (1s by default). The
first tick that sees events wins and returns them. A tick that finds the deadline
already passed returns an empty list: that is the normal "no news" outcome and the
client is expected to re-issue the call straight away. A fetch error ends the wait and
propagates.

The ticker races the caller's cancellation signal through `asyncio.wait(...,
FIRST_COMPLETED)`. Whichever finishes first decides the outcome; every loser is
cancelled and awaited before `wait()` returns, so no ticker and no watcher outlives the
call. If the ticker has a result in the same instant the cancel fires, the result wins.
"""
import asyncio
from enum import Enum
from typing import Awaitable, Callable

from loguru import logger

from telemetry_service.engine.errors import PollCancelledError
from telemetry_service.shared.config import Settings
from telemetry_service.shared.models import Event

Fetch = Callable[[], Awaitable[list[Event]]]


class WaitOutcome(str, Enum):
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class LongPollWaiter:
    def __init__(self, timeout_s: float, tick_s: float = 1.0):
        if timeout_s <= 0 or tick_s <= 0:
            raise ValueError("timeout_s and tick_s must be positive")
        self.timeout_s = timeout_s
        self.tick_s = tick_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "LongPollWaiter":
        return cls(timeout_s=settings.long_poll_timeout_s, tick_s=settings.LONG_POLL_TICK_S)

    async def wait(self, fetch: Fetch, cancel: asyncio.Event | None = None) -> list[Event]:
        """Block until `fetch` returns events, the timeout elapses, or `cancel` is set.

        Raises PollCancelledError when `cancel` fires first. Cancelling the calling task
        tears the ticker down as well and re-raises CancelledError.
        """
        deadline = asyncio.get_running_loop().time() + self.timeout_s
        ticker = asyncio.create_task(self._tick(fetch, deadline))
        contenders = {ticker}
        if cancel is not None:
            contenders.add(asyncio.create_task(cancel.wait()))

        try:
            done, _ = await asyncio.wait(contenders, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in contenders:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*contenders, return_exceptions=True)

        if ticker in done:
            return ticker.result()
        logger.debug(f"long_poll outcome={WaitOutcome.CANCELLED.value}")
        raise PollCancelledError("long-poll cancelled by caller")

    async def _tick(self, fetch: Fetch, deadline: float) -> list[Event]:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        ticks = 0
        while True:
            # a fetch that overran its tick restarts the cadence from now; missed ticks are not replayed
            next_tick = max(next_tick, loop.time()) + self.tick_s
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            ticks += 1

            if loop.time() >= deadline:
                logger.debug(f"long_poll outcome={WaitOutcome.TIMED_OUT.value} ticks={ticks}")
                return []

            events = await fetch()
            if events:
                logger.debug(f"long_poll outcome={WaitOutcome.SUCCEEDED.value} ticks={ticks} events={len(events)}")
                return events
