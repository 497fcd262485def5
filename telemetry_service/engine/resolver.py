"""
MODULE OVERVIEW:
The read path: turn (subject, cursor, optional type filter) into a bounded batch.

WHAT IS HAPPENING HERE:
The cursor is the id of the last event the client saw. We look it up to learn its
second-resolution score and ask the store for everything from score + 1 up to "now".
Events that share a second with the cursor are therefore not replayed, and an expired
or unknown cursor simply restarts from the earliest retained event.

Type-filtered polls over-fetch 2 x limit unfiltered entries and filter here, which can
under-fill a page when the wanted type is sparse in the queue.

After every read a best-effort sweep of entries older than the TTL is started in the
background. Its failures are logged and dropped.
"""
import asyncio
import time
from dataclasses import dataclass

from loguru import logger

from telemetry_service.engine.errors import StoreUnavailableError
from telemetry_service.engine.store import Clock, EventLogStore
from telemetry_service.shared.config import Settings
from telemetry_service.shared.enums import EventType
from telemetry_service.shared.models import Event


@dataclass
class PollBatch:
    events: list[Event]
    last_event_id: str
    has_more: bool


class PollResolver:
    def __init__(self, store: EventLogStore, settings: Settings, clock: Clock = time.time):
        self.store = store
        self.settings = settings
        self.clock = clock
        self._sweeps: set[asyncio.Task] = set()

    @property
    def page_size(self) -> int:
        return self.settings.MAX_EVENTS_PER_POLL

    async def min_score_after(self, key: str, last_event_id: str | None) -> int | None:
        """Lower score bound for events newer than the cursor, or None for "from the start"."""
        if not last_event_id:
            return None
        cursor_event = await self.store.find_by_id(key, last_event_id)
        if cursor_event is None:
            logger.debug(f"subject={key} cursor={last_event_id} event=cursor_unresolved reason=expired_or_unknown")
            return None
        return cursor_event.score + 1

    async def fetch(
        self,
        key: str,
        last_event_id: str | None = None,
        event_type: EventType | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        limit = limit or self.page_size
        min_score = await self.min_score_after(key, last_event_id)
        max_score = int(self.clock())

        if event_type is None:
            events = await self.store.range_by_score(key, min_score, max_score, limit)
        else:
            candidates = await self.store.range_by_score(key, min_score, max_score, limit * 2)
            events = [event for event in candidates if event.event_type == event_type][:limit]

        self._schedule_sweep(key)
        return events

    def build_batch(self, events: list[Event], last_event_id: str | None, limit: int | None = None) -> PollBatch:
        limit = limit or self.page_size
        return PollBatch(
            events=events,
            last_event_id=events[-1].event_id if events else (last_event_id or ""),
            has_more=len(events) >= limit,
        )

    def _schedule_sweep(self, key: str) -> None:
        task = asyncio.create_task(self._sweep(key))
        self._sweeps.add(task)
        task.add_done_callback(self._sweeps.discard)

    async def _sweep(self, key: str) -> None:
        try:
            removed = await self.store.expire_older_than(key, self.settings.DEFAULT_TTL_SECONDS)
        except StoreUnavailableError as e:
            logger.warning(f"subject={key} event=sweep_failed reason='{e}'")
            return
        if removed:
            logger.debug(f"subject={key} event=swept removed={removed}")

    async def close(self) -> None:
        for task in self._sweeps:
            task.cancel()
        if self._sweeps:
            await asyncio.gather(*self._sweeps, return_exceptions=True)
