"""Shared fixtures: a controllable clock, small settings and an in-memory store."""
from datetime import datetime, timezone

import pytest

from telemetry_service.engine.errors import StoreUnavailableError
from telemetry_service.engine.service import EventService
from telemetry_service.engine.store import MemoryEventLogStore
from telemetry_service.shared.config import Settings
from telemetry_service.shared.enums import ActionType, EventType
from telemetry_service.shared.models import Event

START = 1_700_000_000.0


class FakeClock:
    """Wall clock stand-in. Scores are whole seconds, so tests step it explicitly."""

    def __init__(self, start: float = START):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 1.0) -> None:
        self.now += seconds


class BrokenStore(MemoryEventLogStore):
    """Memory store whose selected primitives fail like an unreachable Redis."""

    def __init__(self, clock, failing: set[str]):
        super().__init__(clock=clock)
        self.failing = failing
        self.calls: list[str] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise StoreUnavailableError(f"{name}: connection refused")

    async def ping(self):
        self._maybe_fail("ping")
        return await super().ping()

    async def append(self, key, event):
        self._maybe_fail("append")
        return await super().append(key, event)

    async def trim_by_rank(self, key, keep_count):
        self._maybe_fail("trim_by_rank")
        return await super().trim_by_rank(key, keep_count)

    async def range_by_score(self, key, min_score, max_score, limit):
        self._maybe_fail("range_by_score")
        return await super().range_by_score(key, min_score, max_score, limit)

    async def find_by_id(self, key, event_id):
        self._maybe_fail("find_by_id")
        return await super().find_by_id(key, event_id)

    async def expire_older_than(self, key, ttl_seconds):
        self._maybe_fail("expire_older_than")
        return await super().expire_older_than(key, ttl_seconds)


def make_settings(**overrides) -> Settings:
    values = dict(
        STORE_BACKEND="memory",
        MAX_EVENTS_PER_POLL=5,
        DEFAULT_TTL_SECONDS=300,
        SHORT_POLL_INTERVAL_MS=5000,
        LONG_POLL_INTERVAL_MS=30000,
        LONG_POLL_TIMEOUT_MS=300,
        LONG_POLL_TICK_S=0.05,
        WORKER_POOL_SIZE=4,
        HEALTH_CHECK_TIMEOUT_S=0.1,
        SHUTDOWN_TIMEOUT_S=1.0,
    )
    values.update(overrides)
    return Settings(**values)


def make_event(clock, event_type=EventType.ADMIN_NEW_ORDER, action=ActionType.FETCH_NEW,
               entity_id="O1", ttl=300, **metadata) -> Event:
    return Event(
        event_type=event_type,
        action=action,
        entity_id=entity_id,
        entity_type="ORDER",
        metadata=metadata,
        timestamp=datetime.fromtimestamp(clock(), tz=timezone.utc),
        ttl=ttl,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def store(clock):
    return MemoryEventLogStore(clock=clock)


@pytest.fixture
def service(store, settings, clock):
    return EventService(store, settings, clock=clock)
