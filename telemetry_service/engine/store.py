"""
MODULE OVERVIEW:
Event log store adapters: translate queue operations into ordered-store primitives.

WHAT IS HAPPENING HERE:
Each subject queue (one user, or the shared admin channel) is a sorted set keyed by the
subject key. The member is the event's JSON and the score is its timestamp in whole
seconds. The engine only relies on six primitives: append-with-score (plus expiry),
trim-by-rank, range-by-score, find-by-id, expire-older-than and ping. Any store with
sorted-set semantics and per-key expiry can sit behind `EventLogStore`.

Two backends ship here: Redis for real deployments and an in-process emulation for
development and tests.
"""
import bisect
import itertools
import time
from abc import ABC, abstractmethod
from typing import Callable

import redis.asyncio as redis
from loguru import logger
from pydantic import ValidationError
from redis.exceptions import RedisError

from telemetry_service.engine.errors import StoreUnavailableError
from telemetry_service.shared.config import Settings
from telemetry_service.shared.models import Event

Clock = Callable[[], float]


class EventLogStore(ABC):
    """Ordered, per-key event log. Scores are integer unix seconds."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreUnavailableError if the store is not reachable."""

    @abstractmethod
    async def append(self, key: str, event: Event) -> None:
        """Insert `event` at `event.score` and (re)apply the key's expiry to `event.ttl`."""

    @abstractmethod
    async def count(self, key: str) -> int:
        pass

    @abstractmethod
    async def trim_by_rank(self, key: str, keep_count: int) -> int:
        """Once the queue exceeds 2 x keep_count, drop the oldest so keep_count remain.

        Returns the number of entries removed.
        """

    @abstractmethod
    async def range_by_score(self, key: str, min_score: int | None, max_score: int, limit: int) -> list[Event]:
        """Up to `limit` events with min_score <= score <= max_score, ascending.

        `min_score=None` means unbounded. A missing key yields an empty list.
        """

    @abstractmethod
    async def find_by_id(self, key: str, event_id: str) -> Event | None:
        """Linear scan of the whole queue for one event."""

    @abstractmethod
    async def expire_older_than(self, key: str, ttl_seconds: int) -> int:
        """Remove entries whose score is at or before now - ttl_seconds."""

    @abstractmethod
    async def close(self) -> None:
        pass


def _decode_members(key: str, members) -> list[Event]:
    events = []
    for member in members:
        try:
            events.append(Event.from_member(member))
        except ValidationError as e:
            logger.warning(f"subject={key} event=decode_failed reason='{e.errors()[0]['msg']}'")
    return events


class RedisEventLogStore(EventLogStore):
    """Sorted-set backend on redis-py's asyncio client.

    The connection pool is shared by every request for both reads and writes; Redis
    makes each command atomic per key so no application-level locking is needed.
    """

    def __init__(self, client: redis.Redis, clock: Clock = time.time):
        self.client = client
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = time.time) -> "RedisEventLogStore":
        client = redis.from_url(
            settings.redis_url,
            max_connections=settings.REDIS_POOL_SIZE,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_S,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_S,
            decode_responses=True,
        )
        logger.info(f"store=redis host={settings.REDIS_HOST} port={settings.REDIS_PORT} db={settings.REDIS_DB}")
        return cls(client, clock=clock)

    async def ping(self) -> None:
        try:
            await self.client.ping()
        except RedisError as e:
            raise StoreUnavailableError(f"redis ping failed: {e}") from e

    async def append(self, key: str, event: Event) -> None:
        # ZADD and EXPIRE travel together but without MULTI; a short window where the
        # key exists without a TTL is acceptable.
        pipe = self.client.pipeline(transaction=False)
        pipe.zadd(key, {event.to_member(): event.score})
        pipe.expire(key, event.ttl)
        try:
            await pipe.execute()
        except RedisError as e:
            raise StoreUnavailableError(f"failed to save event {event.event_id}: {e}") from e

    async def count(self, key: str) -> int:
        try:
            return await self.client.zcard(key)
        except RedisError as e:
            raise StoreUnavailableError(f"failed to count {key}: {e}") from e

    async def trim_by_rank(self, key: str, keep_count: int) -> int:
        size = await self.count(key)
        if size <= keep_count * 2:
            return 0
        try:
            return await self.client.zremrangebyrank(key, 0, size - keep_count - 1)
        except RedisError as e:
            raise StoreUnavailableError(f"failed to trim {key}: {e}") from e

    async def range_by_score(self, key: str, min_score: int | None, max_score: int, limit: int) -> list[Event]:
        try:
            members = await self.client.zrangebyscore(
                key,
                "-inf" if min_score is None else min_score,
                max_score,
                start=0,
                num=limit,
            )
        except RedisError as e:
            raise StoreUnavailableError(f"failed to get events from {key}: {e}") from e
        return _decode_members(key, members)

    async def find_by_id(self, key: str, event_id: str) -> Event | None:
        try:
            members = await self.client.zrange(key, 0, -1)
        except RedisError as e:
            raise StoreUnavailableError(f"failed to find event in {key}: {e}") from e
        for event in _decode_members(key, members):
            if event.event_id == event_id:
                return event
        return None

    async def expire_older_than(self, key: str, ttl_seconds: int) -> int:
        cutoff = int(self.clock()) - ttl_seconds
        try:
            return await self.client.zremrangebyscore(key, "-inf", cutoff)
        except RedisError as e:
            raise StoreUnavailableError(f"failed to cleanup expired events in {key}: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()


class MemoryEventLogStore(EventLogStore):
    """
    In-process sorted-set emulation.

    Suitable for single-instance development and tests. Ties on score keep insertion
    order. Data is lost when the process exits.
    """

    def __init__(self, clock: Clock = time.time):
        self.clock = clock
        # key -> sorted [(score, seq, member)]
        self._queues: dict[str, list[tuple[int, int, str]]] = {}
        self._expires_at: dict[str, float] = {}
        self._seq = itertools.count()

    def _entries(self, key: str) -> list[tuple[int, int, str]]:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self.clock() >= expires_at:
            self._queues.pop(key, None)
            self._expires_at.pop(key, None)
        return self._queues.get(key, [])

    async def ping(self) -> None:
        return None

    async def append(self, key: str, event: Event) -> None:
        entries = self._entries(key)
        if key not in self._queues:
            self._queues[key] = entries
        bisect.insort(entries, (event.score, next(self._seq), event.to_member()))
        self._expires_at[key] = self.clock() + event.ttl

    async def count(self, key: str) -> int:
        return len(self._entries(key))

    async def trim_by_rank(self, key: str, keep_count: int) -> int:
        entries = self._entries(key)
        if len(entries) <= keep_count * 2:
            return 0
        removed = len(entries) - keep_count
        del entries[:removed]
        return removed

    async def range_by_score(self, key: str, min_score: int | None, max_score: int, limit: int) -> list[Event]:
        members = [
            member for score, _, member in self._entries(key)
            if (min_score is None or score >= min_score) and score <= max_score
        ]
        return _decode_members(key, members[:limit])

    async def find_by_id(self, key: str, event_id: str) -> Event | None:
        for event in _decode_members(key, [member for _, _, member in self._entries(key)]):
            if event.event_id == event_id:
                return event
        return None

    async def expire_older_than(self, key: str, ttl_seconds: int) -> int:
        entries = self._entries(key)
        cutoff = int(self.clock()) - ttl_seconds
        kept = [entry for entry in entries if entry[0] > cutoff]
        removed = len(entries) - len(kept)
        if removed:
            entries[:] = kept
        return removed

    async def close(self) -> None:
        self._queues.clear()
        self._expires_at.clear()


def build_store(settings: Settings, clock: Clock = time.time) -> EventLogStore:
    if settings.STORE_BACKEND == "memory":
        logger.info("store=memory reason=configured")
        return MemoryEventLogStore(clock=clock)
    return RedisEventLogStore.from_settings(settings, clock=clock)
