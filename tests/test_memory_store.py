"""Unit tests for the in-process sorted-set store."""
import pytest

from conftest import make_event

KEY = "poll:admin:events"


@pytest.mark.asyncio
async def test_range_is_ascending_by_score_regardless_of_insert_order(store, clock):
    late = make_event(clock, entity_id="late")
    clock.advance(-10)
    early = make_event(clock, entity_id="early")
    clock.advance(10)

    await store.append(KEY, late)
    await store.append(KEY, early)

    events = await store.range_by_score(KEY, None, int(clock()), 10)
    assert [e.entity_id for e in events] == ["early", "late"]


@pytest.mark.asyncio
async def test_same_score_keeps_insertion_order(store, clock):
    for name in ("a", "b", "c"):
        await store.append(KEY, make_event(clock, entity_id=name))

    events = await store.range_by_score(KEY, None, int(clock()), 10)
    assert [e.entity_id for e in events] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_range_bounds_are_inclusive_and_limit_applies(store, clock):
    for _ in range(5):
        await store.append(KEY, make_event(clock))
        clock.advance(1)

    start = int(clock()) - 5
    events = await store.range_by_score(KEY, start + 1, start + 3, 10)
    assert [e.score for e in events] == [start + 1, start + 2, start + 3]

    limited = await store.range_by_score(KEY, None, int(clock()), 2)
    assert [e.score for e in limited] == [start, start + 1]


@pytest.mark.asyncio
async def test_range_on_missing_key_is_empty(store, clock):
    assert await store.range_by_score("poll:user:nobody", None, int(clock()), 10) == []


@pytest.mark.asyncio
async def test_trim_waits_for_double_then_keeps_newest(store, clock):
    for i in range(10):
        await store.append(KEY, make_event(clock, entity_id=str(i)))
        clock.advance(1)

    assert await store.trim_by_rank(KEY, 5) == 0
    assert await store.count(KEY) == 10

    await store.append(KEY, make_event(clock, entity_id="10"))
    assert await store.trim_by_rank(KEY, 5) == 6

    remaining = await store.range_by_score(KEY, None, int(clock()), 100)
    assert [e.entity_id for e in remaining] == ["6", "7", "8", "9", "10"]


@pytest.mark.asyncio
async def test_find_by_id(store, clock):
    wanted = make_event(clock, entity_id="wanted")
    await store.append(KEY, make_event(clock))
    await store.append(KEY, wanted)

    found = await store.find_by_id(KEY, wanted.event_id)
    assert found == wanted
    assert await store.find_by_id(KEY, "missing") is None


@pytest.mark.asyncio
async def test_expire_older_than_drops_entries_at_or_before_cutoff(store, clock):
    await store.append(KEY, make_event(clock, entity_id="old"))
    clock.advance(200)
    await store.append(KEY, make_event(clock, entity_id="new"))
    clock.advance(100)

    removed = await store.expire_older_than(KEY, 300)

    assert removed == 1
    remaining = await store.range_by_score(KEY, None, int(clock()), 10)
    assert [e.entity_id for e in remaining] == ["new"]


@pytest.mark.asyncio
async def test_queue_expires_ttl_after_last_write(store, clock):
    await store.append(KEY, make_event(clock, ttl=60))
    clock.advance(50)
    # second write refreshes the whole queue's expiry
    await store.append(KEY, make_event(clock, ttl=60))
    clock.advance(50)
    assert await store.count(KEY) == 2

    clock.advance(10)
    assert await store.count(KEY) == 0
