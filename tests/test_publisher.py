"""Tests for event construction, subject routing and the two-branch write policy."""
import asyncio

import pytest

from conftest import BrokenStore, make_settings
from telemetry_service.engine.errors import InvalidFilterError, StoreUnavailableError
from telemetry_service.engine.publisher import ADMIN_EVENT_KEY, EventPublisher, user_key
from telemetry_service.engine.worker_pool import WorkerSlotPool
from telemetry_service.shared.enums import ActionType, EventType


@pytest.fixture
def publisher(store, settings, clock):
    return EventPublisher(store, settings, clock=clock)


async def stored(store, clock, key):
    return await store.range_by_score(key, None, int(clock()), 100)


@pytest.mark.asyncio
async def test_order_status_change_goes_to_user_queue(publisher, store, clock):
    event = await publisher.publish_order_status_change("O1", "U1", "SHIPPED")
    await publisher.pool.join()

    assert event.event_type == EventType.CUSTOMER_ORDER_STATUS
    assert event.action == ActionType.REFRESH
    assert event.entity_type == "ORDER"
    assert event.metadata == {"status": "SHIPPED", "orderId": "O1"}
    assert event.ttl == 300
    assert event.score == int(clock())
    assert await stored(store, clock, user_key("U1")) == [event]


@pytest.mark.asyncio
async def test_new_order_goes_to_admin_queue(publisher, store, clock):
    event = await publisher.publish_new_order("O9", "Ada", "42.00")
    await publisher.pool.join()

    assert event.event_type == EventType.ADMIN_NEW_ORDER
    assert event.action == ActionType.FETCH_NEW
    assert event.metadata["customerName"] == "Ada"
    assert event.metadata["totalAmount"] == "42.00"
    assert event.metadata["timestamp"].startswith("2023-11-14T22:13:20")
    assert await stored(store, clock, ADMIN_EVENT_KEY) == [event]


@pytest.mark.asyncio
async def test_order_update_merges_details_without_mutating_them(publisher):
    details = {"field": "address"}

    event = await publisher.publish_order_update("O2", "ADDRESS_CHANGED", details)
    await publisher.pool.join()

    assert event.action == ActionType.UPDATE_PARTIAL
    assert event.metadata == {"field": "address", "updateType": "ADDRESS_CHANGED", "orderId": "O2"}
    assert details == {"field": "address"}


@pytest.mark.asyncio
async def test_generic_publish_routes_by_user_presence(publisher, store, clock):
    for_user = await publisher.publish("PAYMENT_STATUS", "REFRESH", "P1", "PAYMENT", user_id="U7")
    for_admin = await publisher.publish(EventType.INVENTORY_UPDATE, ActionType.NO_ACTION, "SKU1", "PRODUCT")
    await publisher.pool.join()

    assert await stored(store, clock, user_key("U7")) == [for_user]
    assert await stored(store, clock, ADMIN_EVENT_KEY) == [for_admin]


@pytest.mark.asyncio
async def test_invalid_enum_is_rejected_before_any_write(publisher, store, clock):
    with pytest.raises(InvalidFilterError):
        await publisher.publish("ORDER_EXPLODED", "REFRESH", "O1", "ORDER")
    with pytest.raises(InvalidFilterError):
        await publisher.publish("PAYMENT_STATUS", "DANCE", "O1", "ORDER")

    assert publisher.pool.in_flight == 0
    assert await store.count(ADMIN_EVENT_KEY) == 0


@pytest.mark.asyncio
async def test_async_branch_logs_and_drops_store_failure(settings, clock):
    broken = BrokenStore(clock, failing={"append"})
    publisher = EventPublisher(broken, settings, clock=clock)

    await publisher.publish_order_status_change("O1", "U1", "PAID")
    await publisher.pool.join()

    assert "append" in broken.calls


@pytest.mark.asyncio
async def test_saturated_pool_writes_inline_and_propagates_failure(settings, clock):
    broken = BrokenStore(clock, failing={"append"})
    pool = WorkerSlotPool(capacity=1)
    publisher = EventPublisher(broken, settings, pool=pool, clock=clock)
    gate = asyncio.Event()

    async def occupy():
        await gate.wait()

    assert pool.try_spawn(occupy)
    with pytest.raises(StoreUnavailableError):
        await publisher.publish_order_status_change("O1", "U1", "PAID")

    gate.set()
    await pool.drain()


@pytest.mark.asyncio
async def test_saturated_pool_writes_inline_on_success(store, settings, clock):
    pool = WorkerSlotPool(capacity=1)
    publisher = EventPublisher(store, settings, pool=pool, clock=clock)
    gate = asyncio.Event()

    async def occupy():
        await gate.wait()

    pool.try_spawn(occupy)
    event = await publisher.publish_new_order("O1", "Ada", "1.00")

    # stored before publish returned, no background slot was used
    assert await stored(store, clock, ADMIN_EVENT_KEY) == [event]
    gate.set()
    await pool.drain()


@pytest.mark.asyncio
async def test_writes_trim_queue_to_page_size(store, clock):
    publisher = EventPublisher(store, make_settings(MAX_EVENTS_PER_POLL=5), clock=clock)

    for i in range(11):
        await publisher.publish_new_order(f"O{i}", "Ada", "1.00")
        await publisher.pool.join()
        clock.advance(1)

    assert await store.count(ADMIN_EVENT_KEY) == 5


@pytest.mark.asyncio
async def test_trim_failure_does_not_fail_the_write(settings, clock):
    broken = BrokenStore(clock, failing={"trim_by_rank"})
    pool = WorkerSlotPool(capacity=1)
    publisher = EventPublisher(broken, settings, pool=pool, clock=clock)
    gate = asyncio.Event()

    async def occupy():
        await gate.wait()

    pool.try_spawn(occupy)
    event = await publisher.publish_new_order("O1", "Ada", "1.00")

    assert await broken.find_by_id(ADMIN_EVENT_KEY, event.event_id) == event
    gate.set()
    await pool.drain()
