"""
MODULE OVERVIEW:
The write path: build events, pick their subject queue, hand them to the store.

WHAT IS HAPPENING HERE:
Publishing is a side channel of whatever request triggered it (an order changed state,
a payment settled), so it must be cheap for the caller. Every write is offered to a
bounded `WorkerSlotPool` first:

  * slot free  -> the write runs in the background, the call returns at once and a store
                  failure is only logged;
  * pool full  -> the write runs inline and a store failure propagates to the caller.

Customer-facing events go to `poll:user:<id>`, admin-facing ones to the shared admin
queue, and generic publishes go to the user's queue when a user is named, otherwise to
the admin queue.
"""
import time
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from telemetry_service.engine.errors import InvalidFilterError, StoreUnavailableError
from telemetry_service.engine.store import Clock, EventLogStore
from telemetry_service.engine.validation import parse_action, parse_event_type
from telemetry_service.engine.worker_pool import WorkerSlotPool
from telemetry_service.shared.config import Settings
from telemetry_service.shared.enums import ActionType, EventType
from telemetry_service.shared.models import Event

USER_EVENT_KEY_PREFIX = "poll:user:"
ADMIN_EVENT_KEY = "poll:admin:events"

ORDER_ENTITY = "ORDER"


def user_key(user_id: str) -> str:
    return USER_EVENT_KEY_PREFIX + user_id


class EventPublisher:
    def __init__(
        self,
        store: EventLogStore,
        settings: Settings,
        pool: WorkerSlotPool | None = None,
        clock: Clock = time.time,
    ):
        self.store = store
        self.settings = settings
        self.pool = pool or WorkerSlotPool(settings.WORKER_POOL_SIZE)
        self.clock = clock

    def build_event(
        self,
        event_type: EventType,
        action: ActionType,
        entity_id: str,
        entity_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        return Event(
            event_type=event_type,
            action=action,
            entity_id=entity_id,
            entity_type=entity_type,
            metadata=metadata or {},
            timestamp=datetime.fromtimestamp(self.clock(), tz=timezone.utc),
            ttl=self.settings.DEFAULT_TTL_SECONDS,
        )

    async def publish(
        self,
        event_type: EventType | str,
        action: ActionType | str,
        entity_id: str,
        entity_type: str,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        parsed_type = parse_event_type(event_type)
        if parsed_type is None:
            raise InvalidFilterError("Event type is required")
        event = self.build_event(parsed_type, parse_action(action), entity_id, entity_type, metadata)
        key = user_key(user_id) if user_id else ADMIN_EVENT_KEY
        await self._submit(key, event)
        return event

    async def publish_order_status_change(self, order_id: str, user_id: str, new_status: str) -> Event:
        event = self.build_event(
            EventType.CUSTOMER_ORDER_STATUS,
            ActionType.REFRESH,
            order_id,
            ORDER_ENTITY,
            {"status": new_status, "orderId": order_id},
        )
        await self._submit(user_key(user_id), event)
        return event

    async def publish_new_order(self, order_id: str, customer_name: str, total_amount: str) -> Event:
        now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        event = self.build_event(
            EventType.ADMIN_NEW_ORDER,
            ActionType.FETCH_NEW,
            order_id,
            ORDER_ENTITY,
            {
                "orderId": order_id,
                "customerName": customer_name,
                "totalAmount": total_amount,
                "timestamp": now.isoformat(timespec="seconds"),
            },
        )
        await self._submit(ADMIN_EVENT_KEY, event)
        return event

    async def publish_order_update(
        self, order_id: str, update_type: str, details: dict[str, Any] | None = None
    ) -> Event:
        metadata = dict(details or {})
        metadata["updateType"] = update_type
        metadata["orderId"] = order_id
        event = self.build_event(
            EventType.ADMIN_ORDER_UPDATE, ActionType.UPDATE_PARTIAL, order_id, ORDER_ENTITY, metadata
        )
        await self._submit(ADMIN_EVENT_KEY, event)
        return event

    async def _submit(self, key: str, event: Event) -> None:
        async def write() -> None:
            await self._write(key, event)

        if self.pool.try_spawn(write, label=event.event_id):
            return
        logger.debug(f"subject={key} event_id={event.event_id} event=publish_inline reason=pool_saturated")
        await write()

    async def _write(self, key: str, event: Event) -> None:
        await self.store.append(key, event)
        logger.debug(f"subject={key} event_id={event.event_id} type={event.event_type.value} event=stored")
        try:
            removed = await self.store.trim_by_rank(key, self.settings.MAX_EVENTS_PER_POLL)
        except StoreUnavailableError as e:
            logger.warning(f"subject={key} event=trim_failed reason='{e}'")
            return
        if removed:
            logger.debug(f"subject={key} event=trimmed removed={removed}")

    async def close(self, timeout: float | None = None) -> None:
        await self.pool.drain(timeout=self.settings.SHUTDOWN_TIMEOUT_S if timeout is None else timeout)
