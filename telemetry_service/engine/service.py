"""
MODULE OVERVIEW:
`EventService` is the single entry point the transports talk to.

WHAT IS HAPPENING HERE:
It wires one store to a publisher (write path), a resolver (read path) and a long-poll
waiter, all built from the same frozen `Settings`. The HTTP routes, the CLI and the
tests only ever see this object.
"""
import asyncio
import time
from typing import Any

from loguru import logger

from telemetry_service.engine.errors import StoreUnavailableError, SubjectAccessError
from telemetry_service.engine.publisher import ADMIN_EVENT_KEY, EventPublisher, user_key
from telemetry_service.engine.resolver import PollResolver
from telemetry_service.engine.store import Clock, EventLogStore
from telemetry_service.engine.validation import parse_event_type
from telemetry_service.engine.waiter import LongPollWaiter
from telemetry_service.engine.worker_pool import WorkerSlotPool
from telemetry_service.shared.config import Settings
from telemetry_service.shared.enums import ActionType, EventType
from telemetry_service.shared.models import Event, PollResponse


class EventService:
    def __init__(
        self,
        store: EventLogStore,
        settings: Settings,
        clock: Clock = time.time,
        pool: WorkerSlotPool | None = None,
    ):
        self.store = store
        self.settings = settings
        self.publisher = EventPublisher(store, settings, pool=pool, clock=clock)
        self.resolver = PollResolver(store, settings, clock=clock)
        self.waiter = LongPollWaiter.from_settings(settings)

    # ==========================
    # SUBJECTS
    # ==========================
    @staticmethod
    def user_subject(user_id: str) -> str:
        return user_key(user_id)

    @staticmethod
    def admin_subject() -> str:
        return ADMIN_EVENT_KEY

    @staticmethod
    def subject_for_filter(user_id: str, is_admin: bool, event_type: EventType | None) -> str:
        """
        Without a filter, or filtering on customer order status, a caller reads their own
        queue. Every other type lives in the shared admin queue, which only admins may read.
        """
        if event_type is None or event_type == EventType.CUSTOMER_ORDER_STATUS:
            return user_key(user_id)
        if not is_admin:
            raise SubjectAccessError(f"Admin access required for {event_type.value} events")
        return ADMIN_EVENT_KEY

    # ==========================
    # READ PATH
    # ==========================
    async def poll_events(
        self,
        subject_key: str,
        event_type: EventType | str | None = None,
        last_event_id: str | None = None,
        long_poll: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> PollResponse:
        parsed_type = parse_event_type(event_type)

        async def fetch() -> list[Event]:
            return await self.resolver.fetch(subject_key, last_event_id, parsed_type)

        if long_poll:
            events = await self.waiter.wait(fetch, cancel=cancel)
        else:
            events = await fetch()

        batch = self.resolver.build_batch(events, last_event_id)
        return PollResponse(
            events=batch.events,
            last_event_id=batch.last_event_id,
            poll_interval_ms=self.settings.LONG_POLL_INTERVAL_MS if long_poll else self.settings.SHORT_POLL_INTERVAL_MS,
            has_more=batch.has_more,
        )

    # ==========================
    # WRITE PATH
    # ==========================
    async def publish(
        self,
        event_type: EventType | str,
        action: ActionType | str,
        entity_id: str,
        entity_type: str,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        return await self.publisher.publish(event_type, action, entity_id, entity_type, user_id, metadata)

    async def publish_order_status_change(self, order_id: str, user_id: str, new_status: str) -> Event:
        return await self.publisher.publish_order_status_change(order_id, user_id, new_status)

    async def publish_new_order(self, order_id: str, customer_name: str, total_amount: str) -> Event:
        return await self.publisher.publish_new_order(order_id, customer_name, total_amount)

    async def publish_order_update(
        self, order_id: str, update_type: str, details: dict[str, Any] | None = None
    ) -> Event:
        return await self.publisher.publish_order_update(order_id, update_type, details)

    # ==========================
    # OPS
    # ==========================
    async def check_health(self) -> None:
        try:
            await asyncio.wait_for(self.store.ping(), timeout=self.settings.HEALTH_CHECK_TIMEOUT_S)
        except asyncio.TimeoutError:
            raise StoreUnavailableError(
                f"store ping timed out after {self.settings.HEALTH_CHECK_TIMEOUT_S}s"
            ) from None

    async def close(self) -> None:
        """Drain in-flight publishes, stop background sweeps, release the store.

        The drain gets half of SHUTDOWN_TIMEOUT_S. Sweeps and the store are released even
        if the drain is interrupted.
        """
        try:
            await self.publisher.close(timeout=self.settings.SHUTDOWN_TIMEOUT_S / 2)
        finally:
            await self.resolver.close()
            await self.store.close()
        logger.info("event service closed")
