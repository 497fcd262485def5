"""
Publish routes for trusted internal callers (commerce service, payment webhooks).

No end-user identity applies here; these routes must only be reachable on the internal
network. A successful response means the event was accepted: it is either already
stored or being stored by a background worker.
"""
from fastapi import APIRouter, Depends

from telemetry_service.engine.service import EventService
from telemetry_service.server.dependencies import get_service
from telemetry_service.shared.models import (
    EventPublishRequest,
    NewOrderEventRequest,
    OrderStatusChangeRequest,
    OrderUpdateEventRequest,
)
from telemetry_service.shared.route_utils import success_response

router = APIRouter(prefix="/v1/internal/events")


@router.post("/publish")
async def publish_event(req: EventPublishRequest, service: EventService = Depends(get_service)):
    event = await service.publish(
        req.event_type, req.action, req.entity_id, req.entity_type, req.user_id, req.metadata
    )
    return success_response("Event published successfully", {"eventId": event.event_id})


@router.post("/order-status-change")
async def publish_order_status_change(req: OrderStatusChangeRequest, service: EventService = Depends(get_service)):
    event = await service.publish_order_status_change(req.order_id, req.user_id, req.new_status)
    return success_response("Order status change event published", {"eventId": event.event_id})


@router.post("/new-order")
async def publish_new_order(req: NewOrderEventRequest, service: EventService = Depends(get_service)):
    event = await service.publish_new_order(req.order_id, req.customer_name, req.total_amount)
    return success_response("New order event published", {"eventId": event.event_id})


@router.post("/order-update")
async def publish_order_update(req: OrderUpdateEventRequest, service: EventService = Depends(get_service)):
    event = await service.publish_order_update(req.order_id, req.update_type, req.details)
    return success_response("Order update event published", {"eventId": event.event_id})
