"""
MODULE OVERVIEW:
Client-facing polling routes (storefront customers and the admin dashboard).

WHAT IS HAPPENING HERE:
Every route accepts `lastEventId` (the cursor) and `longPoll`. A plain poll answers
immediately. A long poll is held open by the engine's waiter; meanwhile a small
watcher task keeps an eye on the HTTP connection and cancels the wait if the client
disconnects, so an abandoned request stops touching the store right away.
"""
import asyncio

from fastapi import APIRouter, Depends, Query, Request

from telemetry_service.engine.service import EventService
from telemetry_service.engine.validation import parse_event_type
from telemetry_service.server.dependencies import Identity, get_service, require_admin, require_user
from telemetry_service.shared.enums import EventType
from telemetry_service.shared.models import PollResponse
from telemetry_service.shared.route_utils import log_connection, success_response, watch_disconnect

router = APIRouter(prefix="/v1/polling")


async def _poll(
    request: Request,
    service: EventService,
    identity: Identity,
    subject_key: str,
    event_type: EventType | None,
    last_event_id: str | None,
    long_poll: bool,
) -> PollResponse:
    if not long_poll:
        return await service.poll_events(subject_key, event_type, last_event_id)

    await log_connection("long_poll:connect", identity.user_id, {"subject": subject_key})
    cancel = asyncio.Event()
    watcher = asyncio.create_task(watch_disconnect(request, cancel))
    try:
        return await service.poll_events(subject_key, event_type, last_event_id, long_poll=True, cancel=cancel)
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)
        await log_connection("long_poll:disconnect", identity.user_id, {"subject": subject_key})


@router.get("/events")
async def poll_events(
    request: Request,
    event_type: str | None = Query(None, alias="eventType"),
    last_event_id: str | None = Query(None, alias="lastEventId"),
    long_poll: bool = Query(False, alias="longPoll"),
    identity: Identity = Depends(require_user),
    service: EventService = Depends(get_service),
):
    parsed_type = parse_event_type(event_type)
    subject_key = service.subject_for_filter(identity.user_id, identity.is_admin, parsed_type)
    response = await _poll(request, service, identity, subject_key, parsed_type, last_event_id, long_poll)
    return success_response("Events retrieved", response)


@router.get("/user/events")
async def poll_user_events(
    request: Request,
    last_event_id: str | None = Query(None, alias="lastEventId"),
    long_poll: bool = Query(False, alias="longPoll"),
    identity: Identity = Depends(require_user),
    service: EventService = Depends(get_service),
):
    subject_key = service.user_subject(identity.user_id)
    response = await _poll(request, service, identity, subject_key, None, last_event_id, long_poll)
    return success_response("User events retrieved", response)


@router.get("/admin/events")
async def poll_admin_events(
    request: Request,
    last_event_id: str | None = Query(None, alias="lastEventId"),
    long_poll: bool = Query(False, alias="longPoll"),
    identity: Identity = Depends(require_admin),
    service: EventService = Depends(get_service),
):
    subject_key = service.admin_subject()
    response = await _poll(request, service, identity, subject_key, None, last_event_id, long_poll)
    return success_response("Admin events retrieved", response)
