"""
MODULE OVERVIEW:
A polling consumer for the telemetry service, used by the CLI and by integration tests.

WHAT IS HAPPENING HERE:
The client owns the cursor. Each cycle sends `lastEventId` from the previous response
and stores the new one, so a reconnect resumes right after the last delivered event
(or from the earliest retained event if that cursor has since expired).

In long-poll mode the HTTP timeout is set HIGHER than the server's long-poll timeout, so
a quiet cycle comes back as a normal empty batch and we re-issue immediately. In short-poll
mode we sleep for the server's `pollIntervalMs` hint between calls. Transport errors
bubble up to `with_reconnect`, which backs off exponentially.
"""
import asyncio
from typing import Awaitable, Callable

import httpx

from telemetry_service.client.client_utils import make_client_stats, with_reconnect
from telemetry_service.shared.enums import EventType, UserRole
from telemetry_service.shared.models import ApiResponse, Event, PollResponse

SCOPE_PATHS = {
    "user": "/v1/polling/user/events",
    "admin": "/v1/polling/admin/events",
    "filtered": "/v1/polling/events",
}


class LongPollClient:
    def __init__(
        self,
        server_base_url: str,
        user_id: str,
        role: UserRole | str = UserRole.CUSTOMER,
        scope: str = "user",
        event_type: EventType | None = None,
        long_poll: bool = True,
        server_timeout_s: float = 25.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        if scope not in SCOPE_PATHS:
            raise ValueError(f"unknown scope {scope!r}, expected one of {sorted(SCOPE_PATHS)}")
        self.server_base_url = server_base_url.rstrip('/')
        self.user_id = user_id
        self.role = UserRole(role).value
        self.scope = scope
        self.event_type = event_type
        self.long_poll = long_poll
        self.last_event_id: str | None = None

        self.on_event_callback: Callable[[Event], Awaitable[None]] | None = None
        self.stats = make_client_stats()
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=server_timeout_s + 10.0)

    def set_callback(self, on_event: Callable[[Event], Awaitable[None]]) -> None:
        self.on_event_callback = on_event

    def _params(self) -> dict:
        params = {"longPoll": "true" if self.long_poll else "false"}
        if self.last_event_id:
            params["lastEventId"] = self.last_event_id
        if self.event_type is not None:
            params["eventType"] = EventType(self.event_type).value
        return params

    async def poll_once(self) -> PollResponse:
        response = await self.client.get(
            f"{self.server_base_url}{SCOPE_PATHS[self.scope]}",
            params=self._params(),
            headers={"X-User-Id": self.user_id, "X-User-Role": self.role},
        )
        response.raise_for_status()
        envelope = ApiResponse.model_validate(response.json())
        poll_resp = PollResponse.model_validate(envelope.data)

        if poll_resp.last_event_id:
            self.last_event_id = poll_resp.last_event_id
        if not poll_resp.events:
            self.stats["empty_responses"] += 1
        for event in poll_resp.events:
            self.stats["events_received"] += 1
            self.stats["last_event_at"] = event.timestamp.isoformat()
            if self.on_event_callback:
                await self.on_event_callback(event)
        return poll_resp

    async def connect(self) -> None:
        poll_resp = await self.poll_once()
        if not self.long_poll:
            await asyncio.sleep(poll_resp.poll_interval_ms / 1000.0)

    async def disconnect(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def run(self, duration_s: float = 60.0) -> None:
        try:
            await with_reconnect(self.connect, self.stats, duration_s, client_id=self.user_id)
        except asyncio.CancelledError:
            pass
        finally:
            await self.disconnect()
