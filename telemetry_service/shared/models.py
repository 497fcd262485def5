"""
MODULE OVERVIEW:
This module defines the strictly typed data structures shared by the engine, the HTTP
layer and the polling client, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
`Event` is the atomic unit of notification and is also the exact JSON stored as a
sorted-set member, so the wire format and the storage format never drift apart.
Field names are snake_case in Python and camelCase on the wire (aliases), matching what
the storefront and admin frontends already consume.
"""
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from telemetry_service.shared.enums import ActionType, EventType


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# WHAT IS HAPPENING HERE:
# `timestamp` is both the display time and the ordering key. The store only keeps
# whole seconds as the score (see `score`), the JSON keeps the full instant.
class Event(CamelModel):
    event_id: str = Field(default_factory=lambda: str(uuid4()), alias="eventId")
    event_type: EventType = Field(alias="eventType")
    action: ActionType
    entity_id: str = Field(alias="entityId")
    entity_type: str = Field(alias="entityType")
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    ttl: int

    @property
    def score(self) -> int:
        return int(self.timestamp.timestamp())

    def to_member(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_member(cls, member: str | bytes) -> "Event":
        return cls.model_validate_json(member)


# WHAT IS HAPPENING HERE:
# `last_event_id` is the cursor the client must echo back on its next call.
# `poll_interval_ms` is a static hint, shorter for plain polls, longer for long polls.
class PollResponse(CamelModel):
    events: list[Event]
    last_event_id: str = Field("", alias="lastEventId")
    poll_interval_ms: int = Field(alias="pollIntervalMs")
    has_more: bool = Field(alias="hasMore")


class EventPublishRequest(CamelModel):
    event_type: EventType = Field(alias="eventType")
    action: ActionType
    entity_id: str = Field(alias="entityId", min_length=1)
    entity_type: str = Field(alias="entityType", min_length=1)
    user_id: str | None = Field(None, alias="userId")
    metadata: dict[str, Any] = Field(default_factory=dict)


class OrderStatusChangeRequest(CamelModel):
    order_id: str = Field(alias="orderId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    new_status: str = Field(alias="newStatus", min_length=1)


class NewOrderEventRequest(CamelModel):
    order_id: str = Field(alias="orderId", min_length=1)
    customer_name: str = Field(alias="customerName", min_length=1)
    total_amount: str = Field(alias="totalAmount", min_length=1)


class OrderUpdateEventRequest(CamelModel):
    order_id: str = Field(alias="orderId", min_length=1)
    update_type: str = Field(alias="updateType", min_length=1)
    details: dict[str, Any] | None = None


class ApiResponse(BaseModel):
    """Uniform envelope for every HTTP response body."""
    success: bool
    message: str
    data: Any = None
    error: Any = None
