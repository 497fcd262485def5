from telemetry_service.engine.errors import InvalidFilterError
from telemetry_service.shared.enums import ActionType, EventType


def parse_event_type(value: EventType | str | None) -> EventType | None:
    """Empty means "no filter"; anything else must be a known event type."""
    if value is None or value == "":
        return None
    try:
        return EventType(value)
    except ValueError:
        raise InvalidFilterError(f"Invalid event type: {value!r}") from None


def parse_action(value: ActionType | str) -> ActionType:
    try:
        return ActionType(value)
    except ValueError:
        raise InvalidFilterError(f"Invalid action: {value!r}") from None
