"""Closed vocabularies carried by every notification event."""
from enum import Enum


class EventType(str, Enum):
    CUSTOMER_ORDER_STATUS = "CUSTOMER_ORDER_STATUS"
    ADMIN_NEW_ORDER = "ADMIN_NEW_ORDER"
    ADMIN_ORDER_UPDATE = "ADMIN_ORDER_UPDATE"
    INVENTORY_UPDATE = "INVENTORY_UPDATE"
    PAYMENT_STATUS = "PAYMENT_STATUS"
    SYSTEM_NOTIFICATION = "SYSTEM_NOTIFICATION"


class ActionType(str, Enum):
    """Hint telling the client what to do with its view of the entity."""
    REFRESH = "REFRESH"
    FETCH_NEW = "FETCH_NEW"
    UPDATE_PARTIAL = "UPDATE_PARTIAL"
    REMOVE = "REMOVE"
    NO_ACTION = "NO_ACTION"


class UserRole(str, Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"
