"""
Request-scoped dependencies.

Token validation happens at the gateway in front of this service; by the time a request
reaches us the caller's identity travels in the `X-User-Id` / `X-User-Role` headers.
"""
from dataclasses import dataclass

from fastapi import Depends, Header, Request

from telemetry_service.engine.errors import SubjectAccessError, TelemetryError
from telemetry_service.engine.service import EventService
from telemetry_service.shared.enums import UserRole


class MissingIdentityError(TelemetryError):
    """No caller identity was forwarded with the request."""


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role.upper() == UserRole.ADMIN.value


def get_service(request: Request) -> EventService:
    return request.app.state.event_service


def require_user(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Identity:
    if not x_user_id:
        raise MissingIdentityError("Unauthorized access")
    return Identity(user_id=x_user_id, role=x_user_role or UserRole.CUSTOMER.value)


def require_admin(identity: Identity = Depends(require_user)) -> Identity:
    if not identity.is_admin:
        raise SubjectAccessError("Admin access required")
    return identity
