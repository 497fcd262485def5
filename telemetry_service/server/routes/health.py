from fastapi import APIRouter, Depends

from telemetry_service.engine.errors import StoreUnavailableError
from telemetry_service.engine.service import EventService
from telemetry_service.server.dependencies import get_service
from telemetry_service.shared.route_utils import error_response, success_response

router = APIRouter()


async def health_check(service: EventService = Depends(get_service)):
    try:
        await service.check_health()
    except StoreUnavailableError as e:
        return error_response(503, "Service is unhealthy", {
            "service": "telemetry",
            "status": "unhealthy",
            "dependencies": {"store": "disconnected"},
            "error": str(e),
        })
    return success_response("Telemetry service is healthy", {
        "service": "telemetry",
        "status": "healthy",
        "dependencies": {"store": "connected"},
    })


router.add_api_route("/health", health_check, methods=["GET", "HEAD"])
router.add_api_route("/v1/ping", health_check, methods=["GET"])
router.add_api_route("/v1/internal/ping", health_check, methods=["GET"])
