"""
MODULE OVERVIEW:
The FastAPI application factory.

WHAT IS HAPPENING HERE:
We use a `lifespan` context manager. On startup it builds the event log store and the
`EventService` from the frozen settings and parks the service on `app.state`. On
shutdown it drains in-flight background publishes, stops pending expiry sweeps and
closes the store connection pool, all bounded by SHUTDOWN_TIMEOUT_S.
"""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from telemetry_service.engine.errors import (
    InvalidFilterError,
    PollCancelledError,
    StoreUnavailableError,
    SubjectAccessError,
)
from telemetry_service.engine.service import EventService
from telemetry_service.engine.store import Clock, EventLogStore, build_store
from telemetry_service.server.dependencies import MissingIdentityError
from telemetry_service.server.middleware import TimingMiddleware
from telemetry_service.server.routes import health, internal, polling
from telemetry_service.shared.config import Settings, settings as default_settings
from telemetry_service.shared.log_config import configure_logging
from telemetry_service.shared.route_utils import error_response

# nginx's "client closed request"
CLIENT_CLOSED_REQUEST = 499


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(400, "Invalid request parameters", [
            {"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()
        ])

    @app.exception_handler(InvalidFilterError)
    async def invalid_filter_handler(request: Request, exc: InvalidFilterError):
        return error_response(400, str(exc))

    @app.exception_handler(MissingIdentityError)
    async def missing_identity_handler(request: Request, exc: MissingIdentityError):
        return error_response(401, str(exc))

    @app.exception_handler(SubjectAccessError)
    async def subject_access_handler(request: Request, exc: SubjectAccessError):
        return error_response(403, str(exc))

    @app.exception_handler(PollCancelledError)
    async def poll_cancelled_handler(request: Request, exc: PollCancelledError):
        return error_response(CLIENT_CLOSED_REQUEST, "Request cancelled")

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        logger.error(f"{request.method} {request.url.path} event=store_unavailable reason='{exc}'")
        return error_response(500, "Event store unavailable, retry later")


def create_app(
    settings: Settings = default_settings,
    store: EventLogStore | None = None,
    clock: Clock = time.time,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # STARTUP
        configure_logging(settings.LOG_LEVEL)
        logger.info(f"Telemetry service starting up environment={settings.ENVIRONMENT} "
                    f"backend={settings.STORE_BACKEND}")
        event_store = store or build_store(settings, clock=clock)
        service = EventService(event_store, settings, clock=clock)
        app.state.event_service = service

        yield

        # SHUTDOWN
        logger.info("Server shutting down. Draining publishers...")
        try:
            await asyncio.wait_for(service.close(), timeout=settings.SHUTDOWN_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.warning(f"shutdown exceeded {settings.SHUTDOWN_TIMEOUT_S}s, giving up")
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="Telemetry Service",
        description="Near-real-time order and admin notifications over (long) polling",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(TimingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Authorization", "X-User-Id", "X-User-Role", "X-Request-Id"],
    )
    register_exception_handlers(app)

    app.include_router(health.router, tags=["Ops"])
    app.include_router(polling.router, tags=["Polling"])
    app.include_router(internal.router, tags=["Internal"])
    return app


app = create_app()
