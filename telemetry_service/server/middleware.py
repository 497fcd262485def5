"""
MODULE OVERVIEW:
FastAPI middleware to track request timings and tag requests with an id.

WHAT IS HAPPENING HERE:
We add an `X-Process-Time-Ms` header so callers can tell a slow store round-trip from a
long-poll that was simply held open until its deadline. An `X-Request-Id` sent by the
gateway is echoed back (or one is minted here) so a publish and the poll that delivered
it can be matched up in the logs.
"""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

REQUEST_ID_HEADER = "X-Request-Id"


class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        with logger.contextualize(request_id=request_id):
            response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.2f}"
        response.headers[REQUEST_ID_HEADER] = request_id

        # Polls are too frequent to log one line each
        if "/polling/" not in request.url.path:
            logger.debug(f"request_id={request_id} {request.method} {request.url.path} "
                         f"status={response.status_code} elapsed_ms={elapsed_ms:.2f}")

        return response
