import asyncio
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel


def _jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    return data


def success_response(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    body: dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = _jsonable(data)
    return JSONResponse(status_code=status_code, content=body)


def error_response(status_code: int, message: str, error: Any = None) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        body["error"] = _jsonable(error)
    return JSONResponse(status_code=status_code, content=body)


async def log_connection(route: str, user_id: str, extra: dict | None = None) -> None:
    """
    Single structured log entry for a poll connection.
    Every polling route calls this once on connect and once on disconnect.
    """
    log_str = f"route={route} user_id={user_id}"
    for k, v in (extra or {}).items():
        log_str += f" {k}={v}"
    logger.info(log_str)


async def watch_disconnect(request: Request, cancel: asyncio.Event, interval_s: float = 0.5) -> None:
    """Set `cancel` as soon as the HTTP client goes away. Runs until cancelled."""
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.debug(f"path={request.url.path} event=client_disconnected")
            cancel.set()
            return
        await asyncio.sleep(interval_s)
