import asyncio
import random
from datetime import datetime, timezone
from typing import Awaitable, Callable

import httpx
from loguru import logger


def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Keys: events_received, empty_responses, reconnect_count,
          last_event_at, connected_at.
    """
    return {
        "events_received": 0,
        "empty_responses": 0,
        "reconnect_count": 0,
        "last_event_at": None,
        "connected_at": datetime.now(timezone.utc).isoformat()
    }


# 4xx statuses that are still worth retrying
RETRYABLE_CLIENT_STATUSES = {408, 429}


def is_retryable(error: Exception) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return not (400 <= status < 500) or status in RETRYABLE_CLIENT_STATUSES
    return True


def backoff_delay(attempt: int, base_delay_s: float = 1.0, max_delay_s: float = 32.0) -> float:
    """Capped exponential backoff with up to 10% jitter."""
    delay = min(base_delay_s * (2 ** attempt), max_delay_s)
    return delay + random.uniform(0, delay * 0.1)


async def with_reconnect(
    connect_fn: Callable[[], Awaitable[None]],
    stats: dict,
    duration_s: float,
    base_delay_s: float = 1.0,
    max_delay_s: float = 32.0,
    client_id: str = "unknown",
) -> None:
    """
    Calls `connect_fn` over and over until `duration_s` has elapsed, backing off
    exponentially after transport errors and 5xx, 408 or 429 responses. Any other
    4xx, and any other exception, propagates.
    """
    loop = asyncio.get_running_loop()
    attempt = 0
    start_time = loop.time()

    while True:
        elapsed = loop.time() - start_time
        if elapsed >= duration_s:
            break

        try:
            # Cap each cycle at the remaining duration
            remaining = duration_s - elapsed
            await asyncio.wait_for(connect_fn(), timeout=remaining)
            attempt = 0
        except asyncio.TimeoutError:
            break
        except (ConnectionError, OSError, httpx.HTTPError) as e:
            if not is_retryable(e):
                logger.error(f"client_id={client_id} event=giving_up error='{e}'")
                raise
            attempt += 1
            delay = backoff_delay(attempt, base_delay_s, max_delay_s)
            stats["reconnect_count"] += 1
            logger.warning(f"client_id={client_id} attempt={attempt} delay={delay:.2f}s error='{e}'")
            remaining = duration_s - (loop.time() - start_time)
            if remaining <= 0:
                break
            try:
                await asyncio.wait_for(asyncio.sleep(delay), timeout=remaining)
            except asyncio.TimeoutError:
                break
