from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

log = logging.getLogger("walletauth.poller")

POLL_INTERVAL_SECONDS = 2.0
MAX_ATTEMPTS = 150

TIMEOUT = "timeout"


async def poll_until_terminal(
    fetch_status: Callable[[], Awaitable[str]],
    *,
    interval: float = POLL_INTERVAL_SECONDS,
    max_attempts: int = MAX_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> str:
    """
    Client side of the status endpoint: keep asking until the session is
    terminal or we give up.

    Returns ``"success"``, ``"failed"`` or ``"timeout"``. Server errors and
    transport failures count as another pending round.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            status = await fetch_status()
        except Exception as e:
            log.debug("poll attempt=%s transport error=%s", attempt, e)
            status = "error"

        if status in ("success", "failed"):
            log.info("poll finished attempt=%s status=%s", attempt, status)
            return status

        if attempt < max_attempts:
            await sleep(interval)

    log.info("poll gave up after attempts=%s", max_attempts)
    return TIMEOUT
