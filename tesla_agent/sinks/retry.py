"""Fault isolation: restart a sink after a fixed delay, indefinitely."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


async def retry_forever(
    name: str,
    run: Callable[[], Awaitable[None]],
    *,
    delay: float = 5.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Call *run* again whenever it ends, never returning.

    Each failure is logged with *name* and followed by a constant
    *delay* (no growth, no jitter).  A normal return is restarted the
    same way.  Cancellation is never caught.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            await run()
        except Exception as exc:
            logger.error(
                "sink_failed",
                sink=name,
                attempt=attempt,
                error=repr(exc),
                retry_in=delay,
            )
        else:
            logger.warning("sink_returned", sink=name, attempt=attempt, retry_in=delay)
        await sleep(delay)
