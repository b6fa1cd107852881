"""Liveness monitor for the snapshot stream."""

from __future__ import annotations

import asyncio

import structlog

from tesla_agent.broadcast import Subscription
from tesla_agent.exceptions import WatchdogTimeoutError
from tesla_agent.sinks.base import Sink
from tesla_agent.vehicle_data import VehicleData

logger = structlog.get_logger(__name__)


class WatchdogSink(Sink):
    """Raises ``WatchdogTimeoutError`` when no snapshot arrives in time.

    The window restarts with every received snapshot.  Nothing else is
    done with the data.
    """

    name = "watchdog"

    def __init__(self, timeout: float = 1800.0) -> None:
        self._timeout = timeout

    async def run(self, subscription: Subscription[VehicleData]) -> None:
        logger.info("watchdog_started", timeout=self._timeout)
        while True:
            if not await self._next_within_window(subscription):
                logger.critical("watchdog_timeout", timeout=self._timeout)
                raise WatchdogTimeoutError(self._timeout)
            logger.debug("watchdog_reset")

    async def _next_within_window(self, subscription: Subscription[VehicleData]) -> bool:
        """Return whether a snapshot arrived before the window closed.

        Cancelling the watchdog always surfaces as ``CancelledError``,
        even when it races a delivery.
        """
        receiving = asyncio.ensure_future(subscription.receive())
        try:
            done, _ = await asyncio.wait({receiving}, timeout=self._timeout)
        finally:
            if not receiving.done():
                receiving.cancel()
                await asyncio.gather(receiving, return_exceptions=True)
        return bool(done)
