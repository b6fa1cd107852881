"""The single producer: polls the owner API and publishes snapshots."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from tesla_agent.broadcast import BroadcastChannel
from tesla_agent.config import AgentSettings
from tesla_agent.exceptions import TeslaApiError, VehicleNotFoundError
from tesla_agent.schemas import AuthInfo
from tesla_agent.source import CredentialProvider, TelemetrySource
from tesla_agent.vehicle_data import VehicleData, is_charging, is_user_present

logger = structlog.get_logger(__name__)


def naptime(data: VehicleData, settings: AgentSettings) -> float:
    """Seconds to wait before the next poll after fetching *data*.

    Poll often while someone is in the car, less while charging and
    rarely when the car is idle so it can go to sleep.
    """
    if is_user_present(data):
        return settings.nap_user_present_seconds
    if is_charging(data):
        return settings.nap_charging_seconds
    return settings.nap_idle_seconds


class Gatherer:
    """Polls one vehicle on an adaptive schedule.

    Parameters
    ----------
    settings:
        Fully-resolved agent configuration.
    source:
        Telemetry API.
    credentials:
        Asked for fresh credentials on every cycle.
    channel:
        Every fetched snapshot is published here exactly once.
    sleep:
        Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        settings: AgentSettings,
        source: TelemetrySource,
        credentials: CredentialProvider,
        channel: BroadcastChannel[VehicleData],
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._source = source
        self._credentials = credentials
        self._channel = channel
        self._sleep = sleep
        self._vehicle_id: Optional[str] = None

    @property
    def vehicle_id(self) -> Optional[str]:
        return self._vehicle_id

    async def run(self) -> None:
        """Poll forever; only unrecoverable errors escape."""
        while True:
            delay = await self.poll_once()
            await self._sleep(delay)

    async def poll_once(self) -> float:
        """Run one fetch-publish cycle and return the sleep that should follow."""
        auth = await self._credentials.current_credentials()
        vid = await self._resolve_vehicle_id(auth)

        logger.debug("fetching", vehicle_id=vid)
        try:
            data = await asyncio.wait_for(
                self._source.vehicle_data(auth, vid),
                timeout=self._settings.fetch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                "fetch_timed_out",
                vehicle_id=vid,
                timeout=self._settings.fetch_timeout_seconds,
                retry_in=self._settings.fetch_retry_seconds,
            )
            return self._settings.fetch_retry_seconds
        except TeslaApiError as exc:
            logger.error(
                "fetch_failed",
                vehicle_id=vid,
                error=str(exc),
                status=exc.status_code,
                retry_in=self._settings.fetch_retry_seconds,
            )
            return self._settings.fetch_retry_seconds

        receivers = self._channel.publish(data)
        delay = naptime(data, self._settings)
        logger.info(
            "snapshot_published",
            vehicle_id=vid,
            receivers=receivers,
            sleep=delay,
            user_present=is_user_present(data),
            charging=is_charging(data),
        )
        return delay

    async def _resolve_vehicle_id(self, auth: AuthInfo) -> str:
        if self._vehicle_id is None:
            vids = await self._source.vehicles(auth)
            name = self._settings.vehicle_name
            if name not in vids:
                raise VehicleNotFoundError(name, list(vids))
            self._vehicle_id = vids[name]
            logger.info("vehicle_resolved", vehicle_name=name, vehicle_id=self._vehicle_id)
        return self._vehicle_id
