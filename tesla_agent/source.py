"""Abstract collaborators the gatherer polls."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict

from tesla_agent.schemas import AuthInfo
from tesla_agent.vehicle_data import VehicleData


class TelemetrySource(ABC):
    """Remote API that lists vehicles and returns telemetry snapshots.

    Concrete implementation: ``TeslaClient`` (owner API over httpx).
    """

    @abstractmethod
    async def vehicles(self, auth: AuthInfo) -> Dict[str, str]:
        """Return ``{display_name: vehicle_id}`` for the account."""

    @abstractmethod
    async def vehicle_data(self, auth: AuthInfo, vehicle_id: str) -> VehicleData:
        """Return one raw telemetry snapshot for *vehicle_id*."""


class CredentialProvider(ABC):
    """Supplies usable credentials.

    Implementations must not cache: every call reflects the currently
    persisted auth state so an external token renewal is picked up on
    the next poll.
    """

    @abstractmethod
    async def current_credentials(self) -> AuthInfo:
        """Return credentials derived from the persisted auth state."""
