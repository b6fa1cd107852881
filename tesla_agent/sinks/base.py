"""Abstract base class for snapshot sinks."""

from __future__ import annotations

from abc import ABC, abstractmethod

from tesla_agent.broadcast import Subscription
from tesla_agent.vehicle_data import VehicleData


class Sink(ABC):
    """Long-running consumer performing one side effect per snapshot.

    Concrete implementations: ``DBSink``, ``MQTTSink``, ``WatchdogSink``.
    """

    name: str = "sink"

    @abstractmethod
    async def run(self, subscription: Subscription[VehicleData]) -> None:
        """Consume *subscription* until cancelled or a failure occurs."""
