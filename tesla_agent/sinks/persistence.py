"""Persistence sink: one durable write per received snapshot."""

from __future__ import annotations

import asyncio

import structlog

from tesla_agent.broadcast import Subscription
from tesla_agent.sinks.base import Sink
from tesla_agent.store import DataStore
from tesla_agent.vehicle_data import VehicleData

logger = structlog.get_logger(__name__)


class DBSink(Sink):
    """Appends every snapshot to the ``DataStore`` in delivery order.

    Storage errors propagate: losing the ability to persist ends the
    agent.
    """

    name = "db"

    def __init__(self, store: DataStore) -> None:
        self._store = store

    async def run(self, subscription: Subscription[VehicleData]) -> None:
        await asyncio.to_thread(self._store.ensure_schema)
        logger.info("db_sink_started", db_path=self._store.db_path)

        while True:
            data = await subscription.receive()
            ts = await asyncio.to_thread(self._store.append, data)
            logger.debug(
                "snapshot_stored",
                ts=ts.astimezone().isoformat(),
                payload_bytes=len(data),
                backlog=subscription.backlog,
            )
