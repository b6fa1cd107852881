"""Republish sink: forwards every snapshot to an MQTT broker.

Broker availability is best-effort.  Any broker problem is raised to
the caller, which wraps this sink in ``retry_forever`` so a fresh
connection is made after the retry delay.  A snapshot taken off the
subscription stays pending on the sink until a broker has accepted it,
so reconnecting neither loses nor repeats it.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from tesla_agent.broadcast import Subscription
from tesla_agent.config import AgentSettings
from tesla_agent.exceptions import MQTTDisconnectedError
from tesla_agent.mqtt_client import MQTTConnection, redact_uri
from tesla_agent.sinks.base import Sink
from tesla_agent.vehicle_data import VehicleData

logger = structlog.get_logger(__name__)

CONTENT_TYPE = "application/json"

Connector = Callable[[AgentSettings], Awaitable[MQTTConnection]]


class MQTTSink(Sink):
    """Publishes snapshots as retained QoS 2 messages with a bounded expiry."""

    name = "mqtt"

    def __init__(
        self,
        settings: AgentSettings,
        *,
        connect: Connector = MQTTConnection.open,
    ) -> None:
        self._settings = settings
        self._connect = connect
        self._pending: Optional[VehicleData] = None

    @property
    def pending(self) -> Optional[VehicleData]:
        """Snapshot received but not yet acknowledged by a broker."""
        return self._pending

    async def run(self, subscription: Subscription[VehicleData]) -> None:
        uri = redact_uri(self._settings.mqtt_uri)
        logger.info("mqtt_connecting", uri=uri)
        conn = await self._connect(self._settings)
        logger.info("mqtt_connected", uri=uri, server_properties=str(conn.server_properties))

        try:
            while True:
                self._ensure_connected(conn)
                if self._pending is None:
                    await self._receive(conn, subscription)
                else:
                    logger.info("mqtt_redelivering", topic=self._settings.mqtt_topic)
                logger.debug("mqtt_delivering", topic=self._settings.mqtt_topic)
                await conn.publish(
                    self._settings.mqtt_topic,
                    self._pending,
                    qos=2,
                    retain=True,
                    message_expiry=self._settings.mqtt_message_expiry_seconds,
                    content_type=CONTENT_TYPE,
                    timeout=self._settings.mqtt_publish_timeout_seconds,
                )
                self._pending = None
                logger.debug("mqtt_delivered", topic=self._settings.mqtt_topic)
        finally:
            logger.warning("mqtt_disconnecting", uri=uri)
            await conn.disconnect()
            logger.info("mqtt_disconnected", uri=uri)

    async def _receive(
        self, conn: MQTTConnection, subscription: Subscription[VehicleData]
    ) -> None:
        """Move the next snapshot into the pending slot.

        Raises ``MQTTDisconnectedError`` as soon as the connection ends
        while waiting; nothing is taken off the subscription then.
        """
        receiving = asyncio.ensure_future(subscription.receive())
        closing = asyncio.ensure_future(conn.wait_closed())
        try:
            await asyncio.wait(
                {receiving, closing}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            closing.cancel()
            if not receiving.done():
                receiving.cancel()
            await asyncio.gather(receiving, closing, return_exceptions=True)
            if receiving.done() and not receiving.cancelled() and receiving.exception() is None:
                self._pending = receiving.result()

        if self._pending is not None:
            return
        if not closing.cancelled() and closing.exception() is not None:
            raise closing.exception()
        raise MQTTDisconnectedError(
            f"Connection to {redact_uri(self._settings.mqtt_uri)} closed"
        )

    def _ensure_connected(self, conn: MQTTConnection) -> None:
        if not conn.is_connected():
            raise MQTTDisconnectedError(
                f"Not connected to {redact_uri(self._settings.mqtt_uri)}"
            )
