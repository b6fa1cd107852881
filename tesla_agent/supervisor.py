"""Task wiring and process lifetime.

``supervise`` runs a set of tasks that are all expected to run
forever and ends as soon as the first one finishes: the remaining
tasks are cancelled and joined (so their ``finally`` blocks release
broker connections and store handles) before the outcome is reported.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Awaitable, Callable, Dict, Mapping, Optional

import structlog

from tesla_agent.auth_store import AuthStore
from tesla_agent.broadcast import BroadcastChannel
from tesla_agent.config import AgentSettings
from tesla_agent.exceptions import ConfigError, TaskExitedError
from tesla_agent.gatherer import Gatherer
from tesla_agent.mqtt_client import RETAIN_SEND_IF_NEW_SUB, MQTTConnection, redact_uri
from tesla_agent.schemas import AuthInfo
from tesla_agent.sinks import DBSink, MQTTSink, WatchdogSink, retry_forever
from tesla_agent.source import CredentialProvider, TelemetrySource
from tesla_agent.store import DataStore
from tesla_agent.tesla_api import TeslaClient
from tesla_agent.vehicle_data import VehicleData

logger = structlog.get_logger(__name__)

_SHUTDOWN_TASK = "shutdown"


async def supervise(
    tasks: Mapping[str, Awaitable[None]],
    *,
    shutdown: Optional[asyncio.Event] = None,
) -> None:
    """Run *tasks* concurrently until the first one finishes.

    Parameters
    ----------
    tasks:
        ``{name: coroutine}``; none of them is expected to return.
    shutdown:
        When set, supervision ends cleanly.

    Raises:
        Exception: whatever the first finished task raised.
        TaskExitedError: the first finished task returned normally.
    """
    running: Dict[asyncio.Task, str] = {
        asyncio.ensure_future(coro): name for name, coro in tasks.items()
    }
    if shutdown is not None:
        running[asyncio.ensure_future(shutdown.wait())] = _SHUTDOWN_TASK

    try:
        done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)

    # Report in registration order so simultaneous exits are deterministic.
    first = next(task for task in running if task in done)
    name = running[first]
    if name == _SHUTDOWN_TASK:
        logger.info("shutdown_complete")
        return
    exc = first.exception()
    if exc is not None:
        logger.error("task_failed", task=name, error=repr(exc))
        raise exc
    logger.error("task_exited", task=name)
    raise TaskExitedError(name)


def install_signal_handlers(shutdown: asyncio.Event) -> None:
    """Set *shutdown* on SIGINT/SIGTERM (POSIX only)."""

    def _request_shutdown() -> None:
        logger.info("shutdown_requested")
        shutdown.set()

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_shutdown)
    # On Windows, SIGINT is handled by the default KeyboardInterrupt.


async def run_gatherer(
    settings: AgentSettings,
    *,
    source: Optional[TelemetrySource] = None,
    credentials: Optional[CredentialProvider] = None,
    store: Optional[DataStore] = None,
    mqtt_connect: Callable[[AgentSettings], Awaitable[MQTTConnection]] = MQTTConnection.open,
    shutdown: Optional[asyncio.Event] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Data path: gather -> broadcast -> {db, watchdog, mqtt}.

    Collaborators default to the real owner API client, the SQLite
    auth table and store at ``settings.db_path``.  *sleep* is the
    gatherer's pause between polls.
    """
    channel: BroadcastChannel[VehicleData] = BroadcastChannel(
        max_backlog=settings.channel_max_backlog
    )

    owned_client: Optional[TeslaClient] = None
    if source is None:
        owned_client = TeslaClient(settings)
        await owned_client.start()
        source = owned_client
    owned_auth: Optional[AuthStore] = None
    if credentials is None:
        owned_auth = AuthStore(settings.db_path)
        credentials = owned_auth
    owned_store: Optional[DataStore] = None
    if store is None:
        owned_store = DataStore(settings.db_path)
        store = owned_store

    # Subscribe before the producer starts so the first snapshot reaches every sink.
    db_sub = channel.subscribe()
    watchdog_sub = channel.subscribe()
    tasks: Dict[str, Awaitable[None]] = {
        "db": DBSink(store).run(db_sub),
        "watchdog": WatchdogSink(settings.watchdog_timeout_seconds).run(watchdog_sub),
    }
    if settings.mqtt_enabled:
        mqtt_sub = channel.subscribe()
        mqtt_sink = MQTTSink(settings, connect=mqtt_connect)
        tasks["mqtt"] = retry_forever(
            mqtt_sink.name,
            lambda: mqtt_sink.run(mqtt_sub),
            delay=settings.sink_retry_delay_seconds,
        )

    gatherer = Gatherer(settings, source, credentials, channel, sleep=sleep)
    logger.info(
        "gatherer_starting",
        vehicle_name=settings.vehicle_name,
        db_path=settings.db_path,
        sinks=sorted(tasks),
    )
    try:
        await supervise({"gatherer": gatherer.run(), **tasks}, shutdown=shutdown)
    finally:
        if owned_client is not None:
            await owned_client.close()
        if owned_auth is not None:
            owned_auth.close()
        if owned_store is not None:
            owned_store.close()


async def run_catcher(
    settings: AgentSettings,
    *,
    store: Optional[DataStore] = None,
    mqtt_connect: Callable[..., Awaitable[MQTTConnection]] = MQTTConnection.open,
    shutdown: Optional[asyncio.Event] = None,
) -> None:
    """Bridge mode: MQTT subscription -> broadcast -> db.

    A persistent MQTT session keeps messages published while the
    catcher was down; a broker disconnect ends supervision.
    """
    channel: BroadcastChannel[VehicleData] = BroadcastChannel(
        max_backlog=settings.channel_max_backlog
    )
    db_sub = channel.subscribe()

    owned_store: Optional[DataStore] = None
    if store is None:
        owned_store = DataStore(settings.db_path)
        store = owned_store

    def on_message(topic: str, payload: bytes) -> None:
        logger.debug("mqtt_message_received", topic=topic, payload_bytes=len(payload))
        channel.publish(payload)

    uri = redact_uri(settings.mqtt_uri)
    logger.info("catcher_connecting", uri=uri, topic=settings.mqtt_topic)
    conn = await mqtt_connect(
        settings,
        clean_start=settings.mqtt_clean_session,
        connect_properties={
            "ReceiveMaximum": 65535,
            "SessionExpiryInterval": settings.mqtt_session_expiry_seconds,
            "TopicAliasMaximum": 10,
            "RequestResponseInformation": 1,
            "RequestProblemInformation": 1,
        },
        on_message=on_message,
    )
    try:
        logger.debug("mqtt_connected", uri=uri, server_properties=str(conn.server_properties))
        codes = await conn.subscribe(
            settings.mqtt_topic,
            qos=2,
            retain_handling=RETAIN_SEND_IF_NEW_SUB,
        )
        logger.debug("mqtt_subscribed", topic=settings.mqtt_topic, reason_codes=[str(c) for c in codes])
        await supervise(
            {"db": DBSink(store).run(db_sub), "mqtt": conn.wait_closed()},
            shutdown=shutdown,
        )
    finally:
        await conn.disconnect()
        if owned_store is not None:
            owned_store.close()


async def run_login(
    settings: AgentSettings,
    *,
    client: Optional[TeslaClient] = None,
    auth_store: Optional[AuthStore] = None,
) -> None:
    """Obtain a token with the password grant and store it."""
    missing = [
        field
        for field in ("tesla_client_id", "tesla_client_secret", "tesla_email", "tesla_password")
        if not getattr(settings, field)
    ]
    if missing:
        raise ConfigError(f"Login requires settings: {', '.join(missing)}")

    account = AuthInfo(
        client_id=settings.tesla_client_id,
        client_secret=settings.tesla_client_secret,
        email=settings.tesla_email,
        password=settings.tesla_password,
    )
    tesla = client or TeslaClient(settings)
    store = auth_store or AuthStore(settings.db_path)
    await tesla.start()
    try:
        auth = await tesla.authenticate(account)
        await asyncio.to_thread(store.save_auth, auth)
    finally:
        if client is None:
            await tesla.close()
        if auth_store is None:
            store.close()
    logger.info("login_complete", email=settings.tesla_email, expires_in=auth.expires_in)
