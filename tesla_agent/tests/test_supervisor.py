"""Tests for tesla_agent.supervisor -- lifetime race and end-to-end wiring."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from tesla_agent.config import AgentSettings
from tesla_agent.exceptions import (
    StorageError,
    TaskExitedError,
    VehicleNotFoundError,
    WatchdogTimeoutError,
)
from tesla_agent.schemas import AuthInfo
from tesla_agent.source import CredentialProvider, TelemetrySource
from tesla_agent.store import DataStore
from tesla_agent.supervisor import run_catcher, run_gatherer, supervise


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class ScriptedSource(TelemetrySource):
    """Serves scripted results, then hangs; ``None`` simulates a timeout."""

    def __init__(self, results: List[Optional[bytes]], vehicles: Optional[Dict[str, str]] = None) -> None:
        self._results = list(results)
        self._vehicles = vehicles if vehicles is not None else {"my car": "42"}
        self.fetches = 0

    async def vehicles(self, auth: AuthInfo) -> Dict[str, str]:
        return self._vehicles

    async def vehicle_data(self, auth: AuthInfo, vehicle_id: str) -> bytes:
        self.fetches += 1
        result = self._results.pop(0) if self._results else None
        if result is None:
            await asyncio.Event().wait()
        return result  # type: ignore[return-value]


class StaticCredentials(CredentialProvider):
    async def current_credentials(self) -> AuthInfo:
        return AuthInfo.from_token("tok")


class FakeConnection:
    def __init__(self) -> None:
        self.published: List[Dict[str, Any]] = []
        self.disconnects = 0
        self.server_properties = None
        self.subscriptions: List[Dict[str, Any]] = []
        self.on_message: Optional[Callable[[str, bytes], None]] = None
        self.closed = asyncio.Event()

    def is_connected(self) -> bool:
        return self.disconnects == 0

    async def publish(self, topic: str, payload: bytes, **kwargs: Any) -> None:
        self.published.append({"topic": topic, "payload": payload, **kwargs})

    async def subscribe(self, topic: str, **kwargs: Any) -> List[int]:
        self.subscriptions.append({"topic": topic, **kwargs})
        return [2]

    async def wait_closed(self) -> None:
        await self.closed.wait()

    async def disconnect(self) -> None:
        self.disconnects += 1


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


# ---------------------------------------------------------------------------
# supervise
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_first_failure_cancels_the_rest() -> None:
    cancelled: List[str] = []

    async def forever(name: str) -> None:
        try:
            await asyncio.Event().wait()
        finally:
            cancelled.append(name)

    async def fails() -> None:
        await asyncio.sleep(0.01)
        raise StorageError("disk full")

    with pytest.raises(StorageError, match="disk full"):
        await supervise({"a": forever("a"), "db": fails(), "b": forever("b")})

    assert sorted(cancelled) == ["a", "b"]


@pytest.mark.asyncio
async def test_normal_exit_ends_supervision() -> None:
    async def returns() -> None:
        await asyncio.sleep(0.01)

    async def forever() -> None:
        await asyncio.Event().wait()

    with pytest.raises(TaskExitedError) as excinfo:
        await supervise({"gatherer": forever(), "watchdog": returns()})
    assert excinfo.value.task == "watchdog"
    assert excinfo.value.exit_code == 2


@pytest.mark.asyncio
async def test_shutdown_event_ends_cleanly() -> None:
    shutdown = asyncio.Event()
    finished = asyncio.Event()

    async def forever() -> None:
        try:
            await asyncio.Event().wait()
        finally:
            finished.set()

    asyncio.get_running_loop().call_later(0.01, shutdown.set)
    await supervise({"gatherer": forever()}, shutdown=shutdown)
    assert finished.is_set()


# ---------------------------------------------------------------------------
# run_gatherer
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_end_to_end_user_present_snapshot(settings: AgentSettings, make_vehicle_data) -> None:
    data = make_vehicle_data(user_present=True, charger_power=0)
    source = ScriptedSource([data])
    store = DataStore(settings.db_path)
    store.ensure_schema()
    conn = FakeConnection()
    sleeps: List[float] = []
    shutdown = asyncio.Event()

    async def connect(_settings: AgentSettings) -> FakeConnection:
        return conn

    async def recording_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        await asyncio.sleep(3600)

    task = asyncio.create_task(
        run_gatherer(
            settings,
            source=source,
            credentials=StaticCredentials(),
            store=store,
            mqtt_connect=connect,
            shutdown=shutdown,
            sleep=recording_sleep,
        )
    )
    await _wait_for(lambda: len(conn.published) == 1 and bool(sleeps))
    await _wait_for(lambda: store.count() == 1)

    assert store.latest()[1] == data
    assert conn.published[0]["payload"] == data
    assert conn.published[0]["message_expiry"] == 900
    assert sleeps == [60.0]

    shutdown.set()
    await asyncio.wait_for(task, timeout=2.0)
    assert conn.disconnects == 1
    store.close()


@pytest.mark.asyncio
async def test_timeouts_publish_nothing_until_watchdog_fires(
    fast_settings: AgentSettings, make_vehicle_data
) -> None:
    settings = fast_settings.model_copy(
        update={"fetch_retry_seconds": 0.05, "watchdog_timeout_seconds": 0.3}
    )
    source = ScriptedSource([None, None, None, None, None, None, None, None])
    store = DataStore(settings.db_path)
    store.ensure_schema()
    conn = FakeConnection()

    async def connect(_settings: AgentSettings) -> FakeConnection:
        return conn

    with pytest.raises(WatchdogTimeoutError):
        await asyncio.wait_for(
            run_gatherer(
                settings,
                source=source,
                credentials=StaticCredentials(),
                store=store,
                mqtt_connect=connect,
            ),
            timeout=5.0,
        )

    assert source.fetches >= 2
    assert store.count() == 0
    assert conn.published == []
    assert conn.disconnects == 1
    store.close()


@pytest.mark.asyncio
async def test_unknown_vehicle_ends_process(settings: AgentSettings) -> None:
    store = DataStore(settings.db_path)
    store.ensure_schema()
    settings = settings.model_copy(update={"mqtt_enabled": False})

    with pytest.raises(VehicleNotFoundError):
        await asyncio.wait_for(
            run_gatherer(
                settings,
                source=ScriptedSource([], vehicles={"someone else": "9"}),
                credentials=StaticCredentials(),
                store=store,
            ),
            timeout=5.0,
        )
    store.close()


@pytest.mark.asyncio
async def test_mqtt_disabled_runs_without_broker(fast_settings: AgentSettings, make_vehicle_data) -> None:
    settings = fast_settings.model_copy(update={"mqtt_enabled": False})
    store = DataStore(settings.db_path)
    store.ensure_schema()
    shutdown = asyncio.Event()

    async def connect(_settings: AgentSettings) -> FakeConnection:
        raise AssertionError("broker must not be contacted")

    task = asyncio.create_task(
        run_gatherer(
            settings,
            source=ScriptedSource([make_vehicle_data()]),
            credentials=StaticCredentials(),
            store=store,
            mqtt_connect=connect,
            shutdown=shutdown,
        )
    )
    await _wait_for(lambda: store.count() == 1)
    shutdown.set()
    await asyncio.wait_for(task, timeout=2.0)
    store.close()


# ---------------------------------------------------------------------------
# run_catcher
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_catcher_persists_broker_messages(settings: AgentSettings, make_vehicle_data) -> None:
    store = DataStore(settings.db_path)
    store.ensure_schema()
    conn = FakeConnection()
    connect_kwargs: Dict[str, Any] = {}

    async def connect(_settings: AgentSettings, **kwargs: Any) -> FakeConnection:
        connect_kwargs.update(kwargs)
        conn.on_message = kwargs["on_message"]
        return conn

    task = asyncio.create_task(run_catcher(settings, store=store, mqtt_connect=connect))
    await _wait_for(lambda: bool(conn.subscriptions))

    payloads = [make_vehicle_data(ts_ms=1714564800000 + i * 1000) for i in range(3)]
    for data in payloads:
        conn.on_message("test/tesla", data)
    await _wait_for(lambda: store.count() == 3)

    assert connect_kwargs["clean_start"] is False
    assert connect_kwargs["connect_properties"]["SessionExpiryInterval"] == 3600
    assert conn.subscriptions[0]["topic"] == "test/tesla"
    assert conn.subscriptions[0]["qos"] == 2

    # Broker goes away: wait_closed returns, supervision ends.
    conn.closed.set()
    with pytest.raises(TaskExitedError):
        await asyncio.wait_for(task, timeout=2.0)
    assert conn.disconnects == 1
    store.close()
