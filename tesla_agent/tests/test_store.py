"""Tests for tesla_agent.store and the persistence sink."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import pytest

from tesla_agent.broadcast import BroadcastChannel
from tesla_agent.exceptions import InvalidSnapshotError, StorageError
from tesla_agent.sinks.persistence import DBSink
from tesla_agent.store import DataStore


def test_ensure_schema_is_idempotent(db_path: str) -> None:
    store = DataStore(db_path)
    store.ensure_schema()
    store.ensure_schema()
    assert store.count() == 0
    assert store.latest() is None
    store.close()


def test_append_keeps_payload_verbatim(db_path: str, make_vehicle_data) -> None:
    store = DataStore(db_path)
    store.ensure_schema()
    first = make_vehicle_data(ts_ms=1714564800000)
    second = make_vehicle_data(ts_ms=1714564860000, odometer=12346.0)

    store.append(first)
    ts = store.append(second)

    assert store.count() == 2
    latest_ts, latest_data = store.latest()
    assert latest_data == second
    assert latest_ts == datetime(2024, 5, 1, 12, 1, 0)
    assert ts.tzinfo is not None
    store.close()


def test_append_without_timestamp_rejected(db_path: str, make_vehicle_data) -> None:
    store = DataStore(db_path)
    store.ensure_schema()
    with pytest.raises(InvalidSnapshotError):
        store.append(make_vehicle_data(ts_ms=None))
    assert store.count() == 0
    store.close()


def test_append_without_schema_is_storage_error(db_path: str, make_vehicle_data) -> None:
    store = DataStore(db_path)
    with pytest.raises(StorageError) as excinfo:
        store.append(make_vehicle_data())
    assert excinfo.value.exit_code == 4
    store.close()


def test_unwritable_path_is_storage_error(tmp_path: Path) -> None:
    store = DataStore(str(tmp_path / "missing-dir" / "tesla.db"))
    with pytest.raises(StorageError):
        store.ensure_schema()
    store.close()


@pytest.mark.asyncio
async def test_db_sink_stores_every_snapshot_in_order(db_path: str, make_vehicle_data) -> None:
    store = DataStore(db_path)
    store.ensure_schema()
    channel: BroadcastChannel[bytes] = BroadcastChannel()
    sub = channel.subscribe()
    task = asyncio.create_task(DBSink(store).run(sub))

    payloads = [make_vehicle_data(ts_ms=1714564800000 + i * 60000) for i in range(5)]
    for data in payloads:
        channel.publish(data)

    async def _until_stored() -> None:
        while await asyncio.to_thread(store.count) < len(payloads):
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_until_stored(), timeout=5.0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.latest()[1] == payloads[-1]
    store.close()


@pytest.mark.asyncio
async def test_db_sink_failure_propagates(tmp_path: Path, make_vehicle_data) -> None:
    store = DataStore(str(tmp_path / "missing-dir" / "tesla.db"))
    channel: BroadcastChannel[bytes] = BroadcastChannel()

    with pytest.raises(StorageError):
        await asyncio.wait_for(DBSink(store).run(channel.subscribe()), timeout=5.0)
    store.close()
