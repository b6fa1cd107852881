"""Shared pytest fixtures for tesla_agent tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest

from tesla_agent.config import AgentSettings

# 2024-05-01T12:00:00Z in epoch milliseconds
SAMPLE_TS_MS = 1714564800000


def _vehicle_data(
    *,
    user_present: bool = False,
    charger_power: Optional[float] = 0,
    ts_ms: Optional[int] = SAMPLE_TS_MS,
    odometer: float = 12345.6,
) -> bytes:
    vehicle_state: Dict[str, Any] = {"is_user_present": user_present, "odometer": odometer}
    if ts_ms is not None:
        vehicle_state["timestamp"] = ts_ms
    charge_state: Dict[str, Any] = {"battery_level": 80}
    if charger_power is not None:
        charge_state["charger_power"] = charger_power
    payload = {
        "id_s": "1234567890",
        "display_name": "my car",
        "vehicle_state": vehicle_state,
        "charge_state": charge_state,
    }
    return json.dumps(payload, separators=(",", ":")).encode()


@pytest.fixture()
def make_vehicle_data() -> Callable[..., bytes]:
    """Factory for raw ``vehicle_data`` payloads with chosen flags."""
    return _vehicle_data


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "tesla.db")


@pytest.fixture()
def settings(db_path: str) -> AgentSettings:
    """Settings with production scheduling values and a temp database."""
    return AgentSettings(
        db_path=db_path,
        vehicle_name="my car",
        mqtt_uri="mqtt://broker.test/",
        mqtt_topic="test/tesla",
    )


@pytest.fixture()
def fast_settings(db_path: str) -> AgentSettings:
    """Settings with millisecond timings for tests that really wait."""
    return AgentSettings(
        db_path=db_path,
        vehicle_name="my car",
        mqtt_uri="mqtt://broker.test/",
        mqtt_topic="test/tesla",
        fetch_timeout_seconds=0.05,
        fetch_retry_seconds=0.01,
        nap_user_present_seconds=0.01,
        nap_charging_seconds=0.01,
        nap_idle_seconds=0.01,
        sink_retry_delay_seconds=0.01,
        watchdog_timeout_seconds=0.2,
    )
