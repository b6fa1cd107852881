"""Field extraction from raw ``vehicle_data`` snapshots.

Snapshots travel through the agent as the exact bytes the owner API
returned.  The few fields the agent needs are read on demand here;
nothing else in the package parses the payload.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from tesla_agent.exceptions import InvalidSnapshotError

VehicleData = bytes


def _parse(data: VehicleData) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(data)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _section(data: VehicleData, name: str) -> Dict[str, Any]:
    parsed = _parse(data) or {}
    section = parsed.get(name)
    return section if isinstance(section, dict) else {}


def is_user_present(data: VehicleData) -> bool:
    """Return ``True`` when ``vehicle_state.is_user_present`` is set."""
    return _section(data, "vehicle_state").get("is_user_present") is True


def is_charging(data: VehicleData) -> bool:
    """Return ``True`` when the charger is delivering power."""
    power = _section(data, "charge_state").get("charger_power")
    if isinstance(power, bool) or not isinstance(power, (int, float)):
        return False
    return power > 0


def snapshot_timestamp(data: VehicleData) -> datetime:
    """Return the vehicle's own timestamp for *data* in UTC.

    The API reports ``vehicle_state.timestamp`` in epoch milliseconds.

    Raises:
        InvalidSnapshotError: the timestamp is missing or not numeric.
    """
    ts = _section(data, "vehicle_state").get("timestamp")
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        raise InvalidSnapshotError(
            "vehicle_data has no numeric vehicle_state.timestamp"
        )
    return datetime.fromtimestamp(ts / 1000.0, tz=timezone.utc)
