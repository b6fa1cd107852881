"""Tesla Agent -- vehicle telemetry logger.

Polls the Tesla owner API for one vehicle, stores every
``vehicle_data`` snapshot in SQLite and optionally republishes it to
an MQTT broker.  A watchdog ends the process when snapshots stop
arriving so an external supervisor can restart it.
"""

__version__ = "0.1.0"
