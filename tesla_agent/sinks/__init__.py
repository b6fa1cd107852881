"""Snapshot consumers.

* ``DBSink``       -- durably stores every snapshot.
* ``MQTTSink``     -- republishes every snapshot to a broker.
* ``WatchdogSink`` -- ends the process when snapshots stop arriving.

``retry_forever`` isolates a sink's failures from the rest of the agent.
"""

from tesla_agent.sinks.base import Sink
from tesla_agent.sinks.mqtt import MQTTSink
from tesla_agent.sinks.persistence import DBSink
from tesla_agent.sinks.retry import retry_forever
from tesla_agent.sinks.watchdog import WatchdogSink

__all__ = ["DBSink", "MQTTSink", "Sink", "WatchdogSink", "retry_forever"]
