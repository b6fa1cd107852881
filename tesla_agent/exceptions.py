"""Exception hierarchy for tesla_agent.

Every error carries the process exit status used when it ends the
agent, so an external supervisor can tell a watchdog timeout from a
storage failure.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base exception for all tesla_agent errors."""

    exit_code: int = 1


class ConfigError(AgentError):
    """Invalid or missing configuration."""


class TeslaApiError(AgentError):
    """Owner API returned an unusable response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class TeslaAuthError(TeslaApiError):
    """Bearer token rejected or login failed."""


class TeslaTransportError(TeslaApiError):
    """Network-level failure talking to the owner API."""


class VehicleNotFoundError(AgentError):
    """Configured vehicle name is not on the account."""

    exit_code = 5

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        listed = ", ".join(sorted(available)) or "<none>"
        super().__init__(f"Vehicle '{name}' not found. Available: {listed}")


class InvalidSnapshotError(AgentError):
    """Snapshot is missing a field required to store it."""


class StorageError(AgentError):
    """Durable store could not be read or written."""

    exit_code = 4


class MQTTError(AgentError):
    """Base class for broker failures."""


class MQTTConnectError(MQTTError):
    """Broker refused or never acknowledged the connection."""


class MQTTDisconnectedError(MQTTError):
    """Broker connection is no longer live."""


class MQTTPublishError(MQTTError):
    """Publish was not acknowledged by the broker."""


class WatchdogTimeoutError(AgentError):
    """No snapshot arrived within the watchdog window."""

    exit_code = 3

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Watchdog timeout: no vehicle data for {timeout:g}s")


class TaskExitedError(AgentError):
    """A supervised task returned although it should run forever."""

    exit_code = 2

    def __init__(self, task: str) -> None:
        self.task = task
        super().__init__(f"Supervised task '{task}' exited")
