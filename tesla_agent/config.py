"""Agent configuration via environment variables.

Uses pydantic-settings so every field can be overridden with an env
var or a ``.env`` file; the CLI applies its flags on top.

Note: ``env_prefix`` is empty, so field names map directly to env vars
(e.g. ``DB_PATH``, ``MQTT_URI``, ``LOG_LEVEL``).
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class AgentSettings(BaseSettings):
    """Tesla agent runtime settings."""

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    # -- storage / vehicle --------------------------------------------------
    db_path: str = Field(default="tesla.db", description="SQLite database path")
    vehicle_name: str = Field(
        default="my car",
        description="Display name of the vehicle to watch",
    )

    # -- Tesla owner API ----------------------------------------------------
    tesla_base_url: str = Field(
        default="https://owner-api.teslamotors.com/",
        description="Owner API base URL",
    )
    tesla_client_id: str = Field(default="", description="OAuth client id (login)")
    tesla_client_secret: str = Field(
        default="", description="OAuth client secret (login)"
    )
    tesla_email: str = Field(default="", description="Account email (login)")
    tesla_password: str = Field(default="", description="Account password (login)")

    # -- MQTT ---------------------------------------------------------------
    mqtt_enabled: bool = Field(default=True, description="Republish to MQTT")
    mqtt_uri: str = Field(default="mqtt://localhost/", description="Broker URI")
    mqtt_topic: str = Field(default="tmp/tesla", description="MQTT topic")
    mqtt_keepalive: int = Field(default=60, description="Keepalive in seconds")
    mqtt_connect_timeout_seconds: float = Field(
        default=30.0,
        description="Seconds to wait for CONNACK",
    )
    mqtt_publish_timeout_seconds: float = Field(
        default=30.0,
        description="Seconds to wait for a QoS 2 publish to complete",
    )
    mqtt_message_expiry_seconds: int = Field(
        default=900,
        description="Broker drops republished snapshots older than this",
    )
    mqtt_session_expiry_seconds: int = Field(
        default=3600,
        description="Session expiry for the catcher subscription",
    )
    mqtt_clean_session: bool = Field(
        default=False,
        description="Start the catcher with a clean MQTT session",
    )

    # -- scheduling ---------------------------------------------------------
    fetch_timeout_seconds: float = Field(
        default=10.0, description="Timeout for one vehicle_data request"
    )
    fetch_retry_seconds: float = Field(
        default=60.0, description="Sleep after a failed or timed-out fetch"
    )
    nap_user_present_seconds: float = Field(
        default=60.0, description="Poll interval while a user is present"
    )
    nap_charging_seconds: float = Field(
        default=300.0, description="Poll interval while charging"
    )
    nap_idle_seconds: float = Field(
        default=600.0, description="Poll interval otherwise"
    )
    sink_retry_delay_seconds: float = Field(
        default=5.0, description="Delay before restarting a failed sink"
    )
    watchdog_timeout_seconds: float = Field(
        default=1800.0,
        description="Exit when no snapshot arrives for this long",
    )
    channel_max_backlog: Optional[int] = Field(
        default=None,
        description="Per-subscriber backlog bound (drop oldest); unbounded if unset",
    )

    # -- logging ------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="console",
        description="Log output format: 'console' or 'json'",
    )
