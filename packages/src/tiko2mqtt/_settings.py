"""Application configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  Nested models use ``__`` as the delimiter in env var names,
e.g. ``TIKO__EMAIL=me@example.com`` or ``MQTT__HOST=broker.local``.

The schema covers the concerns of the bridge:

* **tiko** — provider selection, account credentials, property, and the
  "bypass schedule" behaviour of temperature commands.
* **MQTT** — broker connection and the Home Assistant discovery prefix.
* **Logging** — level, format, optional file sink, rotation.

Settings are validated once at startup; a validation error is a
configuration error and the process exits before touching the network.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    Field,
    PositiveInt,
    SecretStr,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from tiko2mqtt._providers import Provider

# -------------------------------------------------------------------
# Sub-models (BaseModel, not BaseSettings; nested via composition)
# -------------------------------------------------------------------


class TikoSettings(BaseModel):
    """tiko account configuration.

    Environment variables (with ``__`` nesting)::

        TIKO__PROVIDER=tiko
        TIKO__EMAIL=me@example.com
        TIKO__PASSWORD=secret
        TIKO__PROPERTY_ID=1234
        TIKO__BYPASS_SCHEDULE=false
    """

    provider: Provider = Field(
        default=Provider.TIKO,
        description="Which tiko-operated backend the account belongs to.",
    )
    email: str = Field(
        description="Account e-mail used to log in.",
    )
    password: SecretStr = Field(
        description="Account password used to log in.",
    )
    property_id: PositiveInt | None = Field(
        default=None,
        description=(
            "Property to expose over MQTT.  When unset, the first "
            "property returned by the API is used."
        ),
    )
    bypass_schedule: bool = Field(
        default=False,
        description=(
            "When true, a temperature command also overwrites the whole "
            "weekly schedule with the new target instead of setting a "
            "transient override."
        ),
    )


class MqttSettings(BaseModel):
    """MQTT broker connection and topic configuration.

    Environment variables (with ``__`` nesting)::

        MQTT__HOST=broker.local
        MQTT__PORT=1883
        MQTT__USERNAME=user
        MQTT__PASSWORD=secret
        MQTT__DISCOVERY_PREFIX=homeassistant
    """

    host: str = Field(
        default="localhost",
        description="MQTT broker hostname or IP address.",
    )
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=1883,
        description="MQTT broker port.",
    )
    username: str | None = Field(
        default=None,
        description="MQTT authentication username (optional).",
    )
    password: SecretStr | None = Field(
        default=None,
        description="MQTT authentication password (optional).",
    )
    client_id: str = Field(
        default="",
        description=(
            "MQTT client identifier. When empty, the app generates "
            "'tiko2mqtt-{hex8}' at startup."
        ),
    )
    reconnect_interval: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description=(
            "Initial seconds to wait before reconnecting after "
            "connection loss.  Doubles on each consecutive failure "
            "up to ``reconnect_max_interval``."
        ),
    )
    reconnect_max_interval: Annotated[float, Field(gt=0)] = Field(
        default=300.0,
        description="Upper bound (seconds) for the reconnect backoff.",
    )
    qos: Literal[0, 1, 2] = Field(
        default=1,
        description="QoS used for subscriptions and published messages.",
    )
    discovery_prefix: str = Field(
        default="homeassistant",
        description="Home Assistant MQTT discovery prefix.",
    )


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"json"`` (default) — structured JSON lines for container
      log aggregators.
    - ``"text"`` — human-readable timestamped format for local
      development.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format ('json' or 'text').",
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description="Maximum log file size in megabytes before rotation.",
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root settings for the tiko2mqtt bridge.

    Example ``.env``::

        TIKO__EMAIL=me@example.com
        TIKO__PASSWORD=secret
        UPDATE_INTERVAL_MINUTES=5
        MQTT__HOST=broker.local
        LOGGING__FORMAT=text
    """

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    tiko: TikoSettings
    update_interval_minutes: PositiveInt = Field(
        default=5,
        description="Minutes between two unsolicited refreshes.",
    )
    mqtt: MqttSettings = Field(
        default_factory=MqttSettings,
        description="MQTT broker connection settings.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
