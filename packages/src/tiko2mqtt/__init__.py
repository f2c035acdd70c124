"""tiko2mqtt.

Bridges the tiko cloud heating API to an MQTT broker, exposing every
room as a Home Assistant device through MQTT discovery.
"""

from importlib.metadata import PackageNotFoundError, version

from tiko2mqtt._app import App
from tiko2mqtt._client import TikoClient, create_http_client
from tiko2mqtt._clock import ClockPort, SystemClock
from tiko2mqtt._commands import (
    CommandBridge,
    PresetModeCommand,
    TargetTemperatureCommand,
    parse_climate_command,
)
from tiko2mqtt._discovery import (
    CommandTopic,
    DiscoveryConfiguration,
    MqttMessage,
    build_will_config,
    compute_discovery,
    decode_entity_id,
    match_climate_command_topic,
)
from tiko2mqtt._errors import (
    AuthenticationFailedError,
    CommandRejectedError,
    ErrorPayload,
    ErrorPublisher,
    InvalidCommandError,
    InvalidIdentifierError,
    MultiplePresetModesError,
    PropertyNotFoundError,
    ProtocolError,
    RemoteError,
    RequestError,
    TikoError,
    build_error_payload,
)
from tiko2mqtt._logging import JsonFormatter, configure_logging
from tiko2mqtt._models import (
    PresetMode,
    Property,
    Room,
    map_preset_mode,
    map_properties,
    select_property,
    serialize_preset_mode,
)
from tiko2mqtt._mqtt import (
    ConnectCallback,
    MessageCallback,
    MqttClient,
    MqttLifecycle,
    MqttMessageHandler,
    MqttPort,
    WillConfig,
)
from tiko2mqtt._providers import Provider, ProviderProfile, get_provider_profile
from tiko2mqtt._publisher import SnapshotPublisher
from tiko2mqtt._scheduler import SnapshotListener, UpdateScheduler
from tiko2mqtt._settings import LoggingSettings, MqttSettings, Settings, TikoSettings

try:
    __version__ = version("tiko2mqtt")
except PackageNotFoundError:
    # Editable installs without metadata
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # App
    "App",
    # Clock
    "ClockPort",
    "SystemClock",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # MQTT
    "ConnectCallback",
    "MessageCallback",
    "MqttClient",
    "MqttLifecycle",
    "MqttMessageHandler",
    "MqttPort",
    "WillConfig",
    # Errors
    "AuthenticationFailedError",
    "CommandRejectedError",
    "ErrorPayload",
    "ErrorPublisher",
    "InvalidCommandError",
    "InvalidIdentifierError",
    "MultiplePresetModesError",
    "PropertyNotFoundError",
    "ProtocolError",
    "RemoteError",
    "RequestError",
    "TikoError",
    "build_error_payload",
    # Providers
    "Provider",
    "ProviderProfile",
    "get_provider_profile",
    # Domain model
    "PresetMode",
    "Property",
    "Room",
    "map_preset_mode",
    "map_properties",
    "select_property",
    "serialize_preset_mode",
    # tiko client
    "TikoClient",
    "create_http_client",
    # Scheduling and publication
    "SnapshotListener",
    "SnapshotPublisher",
    "UpdateScheduler",
    # Home Assistant
    "CommandTopic",
    "DiscoveryConfiguration",
    "MqttMessage",
    "build_will_config",
    "compute_discovery",
    "decode_entity_id",
    "match_climate_command_topic",
    # Commands
    "CommandBridge",
    "PresetModeCommand",
    "TargetTemperatureCommand",
    "parse_climate_command",
    # Settings
    "LoggingSettings",
    "MqttSettings",
    "Settings",
    "TikoSettings",
]
