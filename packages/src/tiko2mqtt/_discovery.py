"""Home Assistant MQTT discovery: topics and payloads for a property.

Every room becomes one Home Assistant device with:

- a ``climate`` entity (mode, target temperature, preset mode)
- an energy ``sensor`` (monthly consumption)
- a temperature ``sensor``
- a humidity ``sensor``, only when the room reports humidity

Topic layout, for room ``42`` and the default discovery prefix::

    homeassistant/climate/tiko_42/{config,state,set}
    homeassistant/sensor/tiko_42/{config,state}
    homeassistant/sensor/tiko_42_temperature/{config,state}
    homeassistant/sensor/tiko_42_humidity/{config,state}
    homeassistant/tiko/availability      ← shared by every entity

Config messages are not retained (Home Assistant's birth message
triggers a republish instead); state and availability messages are.

:func:`compute_discovery` is pure: the same property always yields the
same messages, byte for byte.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from tiko2mqtt._errors import InvalidIdentifierError
from tiko2mqtt._models import PresetMode, Property, Room
from tiko2mqtt._mqtt import WillConfig

ID_PREFIX = "tiko_"
DEFAULT_DISCOVERY_PREFIX = "homeassistant"

ONLINE = "online"
OFFLINE = "offline"

MIN_TEMP = 7
MAX_TEMP = 25
TEMP_STEP = 0.5

# Home Assistant treats "none" specially; it must not be advertised.
PRESET_MODES_WITHOUT_NONE = [
    PresetMode.OFF.value,
    PresetMode.AWAY.value,
    PresetMode.BOOST.value,
    PresetMode.FROST_PROTECTION.value,
]

_ROOM_ID = re.compile(r"[0-9]+")

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MqttMessage:
    """An outbound message ready to publish."""

    topic: str
    payload: str
    retain: bool


@dataclass(frozen=True, slots=True)
class CommandTopic:
    """A subscribed command topic and the room it controls."""

    topic: str
    room_id: int
    kind: str = "climate"


@dataclass(frozen=True, slots=True)
class DiscoveryConfiguration:
    """Everything published for one property snapshot."""

    messages: list[MqttMessage] = field(default_factory=list)
    command_topics: dict[str, CommandTopic] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Topics and identifiers
# ---------------------------------------------------------------------------


def entity_id(room_id: int) -> str:
    """Return the Home Assistant identifier of a room."""
    return f"{ID_PREFIX}{room_id}"


def decode_entity_id(value: str) -> int:
    """Return the room id encoded in an entity identifier.

    Raises:
        InvalidIdentifierError: If *value* is not ``tiko_`` followed by
            decimal digits.
    """
    if not value.startswith(ID_PREFIX):
        msg = f"Invalid Home Assistant id: {value}"
        raise InvalidIdentifierError(msg)
    remainder = value.removeprefix(ID_PREFIX)
    if not _ROOM_ID.fullmatch(remainder):
        msg = f"Invalid Home Assistant id: {value}"
        raise InvalidIdentifierError(msg)
    return int(remainder)


def birth_topic(discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX) -> str:
    """Topic on which Home Assistant announces it is online."""
    return f"{discovery_prefix}/status"


def availability_topic(discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX) -> str:
    return f"{discovery_prefix}/tiko/availability"


def error_topic(discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX) -> str:
    return f"{discovery_prefix}/tiko/error"


def climate_command_topic(
    room_id: int,
    discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX,
) -> str:
    return f"{discovery_prefix}/climate/{entity_id(room_id)}/set"


def match_climate_command_topic(
    topic: str,
    discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX,
) -> str | None:
    """Return the entity identifier of a climate command topic.

    Returns ``None`` when *topic* is not shaped like
    ``<prefix>/climate/<entity>/set``.  The identifier itself is not
    validated; pass it to :func:`decode_entity_id`.
    """
    pattern = rf"{re.escape(discovery_prefix)}/climate/(?P<entity>[^/]+)/set"
    match = re.fullmatch(pattern, topic)
    return match.group("entity") if match else None


def build_will_config(discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX) -> WillConfig:
    """Last will marking every entity unavailable when the bridge drops."""
    return WillConfig(
        topic=availability_topic(discovery_prefix),
        payload=OFFLINE,
        qos=1,
        retain=True,
    )


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload)


def _config(topic: str, payload: dict[str, Any]) -> MqttMessage:
    return MqttMessage(topic=topic, payload=_dumps(payload), retain=False)


def _state(topic: str, payload: dict[str, Any]) -> MqttMessage:
    return MqttMessage(topic=topic, payload=_dumps(payload), retain=True)


def _climate_state(room: Room) -> dict[str, Any]:
    state: dict[str, Any] = {"mode": "heat" if room.heating else "off"}
    if room.current_humidity is not None:
        state["current_humidity"] = room.current_humidity
    state["current_temperature"] = room.current_temperature
    state["target_temperature"] = room.target_temperature
    if room.preset_mode is not None:
        state["preset_mode"] = room.preset_mode.value
    return state


def _room_messages(room: Room, discovery_prefix: str) -> list[MqttMessage]:
    fqid = entity_id(room.id)
    availability = [{"topic": availability_topic(discovery_prefix)}]
    device = {
        "manufacturer": "tiko",
        "identifiers": [fqid],
        "name": f"{room.name} heating",
        "suggested_area": room.name,
    }

    climate_topic = f"{discovery_prefix}/climate/{fqid}"
    climate_state_topic = f"{climate_topic}/state"
    climate_set_topic = f"{climate_topic}/set"

    energy_topic = f"{discovery_prefix}/sensor/{fqid}"
    energy_state_topic = f"{energy_topic}/state"

    temperature_id = f"{fqid}_temperature"
    temperature_topic = f"{discovery_prefix}/sensor/{temperature_id}"
    temperature_state_topic = f"{temperature_topic}/state"

    humidity_id = f"{fqid}_humidity"
    humidity_topic = f"{discovery_prefix}/sensor/{humidity_id}"
    humidity_state_topic = f"{humidity_topic}/state"

    messages = [
        _config(
            f"{climate_topic}/config",
            {
                "unique_id": fqid,
                "name": None,
                "device": device,
                "temperature_unit": "C",
                "min_temp": MIN_TEMP,
                "max_temp": MAX_TEMP,
                "temp_step": TEMP_STEP,
                "preset_modes": PRESET_MODES_WITHOUT_NONE,
                "modes": ["heat", "off"],
                "availability": availability,
                "mode_state_topic": climate_state_topic,
                "mode_state_template": "{{ value_json.mode }}",
                "current_humidity_topic": climate_state_topic,
                "current_humidity_template": "{{ value_json.current_humidity }}",
                "current_temperature_topic": climate_state_topic,
                "current_temperature_template": "{{ value_json.current_temperature }}",
                "temperature_state_topic": climate_state_topic,
                "temperature_state_template": "{{ value_json.target_temperature }}",
                "preset_mode_state_topic": climate_state_topic,
                "preset_mode_value_template": "{{ value_json.preset_mode }}",
                "temperature_command_topic": climate_set_topic,
                "temperature_command_template": (
                    '{{ {"type": "targetTemperature", "targetTemperature": value}'
                    " | tojson }}"
                ),
                "preset_mode_command_topic": climate_set_topic,
                "preset_mode_command_template": (
                    '{{ {"type": "presetMode", "presetMode": value} | tojson }}'
                ),
            },
        ),
        _state(climate_state_topic, _climate_state(room)),
        _config(
            f"{energy_topic}/config",
            {
                "unique_id": fqid,
                "name": "Consumption",
                "device": device,
                "device_class": "energy",
                "state_class": "total_increasing",
                "unit_of_measurement": "kWh",
                "availability": availability,
                "state_topic": energy_state_topic,
                "value_template": "{{ value_json.energy }}",
            },
        ),
        _config(
            f"{temperature_topic}/config",
            {
                "unique_id": temperature_id,
                "name": "Temperature",
                "device": device,
                "device_class": "temperature",
                "state_class": "measurement",
                "unit_of_measurement": "°C",
                "availability": availability,
                "state_topic": temperature_state_topic,
                "value_template": "{{ value_json.temperature }}",
            },
        ),
        _state(temperature_state_topic, {"temperature": room.current_temperature}),
    ]

    if room.current_humidity is not None:
        messages += [
            _config(
                f"{humidity_topic}/config",
                {
                    "unique_id": humidity_id,
                    "name": "Humidity",
                    "device": device,
                    "device_class": "humidity",
                    "state_class": "measurement",
                    "unit_of_measurement": "%",
                    "availability": availability,
                    "state_topic": humidity_state_topic,
                    "value_template": "{{ value_json.humidity }}",
                },
            ),
            _state(humidity_state_topic, {"humidity": room.current_humidity}),
        ]

    if room.energy_kwh is not None:
        messages.append(_state(energy_state_topic, {"energy": room.energy_kwh}))

    return messages


def compute_discovery(
    prop: Property,
    *,
    discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX,
) -> DiscoveryConfiguration:
    """Compute every message and command topic for *prop*.

    The shared availability message comes first, followed by each
    room's messages in the order the rooms were reported.
    """
    messages = [
        MqttMessage(
            topic=availability_topic(discovery_prefix),
            payload=ONLINE,
            retain=True,
        ),
    ]
    command_topics: dict[str, CommandTopic] = {}
    for room in prop.rooms:
        topic = climate_command_topic(room.id, discovery_prefix)
        command_topics[topic] = CommandTopic(topic=topic, room_id=room.id)
        messages.extend(_room_messages(room, discovery_prefix))
    return DiscoveryConfiguration(messages=messages, command_topics=command_topics)
