"""Domain model and the mapping from tiko wire responses.

Everything here is a pure function of its input: no I/O, no state.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from tiko2mqtt._errors import (
    MultiplePresetModesError,
    PropertyNotFoundError,
    ProtocolError,
)
from tiko2mqtt._queries import GetDataData, ModeFlags


class PresetMode(StrEnum):
    """Heating override of a room; ``none`` follows the schedule."""

    NONE = "none"
    OFF = "off"
    AWAY = "away"
    BOOST = "boost"
    FROST_PROTECTION = "frostprotection"


# Checked in this order; at most one may be set.
_FLAG_MODES: tuple[tuple[str, PresetMode], ...] = (
    ("absence", PresetMode.AWAY),
    ("boost", PresetMode.BOOST),
    ("disable_heating", PresetMode.OFF),
    ("frost", PresetMode.FROST_PROTECTION),
)

_WIRE_FLAG_NAMES = {
    "absence": "absence",
    "boost": "boost",
    "disable_heating": "disableHeating",
    "frost": "frost",
}


@dataclass(frozen=True, slots=True)
class Room:
    """A heating zone as exposed to Home Assistant.

    ``energy_kwh`` is ``None`` when the provider reported no (or zero)
    consumption; ``current_humidity`` is ``None`` when the room has no
    humidity sensor.
    """

    id: int
    name: str
    current_temperature: float
    target_temperature: float
    heating: bool
    current_humidity: float | None = None
    energy_kwh: float | None = None
    preset_mode: PresetMode | None = None


@dataclass(frozen=True, slots=True)
class Property:
    """A site of the account and its rooms."""

    id: int
    name: str
    rooms: tuple[Room, ...] = field(default_factory=tuple)


def map_preset_mode(flags: ModeFlags) -> PresetMode:
    """Decode the four wire flags into a single :class:`PresetMode`.

    Raises:
        MultiplePresetModesError: If more than one flag is set.
    """
    active = [name for name, _ in _FLAG_MODES if getattr(flags, name)]
    if len(active) > 1:
        raise MultiplePresetModesError([_WIRE_FLAG_NAMES[name] for name in active])
    for name, mode in _FLAG_MODES:
        if getattr(flags, name):
            return mode
    return PresetMode.NONE


def serialize_preset_mode(mode: PresetMode) -> ModeFlags:
    """Encode *mode* as the wire flags; inverse of :func:`map_preset_mode`."""
    return ModeFlags(
        absence=mode is PresetMode.AWAY,
        boost=mode is PresetMode.BOOST,
        disable_heating=mode is PresetMode.OFF,
        frost=mode is PresetMode.FROST_PROTECTION,
    )


def map_properties(response: GetDataData) -> list[Property]:
    """Map a validated ``GetData`` response to domain properties.

    Raises:
        MultiplePresetModesError: If a room has several modes active.
        ProtocolError: If a room has no consumption entry.
    """
    properties: list[Property] = []
    for property_data in response.properties:
        consumption = {
            entry.id: entry.energy_kwh
            for entry in property_data.fast_consumption.rooms_consumption
        }
        rooms: list[Room] = []
        for room_data in property_data.rooms or []:
            if room_data.id not in consumption:
                msg = f"Unable to find consumption for room {room_data.id}"
                raise ProtocolError(msg)
            energy = consumption[room_data.id]
            rooms.append(
                Room(
                    id=room_data.id,
                    name=room_data.name,
                    current_temperature=room_data.current_temperature_degrees,
                    target_temperature=room_data.target_temperature_degrees,
                    heating=room_data.status.heating_operating,
                    current_humidity=room_data.humidity,
                    # Zero is what the provider sends when it has no data.
                    energy_kwh=energy if energy != 0 else None,
                    preset_mode=map_preset_mode(room_data.mode),
                ),
            )
        properties.append(
            Property(id=property_data.id, name=property_data.name, rooms=tuple(rooms)),
        )
    return properties


def find_property(properties: Sequence[Property], property_id: int) -> Property | None:
    """Return the property with *property_id*, or ``None``."""
    for prop in properties:
        if prop.id == property_id:
            return prop
    return None


def select_property(
    properties: Sequence[Property],
    property_id: int | None = None,
) -> Property:
    """Pick the configured property, or the first one when none is configured.

    Raises:
        PropertyNotFoundError: If the property is missing or the list is
            empty.
    """
    if property_id is None:
        if not properties:
            raise PropertyNotFoundError(None)
        return properties[0]
    found = find_property(properties, property_id)
    if found is None:
        raise PropertyNotFoundError(property_id)
    return found
