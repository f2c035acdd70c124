"""GraphQL operations understood by the tiko API.

Each operation is a :class:`QueryDefinition`: an opaque query document
plus the pydantic model its ``data`` member must validate against.
Wire names are camelCase; the models expose snake_case attributes.

Whether ``humidity`` may be ``null`` depends on the provider.  The
client passes ``{"nullable_humidity": ...}`` as the validation context
so the check happens while the response is being parsed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class QueryDefinition(Generic[DataT]):
    """A named GraphQL document and the shape of its ``data``."""

    name: str
    query: str
    data_model: type[DataT]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Shared shapes
# ---------------------------------------------------------------------------


class ModeFlags(_WireModel):
    """The four independent preset-mode flags of a room."""

    absence: bool
    boost: bool
    disable_heating: bool
    frost: bool


# ---------------------------------------------------------------------------
# LogIn
# ---------------------------------------------------------------------------


class LogInPayload(_WireModel):
    token: str


class LogInData(_WireModel):
    log_in: LogInPayload


LOG_IN = QueryDefinition(
    name="LogIn",
    query="""
    mutation LogIn($email: String!, $password: String!) {
      logIn(input: { email: $email, password: $password }) {
        token
      }
    }
    """,
    data_model=LogInData,
)

LOG_IN_RETAINING_SESSION = QueryDefinition(
    name="LogIn",
    query="""
    mutation LogIn($email: String!, $password: String!, $retainSession: Boolean!) {
      logIn(input: { email: $email, password: $password, retainSession: $retainSession }) {
        token
      }
    }
    """,
    data_model=LogInData,
)

# ---------------------------------------------------------------------------
# GetData
# ---------------------------------------------------------------------------


class RoomConsumptionData(_WireModel):
    id: int
    name: str
    energy_kwh: float


class FastConsumptionData(_WireModel):
    energy_kwh: float
    rooms_consumption: list[RoomConsumptionData]


class DeviceData(_WireModel):
    id: int
    mac: str
    type: str
    code: str


class RoomStatusData(_WireModel):
    disconnected: bool
    heating_operating: bool
    sensor_battery_low: bool
    sensor_disconnected: bool


class RoomData(_WireModel):
    id: int
    name: str
    current_temperature_degrees: float
    humidity: float | None
    target_temperature_degrees: float
    mode: ModeFlags
    devices: list[DeviceData]
    status: RoomStatusData

    @field_validator("humidity")
    @classmethod
    def _humidity_nullable_for_provider(
        cls,
        value: float | None,
        info: ValidationInfo,
    ) -> float | None:
        context = info.context or {}
        if value is None and not context.get("nullable_humidity", False):
            msg = "humidity must be a number for this provider"
            raise ValueError(msg)
        return value


class PropertyData(_WireModel):
    id: int
    name: str
    fast_consumption: FastConsumptionData
    rooms: list[RoomData] | None


class GetDataData(_WireModel):
    properties: list[PropertyData]


GET_DATA = QueryDefinition(
    name="GetData",
    query="""
    query GetData($consumptionStartTimestamp: BigInt!, $consumptionEndTimestamp: BigInt!) {
      properties {
        id
        name
        fastConsumption(start: $consumptionStartTimestamp, end: $consumptionEndTimestamp) {
          energyKwh
          roomsConsumption {
            id
            name
            energyKwh
          }
        }
        rooms {
          id
          name
          currentTemperatureDegrees
          humidity
          targetTemperatureDegrees
          mode {
            absence
            boost
            disableHeating
            frost
          }
          devices {
            id
            mac
            type
            code
          }
          status {
            disconnected
            heatingOperating
            sensorBatteryLow
            sensorDisconnected
          }
        }
      }
    }
    """,
    data_model=GetDataData,
)

# ---------------------------------------------------------------------------
# SetRoomTemperature
# ---------------------------------------------------------------------------


class AdjustTemperatureData(_WireModel):
    active: bool
    temperature: float


class SetRoomAdjustTemperaturePayload(_WireModel):
    adjust_temperature: AdjustTemperatureData


class SetRoomTemperatureData(_WireModel):
    set_room_adjust_temperature: SetRoomAdjustTemperaturePayload


SET_ROOM_TEMPERATURE = QueryDefinition(
    name="SetRoomTemperature",
    query="""
    mutation SetRoomTemperature($propertyId: Int!, $roomId: Int!, $temperature: Float!) {
      setRoomAdjustTemperature(
        input: {propertyId: $propertyId, roomId: $roomId, temperature: $temperature}
      ) {
        adjustTemperature {
          active
          temperature
        }
      }
    }
    """,
    data_model=SetRoomTemperatureData,
)


class RoomScheduleData(_WireModel):
    id: int


class SetRoomSchedulePayload(_WireModel):
    room: RoomScheduleData | None = None


class SetRoomTemperatureWithScheduleData(SetRoomTemperatureData):
    set_room_schedule: SetRoomSchedulePayload


# Both mutations travel in one document so they succeed or fail together.
SET_ROOM_TEMPERATURE_WITH_SCHEDULE = QueryDefinition(
    name="SetRoomTemperatureWithSchedule",
    query="""
    mutation SetRoomTemperatureWithSchedule(
      $propertyId: Int!, $roomId: Int!, $temperature: Float!, $scheduleData: String!
    ) {
      setRoomSchedule(
        input: {propertyId: $propertyId, roomId: $roomId, scheduleData: $scheduleData}
      ) {
        room {
          id
        }
      }
      setRoomAdjustTemperature(
        input: {propertyId: $propertyId, roomId: $roomId, temperature: $temperature}
      ) {
        adjustTemperature {
          active
          temperature
        }
      }
    }
    """,
    data_model=SetRoomTemperatureWithScheduleData,
)

# ---------------------------------------------------------------------------
# SetRoomMode
# ---------------------------------------------------------------------------


class SetRoomModePayload(_WireModel):
    mode: ModeFlags


class SetRoomModeData(_WireModel):
    set_room_mode: SetRoomModePayload


SET_ROOM_MODE = QueryDefinition(
    name="SetRoomMode",
    query="""
    mutation SetRoomMode($propertyId: Int!, $roomId: Int!, $mode: String!) {
      setRoomMode(
        input: {propertyId: $propertyId, roomId: $roomId, mode: $mode}
      ) {
        mode {
          absence
          boost
          disableHeating
          frost
        }
      }
    }
    """,
    data_model=SetRoomModeData,
)
