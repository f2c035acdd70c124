"""Inbound MQTT message handling.

Each inbound message leads to exactly one action:

- ``online`` on the Home Assistant birth topic → refresh.
- A payload on ``<prefix>/climate/tiko_<room>/set`` → validate, call the
  matching tiko mutation, and refresh once it succeeded.
- Anything else → logged and dropped.

Malformed topics and payloads are logged and dropped; so are failed
mutations, which do not trigger a refresh since nothing changed.

Two payload shapes are accepted per command: the documented one
(``{"type": "presetMode", "value": "boost"}``) and the one produced by
the advertised Home Assistant command templates
(``{"type": "presetMode", "presetMode": "boost"}``).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Annotated, Literal, Protocol

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError

from tiko2mqtt._discovery import (
    DEFAULT_DISCOVERY_PREFIX,
    ONLINE,
    birth_topic,
    decode_entity_id,
    match_climate_command_topic,
)
from tiko2mqtt._errors import (
    InvalidCommandError,
    InvalidIdentifierError,
    TikoError,
)
from tiko2mqtt._models import PresetMode

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Command payloads
# ---------------------------------------------------------------------------


class TargetTemperatureCommand(BaseModel):
    type: Literal["targetTemperature"]
    value: float = Field(
        validation_alias=AliasChoices("value", "targetTemperature"),
        allow_inf_nan=False,
        strict=True,
    )


class PresetModeCommand(BaseModel):
    type: Literal["presetMode"]
    value: PresetMode = Field(
        validation_alias=AliasChoices("value", "presetMode"),
    )


ClimateCommand = Annotated[
    TargetTemperatureCommand | PresetModeCommand,
    Field(discriminator="type"),
]

_CLIMATE_COMMAND: TypeAdapter[ClimateCommand] = TypeAdapter(ClimateCommand)


def parse_climate_command(payload: str) -> TargetTemperatureCommand | PresetModeCommand:
    """Parse a climate command payload.

    Raises:
        InvalidCommandError: If *payload* is not JSON or does not match
            either command shape.
    """
    try:
        return _CLIMATE_COMMAND.validate_json(payload)
    except ValidationError as exc:
        msg = f"Invalid climate command {payload!r}: {exc}"
        raise InvalidCommandError(msg) from exc


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class RoomController(Protocol):
    async def set_room_target_temperature(
        self,
        property_id: int,
        room_id: int,
        target_temperature: float,
    ) -> None: ...

    async def set_room_mode(
        self,
        property_id: int,
        room_id: int,
        mode: PresetMode,
    ) -> None: ...


class UpdateRequester(Protocol):
    def request_update(self) -> None: ...


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------


class CommandBridge:
    """Turns inbound MQTT messages into tiko mutations and refreshes.

    Messages passed to :meth:`submit` are queued and handled one at a
    time by a worker task; the MQTT read loop never waits on a tiko
    request.  Call :meth:`start` and :meth:`stop` around the session.
    """

    def __init__(
        self,
        client: RoomController,
        scheduler: UpdateRequester,
        property_id: int,
        *,
        discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX,
    ) -> None:
        self._client = client
        self._scheduler = scheduler
        self._property_id = property_id
        self._discovery_prefix = discovery_prefix
        self._birth_topic = birth_topic(discovery_prefix)
        self._queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    # -- Worker -------------------------------------------------------------

    async def submit(self, topic: str, payload: str) -> None:
        """Queue an inbound message for the worker and return at once."""
        self._queue.put_nowait((topic, payload))

    def start(self) -> None:
        """Start the worker task."""
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._work(), name="tiko2mqtt-commands")

    async def stop(self) -> None:
        """Cancel the worker, dropping queued messages."""
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

    async def join(self) -> None:
        """Wait until every submitted message has been handled."""
        await self._queue.join()

    async def _work(self) -> None:
        while True:
            topic, payload = await self._queue.get()
            try:
                await self.handle_message(topic, payload)
            except Exception:
                logger.exception("Error handling MQTT message on %s", topic)
            finally:
                self._queue.task_done()

    # -- Handling -----------------------------------------------------------

    async def handle_message(self, topic: str, payload: str) -> None:
        """Handle one inbound message.  Never raises for bad input."""
        if topic == self._birth_topic and payload == ONLINE:
            logger.info("Received Home Assistant online message, refreshing")
            self._scheduler.request_update()
            return

        entity = match_climate_command_topic(topic, self._discovery_prefix)
        if entity is None:
            logger.warning("Unknown MQTT message on %s", topic, extra={"topic": topic})
            return

        try:
            room_id = decode_entity_id(entity)
            command = parse_climate_command(payload)
        except (InvalidIdentifierError, InvalidCommandError) as exc:
            logger.warning("Invalid MQTT command: %s", exc, extra={"topic": topic})
            return

        if isinstance(command, TargetTemperatureCommand):
            await self._set_target_temperature(room_id, command.value)
        else:
            await self._set_preset_mode(room_id, command.value)

    async def _set_target_temperature(self, room_id: int, target: float) -> None:
        extra = {"property_id": self._property_id, "room_id": room_id}
        logger.info("Setting room %d target temperature to %s", room_id, target, extra=extra)
        try:
            await self._client.set_room_target_temperature(
                self._property_id,
                room_id,
                target,
            )
        except TikoError as exc:
            logger.error("Failed to set target temperature: %s", exc, extra=extra)
            return
        self._scheduler.request_update()

    async def _set_preset_mode(self, room_id: int, mode: PresetMode) -> None:
        extra = {"property_id": self._property_id, "room_id": room_id}
        if mode is PresetMode.OFF:
            logger.warning(
                "Setting individual preset mode 'off' is not supported by tiko, ignoring",
                extra=extra,
            )
            return
        logger.info("Setting room %d mode to %s", room_id, mode, extra=extra)
        try:
            await self._client.set_room_mode(self._property_id, room_id, mode)
        except TikoError as exc:
            logger.error("Failed to set room mode: %s", exc, extra=extra)
            return
        self._scheduler.request_update()
