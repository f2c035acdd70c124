"""Error taxonomy and structured error publication.

Every failure the bridge can observe is an instance of
:class:`TikoError`.  The subclasses say *what kind* of failure it was,
which decides what happens next:

- ``AuthenticationFailedError`` — bad credentials.  Fatal at startup,
  logged during steady state.
- ``RateLimitedError`` — the provider asked us to slow down.  Handled
  inside the API client and never seen by callers.
- ``RemoteError`` — a business error returned by the provider.
- ``ProtocolError`` — the provider answered with an unexpected shape.
- ``RequestError`` — the HTTP request itself failed.
- ``PropertyNotFoundError`` — the selected property is not in a fetch
  result.
- ``CommandRejectedError`` — a mutation echoed a state that does not
  match the request.
- ``InvalidIdentifierError`` / ``InvalidCommandError`` — malformed
  inbound MQTT topic or payload.  Logged and dropped.

Steady-state failures are also published as a JSON event so they can
be observed remotely::

    {
        "error_type": "remote_error",
        "message": "Human-readable error description",
        "timestamp": "2026-02-14T12:34:56+00:00",
        "details": {}
    }

Publication is not retained, uses QoS 1, and is fire-and-forget:
failures are logged, never propagated.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from tiko2mqtt._mqtt import MqttPort

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TikoError(Exception):
    """Base class for every error raised by the bridge."""


class AuthenticationFailedError(TikoError):
    """Logging in to the provider failed."""


class RateLimitedError(TikoError):
    """The provider refused a request because of rate limiting."""


class RemoteError(TikoError):
    """The provider returned a non-empty GraphQL ``errors`` list.

    Attributes:
        errors: The raw error entries, as returned by the provider.
    """

    def __init__(self, errors: Sequence[Any]) -> None:
        self.errors = list(errors)
        messages = "; ".join(
            str(e.get("message", e)) if isinstance(e, dict) else str(e)
            for e in self.errors
        )
        super().__init__(f"The tiko API returned an error: {messages}")


class ProtocolError(TikoError):
    """A response did not have the expected shape."""


class MultiplePresetModesError(ProtocolError):
    """More than one preset-mode flag is active on a room."""

    def __init__(self, active: Sequence[str]) -> None:
        self.active = list(active)
        super().__init__(f"Multiple preset modes active: {', '.join(self.active)}")


class RequestError(TikoError):
    """The HTTP request to the provider failed."""


class PropertyNotFoundError(TikoError):
    """The selected property is missing from a fetch result."""

    def __init__(self, property_id: int | None) -> None:
        self.property_id = property_id
        if property_id is None:
            super().__init__("No properties found")
        else:
            super().__init__(f"Property {property_id} not found")


class CommandRejectedError(TikoError):
    """A mutation did not take effect as requested."""


class InvalidIdentifierError(TikoError):
    """An entity identifier could not be decoded to a room id."""


class InvalidCommandError(TikoError):
    """An inbound command payload is malformed."""


ERROR_TYPES: dict[type[Exception], str] = {
    AuthenticationFailedError: "authentication_failed",
    RateLimitedError: "rate_limited",
    RemoteError: "remote_error",
    MultiplePresetModesError: "multiple_preset_modes",
    ProtocolError: "protocol_error",
    RequestError: "request_error",
    PropertyNotFoundError: "property_not_found",
    CommandRejectedError: "command_rejected",
    InvalidIdentifierError: "invalid_identifier",
    InvalidCommandError: "invalid_command",
}

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    """Immutable structured error payload.

    Represents a single error event ready for JSON serialisation
    and MQTT publication.
    """

    error_type: str
    message: str
    timestamp: str
    details: dict[str, object] = field(default_factory=dict)

    def to_json(self) -> str:
        """Serialise to a JSON string."""
        return json.dumps(asdict(self))


# ---------------------------------------------------------------------------
# Payload builder
# ---------------------------------------------------------------------------


def resolve_error_type(
    error: BaseException,
    error_type_map: dict[type[Exception], str] | None = None,
) -> str:
    """Return the machine-readable type of *error*.

    Walks the exception's MRO so a subclass without its own entry
    inherits the type of its closest mapped ancestor.  Falls back to
    ``"error"``.
    """
    resolved_map = ERROR_TYPES if error_type_map is None else error_type_map
    for cls in type(error).__mro__:
        if cls in resolved_map:
            return resolved_map[cls]
    return "error"


def build_error_payload(
    error: Exception,
    *,
    error_type_map: dict[type[Exception], str] | None = None,
    details: dict[str, object] | None = None,
    clock: Callable[[], datetime] | None = None,
) -> ErrorPayload:
    """Convert an exception into a structured :class:`ErrorPayload`.

    Args:
        error: The exception to convert.
        error_type_map: Mapping from exception types to ``error_type``
            strings.  Defaults to :data:`ERROR_TYPES`.
        details: Optional dict of additional context.  When ``None``,
            a :class:`RemoteError` contributes its raw error list.
        clock: Optional callable returning a :class:`~datetime.datetime`.
            Defaults to ``datetime.now(UTC)``.
    """
    if details is None and isinstance(error, RemoteError):
        details = {"errors": error.errors}
    now = clock() if clock is not None else datetime.now(UTC)
    return ErrorPayload(
        error_type=resolve_error_type(error, error_type_map),
        message=str(error),
        timestamp=now.isoformat(),
        details=details or {},
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class ErrorPublisher:
    """Publishes structured error payloads to MQTT.

    Args:
        mqtt: MQTT port used for publishing.
        topic: Error topic, e.g. ``"homeassistant/tiko/error"``.
        error_type_map: Mapping from exception types to type strings.
        clock: Optional callable returning a :class:`~datetime.datetime`
            for deterministic testing.
    """

    mqtt: MqttPort
    topic: str
    error_type_map: dict[type[Exception], str] = field(
        default_factory=lambda: dict(ERROR_TYPES),
    )
    clock: Callable[[], datetime] | None = field(default=None, repr=False)

    async def publish(self, error: Exception) -> None:
        """Build an error payload and publish it to MQTT.

        The entire pipeline (build → serialise → publish) is
        fire-and-forget: failures at any stage are logged but never
        propagated to the caller.
        """
        try:
            payload = build_error_payload(
                error,
                error_type_map=self.error_type_map,
                clock=self.clock,
            )
            payload_json = payload.to_json()
        except Exception:
            logger.exception("Failed to build error payload for %r", error)
            return

        logger.warning(
            "Publishing error: %s (type=%s)",
            payload.message,
            payload.error_type,
        )
        await self._safe_publish(self.topic, payload_json)

    async def _safe_publish(self, topic: str, payload: str) -> None:
        """Publish to MQTT, logging instead of raising on failure."""
        try:
            await self.mqtt.publish(topic, payload, retain=False, qos=1)
        except Exception:
            logger.exception("Failed to publish error to %s", topic)
