"""Async client for the tiko GraphQL API.

The client owns the session token and exposes the four operations the
bridge needs.  All of them go through :meth:`TikoClient._execute`,
which implements the request protocol:

1. POST ``{query, variables}`` to ``/api/v3/graphql/``, with an
   ``Authorization: token <value>`` header once logged in.
2. A non-empty ``errors`` list whose messages announce rate limiting
   puts the call to sleep for a cooldown, then the *same* request is
   sent again.  There is no retry limit.
3. Any other non-empty ``errors`` list raises :class:`RemoteError`.
4. Otherwise ``data`` is validated against the operation's model; a
   mismatch raises :class:`ProtocolError`.

Transport-level hiccups (connection errors, 429/5xx status codes) are
retried a bounded number of times by the ``httpx_retries`` transport
installed by :func:`create_http_client`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeAlias, TypeVar

import httpx
from httpx_retries import Retry, RetryTransport
from pydantic import BaseModel, SecretStr, ValidationError

from tiko2mqtt._clock import ClockPort, SystemClock
from tiko2mqtt._errors import (
    AuthenticationFailedError,
    CommandRejectedError,
    ProtocolError,
    RateLimitedError,
    RemoteError,
    RequestError,
    TikoError,
)
from tiko2mqtt._models import PresetMode, Property, map_preset_mode, map_properties
from tiko2mqtt._providers import GRAPHQL_PATH, ProviderProfile
from tiko2mqtt._queries import (
    GET_DATA,
    LOG_IN,
    LOG_IN_RETAINING_SESSION,
    SET_ROOM_MODE,
    SET_ROOM_TEMPERATURE,
    SET_ROOM_TEMPERATURE_WITH_SCHEDULE,
    QueryDefinition,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "Limite de taux atteinte"
RATE_LIMIT_COOLDOWN = 120.0
"""Seconds to wait after the provider reports rate limiting."""

DEFAULT_TIMEOUT = 30.0

SCHEDULE_DAYS = ("0", "1", "2", "3", "4", "5", "6")

# ``False`` clears any override; the strings are the provider's mode names.
MUTATION_MODES: dict[PresetMode, str | bool] = {
    PresetMode.NONE: False,
    PresetMode.OFF: "disableHeating",
    PresetMode.AWAY: "absence",
    PresetMode.BOOST: "boost",
    PresetMode.FROST_PROTECTION: "frost",
}

Sleep: TypeAlias = Callable[[float], Awaitable[None]]

DataT = TypeVar("DataT", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class AuthToken:
    """A session token and the monotonic time it stops being usable.

    ``expires_at`` is ``None`` for tokens that never expire.
    """

    value: str
    expires_at: float | None

    def is_valid(self, now: float) -> bool:
        return self.expires_at is None or now < self.expires_at


def create_http_client(
    profile: ProviderProfile,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> httpx.AsyncClient:
    """Create the HTTP client used to reach *profile*'s API.

    The client keeps cookies for the lifetime of the session and
    retries connection failures and 429/5xx responses with backoff.
    """
    retry = Retry(total=3, backoff_factor=0.5, allowed_methods=["POST"])
    return httpx.AsyncClient(
        base_url=profile.base_url,
        timeout=timeout,
        headers={"Content-Type": "application/json"},
        transport=RetryTransport(transport=httpx.AsyncHTTPTransport(), retry=retry),
    )


def build_week_schedule(target_temperature: float) -> str:
    """Return a schedule pinning every day to *target_temperature* from midnight."""
    return json.dumps(
        {day: [["00:00", target_temperature]] for day in SCHEDULE_DAYS},
    )


def consumption_window(time_reference: datetime) -> tuple[int, int]:
    """Return ``(start, end)`` in epoch milliseconds for energy totals.

    The window starts at local midnight on the first day of the month
    the reference falls in locally, and ends at the reference.  The start
    carries its own UTC offset, which differs from the reference's after
    a DST change.
    """
    local = time_reference.astimezone()
    start = datetime(local.year, local.month, 1).astimezone()
    return _epoch_ms(start), _epoch_ms(time_reference)


def _epoch_ms(moment: datetime) -> int:
    return round(moment.timestamp() * 1000)


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _raise_for_errors(errors: Sequence[Any]) -> None:
    """Raise the exception matching a non-empty GraphQL ``errors`` list."""
    messages = [
        str(error.get("message", "")) if isinstance(error, dict) else str(error)
        for error in errors
    ]
    if any(message.startswith(RATE_LIMIT_PREFIX) for message in messages):
        raise RateLimitedError("; ".join(messages))
    raise RemoteError(errors)


class TikoClient:
    """Authenticated access to one tiko account.

    Args:
        http: HTTP client whose ``base_url`` points at the provider.
        profile: Provider variant flags.
        email: Account e-mail.
        password: Account password.
        bypass_schedule: Also overwrite the weekly schedule when setting
            a target temperature.
        clock: Monotonic clock measuring token age.
        now: Factory for the current calendar time, used when
            :meth:`fetch_properties` gets no reference.
        sleep: Coroutine used to wait out rate limiting.
        rate_limit_cooldown: Seconds to wait before retrying a
            rate-limited request.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        profile: ProviderProfile,
        email: str,
        password: SecretStr,
        *,
        bypass_schedule: bool = False,
        clock: ClockPort | None = None,
        now: Callable[[], datetime] = _local_now,
        sleep: Sleep = asyncio.sleep,
        rate_limit_cooldown: float = RATE_LIMIT_COOLDOWN,
    ) -> None:
        self._http = http
        self._profile = profile
        self._email = email
        self._password = password
        self._bypass_schedule = bypass_schedule
        self._clock = clock or SystemClock()
        self._now = now
        self._sleep = sleep
        self._rate_limit_cooldown = rate_limit_cooldown
        self._token: AuthToken | None = None

    @property
    def profile(self) -> ProviderProfile:
        return self._profile

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    # -- Operations ---------------------------------------------------------

    async def get_token(self) -> str:
        """Return a usable session token, logging in when needed.

        Raises:
            AuthenticationFailedError: If logging in failed for any
                reason.  Never retried here.
        """
        if self._token is not None and self._token.is_valid(self._clock.now()):
            return self._token.value

        variables: dict[str, Any] = {
            "email": self._email,
            "password": self._password.get_secret_value(),
        }
        operation = LOG_IN
        if self._profile.retain_session:
            operation = LOG_IN_RETAINING_SESSION
            variables["retainSession"] = True

        logger.info("Logging in to %s", self._profile.provider)
        try:
            data = await self._execute(operation, variables)
        except TikoError as exc:
            msg = "Unable to get a token from tiko; are the credentials correct?"
            raise AuthenticationFailedError(msg) from exc

        lifespan = self._profile.token_lifespan
        expires_at = (
            None if lifespan is None else self._clock.now() + lifespan.total_seconds()
        )
        self._token = AuthToken(value=data.log_in.token, expires_at=expires_at)
        return self._token.value

    async def fetch_properties(
        self,
        time_reference: datetime | None = None,
    ) -> list[Property]:
        """Fetch every property of the account with its rooms.

        Energy totals cover the month of *time_reference* up to that
        instant.  The provider caches totals per window, so callers pass
        the current time on every call.
        """
        token = await self.get_token()
        reference = time_reference if time_reference is not None else self._now()
        start, end = consumption_window(reference)
        data = await self._execute(
            GET_DATA,
            {"consumptionStartTimestamp": start, "consumptionEndTimestamp": end},
            token=token,
        )
        return map_properties(data)

    async def set_room_target_temperature(
        self,
        property_id: int,
        room_id: int,
        target_temperature: float,
    ) -> None:
        """Set the target temperature of a room.

        Raises:
            CommandRejectedError: If the echoed adjustment is inactive or
                carries another temperature.
        """
        token = await self.get_token()
        variables: dict[str, Any] = {
            "propertyId": property_id,
            "roomId": room_id,
            "temperature": target_temperature,
        }
        operation: QueryDefinition[Any] = SET_ROOM_TEMPERATURE
        if self._bypass_schedule:
            operation = SET_ROOM_TEMPERATURE_WITH_SCHEDULE
            variables["scheduleData"] = build_week_schedule(target_temperature)

        data = await self._execute(operation, variables, token=token)
        echo = data.set_room_adjust_temperature.adjust_temperature
        if not echo.active or echo.temperature != target_temperature:
            msg = (
                f"Unable to set room {room_id} temperature to {target_temperature} "
                f"(active={echo.active}, temperature={echo.temperature})"
            )
            raise CommandRejectedError(msg)
        logger.info(
            "Room %d target temperature set to %s",
            room_id,
            target_temperature,
            extra={"property_id": property_id, "room_id": room_id},
        )

    async def set_room_mode(
        self,
        property_id: int,
        room_id: int,
        mode: PresetMode,
    ) -> None:
        """Set the preset mode of a room.

        Raises:
            CommandRejectedError: If the echoed mode differs from *mode*.
            MultiplePresetModesError: If the echo has several modes active.
        """
        token = await self.get_token()
        data = await self._execute(
            SET_ROOM_MODE,
            {"propertyId": property_id, "roomId": room_id, "mode": MUTATION_MODES[mode]},
            token=token,
        )
        echoed = map_preset_mode(data.set_room_mode.mode)
        if echoed != mode:
            msg = f"Unable to set room {room_id} mode to {mode} (echoed {echoed})"
            raise CommandRejectedError(msg)
        logger.info(
            "Room %d preset mode set to %s",
            room_id,
            mode,
            extra={"property_id": property_id, "room_id": room_id},
        )

    # -- Request protocol ---------------------------------------------------

    async def _execute(
        self,
        operation: QueryDefinition[DataT],
        variables: dict[str, Any],
        token: str | None = None,
    ) -> DataT:
        headers = {"Authorization": f"token {token}"} if token else {}
        body = {"query": operation.query, "variables": variables}

        while True:
            logger.debug("Sending %s", operation.name)
            try:
                response = await self._http.post(GRAPHQL_PATH, json=body, headers=headers)
            except httpx.HTTPError as exc:
                msg = f"{operation.name} request failed: {exc}"
                raise RequestError(msg) from exc

            try:
                payload = response.json()
            except ValueError as exc:
                if response.is_error:
                    msg = f"{operation.name} failed with HTTP {response.status_code}"
                    raise RequestError(msg) from exc
                msg = f"{operation.name} response is not valid JSON"
                raise ProtocolError(msg) from exc

            if not isinstance(payload, dict):
                msg = f"{operation.name} response is not a JSON object"
                raise ProtocolError(msg)

            errors = payload.get("errors")
            if isinstance(errors, list) and errors:
                try:
                    _raise_for_errors(errors)
                except RateLimitedError:
                    logger.warning(
                        "tiko rate limit reached, waiting %.0fs before retrying %s",
                        self._rate_limit_cooldown,
                        operation.name,
                    )
                    await self._sleep(self._rate_limit_cooldown)
                    continue

            if response.is_error:
                msg = f"{operation.name} failed with HTTP {response.status_code}"
                raise RequestError(msg)

            try:
                return operation.data_model.model_validate(
                    payload.get("data"),
                    context={"nullable_humidity": self._profile.nullable_humidity},
                )
            except ValidationError as exc:
                msg = f"The data of {operation.name} was not the expected shape: {exc}"
                raise ProtocolError(msg) from exc
