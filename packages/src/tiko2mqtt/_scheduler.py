"""Single-flight update scheduler.

Refreshes are requested from three places: the periodic timer, a
command that changed a room, and Home Assistant coming back online.
Requests are coalesced by two flags rather than queued:

=================  ==========  =========
state              updating    requested
=================  ==========  =========
Idle               False       False
Pending            False       True
Running            True        False
RunningWithPending True        True
=================  ==========  =========

``request_update()`` sets *requested* and, when idle, starts one task
running ``while requested: run one cycle``.  However many requests
arrive while a cycle runs, exactly one more cycle follows it.

Cycles are spaced by at least ``min_spacing`` seconds.  Fetch failures
are handed to the listener and never retried here; the API client
already waits out rate limiting and the next request tries again.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol, runtime_checkable

from tiko2mqtt._clock import ClockPort, SystemClock
from tiko2mqtt._errors import PropertyNotFoundError
from tiko2mqtt._models import Property, find_property

logger = logging.getLogger(__name__)

MIN_SPACING = 1.0
"""Minimum number of seconds between the end of a cycle and the next fetch."""


@runtime_checkable
class SnapshotListener(Protocol):
    """Receives the outcome of every update cycle."""

    async def on_state_changed(self, prop: Property) -> None: ...

    async def on_error(self, error: Exception) -> None: ...


class PropertySource(Protocol):
    """Anything that can fetch the account's properties."""

    async def fetch_properties(
        self,
        time_reference: datetime | None = None,
    ) -> list[Property]: ...


def _local_now() -> datetime:
    return datetime.now().astimezone()


class UpdateScheduler:
    """Coalesces refresh requests into paced fetches of one property.

    Must be used from within a running event loop.

    Args:
        client: Source of property snapshots.
        property_id: The property to report.
        listener: Sink for snapshots and errors.
        interval: Seconds between two unsolicited refreshes.
        min_spacing: Minimum seconds between two fetches.
        clock: Monotonic clock for spacing.
        now: Factory for the calendar time passed to each fetch.
        sleep: Coroutine used for every wait.
    """

    def __init__(
        self,
        client: PropertySource,
        property_id: int,
        listener: SnapshotListener,
        *,
        interval: float,
        min_spacing: float = MIN_SPACING,
        clock: ClockPort | None = None,
        now: Callable[[], datetime] = _local_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._property_id = property_id
        self._listener = listener
        self._interval = interval
        self._min_spacing = min_spacing
        self._clock = clock or SystemClock()
        self._now = now
        self._sleep = sleep

        self._update_requested = False
        self._updating = False
        self._last_update: float | None = None
        self._cycle_task: asyncio.Task[None] | None = None
        self._timer_task: asyncio.Task[None] | None = None

    @property
    def is_updating(self) -> bool:
        return self._updating

    @property
    def update_requested(self) -> bool:
        return self._update_requested

    def request_update(self) -> None:
        """Ask for a refresh; coalesced with any pending one."""
        self._update_requested = True
        if self._updating:
            logger.debug("Update already running, coalescing request")
            return
        self._updating = True
        self._cycle_task = asyncio.create_task(
            self._run_cycles(),
            name="tiko2mqtt-update",
        )

    async def wait_idle(self) -> None:
        """Wait until no cycle is running or pending."""
        while (task := self._cycle_task) is not None and not task.done():
            await task

    def start(self) -> None:
        """Start the periodic refresh timer."""
        if self._timer_task is not None and not self._timer_task.done():
            return
        self._timer_task = asyncio.create_task(
            self._periodic(),
            name="tiko2mqtt-timer",
        )
        logger.info("Refreshing every %.0f seconds", self._interval)

    async def stop(self) -> None:
        """Cancel the timer and any cycle in flight."""
        for task in (self._timer_task, self._cycle_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._timer_task = None
        self._cycle_task = None

    # -- Internal -----------------------------------------------------------

    async def _periodic(self) -> None:
        while True:
            await self._sleep(self._interval)
            self.request_update()

    async def _run_cycles(self) -> None:
        try:
            while self._update_requested:
                self._update_requested = False
                await self._run_cycle()
        finally:
            self._updating = False

    async def _run_cycle(self) -> None:
        if self._last_update is not None:
            remaining = self._min_spacing - (self._clock.now() - self._last_update)
            if remaining > 0:
                logger.debug("Waiting %.2fs before the next update", remaining)
                await self._sleep(remaining)

        try:
            properties = await self._client.fetch_properties(self._now())
            prop = find_property(properties, self._property_id)
            if prop is None:
                raise PropertyNotFoundError(self._property_id)
        except Exception as exc:
            logger.error(
                "Update failed: %s",
                exc,
                extra={"property_id": self._property_id},
            )
            await self._notify(self._listener.on_error(exc))
        else:
            logger.debug(
                "Fetched property %d with %d rooms",
                prop.id,
                len(prop.rooms),
                extra={"property_id": prop.id},
            )
            await self._notify(self._listener.on_state_changed(prop))
        finally:
            self._last_update = self._clock.now()

    async def _notify(self, notification: Awaitable[None]) -> None:
        try:
            await notification
        except Exception:
            logger.exception("Update listener failed")
