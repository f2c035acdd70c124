"""Monotonic clock port and system adapter.

The bridge measures two durations: how long an API token has been in
use, and how long ago the last refresh ran.  Both only care about
elapsed time, so they read a monotonic clock that NTP corrections and
manual wall-clock changes cannot move backwards.

Calendar time (the start of the current month for energy totals) is a
separate concern and is passed around as a ``datetime`` factory.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockPort(Protocol):
    """Monotonic clock for measuring elapsed time.

    The default implementation wraps ``time.monotonic()``. Tests
    inject a deterministic fake clock for reproducible timing.
    """

    def now(self) -> float:
        """Return monotonic time in seconds.

        Only the *difference* between two calls is meaningful.
        """
        ...


class SystemClock:
    """Production clock wrapping ``time.monotonic()``."""

    def now(self) -> float:
        """Return monotonic time in seconds."""
        return time.monotonic()
