"""Unit tests for tiko2mqtt._clock and the FakeClock test double.

Test Techniques Used:
    - Protocol Conformance: isinstance checks for ClockPort
    - Boundary Value Analysis: monotonic ordering of SystemClock
    - State-based Testing: FakeClock advancing
"""

from __future__ import annotations

from tiko2mqtt._clock import ClockPort, SystemClock
from tiko2mqtt.testing import FakeClock


class TestSystemClock:
    """Technique: Specification-based Testing."""

    def test_is_a_clock_port(self) -> None:
        assert isinstance(SystemClock(), ClockPort)

    def test_never_goes_backwards(self) -> None:
        clock = SystemClock()
        readings = [clock.now() for _ in range(5)]
        assert readings == sorted(readings)


class TestFakeClock:
    """Technique: State-based Testing."""

    def test_is_a_clock_port(self) -> None:
        assert isinstance(FakeClock(), ClockPort)

    def test_advance_accumulates(self) -> None:
        clock = FakeClock(10.0)
        clock.advance(5)
        clock.advance(0.5)
        assert clock.now() == 15.5

    def test_object_without_now_is_not_a_clock(self) -> None:
        assert not isinstance(object(), ClockPort)
