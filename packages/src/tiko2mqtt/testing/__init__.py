"""Public test-support utilities for tiko2mqtt.

Re-exports test doubles and factories so that test suites can import
everything from a single ``tiko2mqtt.testing`` namespace instead of
reaching into private modules.

Provided symbols:

- :class:`AppHarness` — test harness wrapping App with pre-configured doubles.
- :class:`MockMqttClient` — in-memory MQTT double that records calls.
- :class:`FakeClock` — deterministic clock for timing tests.
- :func:`make_settings` — factory for ``Settings`` without ``.env`` files.
"""

from tiko2mqtt._mqtt import MockMqttClient
from tiko2mqtt.testing._clock import FakeClock
from tiko2mqtt.testing._harness import AppHarness
from tiko2mqtt.testing._settings import make_settings

__all__ = [
    "AppHarness",
    "FakeClock",
    "MockMqttClient",
    "make_settings",
]
