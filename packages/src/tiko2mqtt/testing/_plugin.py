"""Pytest plugin providing shared test fixtures for tiko2mqtt.

Registers ``mock_mqtt``, ``fake_clock`` and ``settings`` fixtures.
Load it with ``pytest_plugins = ["tiko2mqtt.testing._plugin"]``.

Imports are deferred into the fixture bodies so tiko2mqtt modules are
first imported while coverage is already tracing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from tiko2mqtt._mqtt import MockMqttClient
    from tiko2mqtt._settings import Settings
    from tiko2mqtt.testing._clock import FakeClock


@pytest.fixture
def mock_mqtt() -> MockMqttClient:
    """Fresh MockMqttClient for each test."""
    from tiko2mqtt._mqtt import MockMqttClient

    return MockMqttClient()


@pytest.fixture
def fake_clock() -> FakeClock:
    """FakeClock starting at time 0."""
    from tiko2mqtt.testing._clock import FakeClock

    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Isolated settings with the test account."""
    from tiko2mqtt.testing._settings import make_settings

    return make_settings()
