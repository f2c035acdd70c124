"""Unit tests for tiko2mqtt._mqtt — MQTT port and adapters.

Test Techniques Used:
    - Specification-based Testing: WillConfig, MockMqttClient recording
    - Protocol Conformance: isinstance checks for the runtime_checkable ports
    - State Transition Testing: MqttClient lifecycle (start/stop/reconnect)
    - Mock-based Isolation: aiomqtt patched via sys.modules for MqttClient
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import FrozenInstanceError
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import SecretStr

from tiko2mqtt._mqtt import (
    MockMqttClient,
    MqttClient,
    MqttLifecycle,
    MqttMessageHandler,
    MqttPort,
    WillConfig,
)
from tiko2mqtt._settings import MqttSettings
from tiko2mqtt.testing import AppHarness

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


async def _blocking_messages():
    """Block forever, yielding nothing."""
    await asyncio.Event().wait()
    yield  # pragma: no cover


def _connected_client_mock() -> AsyncMock:
    cm = AsyncMock()
    cm.__aenter__ = AsyncMock(return_value=cm)
    cm.__aexit__ = AsyncMock(return_value=False)
    type(cm).messages = property(lambda self: _blocking_messages())
    cm.subscribe = AsyncMock()
    cm.publish = AsyncMock()
    return cm


@pytest.fixture
def mqtt_settings() -> MqttSettings:
    """MqttSettings with a short reconnect interval."""
    return MqttSettings(reconnect_interval=0.05, reconnect_max_interval=0.2)


@pytest.fixture
def mock_aiomqtt():
    """Mock aiomqtt module for testing MqttClient internals.

    Patches ``sys.modules`` so the lazy ``import aiomqtt`` inside
    ``_connection_loop()`` resolves to a controllable mock.  Every
    ``aiomqtt.Client(...)`` call returns a fresh connected client whose
    message stream blocks until cancelled.
    """
    mock_module = MagicMock()
    instances: list[AsyncMock] = []

    def client_factory(**_kwargs: object) -> AsyncMock:
        cm = _connected_client_mock()
        instances.append(cm)
        return cm

    mock_module.Client = MagicMock(side_effect=client_factory)
    mock_module.Will = MagicMock()

    with patch.dict(sys.modules, {"aiomqtt": mock_module}):
        yield mock_module, instances


# ---------------------------------------------------------------------------
# WillConfig
# ---------------------------------------------------------------------------


class TestWillConfig:
    """Tests for WillConfig frozen dataclass.

    Technique: Specification-based Testing.
    """

    def test_frozen_prevents_mutation(self) -> None:
        cfg = WillConfig(topic="homeassistant/tiko/availability")
        with pytest.raises(FrozenInstanceError):
            cfg.topic = "other"  # type: ignore[misc]

    def test_defaults(self) -> None:
        cfg = WillConfig(topic="homeassistant/tiko/availability")
        assert cfg.payload == "offline"
        assert cfg.qos == 1
        assert cfg.retain is True


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class TestProtocols:
    """Protocol conformance checks for both adapters.

    Technique: Protocol Conformance — isinstance checks using
    ``runtime_checkable``.
    """

    @pytest.mark.parametrize("protocol", [MqttPort, MqttLifecycle, MqttMessageHandler])
    def test_mqtt_client_satisfies(self, protocol: type) -> None:
        assert isinstance(MqttClient(settings=MqttSettings()), protocol)

    @pytest.mark.parametrize("protocol", [MqttPort, MqttLifecycle, MqttMessageHandler])
    def test_mock_client_satisfies(self, protocol: type) -> None:
        assert isinstance(MockMqttClient(), protocol)

    def test_class_missing_subscribe_does_not_satisfy(self) -> None:
        class PublishOnly:
            async def publish(self, topic: str, payload: str) -> None: ...

        assert not isinstance(PublishOnly(), MqttPort)


# ---------------------------------------------------------------------------
# MockMqttClient
# ---------------------------------------------------------------------------


class TestMockMqttClient:
    """Recording behaviour of the test double.

    Technique: Specification-based Testing.
    """

    async def test_records_publish(self, mock_mqtt: MockMqttClient) -> None:
        await mock_mqtt.publish("a/b", "x", retain=True, qos=0)
        assert mock_mqtt.published == [("a/b", "x", True, 0)]
        assert mock_mqtt.get_messages_for("a/b") == [("x", True, 0)]
        assert mock_mqtt.publish_count == 1

    async def test_records_subscribe(self, mock_mqtt: MockMqttClient) -> None:
        await mock_mqtt.subscribe("a/#")
        assert mock_mqtt.subscriptions == ["a/#"]

    async def test_subscribe_error(self, mock_mqtt: MockMqttClient) -> None:
        mock_mqtt.subscribe_error = RuntimeError("refused")
        with pytest.raises(RuntimeError, match="refused"):
            await mock_mqtt.subscribe("a/#")
        assert mock_mqtt.subscriptions == []

    async def test_start_runs_connect_callbacks(self, mock_mqtt: MockMqttClient) -> None:
        calls: list[str] = []

        async def on_connect() -> None:
            calls.append("connected")

        mock_mqtt.on_connect(on_connect)
        await mock_mqtt.start()

        assert mock_mqtt.started
        assert calls == ["connected"]

    async def test_deliver_invokes_callbacks(self, mock_mqtt: MockMqttClient) -> None:
        cb = AsyncMock()
        mock_mqtt.on_message(cb)
        await mock_mqtt.deliver("t", "p")
        cb.assert_awaited_once_with("t", "p")

    async def test_reset(self, mock_mqtt: MockMqttClient) -> None:
        await mock_mqtt.publish("t", "p")
        await mock_mqtt.subscribe("t")
        mock_mqtt.reconnect()
        mock_mqtt.reset()
        assert mock_mqtt.published == []
        assert mock_mqtt.subscriptions == []
        assert mock_mqtt.reconnect_count == 0


# ---------------------------------------------------------------------------
# MqttClient — Publish / Subscribe
# ---------------------------------------------------------------------------


class TestMqttClientPublishSubscribe:
    """Tests for MqttClient.publish() and subscribe().

    Technique: Specification-based Testing.
    """

    async def test_publish_raises_when_not_connected(self, mqtt_settings: MqttSettings) -> None:
        client = MqttClient(settings=mqtt_settings)
        with pytest.raises(RuntimeError, match="not connected"):
            await client.publish("t", "p")

    async def test_subscribe_raises_when_not_connected(self, mqtt_settings: MqttSettings) -> None:
        client = MqttClient(settings=mqtt_settings)
        with pytest.raises(RuntimeError, match="not connected"):
            await client.subscribe("t")

    async def test_publishes_via_internal_client(self, mqtt_settings: MqttSettings) -> None:
        client = MqttClient(settings=mqtt_settings)
        mock_inner = AsyncMock()
        client._client = mock_inner  # noqa: SLF001

        await client.publish("a/b", "payload", retain=True, qos=2)
        mock_inner.publish.assert_awaited_once_with("a/b", "payload", retain=True, qos=2)

    async def test_subscribes_with_configured_qos(self) -> None:
        client = MqttClient(settings=MqttSettings(qos=2))
        mock_inner = AsyncMock()
        client._client = mock_inner  # noqa: SLF001

        await client.subscribe("t/1")
        mock_inner.subscribe.assert_awaited_once_with("t/1", qos=2)


# ---------------------------------------------------------------------------
# MqttClient — Connection
# ---------------------------------------------------------------------------


class TestMqttClientConnect:
    """Tests for MqttClient connection details.

    Technique: Mock-based Isolation of aiomqtt.
    """

    async def test_connects_with_settings(self, mock_aiomqtt) -> None:
        mock_module, _instances = mock_aiomqtt
        settings = MqttSettings(
            host="broker.local",
            port=8883,
            username="user",
            password=SecretStr("s3cret"),
            client_id="tiko2mqtt-test",
        )
        client = MqttClient(settings=settings)
        await client.start()
        await AppHarness.wait_until(lambda: client.is_connected)

        kwargs = mock_module.Client.call_args.kwargs
        assert kwargs["hostname"] == "broker.local"
        assert kwargs["port"] == 8883
        assert kwargs["username"] == "user"
        assert kwargs["password"] == "s3cret"
        assert kwargs["identifier"] == "tiko2mqtt-test"
        await client.stop()

    async def test_will_config_converted_to_aiomqtt_will(
        self,
        mqtt_settings: MqttSettings,
        mock_aiomqtt,
    ) -> None:
        mock_module, _instances = mock_aiomqtt
        will = WillConfig(topic="homeassistant/tiko/availability")
        client = MqttClient(settings=mqtt_settings, will=will)
        await client.start()
        await AppHarness.wait_until(lambda: client.is_connected)

        mock_module.Will.assert_called_once_with(
            topic="homeassistant/tiko/availability",
            payload="offline",
            qos=1,
            retain=True,
        )
        await client.stop()

    async def test_connect_callbacks_run_on_connection(
        self,
        mqtt_settings: MqttSettings,
        mock_aiomqtt,
    ) -> None:
        _mock_module, instances = mock_aiomqtt
        client = MqttClient(settings=mqtt_settings)

        async def subscribe_on_connect() -> None:
            await client.subscribe("homeassistant/status")

        client.on_connect(subscribe_on_connect)
        await client.start()
        await AppHarness.wait_until(lambda: len(instances) == 1 and instances[0].subscribe.await_count == 1)

        instances[0].subscribe.assert_awaited_once_with("homeassistant/status", qos=1)
        await client.stop()

    async def test_failing_connect_callback_is_logged(
        self,
        mqtt_settings: MqttSettings,
        mock_aiomqtt,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        client = MqttClient(settings=mqtt_settings)
        client.on_connect(AsyncMock(side_effect=RuntimeError("boom")))

        await client.start()
        await AppHarness.wait_until(lambda: client.is_connected)
        await AppHarness.wait_until(lambda: "Error in connect callback" in caplog.text)

        assert client.is_connected
        await client.stop()

    async def test_stop_is_idempotent(self, mqtt_settings: MqttSettings) -> None:
        client = MqttClient(settings=mqtt_settings)
        await client.stop()
        await client.stop()
        assert not client.is_connected


# ---------------------------------------------------------------------------
# MqttClient — Reconnect
# ---------------------------------------------------------------------------


class TestMqttClientReconnect:
    """Tests for MqttClient reconnection behaviour.

    Technique: State Transition Testing.
    """

    async def test_reconnects_after_error(self, mqtt_settings: MqttSettings) -> None:
        mock_module = MagicMock()
        mqtt_error = type("MqttError", (Exception,), {})
        attempts: list[AsyncMock] = []

        def client_factory(**_kwargs: object) -> AsyncMock:
            cm = _connected_client_mock()
            if not attempts:
                cm.__aenter__ = AsyncMock(side_effect=mqtt_error("conn refused"))
            attempts.append(cm)
            return cm

        mock_module.Client = client_factory
        mock_module.Will = MagicMock()

        with patch.dict(sys.modules, {"aiomqtt": mock_module}):
            client = MqttClient(settings=mqtt_settings)
            await client.start()
            await AppHarness.wait_until(lambda: client.is_connected)
            assert len(attempts) == 2
            await client.stop()

    async def test_reconnect_request_dials_again(
        self,
        mqtt_settings: MqttSettings,
        mock_aiomqtt,
    ) -> None:
        _mock_module, instances = mock_aiomqtt
        connects: list[int] = []

        async def on_connect() -> None:
            connects.append(len(instances))

        client = MqttClient(settings=mqtt_settings)
        client.on_connect(on_connect)
        await client.start()
        await AppHarness.wait_until(lambda: connects == [1])

        client.reconnect()
        await AppHarness.wait_until(lambda: connects == [1, 2])

        instances[0].__aexit__.assert_awaited()
        await client.stop()


# ---------------------------------------------------------------------------
# MqttClient — Dispatch
# ---------------------------------------------------------------------------


class TestMqttClientDispatch:
    """Tests for MqttClient._dispatch() message handling.

    Technique: Specification-based Testing.
    """

    async def test_dispatches_decoded_payload(self, mqtt_settings: MqttSettings) -> None:
        client = MqttClient(settings=mqtt_settings)
        cb = AsyncMock()
        client.on_message(cb)

        await client._dispatch(SimpleNamespace(topic="a/b", payload=b"online"))  # noqa: SLF001
        cb.assert_awaited_once_with("a/b", "online")

    async def test_skips_none_payload(self, mqtt_settings: MqttSettings) -> None:
        client = MqttClient(settings=mqtt_settings)
        cb = AsyncMock()
        client.on_message(cb)

        await client._dispatch(SimpleNamespace(topic="a/b", payload=None))  # noqa: SLF001
        cb.assert_not_awaited()

    async def test_error_in_callback_logged_not_crashed(
        self,
        mqtt_settings: MqttSettings,
    ) -> None:
        client = MqttClient(settings=mqtt_settings)
        cb_ok = AsyncMock()
        client.on_message(AsyncMock(side_effect=RuntimeError("boom")))
        client.on_message(cb_ok)

        await client._dispatch(SimpleNamespace(topic="t", payload=b"p"))  # noqa: SLF001

        cb_ok.assert_awaited_once_with("t", "p")

    async def test_undecodable_payload_is_dropped(
        self,
        mqtt_settings: MqttSettings,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        client = MqttClient(settings=mqtt_settings)
        cb = AsyncMock()
        client.on_message(cb)
        topic = "homeassistant/climate/tiko_1/set"

        await client._dispatch(SimpleNamespace(topic=topic, payload=b"\xff\xfe{"))  # noqa: SLF001

        cb.assert_not_awaited()
        assert f"non UTF-8 payload on {topic}" in caplog.text
