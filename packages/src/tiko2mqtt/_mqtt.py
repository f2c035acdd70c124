"""MQTT client port and adapters.

Provides the ports the bridge talks to and two implementations:

- MqttClient — real aiomqtt-based client with reconnection
- MockMqttClient — test double that records calls

Design decisions:

- aiomqtt imported lazily inside MqttClient._connection_loop() so the
  mock works without aiomqtt installed
- Subscriptions are *not* restored by the adapter; connect callbacks
  run on every (re)connection and own the subscription set
- ``reconnect()`` drops the current session and dials again, which is
  how a failed subscription is recovered
- WillConfig abstracts LWT without leaking aiomqtt types
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from tiko2mqtt._settings import MqttSettings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

MessageCallback = Callable[[str, str], Awaitable[None]]
"""Async callback receiving (topic, payload) for each inbound message."""

ConnectCallback = Callable[[], Awaitable[None]]
"""Async callback invoked after every successful (re)connection."""

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WillConfig:
    """Last-Will-and-Testament configuration.

    Abstracts ``aiomqtt.Will`` so that callers never depend on the
    aiomqtt package directly.
    """

    topic: str
    payload: str = "offline"
    qos: int = 1
    retain: bool = True


# ---------------------------------------------------------------------------
# Ports (Protocols)
# ---------------------------------------------------------------------------


@runtime_checkable
class MqttPort(Protocol):
    """Port contract for MQTT publish/subscribe."""

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None: ...

    async def subscribe(self, topic: str) -> None: ...


@runtime_checkable
class MqttLifecycle(Protocol):
    """Connection lifecycle of an MQTT adapter."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    def reconnect(self) -> None: ...


@runtime_checkable
class MqttMessageHandler(Protocol):
    """Callback registration of an MQTT adapter."""

    def on_message(self, callback: MessageCallback) -> None: ...

    def on_connect(self, callback: ConnectCallback) -> None: ...


# ---------------------------------------------------------------------------
# Mock / test-double adapter
# ---------------------------------------------------------------------------


@dataclass
class MockMqttClient:
    """In-memory test double that records MQTT interactions.

    Records publishes and subscriptions for assertion.  ``start()``
    runs the connect callbacks like a real connection would, and
    ``deliver()`` simulates an inbound message.

    Set ``publish_error`` or ``subscribe_error`` to make every
    ``publish()`` or ``subscribe()`` call raise it, e.g. to exercise
    fire-and-forget paths or the reconnect path.
    """

    published: list[tuple[str, str, bool, int]] = field(
        default_factory=list,
    )
    subscriptions: list[str] = field(default_factory=list)
    publish_error: Exception | None = None
    subscribe_error: Exception | None = None
    reconnect_count: int = 0
    started: bool = False
    _callbacks: list[MessageCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _connect_callbacks: list[ConnectCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )

    # -- MqttPort methods --------------------------------------------------

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None:
        """Record a publish call, or raise ``publish_error``."""
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((topic, payload, retain, qos))

    async def subscribe(self, topic: str) -> None:
        """Record a subscribe call, or raise ``subscribe_error``."""
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.subscriptions.append(topic)

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Mark as started and fire the connect callbacks."""
        self.started = True
        await self.connect()

    async def stop(self) -> None:
        """Mark as stopped."""
        self.started = False

    def reconnect(self) -> None:
        """Count a reconnect request."""
        self.reconnect_count += 1

    # -- Callback registration ---------------------------------------------

    def on_message(self, callback: MessageCallback) -> None:
        """Register an inbound-message callback."""
        self._callbacks.append(callback)

    def on_connect(self, callback: ConnectCallback) -> None:
        """Register a connect callback."""
        self._connect_callbacks.append(callback)

    # -- Test helpers -------------------------------------------------------

    async def connect(self) -> None:
        """Simulate a (re)connection by invoking the connect callbacks."""
        for cb in self._connect_callbacks:
            await cb()

    async def deliver(self, topic: str, payload: str) -> None:
        """Simulate an inbound message by invoking all callbacks."""
        for cb in self._callbacks:
            await cb(topic, payload)

    @property
    def publish_count(self) -> int:
        """Number of recorded publishes."""
        return len(self.published)

    def reset(self) -> None:
        """Clear recorded publishes and subscriptions."""
        self.published.clear()
        self.subscriptions.clear()
        self.reconnect_count = 0

    def get_messages_for(
        self,
        topic: str,
    ) -> list[tuple[str, bool, int]]:
        """Return ``(payload, retain, qos)`` tuples for *topic*."""
        return [
            (payload, retain, qos)
            for t, payload, retain, qos in self.published
            if t == topic
        ]


# ---------------------------------------------------------------------------
# Real adapter
# ---------------------------------------------------------------------------


@dataclass
class MqttClient:
    """Production MQTT adapter backed by *aiomqtt*.

    Uses a background task that maintains a persistent connection
    with automatic reconnection.  The delay between attempts starts at
    ``reconnect_interval`` and doubles after each failure, capped at
    ``reconnect_max_interval``; a successful connection resets it.
    """

    settings: MqttSettings
    will: WillConfig | None = None

    # internal state --------------------------------------------------------
    _callbacks: list[MessageCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _connect_callbacks: list[ConnectCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _client: Any = field(default=None, init=False, repr=False)
    _listen_task: asyncio.Task[None] | None = field(
        default=None,
        init=False,
        repr=False,
    )
    _connected: asyncio.Event = field(
        default_factory=asyncio.Event,
        init=False,
        repr=False,
    )
    _reconnect_requested: asyncio.Event = field(
        default_factory=asyncio.Event,
        init=False,
        repr=False,
    )
    _stopping: bool = field(default=False, init=False, repr=False)

    # -- MqttPort methods --------------------------------------------------

    async def publish(
        self,
        topic: str,
        payload: str,
        *,
        retain: bool = False,
        qos: int = 1,
    ) -> None:
        """Publish a message to the broker.

        Raises:
            RuntimeError: If the client is not connected.
        """
        if self._client is None:
            msg = "MqttClient is not connected"
            raise RuntimeError(msg)
        await self._client.publish(
            topic,
            payload,
            retain=retain,
            qos=qos,
        )
        logger.debug(
            "Published to %s (qos=%d, retain=%s)",
            topic,
            qos,
            retain,
        )

    async def subscribe(self, topic: str) -> None:
        """Subscribe to *topic* on the current connection.

        Raises:
            RuntimeError: If the client is not connected.
        """
        if self._client is None:
            msg = "MqttClient is not connected"
            raise RuntimeError(msg)
        await self._client.subscribe(topic, qos=self.settings.qos)
        logger.debug("Subscribed to %s", topic)

    # -- Callback registration ---------------------------------------------

    def on_message(self, callback: MessageCallback) -> None:
        """Register a callback for inbound messages."""
        self._callbacks.append(callback)

    def on_connect(self, callback: ConnectCallback) -> None:
        """Register a callback run after every successful connection."""
        self._connect_callbacks.append(callback)

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start the background connection loop."""
        if self._listen_task is not None and not self._listen_task.done():
            logger.debug("MqttClient.start() called while already running")
            return
        self._stopping = False
        self._listen_task = asyncio.create_task(
            self._connection_loop(),
        )

    async def stop(self) -> None:
        """Stop the connection loop and clean up.

        Idempotent — safe to call multiple times.
        """
        self._stopping = True
        if self._listen_task is not None:
            self._listen_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listen_task
            self._listen_task = None
        self._client = None
        self._connected.clear()

    def reconnect(self) -> None:
        """Drop the current connection and dial the broker again."""
        self._reconnect_requested.set()

    @property
    def is_connected(self) -> bool:
        """Whether the client is currently connected to the broker."""
        return self._connected.is_set()

    # -- Internal -----------------------------------------------------------

    async def _connection_loop(self) -> None:
        """Maintain a persistent connection with auto-reconnect."""
        try:
            import aiomqtt  # noqa: PLC0415
        except ModuleNotFoundError as exc:
            msg = "aiomqtt is required to use MqttClient"
            raise RuntimeError(msg) from exc

        delay = self.settings.reconnect_interval
        while not self._stopping:
            try:
                password: str | None = None
                if self.settings.password is not None:
                    password = self.settings.password.get_secret_value()

                will: aiomqtt.Will | None = None
                if self.will is not None:
                    will = aiomqtt.Will(
                        topic=self.will.topic,
                        payload=self.will.payload,
                        qos=self.will.qos,
                        retain=self.will.retain,
                    )

                async with aiomqtt.Client(
                    hostname=self.settings.host,
                    port=self.settings.port,
                    username=self.settings.username,
                    password=password,
                    identifier=self.settings.client_id or None,
                    will=will,
                ) as client:
                    self._client = client
                    self._reconnect_requested.clear()
                    try:
                        self._connected.set()
                        delay = self.settings.reconnect_interval
                        logger.info(
                            "MQTT connected to %s:%d",
                            self.settings.host,
                            self.settings.port,
                        )
                        await self._run_connect_callbacks()
                        await self._serve(client)
                    finally:
                        self._connected.clear()
                        self._client = None

                await asyncio.sleep(delay)

            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning(
                    "MQTT connection lost, reconnecting in %.1fs",
                    delay,
                    exc_info=True,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.settings.reconnect_max_interval)

    async def _serve(self, client: Any) -> None:
        """Read messages until the stream fails or a reconnect is requested."""
        reader = asyncio.create_task(self._read_messages(client))
        waiter = asyncio.create_task(self._reconnect_requested.wait())
        try:
            done, _ = await asyncio.wait(
                {reader, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            reader.cancel()
            waiter.cancel()
            await asyncio.gather(reader, waiter, return_exceptions=True)

        if reader in done:
            # Surface a broken stream to the reconnect handler.
            reader.result()
        else:
            logger.info("MQTT reconnect requested")

    async def _read_messages(self, client: Any) -> None:
        async for message in client.messages:
            await self._dispatch(message)

    async def _run_connect_callbacks(self) -> None:
        for cb in self._connect_callbacks:
            try:
                await cb()
            except Exception:
                logger.exception("Error in connect callback")

    async def _dispatch(self, message: Any) -> None:
        """Decode and fan-out an inbound message to callbacks."""
        topic = str(message.topic)

        if message.payload is None:
            logger.debug(
                "Skipping message with None payload on %s",
                topic,
            )
            return

        try:
            payload = (
                message.payload.decode("utf-8")
                if isinstance(message.payload, (bytes, bytearray))
                else str(message.payload)
            )
        except UnicodeDecodeError:
            logger.warning(
                "Dropping message with a non UTF-8 payload on %s",
                topic,
                extra={"topic": topic},
            )
            return

        for cb in self._callbacks:
            try:
                await cb(topic, payload)
            except Exception:
                logger.exception(
                    "Error in message callback for %s",
                    topic,
                )
