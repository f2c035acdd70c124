"""Publishes property snapshots to MQTT.

:class:`SnapshotPublisher` is the update scheduler's listener.  Each
snapshot is turned into discovery and state messages which are
published in order; a failed publish is logged and the remaining
messages are still attempted.  Errors are forwarded to the
:class:`~tiko2mqtt._errors.ErrorPublisher`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from tiko2mqtt._discovery import (
    DEFAULT_DISCOVERY_PREFIX,
    CommandTopic,
    DiscoveryConfiguration,
    MqttMessage,
    compute_discovery,
)
from tiko2mqtt._errors import ErrorPublisher
from tiko2mqtt._models import Property
from tiko2mqtt._mqtt import MqttPort

logger = logging.getLogger(__name__)


class SnapshotPublisher:
    """Keeps Home Assistant in sync with the latest property snapshot.

    Args:
        mqtt: Port used to publish and subscribe.
        error_publisher: Sink for update errors.
        discovery_prefix: Home Assistant discovery prefix.
        initial: Snapshot whose command topics are known before the
            first update, so they can be subscribed on connect.
        qos: QoS of published messages.
    """

    def __init__(
        self,
        mqtt: MqttPort,
        error_publisher: ErrorPublisher,
        *,
        discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX,
        initial: Property | None = None,
        qos: int = 1,
    ) -> None:
        self._mqtt = mqtt
        self._error_publisher = error_publisher
        self._discovery_prefix = discovery_prefix
        self._qos = qos
        self._configuration = (
            compute_discovery(initial, discovery_prefix=discovery_prefix)
            if initial is not None
            else DiscoveryConfiguration()
        )

    @property
    def command_topics(self) -> dict[str, CommandTopic]:
        """Command topics of the latest snapshot, keyed by topic."""
        return dict(self._configuration.command_topics)

    async def on_state_changed(self, prop: Property) -> None:
        previous = set(self._configuration.command_topics)
        self._configuration = compute_discovery(
            prop,
            discovery_prefix=self._discovery_prefix,
        )
        await self.publish(self._configuration.messages)

        added = sorted(set(self._configuration.command_topics) - previous)
        if added:
            await self._subscribe(added)

    async def on_error(self, error: Exception) -> None:
        await self._error_publisher.publish(error)

    async def publish(self, messages: Iterable[MqttMessage]) -> None:
        """Publish *messages* in order; failures are logged and skipped."""
        for message in messages:
            try:
                await self._mqtt.publish(
                    message.topic,
                    message.payload,
                    retain=message.retain,
                    qos=self._qos,
                )
            except Exception:
                logger.exception(
                    "Failed to publish to %s",
                    message.topic,
                    extra={"topic": message.topic},
                )

    async def _subscribe(self, topics: Iterable[str]) -> None:
        for topic in topics:
            logger.info("Subscribing to new command topic %s", topic)
            try:
                await self._mqtt.subscribe(topic)
            except Exception:
                logger.exception("Failed to subscribe to %s", topic)
