"""Application orchestrator for the tiko to MQTT bridge.

The :class:`App` class is the composition root.  It wires the tiko
client, the update scheduler, the snapshot publisher and the command
bridge around an MQTT adapter, then runs until SIGTERM/SIGINT.

Typical usage::

    from tiko2mqtt import App

    App(version="1.0.0").run()

Startup is strict: if the first fetch fails (bad credentials, provider
down) or the configured property does not exist, the error propagates
and the process exits.  Once running, every failure is logged and
retried on the next refresh.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import uuid
from collections.abc import Sequence

import httpx

from tiko2mqtt._client import TikoClient, create_http_client
from tiko2mqtt._clock import ClockPort, SystemClock
from tiko2mqtt._commands import CommandBridge
from tiko2mqtt._discovery import birth_topic, build_will_config, error_topic
from tiko2mqtt._errors import ErrorPublisher, TikoError
from tiko2mqtt._logging import configure_logging
from tiko2mqtt._models import Property, select_property
from tiko2mqtt._mqtt import (
    ConnectCallback,
    MqttClient,
    MqttLifecycle,
    MqttMessageHandler,
    MqttPort,
)
from tiko2mqtt._providers import get_provider_profile
from tiko2mqtt._publisher import SnapshotPublisher
from tiko2mqtt._scheduler import UpdateScheduler
from tiko2mqtt._settings import Settings

logger = logging.getLogger(__name__)


class App:
    """Composition root and application orchestrator."""

    def __init__(
        self,
        name: str = "tiko2mqtt",
        version: str = "0.0.0",
        *,
        description: str = "tiko heating to MQTT bridge for Home Assistant",
        settings_class: type[Settings] = Settings,
    ) -> None:
        """Initialise the application orchestrator.

        Args:
            name: Application name (logging service name, MQTT client ID).
            version: Application version string.
            description: Short description for CLI help text.
            settings_class: Settings class to instantiate at startup.
        """
        self._name = name
        self._version = version
        self._description = description
        self._settings_class = settings_class

    # --- Lifecycle ---------------------------------------------------------

    def run(
        self,
        *,
        mqtt: MqttPort | None = None,
        http: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
    ) -> None:
        """Start the application (blocking, synchronous entrypoint).

        All parameters are optional and intended for programmatic or
        test use.

        Args:
            mqtt: Override MQTT client (e.g. ``MockMqttClient``).
            http: Override HTTP client used to reach the tiko API.
            settings: Override settings (skip env-file loading).
            shutdown_event: Override shutdown event (skip OS signal
                handlers).
            clock: Override clock (e.g. ``FakeClock``).
        """
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(
                self._run_async(
                    mqtt=mqtt,
                    http=http,
                    settings=settings,
                    shutdown_event=shutdown_event,
                    clock=clock,
                ),
            )

    def cli(self) -> None:
        """Start the application with CLI argument parsing."""
        from tiko2mqtt._cli import build_cli

        cli = build_cli(self)
        cli(standalone_mode=True)

    async def _run_async(
        self,
        *,
        mqtt: MqttPort | None = None,
        http: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
    ) -> None:
        """Async orchestration.

        1. Bootstrap settings, logging and the tiko client.
        2. Fetch once and select the property (fatal on failure).
        3. Wire MQTT, publisher, scheduler and command bridge.
        4. Run until shutdown, then tear down.
        """
        # --- Phase 1: Bootstrap ---
        resolved_settings = settings if settings is not None else self._settings_class()
        configure_logging(
            resolved_settings.logging,
            service=self._name,
            version=self._version,
        )
        resolved_clock = clock if clock is not None else SystemClock()
        prefix = resolved_settings.mqtt.discovery_prefix

        tiko = resolved_settings.tiko
        profile = get_provider_profile(tiko.provider)
        client = TikoClient(
            http if http is not None else create_http_client(profile),
            profile,
            tiko.email,
            tiko.password,
            bypass_schedule=tiko.bypass_schedule,
            clock=resolved_clock,
        )

        try:
            # --- Phase 2: Initial fetch ---
            prop = await self._select_property(client, tiko.property_id)

            # --- Phase 3: Wiring ---
            mqtt = self._create_mqtt(mqtt, resolved_settings)
            error_publisher = ErrorPublisher(mqtt=mqtt, topic=error_topic(prefix))
            publisher = SnapshotPublisher(
                mqtt,
                error_publisher,
                discovery_prefix=prefix,
                initial=prop,
                qos=resolved_settings.mqtt.qos,
            )
            scheduler = UpdateScheduler(
                client,
                prop.id,
                publisher,
                interval=resolved_settings.update_interval_minutes * 60,
                clock=resolved_clock,
            )
            bridge = CommandBridge(
                client,
                scheduler,
                prop.id,
                discovery_prefix=prefix,
            )

            if isinstance(mqtt, MqttMessageHandler):
                mqtt.on_message(bridge.submit)
                mqtt.on_connect(
                    self._connect_handler(mqtt, publisher, scheduler, prefix),
                )

            # --- Phase 4: Run ---
            shutdown_event = self._install_signal_handlers(shutdown_event)

            if isinstance(mqtt, MqttLifecycle):
                await mqtt.start()
            try:
                bridge.start()
                scheduler.start()
                await shutdown_event.wait()
            finally:
                # --- Phase 5: Tear down ---
                await bridge.stop()
                await scheduler.stop()
                if isinstance(mqtt, MqttLifecycle):
                    await mqtt.stop()
        finally:
            await client.aclose()

        logger.info("Shutdown complete")

    # --- _run_async helpers ------------------------------------------------

    async def _select_property(
        self,
        client: TikoClient,
        property_id: int | None,
    ) -> Property:
        """Fetch the account's properties and pick the one to expose."""
        try:
            properties = await client.fetch_properties()
        except TikoError:
            logger.error("Unable to fetch data from tiko; are the credentials correct?")
            raise

        logger.info(
            "Found properties: %s",
            _describe(properties) or "none",
        )
        prop = select_property(properties, property_id)
        logger.info(
            "Using property %s (%d) with %d rooms",
            prop.name,
            prop.id,
            len(prop.rooms),
            extra={"property_id": prop.id},
        )
        return prop

    def _create_mqtt(
        self,
        mqtt: MqttPort | None,
        resolved_settings: Settings,
    ) -> MqttPort:
        """Create the MQTT client, or return the injected one.

        When no explicit ``client_id`` is configured, generates one
        from the app name and a short random suffix.
        """
        if mqtt is not None:
            return mqtt
        mqtt_settings = resolved_settings.mqtt
        if not mqtt_settings.client_id:
            generated_id = f"{self._name}-{uuid.uuid4().hex[:8]}"
            mqtt_settings = mqtt_settings.model_copy(
                update={"client_id": generated_id},
            )
        will = build_will_config(mqtt_settings.discovery_prefix)
        return MqttClient(settings=mqtt_settings, will=will)

    @staticmethod
    def _connect_handler(
        mqtt: MqttPort,
        publisher: SnapshotPublisher,
        scheduler: UpdateScheduler,
        prefix: str,
    ) -> ConnectCallback:
        """Build the callback run on every MQTT (re)connection.

        Subscribes the birth topic and every command topic, then asks
        for a refresh.  A failed subscription aborts the sequence and
        requests a reconnection instead.
        """

        async def on_connect() -> None:
            topics = [birth_topic(prefix), *publisher.command_topics]
            for topic in topics:
                try:
                    await mqtt.subscribe(topic)
                except Exception:
                    logger.exception(
                        "Failed to subscribe to %s, reconnecting",
                        topic,
                        extra={"topic": topic},
                    )
                    if isinstance(mqtt, MqttLifecycle):
                        mqtt.reconnect()
                    return
            scheduler.request_update()
            logger.info("MQTT connection ready")

        return on_connect

    def _install_signal_handlers(
        self,
        shutdown_event: asyncio.Event | None,
    ) -> asyncio.Event:
        """Install SIGTERM/SIGINT handlers. Returns the shutdown event."""
        if shutdown_event is not None:
            return shutdown_event
        event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, event.set)
        return event


def _describe(properties: Sequence[Property]) -> str:
    return ", ".join(f"{prop.name} ({prop.id})" for prop in properties)
