# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""MQTT-over-WebSocket transport built on paho-mqtt.

paho runs its network loop in a background thread. Every callback from that
thread is marshalled onto the asyncio loop with ``call_soon_threadsafe`` so
the connection manager only ever sees single-threaded calls.

paho's automatic reconnect is suppressed: on an unsolicited disconnect the
client is told to disconnect for good and the loss is reported upward.

Broker URL format: ``ws://host[:port][/path]`` or ``wss://...``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from surgical_timeline.errors import FeedConnectionError
from surgical_timeline.feed.protocols import ConnectionLostCallback, MessageCallback

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"ws": 80, "wss": 443}


def parse_broker_url(endpoint: str) -> tuple[str, int, str, bool]:
    """Split a broker URL into ``(host, port, path, use_tls)``.

    Raises:
        FeedConnectionError: Unsupported scheme or missing host.
    """
    parts = urlsplit(endpoint)
    if parts.scheme not in _DEFAULT_PORTS:
        raise FeedConnectionError(f"Unsupported broker URL scheme: {endpoint!r}")
    if not parts.hostname:
        raise FeedConnectionError(f"Broker URL has no host: {endpoint!r}")
    port = parts.port or _DEFAULT_PORTS[parts.scheme]
    return parts.hostname, port, parts.path or "/", parts.scheme == "wss"


class MqttFeedTransport:
    """``ProtocolFeedTransport`` over MQTT 3.1.1 with WebSocket framing.

    Args:
        qos: QoS level used for subscriptions and publishes.
        verify_tls: Verify the broker certificate on ``wss://`` URLs.
    """

    def __init__(self, *, qos: int = 0, verify_tls: bool = True) -> None:
        self._qos = qos
        self._verify_tls = verify_tls
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ready: asyncio.Future[None] | None = None
        self._closing = False
        self._on_message: MessageCallback | None = None
        self._on_lost: ConnectionLostCallback | None = None

    def bind(
        self,
        on_message: MessageCallback,
        on_connection_lost: ConnectionLostCallback,
    ) -> None:
        self._on_message = on_message
        self._on_lost = on_connection_lost

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, endpoint: str, *, client_id: str, keepalive: int) -> None:
        await self.close()
        host, port, path, use_tls = parse_broker_url(endpoint)
        self._loop = asyncio.get_running_loop()
        self._ready = self._loop.create_future()
        self._closing = False

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=True,
            protocol=mqtt.MQTTv311,
            transport="websockets",
        )
        client.ws_set_options(path=path)
        if use_tls:
            client.tls_set()
            client.tls_insecure_set(not self._verify_tls)
        client.on_connect = self._handle_connect
        client.on_connect_fail = self._handle_connect_fail
        client.on_disconnect = self._handle_disconnect
        client.on_message = self._handle_message
        self._client = client

        try:
            client.connect_async(host, port, keepalive)
        except (OSError, ValueError) as exc:
            self._client = None
            raise FeedConnectionError(f"Cannot connect to {endpoint}: {exc}") from exc
        client.loop_start()

        try:
            await self._ready
        except BaseException:
            await self.close()
            raise

    async def close(self) -> None:
        client = self._client
        if client is None:
            return
        self._closing = True
        self._client = None
        await asyncio.to_thread(self._shutdown, client)

    @staticmethod
    def _shutdown(client: mqtt.Client) -> None:
        client.disconnect()
        client.loop_stop()

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def _require_client(self) -> mqtt.Client:
        if self._client is None or not self._client.is_connected():
            raise FeedConnectionError("MQTT client is not connected")
        return self._client

    async def subscribe(self, topic: str) -> None:
        result, _mid = self._require_client().subscribe(topic, qos=self._qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise FeedConnectionError(
                f"Subscribe to {topic} failed: {mqtt.error_string(result)}"
            )

    async def unsubscribe(self, topic: str) -> None:
        result, _mid = self._require_client().unsubscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise FeedConnectionError(
                f"Unsubscribe from {topic} failed: {mqtt.error_string(result)}"
            )

    async def publish(self, topic: str, payload: bytes) -> None:
        info = self._require_client().publish(topic, payload, qos=self._qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise FeedConnectionError(
                f"Publish to {topic} failed: {mqtt.error_string(info.rc)}"
            )

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _call_in_loop(self, callback: Any, *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(callback, *args)

    def _settle(self, error: FeedConnectionError | None) -> None:
        future = self._ready
        if future is None:
            return

        def apply() -> None:
            if future.done():
                return
            if error is None:
                future.set_result(None)
            else:
                future.set_exception(error)

        self._call_in_loop(apply)

    def _handle_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any,
    ) -> None:
        if reason_code.is_failure:
            self._settle(FeedConnectionError(f"Broker refused connection: {reason_code}"))
            client.disconnect()
        else:
            self._settle(None)

    def _handle_connect_fail(self, client: mqtt.Client, userdata: Any) -> None:
        self._settle(FeedConnectionError("Broker unreachable"))
        client.disconnect()

    def _handle_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: Any,
        properties: Any,
    ) -> None:
        if self._closing:
            return
        client.disconnect()
        if self._ready is not None and not self._ready.done():
            self._settle(FeedConnectionError(f"Connection closed: {reason_code}"))
            return
        if self._on_lost is not None:
            self._call_in_loop(self._on_lost, str(reason_code))

    def _handle_message(self, client: mqtt.Client, userdata: Any, message: Any) -> None:
        if self._on_message is not None:
            self._call_in_loop(self._on_message, message.topic, bytes(message.payload))


__all__ = ["MqttFeedTransport", "parse_broker_url"]
