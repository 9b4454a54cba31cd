# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Unit tests for the paho-mqtt transport.

The paho client is replaced with a MagicMock; network-thread callbacks are
invoked directly and must be marshalled onto the running loop.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt
import pytest

from surgical_timeline.errors import FeedConnectionError
from surgical_timeline.feed.transport_mqtt import MqttFeedTransport, parse_broker_url

_CLIENT = "surgical_timeline.feed.transport_mqtt.mqtt.Client"


def _reason(failure: bool) -> SimpleNamespace:
    return SimpleNamespace(is_failure=failure)


@pytest.mark.unit
class TestParseBrokerUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("ws://localhost:9001", ("localhost", 9001, "/", False)),
            ("ws://10.0.0.5:9001/mqtt", ("10.0.0.5", 9001, "/mqtt", False)),
            ("wss://broker.example/mqtt", ("broker.example", 443, "/mqtt", True)),
            ("ws://broker.example", ("broker.example", 80, "/", False)),
        ],
    )
    def test_valid(self, url: str, expected: tuple[str, int, str, bool]) -> None:
        assert parse_broker_url(url) == expected

    @pytest.mark.parametrize("url", ["mqtt://localhost:1883", "http://x", "ws://"])
    def test_invalid(self, url: str) -> None:
        with pytest.raises(FeedConnectionError):
            parse_broker_url(url)


@pytest.mark.unit
class TestLifecycle:
    @pytest.mark.asyncio
    async def test_open_waits_for_connack(self) -> None:
        transport = MqttFeedTransport()
        with patch(_CLIENT) as client_cls:
            client = client_cls.return_value
            task = asyncio.ensure_future(
                transport.open("ws://broker.test:9001/mqtt", client_id="c1", keepalive=30)
            )
            await asyncio.sleep(0)
            assert not task.done()

            transport._handle_connect(client, None, None, _reason(False), None)
            await asyncio.wait_for(task, timeout=1)

            client_cls.assert_called_once()
            assert client_cls.call_args.kwargs["transport"] == "websockets"
            assert client_cls.call_args.kwargs["client_id"] == "c1"
            client.ws_set_options.assert_called_once_with(path="/mqtt")
            client.connect_async.assert_called_once_with("broker.test", 9001, 30)
            client.loop_start.assert_called_once()

            await transport.close()
            client.disconnect.assert_called()
            client.loop_stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_refused_connack_fails_open(self) -> None:
        transport = MqttFeedTransport()
        with patch(_CLIENT) as client_cls:
            client = client_cls.return_value
            task = asyncio.ensure_future(
                transport.open("ws://broker.test:9001", client_id="c1", keepalive=30)
            )
            await asyncio.sleep(0)
            transport._handle_connect(client, None, None, _reason(True), None)

            with pytest.raises(FeedConnectionError, match="refused"):
                await asyncio.wait_for(task, timeout=1)

    @pytest.mark.asyncio
    async def test_unreachable_broker_fails_open(self) -> None:
        transport = MqttFeedTransport()
        with patch(_CLIENT) as client_cls:
            client = client_cls.return_value
            task = asyncio.ensure_future(
                transport.open("ws://broker.test:9001", client_id="c1", keepalive=30)
            )
            await asyncio.sleep(0)
            transport._handle_connect_fail(client, None)

            with pytest.raises(FeedConnectionError, match="unreachable"):
                await asyncio.wait_for(task, timeout=1)
            client.disconnect.assert_called()


@pytest.mark.unit
class TestCallbacks:
    @pytest.mark.asyncio
    async def test_message_is_marshalled_to_loop(self) -> None:
        transport = MqttFeedTransport()
        received: list[tuple[str, bytes]] = []
        transport.bind(lambda t, p: received.append((t, p)), lambda reason: None)
        transport._loop = asyncio.get_running_loop()

        message = SimpleNamespace(topic="surgery/tool", payload=bytearray(b'{"tool": []}'))
        transport._handle_message(MagicMock(), None, message)
        assert received == []

        await asyncio.sleep(0)
        assert received == [("surgery/tool", b'{"tool": []}')]

    @pytest.mark.asyncio
    async def test_unsolicited_disconnect_reports_loss(self) -> None:
        transport = MqttFeedTransport()
        lost: list[str] = []
        transport.bind(lambda t, p: None, lost.append)
        transport._loop = asyncio.get_running_loop()
        client = MagicMock()

        transport._handle_disconnect(client, None, None, "keepalive timeout", None)
        await asyncio.sleep(0)

        assert lost == ["keepalive timeout"]
        client.disconnect.assert_called_once()

    @pytest.mark.asyncio
    async def test_requested_close_is_not_reported(self) -> None:
        transport = MqttFeedTransport()
        lost: list[str] = []
        transport.bind(lambda t, p: None, lost.append)
        transport._loop = asyncio.get_running_loop()
        transport._closing = True

        transport._handle_disconnect(MagicMock(), None, None, "normal", None)
        await asyncio.sleep(0)

        assert lost == []


@pytest.mark.unit
class TestTopicCalls:
    @pytest.mark.asyncio
    async def test_requires_connection(self) -> None:
        transport = MqttFeedTransport()
        with pytest.raises(FeedConnectionError):
            await transport.subscribe("surgery/tool")

    @pytest.mark.asyncio
    async def test_subscribe_error_code_raises(self) -> None:
        transport = MqttFeedTransport(qos=1)
        client = MagicMock()
        client.is_connected.return_value = True
        client.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)
        transport._client = client

        with pytest.raises(FeedConnectionError, match="surgery/tool"):
            await transport.subscribe("surgery/tool")
        client.subscribe.assert_called_once_with("surgery/tool", qos=1)

    @pytest.mark.asyncio
    async def test_publish(self) -> None:
        transport = MqttFeedTransport()
        client = MagicMock()
        client.is_connected.return_value = True
        client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_SUCCESS)
        transport._client = client

        await transport.publish("surgery/notes", b"{}")
        client.publish.assert_called_once_with("surgery/notes", b"{}", qos=0)
