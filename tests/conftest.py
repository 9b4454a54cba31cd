# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""
Pytest configuration and fixtures for surgical_timeline tests.

Provides an in-memory feed transport, fast retry settings, a fixed clock
and an httpx mock transport for the analysis service.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest

from surgical_timeline.catalog import InMemoryOperationCatalog, Operation
from surgical_timeline.clients.analysis_job_client import AnalysisJobClient
from surgical_timeline.clients.model_analysis_client_config import (
    ModelAnalysisClientConfig,
)
from surgical_timeline.config import TimelineSettings
from surgical_timeline.errors import FeedConnectionError
from surgical_timeline.feed.protocols import ConnectionLostCallback, MessageCallback

FIXED_NOW = datetime(2025, 7, 18, 9, 30, 0, tzinfo=UTC)

# =========================================================================
# Feed transport double
# =========================================================================


class FakeFeedTransport:
    """In-memory ``ProtocolFeedTransport`` with scriptable connect failures."""

    def __init__(self, *, fail_opens: int = 0, always_fail: bool = False) -> None:
        self.fail_opens = fail_opens
        self.always_fail = always_fail
        self.connected = False
        self.open_calls = 0
        self.close_calls = 0
        self.endpoints: list[str] = []
        self.client_ids: list[str] = []
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []
        self.published: list[tuple[str, bytes]] = []
        self._on_message: MessageCallback | None = None
        self._on_lost: ConnectionLostCallback | None = None

    def bind(
        self,
        on_message: MessageCallback,
        on_connection_lost: ConnectionLostCallback,
    ) -> None:
        self._on_message = on_message
        self._on_lost = on_connection_lost

    async def open(self, endpoint: str, *, client_id: str, keepalive: int) -> None:
        self.open_calls += 1
        self.endpoints.append(endpoint)
        self.client_ids.append(client_id)
        if self.always_fail or self.open_calls <= self.fail_opens:
            raise FeedConnectionError("connection refused")
        self.connected = True

    async def close(self) -> None:
        self.close_calls += 1
        self.connected = False

    async def subscribe(self, topic: str) -> None:
        if not self.connected:
            raise FeedConnectionError("not connected")
        self.subscribed.append(topic)

    async def unsubscribe(self, topic: str) -> None:
        if not self.connected:
            raise FeedConnectionError("not connected")
        self.unsubscribed.append(topic)

    async def publish(self, topic: str, payload: bytes) -> None:
        if not self.connected:
            raise FeedConnectionError("not connected")
        self.published.append((topic, payload))

    # -- test helpers -------------------------------------------------------

    def deliver(self, topic: str, message: Any) -> None:
        """Push an inbound message; dicts are JSON-encoded, bytes sent as-is."""
        assert self._on_message is not None
        payload = message if isinstance(message, bytes) else json.dumps(message).encode()
        self._on_message(str(topic), payload)

    def drop(self, reason: str = "keepalive timeout") -> None:
        """Simulate an unsolicited connection loss."""
        self.connected = False
        assert self._on_lost is not None
        self._on_lost(reason)


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture
def settings() -> TimelineSettings:
    """Settings with instant reconnects and a long quiet-mode cooldown."""
    return TimelineSettings(
        _env_file=None,
        broker_url="ws://broker.test:9001",
        analysis_base_url="http://analysis.test",
        reconnect_period_seconds=0,
        quiet_cooldown_seconds=60,
        connect_timeout_seconds=1,
    )


@pytest.fixture
def fake_transport() -> FakeFeedTransport:
    return FakeFeedTransport()


@pytest.fixture
def make_transport() -> Callable[..., FakeFeedTransport]:
    return FakeFeedTransport


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """A clock frozen at ``FIXED_NOW``."""
    return lambda: FIXED_NOW


@pytest.fixture
def operation() -> Operation:
    return Operation(
        id="op1",
        procedure_type="Cholecystectomy",
        room="OR-1",
        scheduled_time=datetime(2025, 7, 18, 9, 0, tzinfo=UTC),
        video_id="video01",
    )


@pytest.fixture
def catalog(operation: Operation) -> InMemoryOperationCatalog:
    return InMemoryOperationCatalog(
        [
            operation,
            Operation(
                id="op2",
                procedure_type="Cholecystectomy",
                room="OR-2",
                scheduled_time=datetime(2025, 7, 19, 11, 30, tzinfo=UTC),
            ),
        ]
    )


@pytest.fixture
def job_requests() -> list[httpx.Request]:
    """Requests captured by ``analysis_client``."""
    return []


@pytest.fixture
def analysis_client(job_requests: list[httpx.Request]) -> AnalysisJobClient:
    """Analysis client whose service acknowledges every start with job-1."""

    def handler(request: httpx.Request) -> httpx.Response:
        job_requests.append(request)
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        return httpx.Response(200, json={"job_id": "job-1", "state": "queued"})

    return AnalysisJobClient(
        ModelAnalysisClientConfig(base_url="http://analysis.test"),
        transport=httpx.MockTransport(handler),
    )
