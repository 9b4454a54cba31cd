# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Protocol definitions for feed transport dependency injection.

The connection manager depends on ``ProtocolFeedTransport`` (not a concrete
MQTT client) so retry policy can be exercised against an in-memory fake.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

MessageCallback = Callable[[str, bytes], None]
"""Called with ``(topic, raw_payload)`` for every inbound message."""

ConnectionLostCallback = Callable[[str], None]
"""Called with a reason string when an open connection drops unsolicited."""


@runtime_checkable
class ProtocolFeedTransport(Protocol):
    """A single publish/subscribe connection to the telemetry broker.

    Implementations must:
    - Invoke bound callbacks on the asyncio event loop thread.
    - Not reconnect on their own; the connection manager owns retries.
    - Raise ``FeedConnectionError`` from ``open`` when the broker refuses or
      cannot be reached, and from the topic operations when not connected.
    """

    def bind(
        self,
        on_message: MessageCallback,
        on_connection_lost: ConnectionLostCallback,
    ) -> None:
        """Register the inbound callbacks. Called once by the manager."""
        ...

    async def open(self, endpoint: str, *, client_id: str, keepalive: int) -> None:
        """Connect to ``endpoint``; returns once the broker acknowledges."""
        ...

    async def close(self) -> None:
        """Tear the connection down. Safe to call when not connected."""
        ...

    async def subscribe(self, topic: str) -> None: ...

    async def unsubscribe(self, topic: str) -> None: ...

    async def publish(self, topic: str, payload: bytes) -> None: ...


__all__ = [
    "ConnectionLostCallback",
    "MessageCallback",
    "ProtocolFeedTransport",
]
