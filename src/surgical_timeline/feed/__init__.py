# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Telemetry feed connection management.

Public API:

    from surgical_timeline.feed import (
        ConnectionManager,
        ConnectionNotice,
        ConnectionSnapshot,
        MqttFeedTransport,
        ProtocolFeedTransport,
    )
"""

from surgical_timeline.feed.manager import (
    ConnectionListener,
    ConnectionManager,
    TopicHandler,
)
from surgical_timeline.feed.models import ConnectionNotice, ConnectionSnapshot
from surgical_timeline.feed.protocols import ProtocolFeedTransport
from surgical_timeline.feed.transport_mqtt import MqttFeedTransport

__all__ = [
    "ConnectionListener",
    "ConnectionManager",
    "ConnectionNotice",
    "ConnectionSnapshot",
    "MqttFeedTransport",
    "ProtocolFeedTransport",
    "TopicHandler",
]
