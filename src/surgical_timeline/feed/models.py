# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Connection-state contracts exposed by the feed connection manager."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from surgical_timeline.enums import ConnectionEvent, ConnectionStatus
from surgical_timeline.errors import SurgicalTimelineError


class ConnectionSnapshot(BaseModel):
    """Point-in-time view of the feed connection.

    Attributes:
        connected: True only while the broker session is up.
        status: Fine-grained connection state; ``disabled`` in quiet mode.
        client_id: MQTT client id used for every (re)connect.
        quiet: True while reconnection is suspended.
        failed_attempts: Consecutive failed connection attempts.
        last_error: Message of the most recent transport error.
    """

    model_config = ConfigDict(frozen=True)

    connected: bool
    status: ConnectionStatus
    client_id: str
    quiet: bool = False
    failed_attempts: int = Field(default=0, ge=0)
    last_error: str | None = None


@dataclass(frozen=True)
class ConnectionNotice:
    """Payload delivered to connection lifecycle listeners."""

    event: ConnectionEvent
    connected: bool
    error: SurgicalTimelineError | None = None


__all__ = ["ConnectionNotice", "ConnectionSnapshot"]
