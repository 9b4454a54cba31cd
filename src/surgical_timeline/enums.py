# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Closed vocabularies for timeline events, sessions and connection state.

All enums are ``str``-valued so they serialize verbatim into JSON payloads
consumed by the presentation layer.
"""

from __future__ import annotations

from enum import Enum, unique


@unique
class EventType(str, Enum):
    """Tag carried by every timeline event."""

    STAGE_BEGIN = "stage_begin"
    TOOL_DETECTED = "tool_detected"
    TOOL_REMOVED = "tool_removed"
    WORKFLOW_START = "workflow_start"
    WORKFLOW_INTENSE_START = "workflow_intense_start"
    WORKFLOW_INTENSIFY = "workflow_intensify"
    WORKFLOW_FOCUS = "workflow_focus"
    WORKFLOW_PAUSE = "workflow_pause"
    WORKFLOW_SHIFT = "workflow_shift"
    TOOL_SWITCH = "tool_switch"
    STATUS = "status"
    ANALYSIS_STARTED = "analysis_started"
    ANALYSIS_FAILED = "analysis_failed"
    ANALYSIS_STOPPED = "analysis_stopped"
    NOTE = "note"


@unique
class EventSeverity(str, Enum):
    """Display priority of a timeline event."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@unique
class EventSource(str, Enum):
    """Provenance of a timeline event."""

    FEED = "mqtt-feed"
    """Derived from a telemetry message."""

    SYSTEM = "system"
    """Synthesized locally (session lifecycle, status annotations)."""

    USER = "user"
    """Injected manually by an operator."""


EVENT_SEVERITY: dict[EventType, EventSeverity] = {
    EventType.STAGE_BEGIN: EventSeverity.HIGH,
    EventType.TOOL_DETECTED: EventSeverity.MEDIUM,
    EventType.TOOL_REMOVED: EventSeverity.LOW,
    EventType.WORKFLOW_START: EventSeverity.HIGH,
    EventType.WORKFLOW_INTENSE_START: EventSeverity.HIGH,
    EventType.WORKFLOW_INTENSIFY: EventSeverity.MEDIUM,
    EventType.WORKFLOW_FOCUS: EventSeverity.MEDIUM,
    EventType.WORKFLOW_PAUSE: EventSeverity.LOW,
    EventType.WORKFLOW_SHIFT: EventSeverity.MEDIUM,
    EventType.TOOL_SWITCH: EventSeverity.LOW,
    EventType.STATUS: EventSeverity.LOW,
    EventType.ANALYSIS_STARTED: EventSeverity.MEDIUM,
    EventType.ANALYSIS_FAILED: EventSeverity.HIGH,
    EventType.ANALYSIS_STOPPED: EventSeverity.LOW,
    EventType.NOTE: EventSeverity.LOW,
}
"""Severity is a pure function of the event type."""


@unique
class MessageKind(str, Enum):
    """Semantic kind assigned to an inbound feed message by the classifier."""

    STAGE_TRANSITION = "stage_transition"
    STAGE_STATUS = "stage_status"
    TOOL_INVENTORY = "tool_inventory"
    INFORMATIONAL = "informational"
    INVALID = "invalid"


@unique
class AnalysisKind(str, Enum):
    """The two remote analysis job flavours."""

    STAGE_ANALYSIS = "stage-analysis"
    TOOL_DETECTION = "tool-detection"


@unique
class AnalysisStatus(str, Enum):
    """Local lifecycle of the single analysis session."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"


@unique
class ConnectionStatus(str, Enum):
    """Feed connection state exposed to the presentation layer."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"
    DISABLED = "disabled"
    """Quiet mode: reconnection suspended until the cooldown elapses."""


@unique
class ConnectionEvent(str, Enum):
    """Lifecycle notifications raised by the connection manager."""

    CONNECT = "connect"
    DISCONNECT = "disconnect"
    ERROR = "error"


@unique
class OperationStatus(str, Enum):
    """Scheduling status of a procedure."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


__all__ = [
    "EVENT_SEVERITY",
    "AnalysisKind",
    "AnalysisStatus",
    "ConnectionEvent",
    "ConnectionStatus",
    "EventSeverity",
    "EventSource",
    "EventType",
    "MessageKind",
    "OperationStatus",
]
