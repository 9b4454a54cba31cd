# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Event normalization and state reconciliation for live surgical telemetry.

Turns stage-transition and tool-inventory messages from an MQTT feed into a
deduplicated, newest-first event timeline plus current-state projections
(active stage, detected tools, connection health, analysis session).

Quick start:
    ```python
    from surgical_timeline import (
        AnalysisKind,
        InMemoryOperationCatalog,
        Operation,
        ProcedureMonitor,
    )

    catalog = InMemoryOperationCatalog([Operation(id="op1", procedure_type="Cholecystectomy")])
    async with ProcedureMonitor(catalog=catalog) as monitor:
        await monitor.load_operation("op1")
        await monitor.start_analysis(AnalysisKind.TOOL_DETECTION)
        ...
    ```
"""

from surgical_timeline.catalog import InMemoryOperationCatalog, Operation
from surgical_timeline.classifier import ClassifiedMessage, classify_message
from surgical_timeline.config import TimelineSettings
from surgical_timeline.enums import (
    AnalysisKind,
    AnalysisStatus,
    ConnectionEvent,
    ConnectionStatus,
    EventSeverity,
    EventSource,
    EventType,
    MessageKind,
    OperationStatus,
)
from surgical_timeline.errors import (
    FeedConnectionError,
    FeedParseError,
    MessageValidationError,
    RemoteServiceError,
    SessionConflictError,
    SurgicalTimelineError,
)
from surgical_timeline.models import (
    AnalysisSession,
    DetectedTools,
    StageProgress,
    TimelineEvent,
)
from surgical_timeline.procedure import MonitorSnapshot, ProcedureMonitor
from surgical_timeline.session import (
    AnalysisSessionController,
    StartResult,
    StopResult,
)
from surgical_timeline.timeline import TimelineStore
from surgical_timeline.topics import SurgeryTopic

__version__ = "0.1.0"

__all__ = [
    "AnalysisKind",
    "AnalysisSession",
    "AnalysisSessionController",
    "AnalysisStatus",
    "ClassifiedMessage",
    "ConnectionEvent",
    "ConnectionStatus",
    "DetectedTools",
    "EventSeverity",
    "EventSource",
    "EventType",
    "FeedConnectionError",
    "FeedParseError",
    "InMemoryOperationCatalog",
    "MessageKind",
    "MessageValidationError",
    "MonitorSnapshot",
    "Operation",
    "OperationStatus",
    "ProcedureMonitor",
    "RemoteServiceError",
    "SessionConflictError",
    "StageProgress",
    "StartResult",
    "StopResult",
    "SurgeryTopic",
    "SurgicalTimelineError",
    "TimelineEvent",
    "TimelineSettings",
    "TimelineStore",
    "__version__",
    "classify_message",
]
