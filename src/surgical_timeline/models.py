# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Pydantic v2 contracts for timeline events, projections and feed messages.

Design decisions:
- All models are frozen (immutable after construction). Projections are
  updated by replacing the whole model via ``model_copy``.
- Field names are snake_case in Python and camelCase on the wire
  (``model_dump(by_alias=True)``) to match what the presentation layer reads.
- Timestamps on feed-derived events are the source-reported strings, kept
  verbatim; they are not re-parsed or normalised.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from surgical_timeline.enums import (
    EVENT_SEVERITY,
    AnalysisKind,
    EventSeverity,
    EventSource,
    EventType,
)

_WIRE_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


def new_event_id(prefix: str) -> str:
    """Return a fresh event id: ``<prefix>_<epoch ms>_<8 hex chars>``."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# Timeline events
# ---------------------------------------------------------------------------


class TimelineEvent(BaseModel):
    """An immutable entry on the procedure timeline.

    Attributes:
        id: Unique id generated at creation; never reused.
        operation_id: Procedure the event belongs to.
        timestamp: ISO-8601 instant. Source-reported for feed events.
        type: Event tag.
        description: Human-readable summary, deterministic per message.
        severity: Display priority, deterministic per ``type``.
        source: Provenance marker.
        confidence: Detector confidence passed through from the message.
        stage: Raw stage name (stage-transition events only).
        stage_color: Colour lookup for ``stage`` (stage-transition events only).
        data: Raw source message retained for audit.
        details: Derived facts (tool lists, transition shape) for consumers.
    """

    model_config = _WIRE_CONFIG

    id: str = Field(description="Unique event id.")
    operation_id: str | None = Field(description="Owning procedure id.")
    timestamp: str = Field(description="ISO-8601 instant of the occurrence.")
    type: EventType = Field(description="Event tag.")
    description: str = Field(description="Human-readable summary.")
    severity: EventSeverity = Field(description="Display priority.")
    source: EventSource = Field(description="Provenance marker.")
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    stage: str | None = Field(default=None)
    stage_color: str | None = Field(default=None)
    data: dict[str, Any] = Field(default_factory=dict)
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        event_type: EventType,
        *,
        operation_id: str | None,
        timestamp: str,
        description: str,
        source: EventSource = EventSource.FEED,
        data: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
        confidence: float | None = None,
        stage: str | None = None,
        stage_color: str | None = None,
    ) -> TimelineEvent:
        """Build an event with a fresh id and the type's fixed severity."""
        return cls(
            id=new_event_id(event_type.value),
            operation_id=operation_id,
            timestamp=timestamp,
            type=event_type,
            description=description,
            severity=EVENT_SEVERITY[event_type],
            source=source,
            confidence=confidence,
            stage=stage,
            stage_color=stage_color,
            data=dict(data or {}),
            details=dict(details or {}),
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys for the presentation layer."""
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


class StageStatusEntry(BaseModel):
    """Last status gauge reported for one stage."""

    model_config = _WIRE_CONFIG

    status: str
    last_update: str
    active_tool: str | None = None


class StageProgress(BaseModel):
    """Singleton projection of stage progress for the active procedure.

    ``last_processed_stage`` is the dedup key for stage transitions;
    ``current_stage`` follows both accepted transitions and status gauges.
    """

    model_config = _WIRE_CONFIG

    current_stage: str | None = None
    clean_stage_name: str | None = None
    last_processed_stage: str | None = None
    stage_status: dict[str, StageStatusEntry] = Field(default_factory=dict)
    last_update: str | None = None


class DetectedTools(BaseModel):
    """Singleton projection of the instruments currently believed in use."""

    model_config = _WIRE_CONFIG

    tools: tuple[str, ...] = ()
    last_update: str | None = None


class AnalysisSession(BaseModel):
    """The single remote analysis job and its locally tracked state."""

    model_config = _WIRE_CONFIG

    session_id: str
    job_id: str
    operation_id: str
    kind: AnalysisKind
    start_time: datetime
    state: str = Field(description="Lifecycle string reported by the service.")


# ---------------------------------------------------------------------------
# Classified feed messages
# ---------------------------------------------------------------------------


class StageTransitionMessage(BaseModel):
    """A validated ``surgery/stage`` announcement."""

    model_config = ConfigDict(frozen=True)

    stage: str
    begin: str
    confidence: float | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class StageStatusMessage(BaseModel):
    """A validated ``surgery/status`` gauge update."""

    model_config = ConfigDict(frozen=True)

    stage: str
    status: str
    reported_at: str
    tool: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class ToolInventoryMessage(BaseModel):
    """A validated ``surgery/tool`` snapshot, already filtered to known tools.

    ``tools`` preserves the message order with duplicates removed;
    ``dropped`` lists names that were not in the tool vocabulary.
    """

    model_config = ConfigDict(frozen=True)

    tools: tuple[str, ...] = ()
    reported_at: str | None = None
    confidence: float | None = None
    dropped: tuple[str, ...] = ()
    raw: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "AnalysisSession",
    "DetectedTools",
    "StageProgress",
    "StageStatusEntry",
    "StageStatusMessage",
    "StageTransitionMessage",
    "TimelineEvent",
    "ToolInventoryMessage",
    "new_event_id",
]
