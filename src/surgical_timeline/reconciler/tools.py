# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Tool Reconciler: set differences and workflow classification.

Every accepted inventory replaces the detected-tool set wholesale. An
inventory that leaves the set unchanged (in any order) is discarded and
emits nothing.

Per-tool events:
    tool_detected   1-2 tools added
    tool_removed    1-2 tools removed
Larger swings are left to the workflow event to avoid flooding the log.

Workflow table (previous count -> new count, first match wins):
    0  -> 1    workflow_start
    0  -> >1   workflow_intense_start
    1  -> >1   workflow_intensify
    >1 -> 1    workflow_focus
    >0 -> 0    workflow_pause
    >1 -> >1   workflow_shift
    1  -> 1    tool_switch
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from surgical_timeline.enums import EventSource, EventType
from surgical_timeline.models import (
    DetectedTools,
    TimelineEvent,
    ToolInventoryMessage,
)

logger = logging.getLogger(__name__)

_MAX_INDIVIDUAL_CHANGES = 2


def _utc_now() -> datetime:
    return datetime.now(UTC)


def classify_transition(
    previous: tuple[str, ...],
    current: tuple[str, ...],
) -> tuple[EventType, str, str] | None:
    """Map a tool-set transition onto the workflow vocabulary.

    Returns:
        ``(event_type, description, transition_label)`` or None when no row
        of the table applies (no change).
    """
    prev_count = len(previous)
    new_count = len(current)
    joined = ", ".join(current)

    if prev_count == 0 and new_count == 1:
        return (
            EventType.WORKFLOW_START,
            f"Surgery workflow started: {current[0]}",
            "none_to_single",
        )
    if prev_count == 0 and new_count > 1:
        return (
            EventType.WORKFLOW_INTENSE_START,
            f"Surgery started with multiple tools: {joined}",
            "none_to_multiple",
        )
    if prev_count == 1 and new_count > 1:
        return (
            EventType.WORKFLOW_INTENSIFY,
            f"Multiple tools active: {joined}",
            "single_to_multiple",
        )
    if prev_count > 1 and new_count == 1:
        return (
            EventType.WORKFLOW_FOCUS,
            f"Workflow focused on: {current[0]}",
            "multiple_to_single",
        )
    if prev_count > 0 and new_count == 0:
        return (
            EventType.WORKFLOW_PAUSE,
            f"Surgery workflow paused (was: {', '.join(previous)})",
            "active_to_none",
        )
    if prev_count > 1 and new_count > 1 and set(previous) != set(current):
        return (
            EventType.WORKFLOW_SHIFT,
            f"Tool combination changed: {joined}",
            "multiple_to_multiple",
        )
    if prev_count == 1 and new_count == 1 and previous[0] != current[0]:
        return (
            EventType.TOOL_SWITCH,
            f"Tool switched: {previous[0]} → {current[0]}",
            "single_to_single",
        )
    return None


class ToolReconciler:
    """Owns the detected-tool projection and turns inventories into events.

    Args:
        touch_on_noop: Refresh ``last_update`` when an inventory repeats the
            current set. Events are suppressed regardless.
        clock: Source of receipt time for inventories without ``datetime``.
    """

    def __init__(
        self,
        *,
        touch_on_noop: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._touch_on_noop = touch_on_noop
        self._clock = clock
        self._state = DetectedTools()

    @property
    def detected(self) -> DetectedTools:
        """Current detected-tool projection (immutable snapshot)."""
        return self._state

    def on_tool_inventory(
        self,
        message: ToolInventoryMessage,
        *,
        operation_id: str | None,
    ) -> list[TimelineEvent]:
        """Apply an inventory snapshot.

        Returns:
            Events in emission order: tool_detected, tool_removed, then the
            workflow event. Empty when the set did not change.
        """
        previous = self._state.tools
        current = message.tools
        timestamp = message.reported_at or self._clock().isoformat()

        added = tuple(t for t in current if t not in previous)
        removed = tuple(t for t in previous if t not in current)

        if not added and not removed:
            logger.debug("No tool changes detected, skipping event creation")
            if self._touch_on_noop:
                self._state = self._state.model_copy(update={"last_update": timestamp})
            return []

        logger.info("Tools detected: [%s]", ", ".join(current))
        self._state = DetectedTools(tools=current, last_update=timestamp)

        events: list[TimelineEvent] = []
        if 1 <= len(added) <= _MAX_INDIVIDUAL_CHANGES:
            events.append(
                self._event(
                    EventType.TOOL_DETECTED,
                    f"Tool detected: {', '.join(added)}",
                    message,
                    operation_id,
                    timestamp,
                    {"tools": list(added), "action": "detected"},
                )
            )
        if 1 <= len(removed) <= _MAX_INDIVIDUAL_CHANGES:
            events.append(
                self._event(
                    EventType.TOOL_REMOVED,
                    f"Tool removed: {', '.join(removed)}",
                    message,
                    operation_id,
                    timestamp,
                    {"tools": list(removed), "action": "removed"},
                )
            )

        workflow = classify_transition(previous, current)
        if workflow is not None:
            event_type, description, transition = workflow
            events.append(
                self._event(
                    event_type,
                    description,
                    message,
                    operation_id,
                    timestamp,
                    {
                        "tools": list(current),
                        "action": event_type.value,
                        "transition": transition,
                        "previous_tools": list(previous),
                    },
                )
            )
        return events

    def reset(self) -> None:
        """Forget all detected tools."""
        self._state = DetectedTools()

    @staticmethod
    def _event(
        event_type: EventType,
        description: str,
        message: ToolInventoryMessage,
        operation_id: str | None,
        timestamp: str,
        details: dict[str, object],
    ) -> TimelineEvent:
        return TimelineEvent.create(
            event_type,
            operation_id=operation_id,
            timestamp=timestamp,
            description=description,
            source=EventSource.FEED,
            confidence=message.confidence,
            data=message.raw,
            details=details,
        )


__all__ = ["ToolReconciler", "classify_transition"]
