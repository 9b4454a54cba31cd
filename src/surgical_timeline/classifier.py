# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Pure classification of decoded feed messages.

``classify_message`` decides what a ``(topic, message)`` pair means and
extracts the fields the reconcilers rely on. It never touches reconciler
state, so the same input always yields the same classification.

Rules, in order:
    1. ``surgery_type`` and ``file_name`` both present: metadata
       announcement, ``INFORMATIONAL``.
    2. Stage topic: truthy ``begin`` and non-empty string ``stage``.
    3. Status topic: ``stage``, ``status`` and ``datetime`` present.
    4. Tool topic: ``tool`` absent or a list; filtered to known tools.
       An empty result is still a valid inventory.
Anything else is ``INVALID``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from surgical_timeline.constants import TOOL_NAMES
from surgical_timeline.enums import MessageKind
from surgical_timeline.errors import MessageValidationError
from surgical_timeline.models import (
    StageStatusMessage,
    StageTransitionMessage,
    ToolInventoryMessage,
)
from surgical_timeline.topics import SurgeryTopic

logger = logging.getLogger(__name__)

_KNOWN_TOOLS = frozenset(TOOL_NAMES)


@dataclass(frozen=True)
class ClassifiedMessage:
    """Outcome of classifying one feed message.

    Attributes:
        kind: Semantic kind.
        topic: Topic the message arrived on.
        payload: Typed message for the three actionable kinds, else None.
        reason: Why the message was rejected or ignored.
    """

    kind: MessageKind
    topic: str
    payload: StageTransitionMessage | StageStatusMessage | ToolInventoryMessage | None = None
    reason: str | None = None

    @property
    def actionable(self) -> bool:
        return self.payload is not None

    def as_error(self) -> MessageValidationError | None:
        """The rejection as an exception value, for ``INVALID`` messages."""
        if self.kind is not MessageKind.INVALID:
            return None
        return MessageValidationError(f"Invalid message on {self.topic}: {self.reason}")


def _invalid(topic: str, reason: str) -> ClassifiedMessage:
    return ClassifiedMessage(kind=MessageKind.INVALID, topic=topic, reason=reason)


def _confidence(message: dict[str, Any]) -> float | None:
    value = message.get("confidence")
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if 0.0 <= float(value) <= 1.0:
        return float(value)
    return None


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def filter_tools(names: list[Any]) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Split ``names`` into known tools (ordered, unique) and dropped names."""
    kept: list[str] = []
    dropped: list[str] = []
    for name in names:
        if isinstance(name, str) and name in _KNOWN_TOOLS:
            if name not in kept:
                kept.append(name)
        else:
            dropped.append(_as_text(name))
    return tuple(kept), tuple(dropped)


def classify_message(topic: str, message: Any) -> ClassifiedMessage:
    """Classify a decoded feed message.

    Args:
        topic: Topic the message arrived on.
        message: Decoded JSON value.

    Returns:
        A ClassifiedMessage. Never raises for malformed input.
    """
    if not isinstance(message, dict):
        return _invalid(topic, f"expected a JSON object, got {type(message).__name__}")

    if "surgery_type" in message and "file_name" in message:
        return ClassifiedMessage(
            kind=MessageKind.INFORMATIONAL,
            topic=topic,
            reason="metadata announcement",
        )

    if topic == SurgeryTopic.STAGE:
        return _classify_stage(topic, message)
    if topic == SurgeryTopic.STATUS:
        return _classify_status(topic, message)
    if topic == SurgeryTopic.TOOL:
        return _classify_tools(topic, message)
    return _invalid(topic, "unrecognised topic")


def _classify_stage(topic: str, message: dict[str, Any]) -> ClassifiedMessage:
    begin = message.get("begin")
    if not begin:
        return _invalid(topic, "missing 'begin'")
    stage = message.get("stage")
    if not isinstance(stage, str) or not stage:
        return _invalid(topic, "missing or non-string 'stage'")
    return ClassifiedMessage(
        kind=MessageKind.STAGE_TRANSITION,
        topic=topic,
        payload=StageTransitionMessage(
            stage=stage,
            begin=_as_text(begin),
            confidence=_confidence(message),
            raw=message,
        ),
    )


def _classify_status(topic: str, message: dict[str, Any]) -> ClassifiedMessage:
    missing = [f for f in ("stage", "status", "datetime") if message.get(f) is None]
    if missing:
        return _invalid(topic, f"missing required fields={missing}")
    stage = message["stage"]
    if not isinstance(stage, str) or not stage:
        return _invalid(topic, "non-string 'stage'")
    tool = message.get("tool")
    return ClassifiedMessage(
        kind=MessageKind.STAGE_STATUS,
        topic=topic,
        payload=StageStatusMessage(
            stage=stage,
            status=_as_text(message["status"]),
            reported_at=_as_text(message["datetime"]),
            tool=None if tool is None else _as_text(tool),
            raw=message,
        ),
    )


def _classify_tools(topic: str, message: dict[str, Any]) -> ClassifiedMessage:
    raw_tools = message.get("tool")
    if raw_tools is None:
        raw_tools = []
    if not isinstance(raw_tools, list):
        return _invalid(topic, "'tool' must be a list")
    tools, dropped = filter_tools(raw_tools)
    if dropped:
        logger.debug("Dropping unknown tool names=%s", list(dropped))
    reported_at = message.get("datetime")
    return ClassifiedMessage(
        kind=MessageKind.TOOL_INVENTORY,
        topic=topic,
        payload=ToolInventoryMessage(
            tools=tools,
            reported_at=None if not reported_at else _as_text(reported_at),
            confidence=_confidence(message),
            dropped=dropped,
            raw=message,
        ),
    )


__all__ = ["ClassifiedMessage", "classify_message", "filter_tools"]
