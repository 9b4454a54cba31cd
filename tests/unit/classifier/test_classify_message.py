# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Unit tests for feed message classification.

Covers the four classification rules, the unknown-tool filter, the
metadata short-circuit and rejection of malformed payloads.
"""

from __future__ import annotations

from typing import Any

import pytest

from surgical_timeline.classifier import classify_message, filter_tools
from surgical_timeline.enums import MessageKind
from surgical_timeline.errors import MessageValidationError
from surgical_timeline.models import (
    StageStatusMessage,
    StageTransitionMessage,
    ToolInventoryMessage,
)
from surgical_timeline.topics import SurgeryTopic

STAGE = SurgeryTopic.STAGE.value
TOOL = SurgeryTopic.TOOL.value
STATUS = SurgeryTopic.STATUS.value


@pytest.mark.unit
class TestClassificationTable:
    """Each (topic, message) pair maps to exactly one kind."""

    @pytest.mark.parametrize(
        ("topic", "message", "expected"),
        [
            (STAGE, {"stage": "Preparation", "begin": "2025-07-18T09:30:00Z"}, MessageKind.STAGE_TRANSITION),
            (STAGE, {"stage": "Preparation"}, MessageKind.INVALID),
            (STAGE, {"stage": "Preparation", "begin": ""}, MessageKind.INVALID),
            (STAGE, {"stage": "", "begin": "2025-07-18T09:30:00Z"}, MessageKind.INVALID),
            (STAGE, {"stage": 7, "begin": "2025-07-18T09:30:00Z"}, MessageKind.INVALID),
            (STATUS, {"stage": "Preparation", "status": "green", "datetime": "t1"}, MessageKind.STAGE_STATUS),
            (STATUS, {"stage": "Preparation", "status": "green"}, MessageKind.INVALID),
            (STATUS, {"stage": None, "status": "green", "datetime": "t1"}, MessageKind.INVALID),
            (TOOL, {"tool": ["Hook"], "datetime": "t1"}, MessageKind.TOOL_INVENTORY),
            (TOOL, {"tool": [], "datetime": "t1"}, MessageKind.TOOL_INVENTORY),
            (TOOL, {"datetime": "t1"}, MessageKind.TOOL_INVENTORY),
            (TOOL, {"tool": "Hook", "datetime": "t1"}, MessageKind.INVALID),
            ("surgery/unknown", {"stage": "Preparation", "begin": "t1"}, MessageKind.INVALID),
        ],
    )
    def test_kind(self, topic: str, message: dict[str, Any], expected: MessageKind) -> None:
        assert classify_message(topic, message).kind is expected

    @pytest.mark.parametrize("topic", [STAGE, TOOL, STATUS])
    def test_metadata_announcement_is_informational_on_any_topic(self, topic: str) -> None:
        message = {
            "surgery_type": "Cholecystectomy",
            "file_name": "video01.mp4",
            "stage": "Preparation",
            "begin": "t1",
        }
        result = classify_message(topic, message)
        assert result.kind is MessageKind.INFORMATIONAL
        assert result.payload is None
        assert not result.actionable

    @pytest.mark.parametrize("message", [None, [], "Hook", 42, True])
    def test_non_object_payload_is_invalid(self, message: Any) -> None:
        result = classify_message(TOOL, message)
        assert result.kind is MessageKind.INVALID
        assert "JSON object" in (result.reason or "")


@pytest.mark.unit
class TestExtractedPayloads:
    """Actionable kinds carry typed payloads with the raw message attached."""

    def test_stage_transition_payload(self) -> None:
        message = {"stage": "ClippingCutting", "begin": "2025-07-18T09:31:00Z", "confidence": 0.87}
        result = classify_message(STAGE, message)

        payload = result.payload
        assert isinstance(payload, StageTransitionMessage)
        assert payload.stage == "ClippingCutting"
        assert payload.begin == "2025-07-18T09:31:00Z"
        assert payload.confidence == pytest.approx(0.87)
        assert payload.raw == message

    def test_out_of_range_confidence_is_dropped(self) -> None:
        result = classify_message(STAGE, {"stage": "Preparation", "begin": "t1", "confidence": 3})
        assert isinstance(result.payload, StageTransitionMessage)
        assert result.payload.confidence is None

    def test_status_payload_with_active_tool(self) -> None:
        message = {"stage": "Preparation", "status": "yellow", "datetime": "t2", "tool": "Hook"}
        payload = classify_message(STATUS, message).payload

        assert isinstance(payload, StageStatusMessage)
        assert payload.status == "yellow"
        assert payload.reported_at == "t2"
        assert payload.tool == "Hook"

    def test_unknown_tools_are_filtered_out(self) -> None:
        message = {"tool": ["Grasper", "Scalpel", "Hook", "Grasper"], "datetime": "t3"}
        payload = classify_message(TOOL, message).payload

        assert isinstance(payload, ToolInventoryMessage)
        assert payload.tools == ("Grasper", "Hook")
        assert payload.dropped == ("Scalpel",)
        assert payload.reported_at == "t3"

    def test_inventory_of_only_unknown_tools_is_empty_but_valid(self) -> None:
        result = classify_message(TOOL, {"tool": ["Scalpel", "Retractor"], "datetime": "t4"})
        assert result.kind is MessageKind.TOOL_INVENTORY
        assert isinstance(result.payload, ToolInventoryMessage)
        assert result.payload.tools == ()

    def test_missing_inventory_timestamp(self) -> None:
        payload = classify_message(TOOL, {"tool": ["Hook"]}).payload
        assert isinstance(payload, ToolInventoryMessage)
        assert payload.reported_at is None

    def test_classification_is_pure(self) -> None:
        message = {"stage": "Preparation", "begin": "t1"}
        assert classify_message(STAGE, message) == classify_message(STAGE, message)


@pytest.mark.unit
class TestRejections:
    def test_invalid_message_exposes_validation_error(self) -> None:
        result = classify_message(STAGE, {"stage": "Preparation"})
        error = result.as_error()
        assert isinstance(error, MessageValidationError)
        assert "surgery/stage" in str(error)

    def test_valid_message_has_no_error(self) -> None:
        result = classify_message(STAGE, {"stage": "Preparation", "begin": "t1"})
        assert result.as_error() is None


@pytest.mark.unit
class TestFilterTools:
    def test_preserves_order_and_removes_duplicates(self) -> None:
        kept, dropped = filter_tools(["Hook", "Grasper", "Hook", "Clipper"])
        assert kept == ("Hook", "Grasper", "Clipper")
        assert dropped == ()

    def test_non_string_entries_are_dropped(self) -> None:
        kept, dropped = filter_tools(["Hook", 3, None])
        assert kept == ("Hook",)
        assert dropped == ("3", "None")

    def test_names_are_case_sensitive(self) -> None:
        kept, dropped = filter_tools(["hook", "specimenbag"])
        assert kept == ()
        assert dropped == ("hook", "specimenbag")
