# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Canonical topic registry for the surgical telemetry feed.

This module is the single source of truth for feed topic names. No
hardcoded topic strings should appear in subscriber code; use these enum
values instead.

Topics:
    STAGE:  A stage-transition announcement (``stage`` + ``begin``).
    TOOL:   A tool-inventory snapshot (``tool`` list + ``datetime``).
    STATUS: A per-stage status gauge (``stage``/``status``/``datetime``).
"""

from __future__ import annotations

from enum import StrEnum, unique

from surgical_timeline.enums import AnalysisKind


@unique
class SurgeryTopic(StrEnum):
    """Topic names published by the analysis job onto the broker.

    Values:
        STAGE: Published by the stage-analysis job each time it (re)announces
            the stage it currently sees. Repeats are expected.
        TOOL: Published by the tool-detection job with the full set of
            instruments visible in the current frame window.
        STATUS: Published by both job kinds with a colour-coded gauge for the
            active stage.
    """

    STAGE = "surgery/stage"
    """Stage-transition announcements."""

    TOOL = "surgery/tool"
    """Tool-inventory snapshots."""

    STATUS = "surgery/status"
    """Stage-status gauge updates."""


_TOPICS_BY_KIND: dict[AnalysisKind, tuple[SurgeryTopic, ...]] = {
    AnalysisKind.STAGE_ANALYSIS: (SurgeryTopic.STAGE, SurgeryTopic.STATUS),
    AnalysisKind.TOOL_DETECTION: (SurgeryTopic.TOOL, SurgeryTopic.STATUS),
}


def topics_for_kind(kind: AnalysisKind) -> tuple[SurgeryTopic, ...]:
    """Return the topics a session of the given kind listens on."""
    return _TOPICS_BY_KIND[kind]


__all__ = ["SurgeryTopic", "topics_for_kind"]
