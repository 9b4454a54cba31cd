# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Closed vocabularies shared by the classifier and the reconcilers.

Tool and stage names are the labels emitted by the cholecystectomy
detector. Anything outside these tuples is dropped on ingest.
"""

from __future__ import annotations

from typing import Final

# ---------------------------------------------------------------------------
# Instruments
# ---------------------------------------------------------------------------

TOOL_NAMES: Final[tuple[str, ...]] = (
    "Grasper",
    "Bipolar",
    "Hook",
    "Scissors",
    "Clipper",
    "Irrigator",
    "SpecimenBag",
)
"""Instrument labels the tool detector can report, in canonical order."""

# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

STAGE_NAMES: Final[tuple[str, ...]] = (
    "Preparation",
    "CalotTriangleDissection",
    "ClippingCutting",
    "GallbladderDissection",
    "GallbladderPackaging",
    "CleaningCoagulation",
    "GallbladderRetraction",
)
"""Surgical stages in the order they normally occur."""

STAGE_COLORS: Final[dict[str, str]] = {
    "Preparation": "blue",
    "CalotTriangleDissection": "emerald",
    "ClippingCutting": "purple",
    "GallbladderDissection": "amber",
    "GallbladderPackaging": "rose",
    "CleaningCoagulation": "orange",
    "GallbladderRetraction": "cyan",
}

DEFAULT_STAGE_COLOR: Final[str] = "gray"


__all__ = [
    "DEFAULT_STAGE_COLOR",
    "STAGE_COLORS",
    "STAGE_NAMES",
    "TOOL_NAMES",
]
