# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Display helpers for stage names."""

from __future__ import annotations

import re

from surgical_timeline.constants import DEFAULT_STAGE_COLOR, STAGE_COLORS

_STAGE_SUFFIX = re.compile(r"Stage$")
_CAPITAL = re.compile(r"([A-Z])")
_SPACES = re.compile(r"\s+")


def clean_stage_name(stage: str) -> str:
    """Turn a raw stage label into a display name.

    ``"GallbladderDissection"`` becomes ``"Gallbladder Dissection"``,
    ``"cleaning_Stage"`` becomes ``"Cleaning"``.
    """
    name = stage.replace("_", " ")
    name = _STAGE_SUFFIX.sub("", name)
    name = _CAPITAL.sub(r" \1", name)
    name = _SPACES.sub(" ", name).strip()
    return name[:1].upper() + name[1:]


def stage_color(stage: str) -> str:
    """Colour used to paint ``stage`` on the timeline."""
    return STAGE_COLORS.get(stage, DEFAULT_STAGE_COLOR)


__all__ = ["clean_stage_name", "stage_color"]
