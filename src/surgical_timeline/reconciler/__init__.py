# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Stage and tool reconcilers.

Public API:

    from surgical_timeline.reconciler import (
        StageReconciler,
        ToolReconciler,
        classify_transition,
        clean_stage_name,
        stage_color,
    )
"""

from surgical_timeline.reconciler.naming import clean_stage_name, stage_color
from surgical_timeline.reconciler.stage import StageReconciler
from surgical_timeline.reconciler.tools import ToolReconciler, classify_transition

__all__ = [
    "StageReconciler",
    "ToolReconciler",
    "classify_transition",
    "clean_stage_name",
    "stage_color",
]
