# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Stage Reconciler: stage-transition dedup and the stage-progress projection.

Core invariant:
    No two consecutive accepted stage transitions carry the same stage
    name, however many repeats the detector publishes.

Status gauges feed only the projection; they never produce timeline
events and never touch the dedup key.
"""

from __future__ import annotations

import logging

from surgical_timeline.enums import EventSource, EventType
from surgical_timeline.models import (
    StageProgress,
    StageStatusEntry,
    StageStatusMessage,
    StageTransitionMessage,
    TimelineEvent,
)
from surgical_timeline.reconciler.naming import clean_stage_name, stage_color

logger = logging.getLogger(__name__)


class StageReconciler:
    """Owns the authoritative stage-progress state for one procedure.

    Usage:
        reconciler = StageReconciler()
        event = reconciler.on_stage_transition(msg, operation_id="op1")
        if event is not None:
            store.append(event)
    """

    def __init__(self) -> None:
        self._progress = StageProgress()

    @property
    def progress(self) -> StageProgress:
        """Current stage-progress projection (immutable snapshot)."""
        return self._progress

    @property
    def last_processed_stage(self) -> str | None:
        return self._progress.last_processed_stage

    def on_stage_transition(
        self,
        message: StageTransitionMessage,
        *,
        operation_id: str | None,
    ) -> TimelineEvent | None:
        """Accept a stage announcement unless it repeats the last one.

        Returns:
            A ``stage_begin`` event dated from ``message.begin``, or None for
            an immediate repeat.
        """
        previous = self._progress.last_processed_stage
        if message.stage == previous:
            logger.debug("Ignoring duplicate stage: %s", message.stage)
            return None

        logger.info("New surgery stage: %s -> %s", previous or "None", message.stage)
        clean = clean_stage_name(message.stage)
        self._progress = self._progress.model_copy(
            update={
                "last_processed_stage": message.stage,
                "current_stage": message.stage,
                "clean_stage_name": clean,
            }
        )
        return TimelineEvent.create(
            EventType.STAGE_BEGIN,
            operation_id=operation_id,
            timestamp=message.begin,
            description=f"Started: {clean}",
            source=EventSource.FEED,
            confidence=message.confidence,
            stage=message.stage,
            stage_color=stage_color(message.stage),
            data=message.raw,
        )

    def on_stage_status(self, message: StageStatusMessage) -> StageProgress:
        """Record a status gauge for ``message.stage``; emits nothing."""
        logger.debug("Stage status update: %s - %s", message.stage, message.status)
        stage_status = dict(self._progress.stage_status)
        stage_status[message.stage] = StageStatusEntry(
            status=message.status,
            last_update=message.reported_at,
            active_tool=message.tool,
        )
        self._progress = self._progress.model_copy(
            update={
                "current_stage": message.stage,
                "clean_stage_name": clean_stage_name(message.stage),
                "last_update": message.reported_at,
                "stage_status": stage_status,
            }
        )
        return self._progress

    def reset_dedup(self) -> None:
        """Forget the last accepted stage; the next announcement is new."""
        if self._progress.last_processed_stage is not None:
            self._progress = self._progress.model_copy(
                update={"last_processed_stage": None}
            )

    def reset(self) -> None:
        """Drop all stage state (procedure cleared or reloaded)."""
        self._progress = StageProgress()


__all__ = ["StageReconciler"]
