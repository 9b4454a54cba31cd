# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Procedures that can be monitored, and an in-memory catalog of them.

Loading operations from a scheduling system is out of scope; callers seed
the catalog themselves.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from surgical_timeline.enums import OperationStatus


class Operation(BaseModel):
    """A scheduled surgical procedure.

    Attributes:
        id: Operation identifier; stamped on every timeline event.
        procedure_type: e.g. ``Cholecystectomy``.
        room: Operating room label.
        patient: Patient display label.
        surgeon: Lead surgeon display name.
        scheduled_time: Planned start.
        status: Scheduling status.
        video_id: Recording analysed by the remote job; defaults to ``id``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    procedure_type: str
    room: str | None = None
    patient: str | None = None
    surgeon: str | None = None
    scheduled_time: datetime | None = None
    status: OperationStatus = OperationStatus.SCHEDULED
    video_id: str | None = None

    @property
    def analysis_video_id(self) -> str:
        return self.video_id or self.id


class InMemoryOperationCatalog:
    """Dictionary-backed operation lookup."""

    def __init__(self, operations: Iterable[Operation] = ()) -> None:
        self._operations: dict[str, Operation] = {op.id: op for op in operations}

    def get(self, operation_id: str) -> Operation | None:
        return self._operations.get(operation_id)

    def all(self) -> list[Operation]:
        """All operations, earliest scheduled first (unscheduled last)."""
        return sorted(
            self._operations.values(),
            key=lambda op: (op.scheduled_time is None, op.scheduled_time or datetime.min),
        )

    def for_date(self, day: date) -> list[Operation]:
        return [
            op
            for op in self.all()
            if op.scheduled_time is not None and op.scheduled_time.date() == day
        ]

    def upsert(self, operation: Operation) -> None:
        self._operations[operation.id] = operation

    def __len__(self) -> int:
        return len(self._operations)


__all__ = ["InMemoryOperationCatalog", "Operation"]
