# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Analysis Session Controller: the single remote analysis job.

State machine::

    IDLE --start--> STARTING --ack--> RUNNING --stop--> IDLE
                        |                 ^
                        +--failure/stop---+--> IDLE

Invariants:
    - At most one session is open. A start while STARTING or RUNNING fails
      fast with ``SessionConflictError`` and never reaches the service.
    - Starts are never retried.
    - Stop is local-only: the service has no stop endpoint, so the remote
      job may keep running. The result says so explicitly.

Errors come back as ``StartResult``/``StopResult`` values rather than
exceptions so the presentation layer can show them inline.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from surgical_timeline.catalog import Operation
from surgical_timeline.clients.analysis_job_client import AnalysisJobClient
from surgical_timeline.enums import AnalysisKind, AnalysisStatus, EventSource, EventType
from surgical_timeline.errors import (
    RemoteServiceError,
    SessionConflictError,
    SurgicalTimelineError,
)
from surgical_timeline.models import AnalysisSession, TimelineEvent

logger = logging.getLogger(__name__)

EventSink = Callable[[TimelineEvent], None]


def _utc_now() -> datetime:
    return datetime.now(UTC)


@runtime_checkable
class ProtocolTopicBinder(Protocol):
    """Subscribes and unsubscribes the feed topics of an analysis kind."""

    def bind_topics(self, kind: AnalysisKind) -> None: ...

    def unbind_topics(self, kind: AnalysisKind) -> None: ...


@dataclass(frozen=True)
class StartResult:
    """Outcome of ``AnalysisSessionController.start``."""

    success: bool
    message: str
    session: AnalysisSession | None = None
    error: SurgicalTimelineError | None = None


@dataclass(frozen=True)
class StopResult:
    """Outcome of ``AnalysisSessionController.stop``.

    ``stopped`` is False when nothing was running; that is not an error.
    ``local_only`` is always True: the remote job is not told to stop.
    """

    stopped: bool
    message: str
    session: AnalysisSession | None = None
    local_only: bool = True


class AnalysisSessionController:
    """Serializes start/stop of the one allowed analysis job.

    Args:
        client: Analysis job service client.
        binder: Receives topic bind/unbind requests on start/stop.
        event_sink: Receives synthetic session lifecycle events.
        clock: Source of session start times and synthetic event timestamps.
    """

    def __init__(
        self,
        client: AnalysisJobClient,
        *,
        binder: ProtocolTopicBinder | None = None,
        event_sink: EventSink | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._client = client
        self._binder = binder
        self._event_sink = event_sink
        self._clock = clock
        self._status = AnalysisStatus.IDLE
        self._kind: AnalysisKind | None = None
        self._session: AnalysisSession | None = None
        self._generation = 0

    @property
    def status(self) -> AnalysisStatus:
        return self._status

    @property
    def session(self) -> AnalysisSession | None:
        return self._session

    @property
    def active_kind(self) -> AnalysisKind | None:
        return self._kind

    @property
    def is_running(self) -> bool:
        return self._status is AnalysisStatus.RUNNING

    async def start(self, kind: AnalysisKind, operation: Operation) -> StartResult:
        """Start a job of ``kind`` for ``operation``.

        The conflict check happens before any await, so a second start
        issued while the first is in flight is rejected immediately.
        """
        if self._status is not AnalysisStatus.IDLE:
            logger.warning("Analysis already %s, rejecting start", self._status.value)
            return StartResult(
                success=False,
                message="Analysis already in progress",
                session=self._session,
                error=SessionConflictError(
                    f"An analysis session is already {self._status.value}"
                ),
            )

        self._status = AnalysisStatus.STARTING
        self._kind = kind
        self._generation += 1
        generation = self._generation
        logger.info("Starting %s analysis for operation %s", kind.value, operation.id)

        try:
            job = await self._client.start_job(kind, operation.analysis_video_id)
        except RemoteServiceError as exc:
            if generation == self._generation:
                self._status = AnalysisStatus.IDLE
                self._kind = None
            logger.error("Failed to start analysis: %s", exc)
            self._emit(
                EventType.ANALYSIS_FAILED,
                operation.id,
                f"Analysis failed to start ({kind.value}): {exc}",
                {"kind": kind.value, "status_code": exc.status_code},
            )
            return StartResult(
                success=False,
                message=f"Failed to start analysis: {exc}",
                error=exc,
            )
        except asyncio.CancelledError:
            if generation == self._generation:
                self._status = AnalysisStatus.IDLE
                self._kind = None
            raise

        if generation != self._generation:
            logger.info("Analysis job %s acknowledged after local stop", job.job_id)
            return StartResult(
                success=False,
                message="Analysis start was cancelled by a stop request",
            )

        session = AnalysisSession(
            session_id=f"session_{int(time.time() * 1000)}",
            job_id=job.job_id,
            operation_id=operation.id,
            kind=kind,
            start_time=self._clock(),
            state=job.state,
        )
        self._session = session
        self._status = AnalysisStatus.RUNNING
        logger.info("Analysis started job_id=%s state=%s", job.job_id, job.state)

        if self._binder is not None:
            self._binder.bind_topics(kind)
        self._emit(
            EventType.ANALYSIS_STARTED,
            operation.id,
            f"Analysis started ({kind.value}): job {job.job_id} [{job.state}]",
            {"kind": kind.value, "job_id": job.job_id, "state": job.state},
        )
        return StartResult(
            success=True,
            message=f"Analysis job {job.job_id} is {job.state}",
            session=session,
        )

    def stop(self) -> StopResult:
        """End the local session. Idempotent; a no-op when idle."""
        if self._status is AnalysisStatus.IDLE:
            logger.debug("No analysis running, nothing to stop")
            return StopResult(stopped=False, message="No analysis in progress")

        session = self._session
        kind = self._kind
        was_running = self._status is AnalysisStatus.RUNNING
        self._status = AnalysisStatus.IDLE
        self._session = None
        self._kind = None
        self._generation += 1

        if was_running and kind is not None and self._binder is not None:
            self._binder.unbind_topics(kind)

        if session is not None:
            logger.info("Analysis session %s ended locally", session.session_id)
            self._emit(
                EventType.ANALYSIS_STOPPED,
                session.operation_id,
                f"Analysis stopped locally; remote job {session.job_id} may still be running",
                {"kind": session.kind.value, "job_id": session.job_id},
            )
        return StopResult(
            stopped=True,
            message="Analysis session ended (local-only; the remote job may continue)",
            session=session,
        )

    def _emit(
        self,
        event_type: EventType,
        operation_id: str,
        description: str,
        details: dict[str, object],
    ) -> None:
        if self._event_sink is None:
            return
        self._event_sink(
            TimelineEvent.create(
                event_type,
                operation_id=operation_id,
                timestamp=self._clock().isoformat(),
                description=description,
                source=EventSource.SYSTEM,
                details=details,
            )
        )


__all__ = [
    "AnalysisSessionController",
    "EventSink",
    "ProtocolTopicBinder",
    "StartResult",
    "StopResult",
]
