# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Procedure Monitor: the composition root for one monitored procedure.

Wires the connection manager, classifier, reconcilers, timeline store and
session controller together, and is the only surface the presentation
layer talks to.

Message flow::

    transport -> ConnectionManager -> handle_message
        -> classify_message -> Stage/ToolReconciler -> TimelineStore

Procedure switches tear the previous one down (unsubscribe every handler,
disconnect) before anything of the next one is set up, so events cannot
leak across procedures.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from surgical_timeline.catalog import InMemoryOperationCatalog, Operation
from surgical_timeline.classifier import classify_message
from surgical_timeline.clients.analysis_job_client import AnalysisJobClient
from surgical_timeline.clients.model_analysis_client_config import (
    ModelAnalysisClientConfig,
)
from surgical_timeline.config import TimelineSettings
from surgical_timeline.enums import (
    AnalysisKind,
    AnalysisStatus,
    ConnectionEvent,
    EventSource,
    EventType,
    MessageKind,
    OperationStatus,
)
from surgical_timeline.errors import FeedConnectionError
from surgical_timeline.feed.manager import ConnectionManager
from surgical_timeline.feed.models import ConnectionNotice, ConnectionSnapshot
from surgical_timeline.feed.protocols import ProtocolFeedTransport
from surgical_timeline.feed.transport_mqtt import MqttFeedTransport
from surgical_timeline.models import (
    AnalysisSession,
    DetectedTools,
    StageProgress,
    StageStatusMessage,
    StageTransitionMessage,
    TimelineEvent,
    ToolInventoryMessage,
)
from surgical_timeline.reconciler.stage import StageReconciler
from surgical_timeline.reconciler.tools import ToolReconciler
from surgical_timeline.session import AnalysisSessionController, StartResult, StopResult
from surgical_timeline.timeline import TimelineStore
from surgical_timeline.topics import topics_for_kind

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class MonitorSnapshot(BaseModel):
    """Everything the presentation layer renders, captured at one instant."""

    model_config = ConfigDict(frozen=True)

    operation: Operation | None
    events: tuple[TimelineEvent, ...]
    stage_progress: StageProgress
    detected_tools: DetectedTools
    connected: bool
    connection: ConnectionSnapshot
    analysis_status: AnalysisStatus
    session: AnalysisSession | None


class ProcedureMonitor:
    """Live timeline and state projections for the current procedure.

    Args:
        settings: Runtime settings. Defaults to environment settings.
        manager: Feed connection manager. Built over ``transport`` if omitted.
        transport: Feed transport used when ``manager`` is omitted. Defaults
            to ``MqttFeedTransport``.
        job_client: Analysis service client. Built from ``settings`` if omitted.
        catalog: Operations that can be loaded.
        clock: Source of receipt/synthetic timestamps.
    """

    def __init__(
        self,
        *,
        settings: TimelineSettings | None = None,
        manager: ConnectionManager | None = None,
        transport: ProtocolFeedTransport | None = None,
        job_client: AnalysisJobClient | None = None,
        catalog: InMemoryOperationCatalog | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._settings = settings or TimelineSettings()
        self._clock = clock
        self._manager = manager or ConnectionManager(
            transport or MqttFeedTransport(), self._settings
        )
        self._job_client = job_client or AnalysisJobClient(
            ModelAnalysisClientConfig.from_settings(self._settings)
        )
        self._catalog = catalog or InMemoryOperationCatalog()

        self._timeline = TimelineStore(self._settings.timeline_max_events)
        self._stages = StageReconciler()
        self._tools = ToolReconciler(
            touch_on_noop=self._settings.touch_tools_on_noop,
            clock=clock,
        )
        self._sessions = AnalysisSessionController(
            self._job_client,
            binder=self,
            event_sink=self._timeline.append,
            clock=clock,
        )
        self._operation: Operation | None = None
        self._manager.on(ConnectionEvent.CONNECT, self._on_feed_connect)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def operation(self) -> Operation | None:
        return self._operation

    @property
    def timeline(self) -> TimelineStore:
        return self._timeline

    @property
    def stage_progress(self) -> StageProgress:
        return self._stages.progress

    @property
    def detected_tools(self) -> DetectedTools:
        return self._tools.detected

    @property
    def connection(self) -> ConnectionManager:
        return self._manager

    @property
    def analysis_status(self) -> AnalysisStatus:
        return self._sessions.status

    @property
    def session(self) -> AnalysisSession | None:
        return self._sessions.session

    def events_for_current_operation(self) -> tuple[TimelineEvent, ...]:
        if self._operation is None:
            return ()
        return self._timeline.for_operation(self._operation.id)

    def snapshot(self) -> MonitorSnapshot:
        connection = self._manager.status()
        return MonitorSnapshot(
            operation=self._operation,
            events=self._timeline.events,
            stage_progress=self._stages.progress,
            detected_tools=self._tools.detected,
            connected=connection.connected,
            connection=connection,
            analysis_status=self._sessions.status,
            session=self._sessions.session,
        )

    # ------------------------------------------------------------------
    # Procedure lifecycle
    # ------------------------------------------------------------------

    async def load_operation(self, operation_id: str) -> Operation | None:
        """Make ``operation_id`` the current procedure with an empty timeline.

        Returns:
            The operation, or None when it is not in the catalog (the current
            procedure is then left untouched).
        """
        if not operation_id:
            logger.warning("No operation ID provided")
            return None
        operation = self._catalog.get(operation_id)
        if operation is None:
            logger.error("Operation not found: %s", operation_id)
            return None

        await self._teardown()
        self._reset_projections()
        self._operation = operation
        logger.info("Loaded operation %s (%s)", operation.id, operation.procedure_type)
        return operation

    async def clear_operation(self) -> None:
        """Tear down the current procedure and reset every projection."""
        await self._teardown()
        self._reset_projections()
        self._operation = None

    async def start_analysis(self, kind: AnalysisKind) -> StartResult:
        """Start the remote job, then bring the feed up.

        A feed connection failure does not fail the start; it shows up in the
        connection projection and reconnection continues in the background.
        """
        if self._operation is None:
            return StartResult(success=False, message="No operation loaded")

        result = await self._sessions.start(kind, self._operation)
        if not result.success:
            return result
        try:
            await self._manager.connect(self._settings.broker_url)
        except FeedConnectionError as exc:
            logger.warning("Feed connection failed (non-blocking): %s", exc)
        return result

    async def stop_analysis(self) -> StopResult:
        """Stop the session locally and drop the feed connection."""
        result = self._sessions.stop()
        if result.stopped:
            await self._manager.disconnect()
        return result

    async def aclose(self) -> None:
        await self._teardown()
        await self._job_client.close()

    async def __aenter__(self) -> ProcedureMonitor:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Topic binding (called by the session controller)
    # ------------------------------------------------------------------

    def bind_topics(self, kind: AnalysisKind) -> None:
        for topic in topics_for_kind(kind):
            self._manager.subscribe(topic, self.handle_message)
        logger.info("Bound %s topics: %s", kind.value, [t.value for t in topics_for_kind(kind)])

    def unbind_topics(self, kind: AnalysisKind) -> None:
        for topic in topics_for_kind(kind):
            self._manager.unsubscribe(topic, self.handle_message)

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def handle_message(self, topic: str, message: Any) -> list[TimelineEvent]:
        """Classify one decoded feed message and apply it.

        Returns:
            The timeline events it produced, in emission order.
        """
        classified = classify_message(topic, message)
        if classified.kind is MessageKind.INFORMATIONAL:
            logger.debug("Ignoring informational message on %s", topic)
            return []
        if classified.kind is MessageKind.INVALID:
            logger.debug("Dropping message: %s", classified.as_error())
            return []

        operation_id = self._operation.id if self._operation else None
        payload = classified.payload
        events: list[TimelineEvent] = []
        if isinstance(payload, StageTransitionMessage):
            event = self._stages.on_stage_transition(payload, operation_id=operation_id)
            if event is not None:
                events.append(event)
        elif isinstance(payload, StageStatusMessage):
            self._stages.on_stage_status(payload)
        elif isinstance(payload, ToolInventoryMessage):
            events = self._tools.on_tool_inventory(payload, operation_id=operation_id)

        self._timeline.extend(events)
        return events

    # ------------------------------------------------------------------
    # Manual events
    # ------------------------------------------------------------------

    def inject_event(
        self,
        description: str,
        *,
        event_type: EventType = EventType.NOTE,
        source: EventSource = EventSource.USER,
        data: dict[str, Any] | None = None,
    ) -> TimelineEvent:
        """Add a locally generated event to the timeline."""
        event = TimelineEvent.create(
            event_type,
            operation_id=self._operation.id if self._operation else None,
            timestamp=self._clock().isoformat(),
            description=description,
            source=source,
            data=data,
        )
        self._timeline.append(event)
        return event

    def update_operation_status(self, status: OperationStatus) -> TimelineEvent | None:
        """Change the current operation's status and annotate the timeline."""
        if self._operation is None:
            logger.warning("No current operation, status update ignored")
            return None
        logger.info("Updating operation %s status to: %s", self._operation.id, status.value)
        self._operation = self._operation.model_copy(update={"status": status})
        self._catalog.upsert(self._operation)
        return self.inject_event(
            f"Operation status changed to: {status.value}",
            event_type=EventType.STATUS,
            source=EventSource.SYSTEM,
            data={"status": status.value},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_feed_connect(self, notice: ConnectionNotice) -> None:
        if self._settings.reset_stage_dedup_on_connect:
            self._stages.reset_dedup()

    def _reset_projections(self) -> None:
        self._stages.reset()
        self._tools.reset()
        self._timeline.clear()

    async def _teardown(self) -> None:
        if self._sessions.status is not AnalysisStatus.IDLE:
            self._sessions.stop()
        await self._manager.disconnect()


__all__ = ["MonitorSnapshot", "ProcedureMonitor"]
