# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Unit tests for AnalysisSessionController.

Covers session exclusivity, the local-only stop, failure reporting and a
stop that lands while the start request is still in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from unittest.mock import MagicMock

import httpx
import pytest

from surgical_timeline.catalog import Operation
from surgical_timeline.clients.analysis_job_client import AnalysisJobClient
from surgical_timeline.clients.model_analysis_client_config import (
    ModelAnalysisClientConfig,
)
from surgical_timeline.enums import AnalysisKind, AnalysisStatus, EventSource, EventType
from surgical_timeline.errors import RemoteServiceError, SessionConflictError
from surgical_timeline.models import TimelineEvent
from surgical_timeline.session import (
    AnalysisSessionController,
    ProtocolTopicBinder,
)


def _make_controller(
    client: AnalysisJobClient,
    clock: Callable[[], datetime],
) -> tuple[AnalysisSessionController, MagicMock, list[TimelineEvent]]:
    binder = MagicMock(spec=ProtocolTopicBinder)
    events: list[TimelineEvent] = []
    controller = AnalysisSessionController(
        client, binder=binder, event_sink=events.append, clock=clock
    )
    return controller, binder, events


@pytest.mark.unit
class TestStart:
    @pytest.mark.asyncio
    async def test_start_opens_session_and_binds_topics(
        self, analysis_client, operation, clock, job_requests
    ) -> None:
        controller, binder, events = _make_controller(analysis_client, clock)

        result = await controller.start(AnalysisKind.TOOL_DETECTION, operation)

        assert result.success
        assert result.session is not None
        assert result.session.job_id == "job-1"
        assert result.session.state == "queued"
        assert result.session.operation_id == "op1"
        assert result.session.start_time == clock()
        assert result.session.session_id.startswith("session_")
        assert controller.status is AnalysisStatus.RUNNING
        assert controller.active_kind is AnalysisKind.TOOL_DETECTION
        binder.bind_topics.assert_called_once_with(AnalysisKind.TOOL_DETECTION)
        assert job_requests[0].url.path == "/tool-detection/video01"
        assert [e.type for e in events] == [EventType.ANALYSIS_STARTED]
        assert events[0].source is EventSource.SYSTEM
        await analysis_client.close()

    @pytest.mark.asyncio
    async def test_second_start_is_rejected(
        self, analysis_client, operation, clock, job_requests
    ) -> None:
        controller, binder, _ = _make_controller(analysis_client, clock)
        first = await controller.start(AnalysisKind.STAGE_ANALYSIS, operation)

        second = await controller.start(AnalysisKind.TOOL_DETECTION, operation)

        assert not second.success
        assert isinstance(second.error, SessionConflictError)
        assert controller.session == first.session
        assert controller.active_kind is AnalysisKind.STAGE_ANALYSIS
        assert len(job_requests) == 1
        binder.bind_topics.assert_called_once()
        await analysis_client.close()

    @pytest.mark.asyncio
    async def test_start_while_starting_is_rejected(self, operation, clock) -> None:
        release = asyncio.Event()
        calls = 0

        async def slow_start(kind, video_id):
            nonlocal calls
            calls += 1
            await release.wait()
            return MagicMock(job_id="job-1", state="queued")

        client = MagicMock(spec=AnalysisJobClient)
        client.start_job.side_effect = slow_start
        controller, _, _ = _make_controller(client, clock)

        pending = asyncio.ensure_future(controller.start(AnalysisKind.TOOL_DETECTION, operation))
        await asyncio.sleep(0)
        assert controller.status is AnalysisStatus.STARTING

        rejected = await controller.start(AnalysisKind.TOOL_DETECTION, operation)
        release.set()
        accepted = await pending

        assert not rejected.success
        assert isinstance(rejected.error, SessionConflictError)
        assert accepted.success
        assert calls == 1

    @pytest.mark.asyncio
    async def test_remote_failure_returns_to_idle(self, operation, clock) -> None:
        client = AnalysisJobClient(
            ModelAnalysisClientConfig(base_url="http://analysis.test"),
            transport=httpx.MockTransport(lambda r: httpx.Response(500)),
        )
        controller, binder, events = _make_controller(client, clock)

        result = await controller.start(AnalysisKind.STAGE_ANALYSIS, operation)

        assert not result.success
        assert isinstance(result.error, RemoteServiceError)
        assert "500" in result.message
        assert controller.status is AnalysisStatus.IDLE
        assert controller.session is None
        binder.bind_topics.assert_not_called()
        assert [e.type for e in events] == [EventType.ANALYSIS_FAILED]
        assert events[0].details["status_code"] == 500

        retry = await controller.start(AnalysisKind.STAGE_ANALYSIS, operation)
        assert not retry.success
        assert not isinstance(retry.error, SessionConflictError)
        await client.close()

    @pytest.mark.asyncio
    async def test_stop_during_start_discards_acknowledgement(self, operation, clock) -> None:
        release = asyncio.Event()

        async def slow_start(kind, video_id):
            await release.wait()
            return MagicMock(job_id="job-late", state="queued")

        client = MagicMock(spec=AnalysisJobClient)
        client.start_job.side_effect = slow_start
        controller, binder, _ = _make_controller(client, clock)

        pending = asyncio.ensure_future(controller.start(AnalysisKind.TOOL_DETECTION, operation))
        await asyncio.sleep(0)
        stop = controller.stop()
        release.set()
        result = await pending

        assert stop.stopped
        assert not result.success
        assert "cancelled" in result.message
        assert controller.status is AnalysisStatus.IDLE
        assert controller.session is None
        binder.bind_topics.assert_not_called()
        binder.unbind_topics.assert_not_called()


@pytest.mark.unit
class TestStop:
    def test_stop_when_idle_is_noop(self, analysis_client, clock) -> None:
        controller, binder, events = _make_controller(analysis_client, clock)

        result = controller.stop()

        assert not result.stopped
        assert result.message == "No analysis in progress"
        assert events == []
        binder.unbind_topics.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_is_local_only(self, analysis_client, operation, clock, job_requests) -> None:
        controller, binder, events = _make_controller(analysis_client, clock)
        started = await controller.start(AnalysisKind.STAGE_ANALYSIS, operation)

        result = controller.stop()

        assert result.stopped
        assert result.local_only
        assert result.session == started.session
        assert controller.status is AnalysisStatus.IDLE
        assert controller.session is None
        binder.unbind_topics.assert_called_once_with(AnalysisKind.STAGE_ANALYSIS)
        assert len(job_requests) == 1
        assert events[-1].type is EventType.ANALYSIS_STOPPED
        assert "job-1 may still be running" in events[-1].description
        await analysis_client.close()

    @pytest.mark.asyncio
    async def test_start_after_stop(self, analysis_client, operation, clock) -> None:
        controller, _, _ = _make_controller(analysis_client, clock)
        await controller.start(AnalysisKind.STAGE_ANALYSIS, operation)
        controller.stop()

        again = await controller.start(AnalysisKind.TOOL_DETECTION, operation)

        assert again.success
        assert controller.active_kind is AnalysisKind.TOOL_DETECTION
        await analysis_client.close()
