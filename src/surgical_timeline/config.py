# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Runtime settings for the surgical timeline core.

All values are loaded from ``SURGICAL_TIMELINE_*`` environment variables
(or a ``.env`` file) and fall back to the defaults observed in the field.

Environment variables:
    SURGICAL_TIMELINE_BROKER_URL: WebSocket URL of the MQTT broker.
    SURGICAL_TIMELINE_ANALYSIS_BASE_URL: Base URL of the analysis service.
    SURGICAL_TIMELINE_CONNECT_TIMEOUT_SECONDS: float (default 15)
    SURGICAL_TIMELINE_MAX_RECONNECT_ATTEMPTS: int (default 3)
    SURGICAL_TIMELINE_QUIET_COOLDOWN_SECONDS: float (default 30)
    SURGICAL_TIMELINE_RESET_STAGE_DEDUP_ON_CONNECT: bool (default true)
    SURGICAL_TIMELINE_TOUCH_TOOLS_ON_NOOP: bool (default false)
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from surgical_timeline.enums import AnalysisKind


class TimelineSettings(BaseSettings):
    """Pydantic Settings for the feed, the analysis client and the stores."""

    model_config = SettingsConfigDict(
        env_prefix="SURGICAL_TIMELINE_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # -- feed ---------------------------------------------------------------

    broker_url: str = Field(
        default="ws://localhost:9001",
        description="WebSocket URL of the MQTT broker (ws:// or wss://).",
    )
    client_id_prefix: str = Field(
        default="surgery_web",
        description="Prefix of the MQTT client id; a random suffix is appended.",
    )
    keepalive_seconds: int = Field(default=30, ge=5, le=600)
    connect_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="A connect attempt not acknowledged in time counts as failed.",
    )
    reconnect_period_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Delay before each automatic reconnection attempt.",
    )
    max_reconnect_attempts: int = Field(
        default=3,
        ge=1,
        description="Consecutive failures tolerated before entering quiet mode.",
    )
    quiet_cooldown_seconds: float = Field(
        default=30.0,
        ge=0,
        description="How long quiet mode lasts before reconnection resumes.",
    )

    # -- analysis service ---------------------------------------------------

    analysis_base_url: str = Field(
        default="http://localhost:13000",
        description="Base URL of the analysis job service.",
    )
    stage_analysis_path: str = Field(default="stage-analysis")
    tool_detection_path: str = Field(default="tool-detection")
    analysis_timeout_seconds: float = Field(default=15.0, gt=0)

    # -- reconciliation -----------------------------------------------------

    timeline_max_events: int = Field(
        default=5000,
        ge=1,
        description="Timeline capacity; the oldest events are evicted first.",
    )
    reset_stage_dedup_on_connect: bool = Field(
        default=True,
        description=(
            "Forget the last accepted stage whenever the feed (re)connects, so "
            "the first announcement after a reconnect is always accepted."
        ),
    )
    touch_tools_on_noop: bool = Field(
        default=False,
        description=(
            "Refresh toolsLastUpdate when an inventory repeats the current set. "
            "Events are suppressed either way."
        ),
    )

    def analysis_path(self, kind: AnalysisKind) -> str:
        """Path segment of the job-start endpoint for ``kind``."""
        if kind is AnalysisKind.STAGE_ANALYSIS:
            return self.stage_analysis_path
        return self.tool_detection_path


__all__ = ["TimelineSettings"]
