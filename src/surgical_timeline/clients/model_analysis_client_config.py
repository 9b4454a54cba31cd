# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Configuration model for the analysis job HTTP client."""

from __future__ import annotations

from pydantic import BaseModel, Field

from surgical_timeline.config import TimelineSettings
from surgical_timeline.enums import AnalysisKind


class ModelAnalysisClientConfig(BaseModel):
    """Configuration for the analysis job service client.

    Attributes:
        base_url: Base URL of the analysis service.
        stage_analysis_path: Path segment for stage-analysis jobs.
        tool_detection_path: Path segment for tool-detection jobs.
        timeout_seconds: Request timeout; an unanswered start counts as failed.
    """

    model_config = {"frozen": True, "extra": "ignore"}

    base_url: str = Field(description="Base URL of the analysis service.")
    stage_analysis_path: str = Field(default="stage-analysis")
    tool_detection_path: str = Field(default="tool-detection")
    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="HTTP request timeout in seconds.",
    )

    @classmethod
    def from_settings(cls, settings: TimelineSettings) -> ModelAnalysisClientConfig:
        return cls(
            base_url=settings.analysis_base_url,
            stage_analysis_path=settings.stage_analysis_path,
            tool_detection_path=settings.tool_detection_path,
            timeout_seconds=settings.analysis_timeout_seconds,
        )

    def path_for(self, kind: AnalysisKind) -> str:
        if kind is AnalysisKind.STAGE_ANALYSIS:
            return self.stage_analysis_path
        return self.tool_detection_path


__all__ = ["ModelAnalysisClientConfig"]
