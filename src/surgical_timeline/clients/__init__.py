# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""HTTP clients for external services."""

from surgical_timeline.clients.analysis_job_client import (
    AnalysisJob,
    AnalysisJobClient,
)
from surgical_timeline.clients.model_analysis_client_config import (
    ModelAnalysisClientConfig,
)

__all__ = ["AnalysisJob", "AnalysisJobClient", "ModelAnalysisClientConfig"]
