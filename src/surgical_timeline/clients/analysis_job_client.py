# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Async client for the remote analysis job service.

Each analysis kind has its own job-start endpoint::

    POST <base>/<kind-path>/<video_id>  ->  {"job_id": "...", "state": "..."}

The service has no stop endpoint; stopping is local-only and handled by the
session controller. Job starts are never retried here: a failed start is
reported to the caller, who decides whether to try again.

Example:
    ```python
    config = ModelAnalysisClientConfig(base_url="http://10.0.0.5:13000")
    async with AnalysisJobClient(config) as client:
        job = await client.start_job(AnalysisKind.TOOL_DETECTION, "video01")
        print(job.job_id, job.state)
    ```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx

from surgical_timeline.clients.model_analysis_client_config import (
    ModelAnalysisClientConfig,
)
from surgical_timeline.enums import AnalysisKind
from surgical_timeline.errors import RemoteServiceError

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisJob:
    """Acknowledgement returned by a successful job start."""

    job_id: str
    state: str


class AnalysisJobClient:
    """Async client for the analysis job service with a pooled connection.

    Args:
        config: Client configuration.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in
            tests.
    """

    def __init__(
        self,
        config: ModelAnalysisClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def config(self) -> ModelAnalysisClientConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def job_url(self, kind: AnalysisKind, video_id: str) -> str:
        """Full URL of the job-start endpoint for ``kind`` and ``video_id``."""
        base = self._config.base_url.rstrip("/")
        path = self._config.path_for(kind).strip("/")
        return f"{base}/{path}/{quote(video_id, safe='')}"

    async def connect(self) -> None:
        """Open the connection pool. Safe to call multiple times (idempotent)."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_seconds),
            transport=self._transport,
        )
        logger.debug("AnalysisJobClient connected to %s", self._config.base_url)

    async def close(self) -> None:
        """Close the connection pool. Safe to call multiple times (idempotent)."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("AnalysisJobClient connection closed")

    async def __aenter__(self) -> AnalysisJobClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def start_job(self, kind: AnalysisKind, video_id: str) -> AnalysisJob:
        """Ask the service to start an analysis job.

        Raises:
            RemoteServiceError: On timeout, connection failure, a non-2xx
                status or a response without ``job_id``/``state``.
        """
        await self.connect()
        if self._client is None:
            raise RemoteServiceError("Client is not connected")
        url = self.job_url(kind, video_id)
        logger.info("Starting %s job for video %s", kind.value, video_id)

        try:
            response = await self._client.post(url)
        except httpx.TimeoutException as exc:
            raise RemoteServiceError(
                f"Analysis service timed out after {self._config.timeout_seconds}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteServiceError(
                f"Analysis service unreachable at {self._config.base_url}: {exc}"
            ) from exc

        if not response.is_success:
            raise RemoteServiceError(
                f"Analysis service responded with status: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteServiceError(
                "Analysis service returned a non-JSON body",
                status_code=response.status_code,
            ) from exc

        if not isinstance(data, dict):
            raise RemoteServiceError(
                f"Unexpected response format from analysis service: {type(data).__name__}",
                status_code=response.status_code,
            )
        job_id = data.get("job_id")
        state = data.get("state")
        if not isinstance(job_id, str) or not job_id or not isinstance(state, str):
            raise RemoteServiceError(
                "Analysis service response lacks 'job_id'/'state'",
                status_code=response.status_code,
            )
        return AnalysisJob(job_id=job_id, state=state)

    async def health_check(self) -> bool:
        """Return True if ``GET <base>/health`` answers with a 2xx status."""
        await self.connect()
        if self._client is None:
            raise RemoteServiceError("Client is not connected")
        url = f"{self._config.base_url.rstrip('/')}/health"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            logger.debug("Analysis service health check failed: %s", exc)
            return False
        return response.is_success


__all__ = ["AnalysisJob", "AnalysisJobClient"]
