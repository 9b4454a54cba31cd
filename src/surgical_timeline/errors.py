# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Exception taxonomy for the surgical timeline core.

Transport and parse errors never escape the connection manager; they are
delivered to ``error`` listeners instead. Session errors are wrapped in
result values by the session controller so callers can render them inline.
"""

from __future__ import annotations


class SurgicalTimelineError(Exception):
    """Base exception for all surgical timeline errors."""


class FeedConnectionError(SurgicalTimelineError):
    """Raised when the telemetry feed cannot be reached or drops."""


class FeedParseError(SurgicalTimelineError):
    """A feed payload could not be decoded into a JSON object."""

    def __init__(self, topic: str, reason: str) -> None:
        super().__init__(f"Failed to parse message on {topic}: {reason}")
        self.topic = topic
        self.reason = reason


class MessageValidationError(SurgicalTimelineError):
    """A well-formed message lacks the fields its topic requires."""


class SessionConflictError(SurgicalTimelineError):
    """An analysis session is already starting or running."""


class RemoteServiceError(SurgicalTimelineError):
    """The analysis service rejected or garbled a job-start request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "FeedConnectionError",
    "FeedParseError",
    "MessageValidationError",
    "RemoteServiceError",
    "SessionConflictError",
    "SurgicalTimelineError",
]
