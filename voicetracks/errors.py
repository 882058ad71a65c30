"""
Recording errors. Every failure is scoped to one user; none of these is allowed to
abort another user's capture or the registry's bookkeeping.
"""
from __future__ import annotations

from typing import Any


class RecordingError(Exception):
    """Base for recording errors. details carries context for reports (user, exit code, stderr tail)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class AlreadyCapturing(RecordingError):
    """start_capture called for a user that still has a session (even one mid-shutdown)."""


class NotCapturing(RecordingError):
    """stop_capture called for a user with no session entry."""


class EncoderSpawnFailed(RecordingError):
    """Encoder subprocess could not be started. Fatal to that session only."""


class CaptureIOFailure(RecordingError):
    """Read/write error in a copy loop that was not caused by cancellation."""


class StitchFailure(RecordingError):
    """Silence synthesis or concatenation failed for one user."""


class SessionsStillActive(RecordingError):
    """finalize called while captures are still running."""
