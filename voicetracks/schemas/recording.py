"""
Schemas for the recording control API.

Reports are informational: a failed capture or stitch for one user never fails the
request; it shows up as that user's error.
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from voicetracks.capture.session import CaptureReport
from voicetracks.stitch.stitcher import StitchResult


class CaptureReportOut(BaseModel):
    """One stopped capture."""

    user: str
    start_ms: int
    end_ms: int | None = None
    output_path: str
    bytes_written: int = 0
    audio_ms: int = 0
    returncode: int | None = None
    success: bool = True
    error: str | None = None
    diagnostics: list[str] = Field(default_factory=list, description="Encoder output tail, only on failure")

    @classmethod
    def from_report(cls, report: CaptureReport) -> "CaptureReportOut":
        return cls(
            user=report.user,
            start_ms=report.start_ms,
            end_ms=report.end_ms,
            output_path=report.output_path,
            bytes_written=report.bytes_written,
            audio_ms=report.audio_ms,
            returncode=report.returncode,
            success=report.success,
            error=report.error,
            diagnostics=report.diagnostics,
        )


class StitchResultOut(BaseModel):
    """One user's aligned track."""

    user: str
    clock_ms: int
    output_path: str | None = Field(None, description="Final track; null when stitching failed")
    clips: list[str] = Field(default_factory=list, description="Manifest order")
    duration_ms: int = 0
    success: bool = True
    error: str | None = None

    @classmethod
    def from_result(cls, result: StitchResult) -> "StitchResultOut":
        return cls(
            user=result.user,
            clock_ms=result.clock_ms,
            output_path=result.output_path,
            clips=result.clips,
            duration_ms=result.duration_ms,
            success=result.success,
            error=result.error,
        )


class StopResponse(BaseModel):
    reports: list[CaptureReportOut] = Field(default_factory=list)


class FinalizeResponse(BaseModel):
    stopped: list[CaptureReportOut] = Field(default_factory=list, description="Captures stopped by this call")
    tracks: list[StitchResultOut] = Field(default_factory=list)


class UserStatus(BaseModel):
    user: str
    capturing: bool
    fragments: int


class StatusResponse(BaseModel):
    session_clock_ms: int | None = Field(None, description="Earliest fragment start; null before any capture")
    users: list[UserStatus] = Field(default_factory=list)
