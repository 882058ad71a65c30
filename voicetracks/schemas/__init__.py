"""Pydantic schemas for API request/response."""
from voicetracks.schemas.recording import (
    CaptureReportOut,
    FinalizeResponse,
    StatusResponse,
    StitchResultOut,
    StopResponse,
    UserStatus,
)

__all__ = [
    "CaptureReportOut",
    "FinalizeResponse",
    "StatusResponse",
    "StitchResultOut",
    "StopResponse",
    "UserStatus",
]
