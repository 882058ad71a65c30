"""Capture: per-user sessions, their sources and encoders."""
from .encoder import EncoderProcess
from .fragment import FragmentRecord, session_clock
from .session import CaptureReport, CaptureSession
from .source import AudioSource, PCMSource

__all__ = [
    "AudioSource",
    "CaptureReport",
    "CaptureSession",
    "EncoderProcess",
    "FragmentRecord",
    "PCMSource",
    "session_clock",
]
