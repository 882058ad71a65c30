"""
File naming on disk. All clips of a recording live in FRAGMENTS_DIR so the concat
manifest can list bare names; final tracks go to RECORDINGS_DIR.

  <user>-<start_ms>.<ext>       one per fragment
  silence-<duration_ms>.<ext>   one per distinct gap length
  <user>-instructions.txt       concat manifest
  <user>-<clock_ms>.<ext>       final aligned track (RECORDINGS_DIR)
"""
from __future__ import annotations

import os
import re

from voicetracks.config import Settings

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_name(user: str) -> str:
    """User identity as a filename component. Quotes and separators would break the manifest."""
    cleaned = _UNSAFE.sub("_", str(user)).strip("._")
    return cleaned or "user"


def fragment_filename(settings: Settings, user: str, start_ms: int) -> str:
    return f"{safe_name(user)}-{start_ms}.{settings.OUTPUT_EXTENSION}"


def silence_filename(settings: Settings, duration_ms: int) -> str:
    return f"silence-{duration_ms}.{settings.OUTPUT_EXTENSION}"


def manifest_path(settings: Settings, user: str) -> str:
    return os.path.join(settings.FRAGMENTS_DIR, f"{safe_name(user)}-instructions.txt")


def fragment_path(settings: Settings, user: str, start_ms: int) -> str:
    return os.path.join(settings.FRAGMENTS_DIR, fragment_filename(settings, user, start_ms))


def silence_path(settings: Settings, duration_ms: int) -> str:
    return os.path.join(settings.FRAGMENTS_DIR, silence_filename(settings, duration_ms))


def final_track_path(settings: Settings, user: str, clock_ms: int) -> str:
    return os.path.join(settings.RECORDINGS_DIR, f"{safe_name(user)}-{clock_ms}.{settings.OUTPUT_EXTENSION}")
