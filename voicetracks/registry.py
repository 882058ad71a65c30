"""
StreamRegistry: the only shared mutable state of a recording.

- At most one CaptureSession per user. A second start_capture while an entry exists
  (running or mid-shutdown) raises AlreadyCapturing; it is never merged.
- stop_capture(user) raises NotCapturing only when there is no entry. A call that arrives
  while the same session is already stopping awaits that shutdown and gets the same report.
- The entry is removed only after the encoder has exited.
- Fragments outlive their sessions: a user who leaves and rejoins gets a new fragment in
  the same list. finalize() stitches every list once, then clears everything.
- Inserts happen under one asyncio.Lock. Removal is a single synchronous step run when the
  session's stop task finishes, so a cancelled stop_capture never drops a live encoder.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from voicetracks.capture.fragment import FragmentRecord, session_clock, unix_ms
from voicetracks.capture.session import CaptureReport, CaptureSession, EncoderFactory
from voicetracks.capture.source import AudioSource
from voicetracks.config import Settings, get_settings
from voicetracks.errors import AlreadyCapturing, NotCapturing, SessionsStillActive
from voicetracks.stitch.stitcher import StitchResult, Stitcher

logger = logging.getLogger(__name__)


class StreamRegistry:
    """Keyed sessions for one recording. Create one per recording or reuse after finalize()."""

    def __init__(
        self,
        settings: Settings | None = None,
        stitcher: Stitcher | None = None,
        clock: Callable[[], int] = unix_ms,
        encoder_factory: EncoderFactory | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._stitcher = stitcher or Stitcher(self._settings)
        self._clock = clock
        self._encoder_factory = encoder_factory
        self._lock = asyncio.Lock()
        self._sessions: dict[str, CaptureSession] = {}
        self._fragments: dict[str, list[FragmentRecord]] = {}

    async def start_capture(self, user: str, source: AudioSource) -> CaptureSession:
        """
        Start capturing user from source. Returns once the encoder runs; copying continues
        in the session's own task. Raises AlreadyCapturing or EncoderSpawnFailed.
        """
        async with self._lock:
            if user in self._sessions:
                state = self._sessions[user].state
                raise AlreadyCapturing(f"Already capturing {user} (state {state})", {"user": user})
            fragments = self._fragments.setdefault(user, [])
            session = CaptureSession(
                user,
                source,
                fragments,
                settings=self._settings,
                clock=self._clock,
                encoder_factory=self._encoder_factory,
            )
            try:
                await session.start()
            except Exception:
                if not fragments:
                    del self._fragments[user]
                raise
            self._sessions[user] = session
        return session

    async def stop_capture(self, user: str) -> CaptureReport:
        """
        Stop user's capture and wait for its encoder to exit. Raises NotCapturing when no
        session exists. Never raises for a failed capture: the failure is in the report.
        """
        async with self._lock:
            session = self._sessions.get(user)
            if session is None:
                raise NotCapturing(f"Not capturing {user}", {"user": user})
            if session.stopping:
                logger.debug("Capture %s already stopping; waiting for it", user)
        # Wait outside the lock: other users may start or stop meanwhile. The entry goes when the
        # stop task finishes, even if this caller is cancelled first.
        stop_task = session.begin_stop()
        stop_task.add_done_callback(lambda _: self._forget(user, session))
        report = await asyncio.shield(stop_task)
        self._forget(user, session)
        return report

    def _forget(self, user: str, session: CaptureSession) -> None:
        if self._sessions.get(user) is session:
            del self._sessions[user]

    async def stop_all(self) -> list[CaptureReport]:
        """Stop every active capture concurrently. One user's failure does not stop the others."""
        async with self._lock:
            users = list(self._sessions)
        results = await asyncio.gather(*(self.stop_capture(u) for u in users), return_exceptions=True)
        reports: list[CaptureReport] = []
        for user, result in zip(users, results):
            if isinstance(result, NotCapturing):
                continue
            if isinstance(result, BaseException):
                logger.error("Stopping capture for %s failed: %r", user, result)
                continue
            reports.append(result)
        return reports

    async def finalize(self) -> list[StitchResult]:
        """
        Stitch one aligned track per user, then clear the recording. Requires every capture to
        be stopped first (SessionsStillActive otherwise). Per-user stitch failures are in the
        results, not raised.
        """
        async with self._lock:
            if self._sessions:
                users = sorted(self._sessions)
                raise SessionsStillActive(
                    f"Cannot finalize while capturing: {', '.join(users)}", {"users": users}
                )
            fragments = self._fragments
            self._fragments = {}
        try:
            return await self._stitcher.stitch_all(fragments)
        finally:
            fragments.clear()

    def is_capturing(self, user: str) -> bool:
        return user in self._sessions

    def active_users(self) -> list[str]:
        return list(self._sessions)

    def session(self, user: str) -> CaptureSession | None:
        return self._sessions.get(user)

    def fragments(self, user: str) -> list[FragmentRecord]:
        """Copy of user's fragment list for this recording."""
        return list(self._fragments.get(user, []))

    def all_fragments(self) -> dict[str, list[FragmentRecord]]:
        return {user: list(frags) for user, frags in self._fragments.items()}

    def session_clock(self) -> int | None:
        return session_clock(self._fragments)
