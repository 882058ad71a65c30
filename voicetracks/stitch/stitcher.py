"""
Stitcher: one aligned master file per user after a recording.

For each user with at least one fragment: plan the clip order (planner.plan_track),
synthesize any missing silence clips, write the concat manifest, and concatenate with
stream copy into <user>-<clock_ms>.<ext>. Every track starts at the session clock; each
ends at its user's own last fragment end unless PAD_TRACKS_TO_COMMON_END is set.

Failures (ffmpeg missing, non-zero exit) are per user: logged with the stderr tail,
returned in that user's StitchResult, and the other users are stitched as usual.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from voicetracks.capture.fragment import FragmentRecord, session_clock
from voicetracks.config import Settings, get_settings
from voicetracks.errors import StitchFailure
from voicetracks.ffmpeg_io import concat_command, silence_command
from voicetracks.paths import final_track_path, manifest_path, silence_path
from voicetracks.stitch.planner import TrackPlan, plan_track
from voicetracks.stitch.process import ProcessResult, run_process

logger = logging.getLogger(__name__)

ProcessRunner = Callable[[list[str]], Awaitable[ProcessResult]]


@dataclass
class StitchResult:
    """Outcome for one user. output_path is None when stitching failed."""

    user: str
    clock_ms: int
    output_path: str | None
    clips: list[str] = field(default_factory=list)
    duration_ms: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class Stitcher:
    def __init__(self, settings: Settings | None = None, runner: ProcessRunner | None = None) -> None:
        self._settings = settings or get_settings()
        self._runner = runner or self._run

    async def _run(self, command: list[str]) -> ProcessResult:
        return await run_process(command, tail_lines=self._settings.DIAGNOSTIC_TAIL_LINES)

    def plan(self, fragments_by_user: dict[str, list[FragmentRecord]]) -> list[TrackPlan]:
        """Clip plans for every user with closed fragments, all aligned to the session clock."""
        closed = {
            user: [f for f in frags if f.end_ms is not None]
            for user, frags in fragments_by_user.items()
        }
        clock_ms = session_clock(closed)
        if clock_ms is None:
            return []
        pad_to_ms = None
        if self._settings.PAD_TRACKS_TO_COMMON_END:
            pad_to_ms = max(f.end_ms for frags in closed.values() for f in frags)
        plans = []
        for user, frags in fragments_by_user.items():
            plan = plan_track(user, frags, clock_ms, self._settings, pad_to_ms=pad_to_ms)
            if plan.clips:
                plans.append(plan)
        return plans

    async def stitch_all(self, fragments_by_user: dict[str, list[FragmentRecord]]) -> list[StitchResult]:
        plans = self.plan(fragments_by_user)
        if not plans:
            logger.info("Nothing to stitch: no closed fragments")
            return []
        os.makedirs(self._settings.RECORDINGS_DIR, exist_ok=True)
        os.makedirs(self._settings.FRAGMENTS_DIR, exist_ok=True)
        logger.info("Stitching %d track(s) aligned at %s", len(plans), plans[0].clock_ms)

        # One synthesis per distinct duration, shared by every user that needs it.
        silences: dict[int, asyncio.Task] = {}
        if self._settings.STITCH_CONCURRENTLY:
            results = await asyncio.gather(*(self._stitch_user(p, silences) for p in plans))
            return list(results)
        return [await self._stitch_user(p, silences) for p in plans]

    async def _stitch_user(self, plan: TrackPlan, silences: dict[int, asyncio.Task]) -> StitchResult:
        output_path = final_track_path(self._settings, plan.user, plan.clock_ms)
        result = StitchResult(
            user=plan.user,
            clock_ms=plan.clock_ms,
            output_path=output_path,
            clips=[c.filename for c in plan.clips],
            duration_ms=plan.duration_ms,
        )
        try:
            for duration_ms in plan.silence_durations:
                if duration_ms not in silences:
                    silences[duration_ms] = asyncio.ensure_future(self._synthesize_silence(duration_ms))
            outcomes = await asyncio.gather(
                *(silences[d] for d in sorted(set(plan.silence_durations))), return_exceptions=True
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            manifest = self._write_manifest(plan)
            await self._concat(plan.user, manifest, output_path)
        except StitchFailure as e:
            logger.error("Stitch failed for %s: %s\n%s", plan.user, e.message, "\n".join(e.details.get("stderr", [])))
            result.output_path = None
            result.error = e.message
            return result
        except Exception as e:
            logger.exception("Stitch failed for %s", plan.user)
            result.output_path = None
            result.error = f"Stitch failed for {plan.user}: {e!r}"
            return result
        logger.info("Stitched %s: %d clip(s), %d ms -> %s", plan.user, len(plan.clips), plan.duration_ms, output_path)
        return result

    async def _synthesize_silence(self, duration_ms: int) -> str:
        path = silence_path(self._settings, duration_ms)
        await self._check(
            silence_command(self._settings, duration_ms, path),
            f"Silence synthesis ({duration_ms} ms) failed",
        )
        return path

    def _write_manifest(self, plan: TrackPlan) -> str:
        path = manifest_path(self._settings, plan.user)
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write("\n".join(plan.manifest_lines()) + "\n")
        except OSError as e:
            raise StitchFailure(f"Could not write manifest {path}: {e}", {"user": plan.user}) from e
        return path

    async def _concat(self, user: str, manifest: str, output_path: str) -> None:
        await self._check(
            concat_command(self._settings, manifest, output_path),
            f"Concatenation for {user} failed",
        )

    async def _check(self, command: list[str], what: str) -> ProcessResult:
        try:
            result = await self._runner(command)
        except OSError as e:
            raise StitchFailure(f"{what}: {e}", {"command": command}) from e
        if not result.ok:
            raise StitchFailure(
                f"{what}: exit {result.returncode}",
                {"command": command, "returncode": result.returncode, "stderr": result.stderr_tail},
            )
        return result
