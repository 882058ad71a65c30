"""
Track planning: turn one user's fragments into the ordered clip list of an aligned track.

Walk the fragments with a cursor starting at the session clock. Before each fragment,
a gap > 0 becomes a silence clip of exactly that many ms; a gap of 0 adds nothing; a
negative gap (overlapping fragments) is logged and treated as 0. The cursor then moves to
the fragment's end. No I/O happens here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from voicetracks.capture.fragment import FragmentRecord
from voicetracks.config import Settings
from voicetracks.paths import fragment_filename, silence_filename

logger = logging.getLogger(__name__)

SPEECH = "speech"
SILENCE = "silence"


@dataclass
class ClipSpec:
    """One entry of the concat manifest."""

    kind: str  # "speech" | "silence"
    filename: str
    duration_ms: int


@dataclass
class TrackPlan:
    user: str
    clock_ms: int
    clips: list[ClipSpec] = field(default_factory=list)

    @property
    def duration_ms(self) -> int:
        return sum(c.duration_ms for c in self.clips)

    @property
    def silence_durations(self) -> list[int]:
        return [c.duration_ms for c in self.clips if c.kind == SILENCE]

    def manifest_lines(self) -> list[str]:
        return [f"file '{c.filename}'" for c in self.clips]


def plan_track(
    user: str,
    fragments: list[FragmentRecord],
    clock_ms: int,
    settings: Settings,
    pad_to_ms: int | None = None,
) -> TrackPlan:
    """
    Clip order for user's track, aligned to clock_ms. Open fragments are skipped.
    pad_to_ms appends trailing silence up to that instant (common-end padding).
    """
    plan = TrackPlan(user=user, clock_ms=clock_ms)
    cursor = clock_ms
    for fragment in fragments:
        if fragment.end_ms is None:
            logger.warning("Stitch %s: skipping fragment %s that was never closed", user, fragment.start_ms)
            continue
        gap = fragment.start_ms - cursor
        if gap < 0:
            logger.warning(
                "Stitch %s: fragment %s overlaps previous end %s by %d ms; no silence inserted",
                user,
                fragment.start_ms,
                cursor,
                -gap,
            )
        elif gap > 0:
            plan.clips.append(ClipSpec(SILENCE, silence_filename(settings, gap), gap))
        plan.clips.append(
            ClipSpec(SPEECH, fragment_filename(settings, user, fragment.start_ms), fragment.end_ms - fragment.start_ms)
        )
        cursor = fragment.end_ms

    if pad_to_ms is not None and plan.clips and pad_to_ms > cursor:
        tail = pad_to_ms - cursor
        plan.clips.append(ClipSpec(SILENCE, silence_filename(settings, tail), tail))
    return plan
