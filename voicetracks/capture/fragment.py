"""
FragmentRecord: one contiguous span during which a single user was captured.

- start_ms, end_ms: wall-clock unix milliseconds.
- end_ms is None while the capture is running; set exactly once when it stops.
- For one user, closed fragments never overlap: fragments[i].end_ms <= fragments[i + 1].start_ms.
"""
from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class FragmentRecord:
    """One captured span for owner. Immutable once closed."""

    start_ms: int
    owner: str
    end_ms: int | None = None

    @property
    def is_open(self) -> bool:
        return self.end_ms is None

    @property
    def duration_ms(self) -> int | None:
        if self.end_ms is None:
            return None
        return self.end_ms - self.start_ms

    def close(self, end_ms: int) -> None:
        """Set end_ms. A fragment is closed once; a second close is a programming error."""
        if self.end_ms is not None:
            raise ValueError(f"Fragment {self.owner}-{self.start_ms} already closed at {self.end_ms}")
        # Clock may not go backwards within a fragment; clamp to a zero-length span.
        self.end_ms = max(end_ms, self.start_ms)


def session_clock(fragments_by_user: dict[str, list[FragmentRecord]]) -> int | None:
    """Earliest fragment start across all users, or None when nothing was captured."""
    starts = [f.start_ms for frags in fragments_by_user.values() for f in frags]
    if not starts:
        return None
    return min(starts)


def unix_ms() -> int:
    return int(time.time() * 1000)
