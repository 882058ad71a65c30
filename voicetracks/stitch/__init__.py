"""Stitching: gap detection, silence synthesis and stream-copy concatenation per user."""
from .planner import ClipSpec, TrackPlan, plan_track
from .stitcher import StitchResult, Stitcher

__all__ = ["ClipSpec", "TrackPlan", "plan_track", "StitchResult", "Stitcher"]
