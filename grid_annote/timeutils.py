# grid_annote/timeutils.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

from .domain import AnnotationPoint


# Points are shown while the playhead is within half this window (seconds).
VISIBLE_POINT_WINDOW = 1.5


# -----------------------------
# Time formatting / conversion
# -----------------------------

def format_timecode(seconds: float) -> str:
    """m:ss.mmm, e.g. 75.25 -> "1:15.250"."""
    if seconds is None:
        seconds = 0.0
    sec = max(0.0, float(seconds))
    whole = int(math.floor(sec))
    minutes = whole // 60
    rem = whole % 60
    millis = int(round((sec - whole) * 1000.0))
    if millis >= 1000:
        # rounding spill (e.g. 0.9996)
        return format_timecode(float(whole + 1))
    return f"{minutes}:{rem:02d}.{millis:03d}"


def duration_floor(duration: float) -> int:
    """Observed playback duration -> whole seconds searched by correlation."""
    if duration is None:
        return 0
    try:
        d = float(duration)
    except (TypeError, ValueError):
        return 0
    if not d > 0 or math.isinf(d):
        return 0
    return int(math.floor(d))


# -----------------------------
# Playhead helpers
# -----------------------------
# Public API for the player/overlay front end; nothing in this package draws.

def is_point_visible(point: AnnotationPoint, current_time: float, window: float = VISIBLE_POINT_WINDOW) -> bool:
    return abs(float(point.time) - float(current_time)) <= float(window) / 2.0


def points_visible_at(
    points: List[AnnotationPoint],
    current_time: float,
    window: float = VISIBLE_POINT_WINDOW,
) -> List[AnnotationPoint]:
    return [p for p in points if is_point_visible(p, current_time, window)]


def progress_percent(current_time: float, duration: float) -> float:
    if not duration or duration <= 0:
        return 0.0
    return max(0.0, min(100.0, (float(current_time) / float(duration)) * 100.0))


@dataclass(frozen=True)
class TimelineMarker:
    """A point's position on the progress track (percent of duration)."""
    id: str
    left_percent: float
    is_active: bool


def timeline_markers(
    points: List[AnnotationPoint],
    current_time: float,
    duration: float,
    window: float = VISIBLE_POINT_WINDOW,
) -> List[TimelineMarker]:
    if not duration or duration <= 0:
        return []
    out: List[TimelineMarker] = []
    for p in points:
        out.append(TimelineMarker(
            id=p.id,
            left_percent=(float(p.time) / float(duration)) * 100.0,
            is_active=is_point_visible(p, current_time, window),
        ))
    return out
