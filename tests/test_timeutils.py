# tests/test_timeutils.py
from __future__ import annotations

import pytest

from grid_annote.domain import AnnotationPoint
from grid_annote.timeutils import (
    duration_floor,
    format_timecode,
    points_visible_at,
    progress_percent,
    timeline_markers,
)


def _point(pid: str, t: float) -> AnnotationPoint:
    return AnnotationPoint(id=pid, time=t, row=1, column=1, x_percent=5.0, y_percent=3.0)


@pytest.mark.parametrize("seconds,expected", [
    (0, "0:00.000"),
    (5.25, "0:05.250"),
    (75.5, "1:15.500"),
    (600, "10:00.000"),
    (59.9996, "1:00.000"),
    (-3, "0:00.000"),
    (None, "0:00.000"),
])
def test_format_timecode(seconds, expected):
    assert format_timecode(seconds) == expected


@pytest.mark.parametrize("duration,expected", [
    (12.9, 12), (1, 1), (0.99, 0), (0, 0), (-5, 0), (None, 0), (float("nan"), 0), (float("inf"), 0), ("x", 0),
])
def test_duration_floor(duration, expected):
    assert duration_floor(duration) == expected


def test_points_visible_within_half_window():
    pts = [_point("a", 3), _point("b", 4), _point("c", 3.75)]
    assert [p.id for p in points_visible_at(pts, 3.0)] == ["a", "c"]
    assert [p.id for p in points_visible_at(pts, 3.0, window=4)] == ["a", "b", "c"]


def test_progress_percent_clamped():
    assert progress_percent(5, 10) == 50.0
    assert progress_percent(15, 10) == 100.0
    assert progress_percent(5, 0) == 0.0


def test_timeline_markers():
    markers = timeline_markers([_point("a", 2), _point("b", 8)], current_time=2.5, duration=10)
    assert [(m.id, m.left_percent, m.is_active) for m in markers] == [
        ("a", 20.0, True),
        ("b", 80.0, False),
    ]
    assert timeline_markers([_point("a", 2)], 0, 0) == []
