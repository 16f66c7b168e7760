# grid_annote/correlation.py
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set

from .domain import (
    GRID_BASE_COLUMNS,
    GRID_BASE_ROWS,
    AnnotationPoint,
    GridCell,
    GridShape,
    Tag,
)
from .errors import CorrelationCancelled
from .keys import derive_time_scoped_grid, validate_namespace

logger = logging.getLogger(__name__)

# (namespace, second, rows, columns) -> cells; swapped out in tests to count derivations.
GridDeriver = Callable[[str, int, int, int], List[GridCell]]


class AddressingScheme(str, Enum):
    """
    How tags are mapped back to coordinates.

    GRID      brute-force search over derived per-second grids only.
    EXPLICIT  only memos of the form "<namespace>/T+<s>s/<col>x<row>/<text>".
    AUTO      explicit memos are resolved structurally first; every other tag
              goes through the grid search. A tag yields at most one point.
    """
    GRID = "grid"
    EXPLICIT = "explicit"
    AUTO = "auto"


# -----------------------------
# Explicit-coordinate memos
# -----------------------------

@dataclass(frozen=True)
class ExplicitCoordinate:
    seconds: int
    column: int
    row: int
    text: str


def parse_explicit_memo(namespace: str, memo: str) -> Optional[ExplicitCoordinate]:
    """
    Parse "<namespace>/T+<seconds>s/<column>x<row>/<free text>".

    The namespace must match literally; any non-numeric component yields None.
    """
    if not namespace or not memo:
        return None
    pattern = re.escape(namespace) + r"/T\+([0-9]+)s/([0-9]+)x([0-9]+)/(.*)"
    m = re.fullmatch(pattern, memo, re.DOTALL)
    if not m:
        return None
    return ExplicitCoordinate(
        seconds=int(m.group(1)),
        column=int(m.group(2)),
        row=int(m.group(3)),
        text=m.group(4),
    )


def _clamp_percent(v: float) -> float:
    return max(0.0, min(float(v), 100.0))


def _point_id(track_key: str, public_key: str) -> str:
    return f"{track_key}-{public_key}"


def _grid_point(track_key: str, second: int, cell: GridCell, shape: GridShape, memo: str) -> AnnotationPoint:
    x, y = shape.cell_center_percent(cell.row, cell.column)
    return AnnotationPoint(
        id=_point_id(track_key, cell.public_key),
        time=second,
        row=cell.row + 1,
        column=cell.column + 1,
        x_percent=x,
        y_percent=y,
        note=memo,
        read_only=True,
        public_key=cell.public_key,
    )


def _explicit_point(track_key: str, tag: Tag, coord: ExplicitCoordinate, shape: GridShape) -> AnnotationPoint:
    # Explicit row/column are display values (1-based), like grid points.
    x, y = shape.cell_center_percent(coord.row - 1, coord.column - 1)
    return AnnotationPoint(
        id=_point_id(track_key, tag.public_key),
        time=coord.seconds,
        row=coord.row,
        column=coord.column,
        x_percent=_clamp_percent(x),
        y_percent=_clamp_percent(y),
        note=coord.text or tag.memo,
        read_only=True,
        public_key=tag.public_key,
    )


def _check_cancelled(is_cancelled: Optional[Callable[[], bool]]) -> None:
    if is_cancelled is not None and is_cancelled():
        raise CorrelationCancelled("Correlation cancelled")


# -----------------------------
# Correlation
# -----------------------------

def build_tag_index(tags: Iterable[Tag]) -> Dict[str, str]:
    """public_key -> memo; malformed tags skipped, later duplicates win."""
    index: Dict[str, str] = {}
    for tag in tags:
        if not tag.public_key or not tag.memo:
            continue
        index[tag.public_key] = tag.memo
    return index


def correlate_tags(
    namespace: str,
    duration_seconds: float,
    tags: List[Tag],
    track_key: str = "",
    rows: int = GRID_BASE_ROWS,
    columns: int = GRID_BASE_COLUMNS,
    is_cancelled: Optional[Callable[[], bool]] = None,
    derive_grid_for_second: Optional[GridDeriver] = None,
    scheme: AddressingScheme = AddressingScheme.AUTO,
) -> List[AnnotationPoint]:
    """
    Rebuild annotation points for a namespace from the tags of its graph.

    Walks seconds 0..floor(duration_seconds), re-deriving the time-scoped grid
    for each second and matching cell keys against the remaining tags. Stops
    as soon as every tag has been placed.

    is_cancelled is polled before each second; when it returns True the run
    raises CorrelationCancelled and no partial result is returned.

    Result is sorted by time, then row-major within a second (grid and
    explicit points alike).
    """
    validate_namespace(namespace)
    try:
        duration = float(duration_seconds)
    except (TypeError, ValueError):
        duration = 0.0
    if not tags or not duration > 0:
        return []

    scheme = AddressingScheme(scheme)
    shape = GridShape(rows=rows, columns=columns)
    derive = derive_grid_for_second or derive_time_scoped_grid

    points: List[AnnotationPoint] = []
    index: Dict[str, str] = {}
    resolved: Set[str] = set()

    for tag in tags:
        if not tag.public_key or not tag.memo:
            continue
        if scheme is not AddressingScheme.GRID:
            coord = parse_explicit_memo(namespace, tag.memo)
            if coord is not None:
                if tag.public_key not in resolved:
                    points.append(_explicit_point(track_key, tag, coord, shape))
                    resolved.add(tag.public_key)
                index.pop(tag.public_key, None)
                continue
            if scheme is AddressingScheme.EXPLICIT:
                continue
        if tag.public_key in resolved:
            continue
        index[tag.public_key] = tag.memo

    last_second = int(math.floor(duration))
    searched = 0
    if index:
        for second in range(0, last_second + 1):
            _check_cancelled(is_cancelled)
            searched += 1
            for cell in derive(namespace, second, rows, columns):
                memo = index.pop(cell.public_key, None)
                if memo is None:
                    continue
                points.append(_grid_point(track_key, second, cell, shape, memo))
            if not index:
                break

    if index:
        logger.debug(
            f"{len(index)} tag(s) for namespace {namespace!r} matched no cell within {last_second + 1}s"
        )
    logger.debug(f"Correlated {len(points)} point(s) for {namespace!r} after {searched} grid(s)")

    # grid points of one second are already row-major; explicit ones slot in by cell
    points.sort(key=lambda p: (p.time, p.row, p.column))
    return points
