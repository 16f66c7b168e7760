# grid_annote/domain.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import ReadOnlyPoint


# -----------------------------
# Grid shape
# -----------------------------

# Base grid follows the 9:16 portrait overlay: 16 rows x 9 columns.
GRID_BASE_ROWS = 16
GRID_BASE_COLUMNS = 9
MIN_GRID_SCALE = 1
MAX_GRID_SCALE = 4

# Single-byte encoding of row/column in the child seed input.
MAX_GRID_INDEX = 255


def clamp_grid_scale(scale: int) -> int:
    try:
        s = int(scale)
    except Exception:
        return MIN_GRID_SCALE
    return max(MIN_GRID_SCALE, min(s, MAX_GRID_SCALE))


@dataclass(frozen=True)
class GridShape:
    rows: int = GRID_BASE_ROWS
    columns: int = GRID_BASE_COLUMNS

    @staticmethod
    def from_scale(scale: int) -> "GridShape":
        s = clamp_grid_scale(scale)
        return GridShape(rows=GRID_BASE_ROWS * s, columns=GRID_BASE_COLUMNS * s)

    def cell_count(self) -> int:
        return int(self.rows) * int(self.columns)

    def cell_center_percent(self, row_index: int, column_index: int) -> Tuple[float, float]:
        """(x%, y%) of the center of a zero-based cell."""
        x = ((float(column_index) + 0.5) / float(self.columns)) * 100.0
        y = ((float(row_index) + 0.5) / float(self.rows)) * 100.0
        return (x, y)


# -----------------------------
# Derivation results
# -----------------------------

@dataclass(frozen=True)
class KeyIdentity:
    path: str          # "m/{row}/{column}"
    public_key: str    # base64 of the 32 raw public key bytes

    def to_dict(self) -> Dict:
        return {"path": self.path, "public_key": self.public_key}


@dataclass(frozen=True)
class GridCell:
    row: int           # zero-based
    column: int        # zero-based
    public_key: str

    def to_dict(self) -> Dict:
        return {"row": int(self.row), "column": int(self.column), "public_key": self.public_key}


# -----------------------------
# Graph payload
# -----------------------------

@dataclass(frozen=True)
class Tag:
    public_key: str
    memo: str


# -----------------------------
# Annotation points
# -----------------------------

@dataclass
class AnnotationPoint:
    """
    One point of interest on a video.

    time is in seconds (integer for derived points, any float for user points).
    row/column are 1-based display values; x_percent/y_percent locate the cell
    center on the overlay (0..100).
    Derived points carry the public key they were matched from and are read-only.
    """
    id: str
    time: float
    row: int
    column: int
    x_percent: float
    y_percent: float
    note: str = ""
    read_only: bool = False
    public_key: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "time": self.time,
            "row": int(self.row),
            "column": int(self.column),
            "x_percent": float(self.x_percent),
            "y_percent": float(self.y_percent),
            "note": self.note or "",
            "read_only": bool(self.read_only),
            "public_key": self.public_key,
        }

    @staticmethod
    def from_dict(d: Dict) -> "AnnotationPoint":
        return AnnotationPoint(
            id=str(d["id"]),
            time=float(d.get("time", 0.0)),
            row=int(d.get("row", 1)),
            column=int(d.get("column", 1)),
            x_percent=float(d.get("x_percent", 0.0)),
            y_percent=float(d.get("y_percent", 0.0)),
            note=str(d.get("note", "")),
            read_only=bool(d.get("read_only", False)),
            public_key=d.get("public_key") or None,
        )


def new_track_key() -> str:
    return f"video-{uuid.uuid4().hex}"


@dataclass
class VideoTrack:
    """
    A video in the feed plus its in-memory annotation points.

    key is local to this client ("video-<hex>"); namespace is the shared label
    other clients use to derive the same keys. Tracks without a namespace only
    hold user-created points.
    """
    video_id: str
    source: str
    namespace: Optional[str] = None
    key: str = field(default_factory=new_track_key)
    points: List[AnnotationPoint] = field(default_factory=list)

    def get_point(self, point_id: str) -> Optional[AnnotationPoint]:
        for p in self.points:
            if p.id == point_id:
                return p
        return None

    def set_derived_points(self, points: List[AnnotationPoint]) -> None:
        """Replace derived points, keeping user-created ones."""
        user = [p for p in self.points if not p.read_only]
        merged = list(points) + user
        merged.sort(key=lambda p: p.time)
        self.points = merged

    # Edit path used by the note editor front end; derived points stay read-only.
    def add_user_point(
        self,
        time: float,
        row: int,
        column: int,
        shape: Optional[GridShape] = None,
        note: str = "",
    ) -> AnnotationPoint:
        shape = shape or GridShape()
        x, y = shape.cell_center_percent(int(row) - 1, int(column) - 1)
        point = AnnotationPoint(
            id=f"{self.key}-{uuid.uuid4().hex}",
            time=max(0.0, float(time)),
            row=int(row),
            column=int(column),
            x_percent=x,
            y_percent=y,
            note=note or "",
            read_only=False,
            public_key=None,
        )
        self.points.append(point)
        self.points.sort(key=lambda p: p.time)
        return point

    def update_point_note(self, point_id: str, note: str) -> AnnotationPoint:
        p = self.get_point(point_id)
        if p is None:
            raise KeyError(point_id)
        if p.read_only:
            raise ReadOnlyPoint(f"Point {point_id} is derived from a tag and cannot be edited")
        p.note = note or ""
        return p

    def remove_point(self, point_id: str) -> None:
        p = self.get_point(point_id)
        if p is None:
            raise KeyError(point_id)
        if p.read_only:
            raise ReadOnlyPoint(f"Point {point_id} is derived from a tag and cannot be removed")
        self.points = [x for x in self.points if x.id != point_id]
