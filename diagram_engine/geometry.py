"""
Geometry primitives for the diagram engine.

Everything here is pure: positions, dimensions and bounds are small value
models, and the helpers compute anchor points, directions and distances
without touching any entity collection.

Coordinate conventions:
- A shape's `position` is the top-left corner of its bounding box
- Y grows downward (screen coordinates), so `n` is the top edge
- Angles are radians measured with atan2(dy, dx)
"""

import logging
import math
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Position(BaseModel):
    """A point in diagram space."""
    x: float = 0
    y: float = 0

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)

    def distance_to(self, other: "Position") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)


class Dimensions(BaseModel):
    """Width and height of an entity's bounding box."""
    width: float = 0
    height: float = 0


class Bounds(BaseModel):
    """Axis-aligned rectangle (x, y is the top-left corner)."""
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Position:
        return Position(x=self.x + self.width / 2, y=self.y + self.height / 2)

    def contains(self, x: float, y: float) -> bool:
        """Check if a point lies inside the rectangle (edges inclusive)."""
        return self.x <= x <= self.right and self.y <= y <= self.bottom

    def intersects(self, other: "Bounds") -> bool:
        """Check if two rectangles overlap or touch."""
        return not (
            self.right < other.x
            or other.right < self.x
            or self.bottom < other.y
            or other.bottom < self.y
        )

    def expand(self, padding: float) -> "Bounds":
        """Return a copy grown by `padding` on every side."""
        return Bounds(
            x=self.x - padding,
            y=self.y - padding,
            width=self.width + padding * 2,
            height=self.height + padding * 2,
        )

    @classmethod
    def from_points(cls, points: Iterable[Position]) -> "Bounds":
        """Smallest rectangle containing every point."""
        points = list(points)
        if not points:
            return cls()
        xs = [p.x for p in points]
        ys = [p.y for p in points]
        return cls(x=min(xs), y=min(ys), width=max(xs) - min(xs), height=max(ys) - min(ys))

    @classmethod
    def from_position(cls, position: Position, dimensions: Dimensions) -> "Bounds":
        return cls(x=position.x, y=position.y, width=dimensions.width, height=dimensions.height)


def combine_bounds(bounds: Iterable[Bounds]) -> Optional[Bounds]:
    """Union of several rectangles, or None for an empty input."""
    bounds = list(bounds)
    if not bounds:
        return None
    left = min(b.x for b in bounds)
    top = min(b.y for b in bounds)
    right = max(b.right for b in bounds)
    bottom = max(b.bottom for b in bounds)
    return Bounds(x=left, y=top, width=right - left, height=bottom - top)


# --- Anchors ---

class AnchorPosition(str, Enum):
    """The nine attachment points on a shape's bounding box."""
    N = "n"
    S = "s"
    E = "e"
    W = "w"
    NE = "ne"
    NW = "nw"
    SE = "se"
    SW = "sw"
    CENTER = "center"


ANCHOR_VALUES: frozenset[str] = frozenset(a.value for a in AnchorPosition)

# Candidates used when choosing the nearest anchor
STANDARD_ANCHORS: tuple[str, ...] = (
    AnchorPosition.N.value,
    AnchorPosition.E.value,
    AnchorPosition.S.value,
    AnchorPosition.W.value,
)

# Fractions of (width, height) measured from the top-left corner
_ANCHOR_FRACTIONS: dict[str, tuple[float, float]] = {
    "n": (0.5, 0.0),
    "s": (0.5, 1.0),
    "e": (1.0, 0.5),
    "w": (0.0, 0.5),
    "ne": (1.0, 0.0),
    "nw": (0.0, 0.0),
    "se": (1.0, 1.0),
    "sw": (0.0, 1.0),
    "center": (0.5, 0.5),
}

_DIAGONAL = 0.707

_ANCHOR_DIRECTIONS: dict[str, tuple[float, float]] = {
    "n": (0.0, -1.0),
    "s": (0.0, 1.0),
    "e": (1.0, 0.0),
    "w": (-1.0, 0.0),
    "ne": (_DIAGONAL, -_DIAGONAL),
    "nw": (-_DIAGONAL, -_DIAGONAL),
    "se": (_DIAGONAL, _DIAGONAL),
    "sw": (-_DIAGONAL, _DIAGONAL),
    "center": (0.0, 0.0),
}

_OPPOSITES: dict[str, str] = {
    "n": "s",
    "s": "n",
    "e": "w",
    "w": "e",
    "ne": "sw",
    "sw": "ne",
    "nw": "se",
    "se": "nw",
    "center": "center",
}

# Compass order starting at angle 0 (east) going clockwise in screen space
_COMPASS = ("e", "se", "s", "sw", "w", "nw", "n", "ne")


def _anchor_key(anchor) -> str:
    return anchor.value if isinstance(anchor, AnchorPosition) else str(anchor)


def is_valid_anchor(anchor) -> bool:
    return _anchor_key(anchor) in ANCHOR_VALUES


def anchor_point(bounds: Bounds, anchor) -> Position:
    """
    World-space position of an anchor on a bounding box.

    Args:
        bounds: The shape's bounding box
        anchor: An AnchorPosition or its string value

    Returns:
        The anchor's position. Unknown anchors resolve to the center.
    """
    key = _anchor_key(anchor)
    fractions = _ANCHOR_FRACTIONS.get(key)
    if fractions is None:
        logger.warning("Unknown anchor %r, using center", key)
        fractions = _ANCHOR_FRACTIONS["center"]
    fx, fy = fractions
    return Position(x=bounds.x + bounds.width * fx, y=bounds.y + bounds.height * fy)


def anchor_direction(anchor) -> tuple[float, float]:
    """Unit vector pointing out of the shape at the given anchor."""
    return _ANCHOR_DIRECTIONS.get(_anchor_key(anchor), (0.0, 0.0))


def anchor_offset_from_center(dimensions: Dimensions, anchor) -> Position:
    """Offset of an anchor relative to the shape's center."""
    fx, fy = _ANCHOR_FRACTIONS.get(_anchor_key(anchor), (0.5, 0.5))
    return Position(x=(fx - 0.5) * dimensions.width, y=(fy - 0.5) * dimensions.height)


def center_for_anchor_position(point: Position, dimensions: Dimensions, anchor) -> Position:
    """Center a shape must have so that `anchor` lands exactly on `point`."""
    offset = anchor_offset_from_center(dimensions, anchor)
    return Position(x=point.x - offset.x, y=point.y - offset.y)


def opposite_anchor(anchor) -> str:
    return _OPPOSITES.get(_anchor_key(anchor), AnchorPosition.CENTER.value)


def anchor_for_angle(angle: float) -> str:
    """Map an angle (radians) to the closest of the eight compass anchors."""
    sector = round(angle / (math.pi / 4)) % 8
    return _COMPASS[sector]


def nearest_anchor(
    bounds: Bounds,
    target: Position,
    candidates: Iterable[str] = STANDARD_ANCHORS,
) -> str:
    """Anchor on `bounds` whose position is closest to `target`."""
    best = AnchorPosition.CENTER.value
    best_distance = math.inf
    for candidate in candidates:
        point = anchor_point(bounds, candidate)
        distance = point.distance_to(target)
        if distance < best_distance:
            best = _anchor_key(candidate)
            best_distance = distance
    return best


# --- Points and angles ---

def angle_between(start: Position, end: Position) -> float:
    """Angle of the vector start -> end."""
    return math.atan2(end.y - start.y, end.x - start.x)


def calculate_position(
    x: float,
    y: float,
    width: float,
    height: float,
    reference: str = "center",
) -> Position:
    """
    Convert a reference point into a top-left position.

    Args:
        x, y: The reference point
        width, height: Size of the entity being placed
        reference: "center" or "top-left"

    Returns:
        The top-left position for the entity
    """
    if reference == "top-left":
        return Position(x=x, y=y)
    if reference != "center":
        logger.warning("Unknown reference point %r, treating as center", reference)
    return Position(x=x - width / 2, y=y - height / 2)


def distance_to_segment(point: Position, start: Position, end: Position) -> float:
    """Shortest distance from a point to the segment start-end."""
    dx = end.x - start.x
    dy = end.y - start.y
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return point.distance_to(start)
    t = ((point.x - start.x) * dx + (point.y - start.y) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    projected = Position(x=start.x + t * dx, y=start.y + t * dy)
    return point.distance_to(projected)


def distance_to_polyline(point: Position, path: list[Position]) -> float:
    """Shortest distance from a point to any segment of a path."""
    if not path:
        return math.inf
    if len(path) == 1:
        return point.distance_to(path[0])
    return min(distance_to_segment(point, a, b) for a, b in zip(path, path[1:]))


def cubic_bezier_point(
    p0: Position, p1: Position, p2: Position, p3: Position, t: float
) -> Position:
    """Evaluate a cubic bezier curve at parameter t."""
    u = 1 - t
    a = u * u * u
    b = 3 * u * u * t
    c = 3 * u * t * t
    d = t * t * t
    return Position(
        x=a * p0.x + b * p1.x + c * p2.x + d * p3.x,
        y=a * p0.y + b * p1.y + c * p2.y + d * p3.y,
    )


def sample_cubic_bezier(
    p0: Position, p1: Position, p2: Position, p3: Position, samples: int = 32
) -> list[Position]:
    """Flatten a cubic bezier into `samples` segments."""
    samples = max(1, samples)
    return [cubic_bezier_point(p0, p1, p2, p3, i / samples) for i in range(samples + 1)]


def point_in_ellipse(bounds: Bounds, x: float, y: float) -> bool:
    """Check if a point lies inside the ellipse inscribed in `bounds`."""
    rx = bounds.width / 2
    ry = bounds.height / 2
    if rx <= 0 or ry <= 0:
        return False
    center = bounds.center
    nx = (x - center.x) / rx
    ny = (y - center.y) / ry
    return nx * nx + ny * ny <= 1


def point_in_diamond(bounds: Bounds, x: float, y: float) -> bool:
    """Check if a point lies inside the diamond inscribed in `bounds`."""
    rx = bounds.width / 2
    ry = bounds.height / 2
    if rx <= 0 or ry <= 0:
        return False
    center = bounds.center
    return abs(x - center.x) / rx + abs(y - center.y) / ry <= 1


# --- Grid snapping ---

class SnapMode(str, Enum):
    """Which grid a dragged or created point snaps to."""
    NONE = "none"
    MINOR = "minor"
    MAJOR = "major"


# (min_zoom, minor spacing, major spacing), highest zoom first
DEFAULT_GRID_THRESHOLDS: tuple[tuple[float, float, float], ...] = (
    (4.0, 1, 4),
    (2.0, 5, 20),
    (0.75, 10, 40),
    (0.5, 20, 80),
    (0.25, 40, 160),
    (0.0, 80, 320),
)


def grid_size_for_zoom(
    zoom: float, thresholds: Iterable[tuple[float, float, float]] = DEFAULT_GRID_THRESHOLDS
) -> tuple[float, float]:
    """
    Minor and major grid spacing (world units) at a zoom level.

    The first threshold whose min_zoom the zoom reaches wins; zooms below
    every threshold use the last (coarsest) one.
    """
    thresholds = list(thresholds)
    for min_zoom, minor, major in thresholds:
        if zoom >= min_zoom:
            return minor, major
    _, minor, major = thresholds[-1]
    return minor, major


def _snap_value(value: float, spacing: float) -> float:
    # Halves round up, not to even
    return math.floor(value / spacing + 0.5) * spacing


def snap_to_grid(
    x: float,
    y: float,
    zoom: float = 1.0,
    mode=SnapMode.MINOR,
    thresholds: Iterable[tuple[float, float, float]] = DEFAULT_GRID_THRESHOLDS,
) -> Position:
    """Snap a point to the nearest minor or major grid intersection ('none' returns it unchanged)."""
    mode = mode.value if isinstance(mode, SnapMode) else mode
    if mode == SnapMode.MINOR.value:
        spacing, _ = grid_size_for_zoom(zoom, thresholds)
    elif mode == SnapMode.MAJOR.value:
        _, spacing = grid_size_for_zoom(zoom, thresholds)
    else:
        return Position(x=x, y=y)
    return Position(x=_snap_value(x, spacing), y=_snap_value(y, spacing))
