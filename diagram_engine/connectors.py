"""
Connector geometry: endpoint resolution, path routing, arrow angles,
derived bounds and explicit anchor recalculation.

Every function here is pure. Missing shapes are not errors: the
functions return None (or skip the connector) and the caller decides
what to do, since a shape deleted by one command may come back on undo.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from .config import EngineConfig, get_config
from .geometry import (
    AnchorPosition,
    Bounds,
    Position,
    anchor_direction,
    anchor_point,
    angle_between,
    distance_to_polyline,
    nearest_anchor,
    sample_cubic_bezier,
)
from .models import BaseConnector, BaseShape, ConnectionPoint, ConnectorType

logger = logging.getLogger(__name__)

CURVE_OFFSET_FACTOR = 0.4


@dataclass
class ConnectorGeometry:
    """Resolved geometry for one connector, ready for a renderer or hit-test."""
    start: Position
    end: Position
    path: list[Position]
    control_points: list[Position] = field(default_factory=list)
    start_angle: float = 0.0  # Arrowhead orientation at the source end
    end_angle: float = 0.0    # Arrowhead orientation at the target end

    @property
    def is_curve(self) -> bool:
        return len(self.control_points) == 2


# --- Endpoints ---

def resolve_connection_point(
    point: ConnectionPoint, shapes: Mapping[str, BaseShape]
) -> Optional[Position]:
    """World position of a connection point, or None if its shape is missing."""
    shape = shapes.get(point.shape_id)
    if shape is None:
        return None
    return anchor_point(shape.bounds, point.anchor)


def get_connector_endpoints(
    connector: BaseConnector, shapes: Optional[Mapping[str, BaseShape]]
) -> Optional[tuple[Position, Position]]:
    """
    Resolve a connector's start and end points.

    Returns:
        (start, end), or None when the shape map or either shape is missing
    """
    if shapes is None:
        return None
    start = resolve_connection_point(connector.source, shapes)
    end = resolve_connection_point(connector.target, shapes)
    if start is None or end is None:
        return None
    return start, end


def is_connector_valid(connector: BaseConnector, shapes: Mapping[str, BaseShape]) -> bool:
    """A connector is valid iff both endpoint shapes exist."""
    return connector.source.shape_id in shapes and connector.target.shape_id in shapes


def get_connectors_for_shape(
    shape_id: str, connectors: Iterable[BaseConnector]
) -> list[BaseConnector]:
    """All connectors attached (as source or target) to a shape."""
    return [c for c in connectors if shape_id in c.attached_shape_ids()]


# --- Paths ---

def generate_orthogonal_path(start: Position, end: Position) -> list[Position]:
    """Default elbow: halfway horizontally, then vertically, then to the end."""
    mid_x = (start.x + end.x) / 2
    return [
        start,
        Position(x=mid_x, y=start.y),
        Position(x=mid_x, y=end.y),
        end,
    ]


def _is_horizontal(direction: tuple[float, float]) -> bool:
    return direction[0] != 0 and direction[1] == 0


def _is_vertical(direction: tuple[float, float]) -> bool:
    return direction[0] == 0 and direction[1] != 0


def _stub(point: Position, direction: tuple[float, float], length: float) -> Position:
    return Position(x=point.x + direction[0] * length, y=point.y + direction[1] * length)


def simplify_path(path: list[Position]) -> list[Position]:
    """Drop duplicate points and middle points of collinear runs."""
    points: list[Position] = []
    for point in path:
        if points and points[-1].x == point.x and points[-1].y == point.y:
            continue
        points.append(point)
    if len(points) < 3:
        return points

    result = [points[0]]
    for current, following in zip(points[1:], points[2:]):
        previous = result[-1]
        cross = (current.x - previous.x) * (following.y - current.y) - (current.y - previous.y) * (following.x - current.x)
        if cross != 0:
            result.append(current)
    result.append(points[-1])
    return result


def route_orthogonal(
    start: Position,
    end: Position,
    source_anchor: str = AnchorPosition.CENTER.value,
    target_anchor: str = AnchorPosition.CENTER.value,
    stub_length: float = 20.0,
) -> list[Position]:
    """
    Anchor-aware orthogonal route.

    Each end leaves (or enters) its shape through a short stub along the
    anchor's outward direction so the line never doubles back through the
    shape. Only the four cardinal anchors produce stubs. The middle leg is
    a single elbow whose orientation follows the exits.

    Args:
        start, end: Resolved endpoint positions
        source_anchor, target_anchor: Anchors of the two endpoints
        stub_length: Length of the exit/entry stubs

    Returns:
        Simplified list of path points from start to end
    """
    source_dir = anchor_direction(source_anchor)
    target_dir = anchor_direction(target_anchor)
    source_cardinal = _is_horizontal(source_dir) or _is_vertical(source_dir)
    target_cardinal = _is_horizontal(target_dir) or _is_vertical(target_dir)

    if not source_cardinal and not target_cardinal:
        return generate_orthogonal_path(start, end)

    exit_point = _stub(start, source_dir, stub_length) if source_cardinal else start
    entry_point = _stub(end, target_dir, stub_length) if target_cardinal else end

    if _is_horizontal(source_dir) and _is_horizontal(target_dir):
        # Aligned facing anchors need no stubs at all
        if start.y == end.y and (end.x - start.x) * source_dir[0] > 0 and (start.x - end.x) * target_dir[0] > 0:
            return [start, end]
        if source_dir[0] == target_dir[0]:
            # Both exits face the same way: go around the outermost stub
            mid_x = max(exit_point.x, entry_point.x) if source_dir[0] > 0 else min(exit_point.x, entry_point.x)
        else:
            mid_x = (exit_point.x + entry_point.x) / 2
        middle = [Position(x=mid_x, y=exit_point.y), Position(x=mid_x, y=entry_point.y)]
    elif _is_vertical(source_dir) and _is_vertical(target_dir):
        if start.x == end.x and (end.y - start.y) * source_dir[1] > 0 and (start.y - end.y) * target_dir[1] > 0:
            return [start, end]
        if source_dir[1] == target_dir[1]:
            mid_y = max(exit_point.y, entry_point.y) if source_dir[1] > 0 else min(exit_point.y, entry_point.y)
        else:
            mid_y = (exit_point.y + entry_point.y) / 2
        middle = [Position(x=exit_point.x, y=mid_y), Position(x=entry_point.x, y=mid_y)]
    elif _is_vertical(source_dir) or (not source_cardinal and _is_horizontal(target_dir)):
        # Leave vertically, arrive horizontally
        middle = [Position(x=exit_point.x, y=entry_point.y)]
    else:
        # Leave horizontally, arrive vertically
        middle = [Position(x=entry_point.x, y=exit_point.y)]

    path = [start, exit_point, *middle, entry_point, end]
    return simplify_path(path)


def generate_curve_control_points(
    start: Position, end: Position, curvature: float = 1.0
) -> tuple[Position, Position]:
    """Cubic control points offset horizontally by distance * 0.4 * curvature."""
    offset = math.hypot(end.x - start.x, end.y - start.y) * CURVE_OFFSET_FACTOR * curvature
    cp1 = Position(x=start.x + offset, y=start.y)
    cp2 = Position(x=end.x - offset, y=end.y)
    return cp1, cp2


def _same_point(a: Position, b: Position) -> bool:
    return a.x == b.x and a.y == b.y


def calculate_connector_geometry(
    connector: BaseConnector,
    shapes: Optional[Mapping[str, BaseShape]],
    config: Optional[EngineConfig] = None,
) -> Optional[ConnectorGeometry]:
    """
    Resolve a connector's path and arrow angles.

    Returns:
        The geometry, or None when an endpoint shape cannot be resolved
    """
    config = config or get_config()
    endpoints = get_connector_endpoints(connector, shapes)
    if endpoints is None:
        return None
    start, end = endpoints
    connector_type = connector.connector_type

    if connector_type == ConnectorType.ORTHOGONAL.value:
        waypoints = list(getattr(connector, "waypoints", None) or [])
        if waypoints:
            path = [start, *waypoints, end]
        elif config.anchor_aware_routing:
            path = route_orthogonal(
                start, end,
                connector.source.anchor, connector.target.anchor,
                config.orthogonal_stub_length,
            )
        else:
            path = generate_orthogonal_path(start, end)
        return _polyline_geometry(start, end, path)

    if connector_type == ConnectorType.CURVED.value:
        curvature = getattr(connector, "curvature", 1.0)
        cp1, cp2 = generate_curve_control_points(start, end, curvature)
        direct = angle_between(start, end)
        # Tangent at t=1 is end - cp2; at t=0 it is cp1 - start
        end_angle = direct if _same_point(cp2, end) else angle_between(cp2, end)
        start_angle = (direct if _same_point(cp1, start) else angle_between(start, cp1)) + math.pi
        return ConnectorGeometry(
            start=start,
            end=end,
            path=[start, end],
            control_points=[cp1, cp2],
            start_angle=start_angle,
            end_angle=end_angle,
        )

    if connector_type != ConnectorType.STRAIGHT.value:
        logger.warning("Unknown connector type %r on %s, drawing it straight", connector_type, connector.id)
    return _polyline_geometry(start, end, [start, end])


def _polyline_geometry(start: Position, end: Position, path: list[Position]) -> ConnectorGeometry:
    """Arrow angles from the first and last non-degenerate segments."""
    first = next((p for p in path[1:] if not _same_point(p, path[0])), end)
    last = next((p for p in reversed(path[:-1]) if not _same_point(p, path[-1])), start)
    return ConnectorGeometry(
        start=start,
        end=end,
        path=path,
        start_angle=angle_between(start, first) + math.pi,
        end_angle=angle_between(last, end),
    )


def connector_hit_path(geometry: ConnectorGeometry, samples: int = 32) -> list[Position]:
    """Polyline used for proximity tests (curves are flattened)."""
    if geometry.is_curve:
        cp1, cp2 = geometry.control_points
        return sample_cubic_bezier(geometry.start, cp1, cp2, geometry.end, samples)
    return geometry.path


def distance_to_connector(
    connector: BaseConnector,
    point: Position,
    shapes: Optional[Mapping[str, BaseShape]],
    config: Optional[EngineConfig] = None,
) -> Optional[float]:
    """Distance from a point to the connector's drawn path, or None if unresolvable."""
    config = config or get_config()
    geometry = calculate_connector_geometry(connector, shapes, config)
    if geometry is None:
        return None
    return distance_to_polyline(point, connector_hit_path(geometry, config.curve_samples))


# --- Bounds ---

def calculate_connector_bounds(
    connector: BaseConnector,
    shapes: Optional[Mapping[str, BaseShape]],
    padding: Optional[float] = None,
) -> Optional[Bounds]:
    """
    Bounding box of a connector's endpoints and waypoints, padded so
    horizontal and vertical connectors stay clickable.
    """
    if padding is None:
        padding = get_config().connector_padding
    endpoints = get_connector_endpoints(connector, shapes)
    if endpoints is None:
        return None
    points = [*endpoints, *(getattr(connector, "waypoints", None) or [])]
    return Bounds.from_points(points).expand(padding)


# --- Anchor recalculation ---

def nearest_anchor_pair(source: BaseShape, target: BaseShape) -> tuple[str, str]:
    """Anchors on each shape closest to the other shape's center."""
    source_bounds = source.bounds
    target_bounds = target.bounds
    return (
        nearest_anchor(source_bounds, target_bounds.center),
        nearest_anchor(target_bounds, source_bounds.center),
    )


def recalculate_anchors(
    connector: BaseConnector, shapes: Mapping[str, BaseShape]
) -> Optional[dict]:
    """
    Compute nearest-anchor updates for one connector.

    Returns:
        An update dict for source/target, or None if nothing changes or
        an endpoint shape is missing
    """
    source = shapes.get(connector.source.shape_id)
    target = shapes.get(connector.target.shape_id)
    if source is None or target is None:
        return None
    source_anchor, target_anchor = nearest_anchor_pair(source, target)
    if source_anchor == connector.source.anchor and target_anchor == connector.target.anchor:
        return None
    return {
        "source": ConnectionPoint(shape_id=connector.source.shape_id, anchor=source_anchor),
        "target": ConnectionPoint(shape_id=connector.target.shape_id, anchor=target_anchor),
    }


# --- Connection-point hover ---

def shapes_near_point(
    x: float, y: float, shapes: Iterable[BaseShape], distance: float
) -> list[BaseShape]:
    """Shapes whose bounds, grown by `distance`, contain the point."""
    return [s for s in shapes if s.bounds.expand(distance).contains(x, y)]


def find_connection_point_at(
    x: float,
    y: float,
    shapes: Iterable[BaseShape],
    tolerance: Optional[float] = None,
) -> Optional[ConnectionPoint]:
    """
    Closest anchor within `tolerance` of the point, across all shapes.

    Used while drawing a new connector to snap its loose end.
    """
    if tolerance is None:
        tolerance = get_config().connection_point_tolerance
    point = Position(x=x, y=y)
    best: Optional[ConnectionPoint] = None
    best_distance = tolerance
    for shape in shapes_near_point(x, y, shapes, tolerance):
        for anchor in AnchorPosition:
            distance = anchor_point(shape.bounds, anchor).distance_to(point)
            if distance <= best_distance:
                best = ConnectionPoint(shape_id=shape.id, anchor=anchor.value)
                best_distance = distance
    return best
