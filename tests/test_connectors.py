"""
Tests for connector endpoint resolution, routing, angles and bounds.
"""

import math

import pytest

from diagram_engine.config import EngineConfig
from diagram_engine.connectors import (
    calculate_connector_bounds,
    calculate_connector_geometry,
    find_connection_point_at,
    generate_curve_control_points,
    generate_orthogonal_path,
    get_connector_endpoints,
    get_connectors_for_shape,
    is_connector_valid,
    nearest_anchor_pair,
    recalculate_anchors,
    route_orthogonal,
)
from diagram_engine.geometry import Bounds, Dimensions, Position
from diagram_engine.models import (
    BaseConnector,
    ConnectionPoint,
    CurvedConnector,
    OrthogonalConnector,
    RectangleShape,
    StraightConnector,
)


def _points(path):
    return [(p.x, p.y) for p in path]


class TestEndpoints:
    """Tests for endpoint resolution."""

    def test_e_to_w_endpoints(self, straight_e_to_w, shape_map):
        start, end = get_connector_endpoints(straight_e_to_w, shape_map)
        assert start.as_tuple() == (100, 25)
        assert end.as_tuple() == (200, 25)

    def test_missing_shape_returns_none(self, straight_e_to_w, shape_a):
        assert get_connector_endpoints(straight_e_to_w, {shape_a.id: shape_a}) is None
        assert get_connector_endpoints(straight_e_to_w, None) is None

    def test_validity_tracks_shape_map(self, straight_e_to_w, shape_map, shape_a):
        assert is_connector_valid(straight_e_to_w, shape_map)
        assert not is_connector_valid(straight_e_to_w, {shape_a.id: shape_a})

    def test_connectors_for_shape(self, straight_e_to_w):
        other = StraightConnector(
            id="other",
            source=ConnectionPoint(shape_id="x"),
            target=ConnectionPoint(shape_id="y"),
        )
        assert get_connectors_for_shape("shape-b", [straight_e_to_w, other]) == [straight_e_to_w]


class TestStraightGeometry:
    """Tests for straight connectors."""

    def test_e_to_w_path_and_angles(self, straight_e_to_w, shape_map):
        geometry = calculate_connector_geometry(straight_e_to_w, shape_map)
        assert _points(geometry.path) == [(100, 25), (200, 25)]
        assert geometry.end_angle == 0
        assert geometry.start_angle == pytest.approx(math.pi)

    def test_unknown_type_is_drawn_straight(self, shape_map):
        connector = BaseConnector(
            id="odd",
            connector_type="zigzag",
            source=ConnectionPoint(shape_id="shape-a", anchor="e"),
            target=ConnectionPoint(shape_id="shape-b", anchor="w"),
        )
        geometry = calculate_connector_geometry(connector, shape_map)
        assert _points(geometry.path) == [(100, 25), (200, 25)]


class TestOrthogonalRouting:
    """Tests for orthogonal paths."""

    def test_default_elbow(self):
        path = generate_orthogonal_path(Position(x=0, y=0), Position(x=100, y=100))
        assert _points(path) == [(0, 0), (50, 0), (50, 100), (100, 100)]

    def test_center_anchors_use_default_elbow(self):
        path = route_orthogonal(Position(x=0, y=0), Position(x=100, y=100), "center", "center")
        assert _points(path) == [(0, 0), (50, 0), (50, 100), (100, 100)]

    def test_explicit_waypoints(self, shape_map):
        connector = OrthogonalConnector(
            id="o1",
            source=ConnectionPoint(shape_id="shape-a", anchor="s"),
            target=ConnectionPoint(shape_id="shape-b", anchor="s"),
            waypoints=[Position(x=50, y=100), Position(x=250, y=100)],
        )
        geometry = calculate_connector_geometry(connector, shape_map)
        assert _points(geometry.path) == [(50, 50), (50, 100), (250, 100), (250, 50)]
        assert geometry.start_angle == pytest.approx(math.pi / 2 + math.pi)
        assert geometry.end_angle == pytest.approx(-math.pi / 2)

    def test_aligned_facing_anchors_are_direct(self):
        path = route_orthogonal(Position(x=100, y=25), Position(x=200, y=25), "e", "w")
        assert _points(path) == [(100, 25), (200, 25)]

    def test_horizontal_exits_with_offset(self):
        path = route_orthogonal(Position(x=100, y=25), Position(x=200, y=125), "e", "w", stub_length=20)
        assert _points(path) == [(100, 25), (150, 25), (150, 125), (200, 125)]

    def test_vertical_to_horizontal_has_one_corner(self):
        path = route_orthogonal(Position(x=50, y=50), Position(x=200, y=150), "s", "w", stub_length=20)
        assert _points(path) == [(50, 50), (50, 150), (200, 150)]

    def test_router_never_doubles_back(self):
        # Source exits east but the target sits to the west, both facing east
        path = route_orthogonal(Position(x=100, y=25), Position(x=0, y=125), "e", "e", stub_length=20)
        assert path[1].x >= 100
        for a, b in zip(path, path[1:]):
            assert a.x == b.x or a.y == b.y

    def test_anchor_routing_can_be_disabled(self, shape_map):
        connector = OrthogonalConnector(
            id="o2",
            source=ConnectionPoint(shape_id="shape-a", anchor="s"),
            target=ConnectionPoint(shape_id="shape-b", anchor="n"),
        )
        config = EngineConfig(anchor_aware_routing=False)
        geometry = calculate_connector_geometry(connector, shape_map, config)
        assert _points(geometry.path) == [(50, 50), (150, 50), (150, 0), (250, 0)]


class TestCurvedGeometry:
    """Tests for curved connectors."""

    def test_control_points(self):
        cp1, cp2 = generate_curve_control_points(Position(x=0, y=0), Position(x=100, y=0))
        assert cp1.as_tuple() == (40, 0)
        assert cp2.as_tuple() == (60, 0)

    def test_curvature_scales_offset(self):
        cp1, _ = generate_curve_control_points(Position(x=0, y=0), Position(x=100, y=0), curvature=2)
        assert cp1.x == 80

    def test_tangent_angles(self, shape_a):
        below = RectangleShape(id="below", position=Position(x=0, y=200), dimensions=Dimensions(width=100, height=50))
        connector = CurvedConnector(
            id="c1",
            source=ConnectionPoint(shape_id=shape_a.id, anchor="s"),
            target=ConnectionPoint(shape_id="below", anchor="n"),
        )
        geometry = calculate_connector_geometry(connector, {shape_a.id: shape_a, "below": below})
        # Control points are offset horizontally, so tangents are horizontal
        assert geometry.end_angle == pytest.approx(0)
        assert geometry.start_angle == pytest.approx(math.pi)
        assert len(geometry.control_points) == 2

    def test_zero_curvature_uses_direct_angle(self, shape_a):
        below = RectangleShape(id="below", position=Position(x=0, y=200), dimensions=Dimensions(width=100, height=50))
        connector = CurvedConnector(
            id="c1",
            source=ConnectionPoint(shape_id=shape_a.id, anchor="s"),
            target=ConnectionPoint(shape_id="below", anchor="n"),
            curvature=0,
        )
        geometry = calculate_connector_geometry(connector, {shape_a.id: shape_a, "below": below})
        assert geometry.end_angle == pytest.approx(math.pi / 2)
        assert geometry.start_angle == pytest.approx(math.pi / 2 + math.pi)


class TestConnectorBounds:
    """Tests for derived connector bounds."""

    def test_horizontal_connector_is_padded(self, straight_e_to_w, shape_map):
        bounds = calculate_connector_bounds(straight_e_to_w, shape_map, padding=10)
        assert bounds == Bounds(x=90, y=15, width=120, height=20)

    def test_waypoints_included(self, shape_map):
        connector = OrthogonalConnector(
            id="o1",
            source=ConnectionPoint(shape_id="shape-a", anchor="e"),
            target=ConnectionPoint(shape_id="shape-b", anchor="w"),
            waypoints=[Position(x=150, y=300)],
        )
        bounds = calculate_connector_bounds(connector, shape_map, padding=0)
        assert bounds == Bounds(x=100, y=25, width=100, height=275)

    def test_missing_shape(self, straight_e_to_w):
        assert calculate_connector_bounds(straight_e_to_w, {}) is None


class TestAnchorRecalculation:
    """Tests for nearest-anchor recalculation."""

    def test_nearest_pair_for_side_by_side_shapes(self, shape_a, shape_b):
        assert nearest_anchor_pair(shape_a, shape_b) == ("e", "w")

    def test_nearest_pair_for_stacked_shapes(self, shape_a):
        below = RectangleShape(id="below", position=Position(x=0, y=300), dimensions=Dimensions(width=100, height=50))
        assert nearest_anchor_pair(shape_a, below) == ("s", "n")

    def test_recalculate_returns_updates(self, shape_map):
        connector = StraightConnector(
            id="c1",
            source=ConnectionPoint(shape_id="shape-a", anchor="n"),
            target=ConnectionPoint(shape_id="shape-b", anchor="s"),
        )
        updates = recalculate_anchors(connector, shape_map)
        assert updates["source"].anchor == "e"
        assert updates["target"].anchor == "w"

    def test_recalculate_no_change(self, straight_e_to_w, shape_map):
        assert recalculate_anchors(straight_e_to_w, shape_map) is None


class TestConnectionPointHover:
    """Tests for snapping a loose connector end to an anchor."""

    def test_snaps_to_nearby_anchor(self, shape_a, shape_b):
        point = find_connection_point_at(103, 26, [shape_a, shape_b], tolerance=8)
        assert point == ConnectionPoint(shape_id="shape-a", anchor="e")

    def test_nothing_in_range(self, shape_a):
        assert find_connection_point_at(150, 150, [shape_a], tolerance=8) is None
