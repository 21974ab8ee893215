"""
Tests for the type-dispatching entity facade.
"""

from diagram_engine.config import EngineConfig
from diagram_engine.entity_system import EntitySystem
from diagram_engine.geometry import Bounds, Dimensions, Position
from diagram_engine.models import ConnectionPoint, EventShape, GatewayShape, RectangleShape, StraightConnector
from diagram_engine.rendering import ConnectorRenderSpec, RenderContext, ShapeRenderSpec


class TestBounds:
    """Tests for bounds dispatch."""

    def test_shape_bounds(self, shape_a):
        assert EntitySystem().get_bounds(shape_a) == Bounds(x=0, y=0, width=100, height=50)

    def test_connector_bounds_are_derived(self, straight_e_to_w, shape_map):
        bounds = EntitySystem().get_bounds(straight_e_to_w, shape_map)
        assert bounds == Bounds(x=90, y=15, width=120, height=20)

    def test_connector_without_shapes_has_no_bounds(self, straight_e_to_w):
        assert EntitySystem().get_bounds(straight_e_to_w) is None

    def test_connector_with_missing_endpoint_has_no_bounds(self, straight_e_to_w, shape_a):
        stored = straight_e_to_w.model_copy(update={"position": Position(x=90, y=15), "dimensions": Dimensions(width=120, height=20)})
        assert EntitySystem().get_bounds(stored, {shape_a.id: shape_a}) is None

    def test_unknown_entity(self):
        assert EntitySystem().get_bounds("nope") is None


class TestHitTesting:
    """Tests for point hit-testing."""

    def test_shape_hit_is_edge_inclusive(self, shape_a):
        system = EntitySystem()
        assert system.hit_test(shape_a, 100, 50)
        assert not system.hit_test(shape_a, 101, 50)

    def test_connector_hit_within_tolerance(self, straight_e_to_w, shape_map):
        system = EntitySystem(EngineConfig(hit_tolerance=5))
        assert system.hit_test(straight_e_to_w, 150, 30, shape_map)
        assert not system.hit_test(straight_e_to_w, 150, 31, shape_map)

    def test_connector_without_shapes_never_hits(self, straight_e_to_w):
        assert not EntitySystem().hit_test(straight_e_to_w, 150, 25)

    def test_connector_with_dangling_endpoint(self, straight_e_to_w, shape_a):
        assert not EntitySystem().hit_test(straight_e_to_w, 150, 25, {shape_a.id: shape_a})

    def test_precise_hit_on_event(self):
        event = EventShape(id="e1", dimensions=Dimensions(width=40, height=40))
        assert EntitySystem().hit_test(event, 1, 1)
        assert not EntitySystem(EngineConfig(precise_hit_testing=True)).hit_test(event, 1, 1)

    def test_precise_hit_on_gateway(self):
        gateway = GatewayShape(id="g1", dimensions=Dimensions(width=50, height=50))
        precise = EntitySystem(EngineConfig(precise_hit_testing=True))
        assert precise.hit_test(gateway, 25, 25)
        assert not precise.hit_test(gateway, 2, 2)

    def test_topmost_entity_wins(self, shape_a):
        top = RectangleShape(id="top", position=Position(x=50, y=0), dimensions=Dimensions(width=100, height=50))
        system = EntitySystem()
        assert system.find_entity_at_point([shape_a, top], 75, 25) is top
        assert system.find_entity_at_point([shape_a, top], 10, 25) is shape_a
        assert system.find_entity_at_point([shape_a, top], 500, 500) is None

    def test_connector_found_between_shapes(self, shape_a, shape_b, straight_e_to_w, shape_map):
        found = EntitySystem().find_entity_at_point([shape_a, shape_b, straight_e_to_w], 150, 26, shape_map)
        assert found is straight_e_to_w

    def test_box_selection(self, shape_a, shape_b, straight_e_to_w, shape_map):
        system = EntitySystem()
        box = Bounds(x=-10, y=-10, width=50, height=50)
        assert system.find_entities_in_box([shape_a, shape_b, straight_e_to_w], box, shape_map) == [shape_a]
        wide = Bounds(x=120, y=20, width=10, height=10)
        assert system.find_entities_in_box([shape_a, shape_b, straight_e_to_w], wide, shape_map) == [straight_e_to_w]

    def test_box_selection_skips_dangling_connector(self, straight_e_to_w, shape_a):
        stored = straight_e_to_w.model_copy(update={"position": Position(x=90, y=15), "dimensions": Dimensions(width=120, height=20)})
        box = Bounds(x=0, y=0, width=500, height=500)
        found = EntitySystem().find_entities_in_box([shape_a, stored], box, {shape_a.id: shape_a})
        assert found == [shape_a]


class TestValidationAndRendering:
    """Tests for validation and render dispatch."""

    def test_validate_many_keyed_by_id(self, shape_a, straight_e_to_w, shape_map):
        results = EntitySystem().validate_many([shape_a, straight_e_to_w], shape_map)
        assert set(results) == {"shape-a", "conn-ab"}
        assert all(r.valid for r in results.values())

    def test_validate_reports_dangling_connector(self, straight_e_to_w, shape_a):
        result = EntitySystem().validate(straight_e_to_w, {shape_a.id: shape_a})
        assert result.errors == ["Target shape with ID shape-b does not exist"]

    def test_render_dispatch(self, shape_a, straight_e_to_w, shape_map):
        system = EntitySystem()
        assert isinstance(system.render(shape_a), ShapeRenderSpec)
        spec = system.render(straight_e_to_w, RenderContext(shapes=shape_map))
        assert isinstance(spec, ConnectorRenderSpec)
        assert system.render(straight_e_to_w) is None

    def test_type_checks(self, shape_a):
        connector = StraightConnector(source=ConnectionPoint(shape_id="a"), target=ConnectionPoint(shape_id="b"))
        assert EntitySystem.is_shape(shape_a)
        assert not EntitySystem.is_shape(connector)
        assert EntitySystem.is_connector(connector)
