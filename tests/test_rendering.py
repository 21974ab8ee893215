"""
Tests for render specs, style resolution and the handler registries.
"""

import math

import pytest

from diagram_engine.config import EngineConfig
from diagram_engine.geometry import Bounds, Dimensions, Position
from diagram_engine.models import (
    BaseShape,
    ConnectionPoint,
    CurvedConnector,
    EventShape,
    GatewayShape,
    RectangleShape,
    TaskShape,
)
from diagram_engine.registry import HandlerRegistry
from diagram_engine.rendering import (
    Outline,
    RenderContext,
    RenderState,
    RenderTheme,
    connector_renderers,
    describe_shape,
    render_connector,
    render_shape,
    resolve_connector_style,
    resolve_shape_style,
    shape_renderers,
)


class TestHandlerRegistry:
    """Tests for the generic registry."""

    def test_sub_type_falls_back_to_base_type(self):
        registry = HandlerRegistry("test")
        registry.register("event", "base")
        assert registry.get("event:timer") == "base"
        assert not registry.has("event:timer")
        assert "event:timer" in registry

    def test_specific_key_wins(self):
        registry = HandlerRegistry("test")
        registry.register("event", "base")
        registry.register("event:end", "end")
        assert registry.get("event:end") == "end"

    def test_missing_key(self):
        registry = HandlerRegistry("test")
        assert registry.get("cloud") is None
        assert registry.unregister("cloud") is False

    def test_display_names(self):
        registry = HandlerRegistry("test")
        registry.register("task", "handler", "Task")
        registry.register("blob", "handler")
        assert registry.display_name("task") == "Task"
        assert registry.display_name("blob") == "blob"

    def test_reset_restores_seed(self):
        def seed(registry):
            registry.register("rectangle", "rect")

        registry = HandlerRegistry("test", seed)
        registry.register("cloud", "cloud")
        registry.unregister("rectangle")
        registry.reset()
        assert registry.keys() == ["rectangle"]
        assert len(registry) == 1


class TestShapeRendering:
    """Tests for built-in shape renderers."""

    def test_builtin_outlines(self):
        dims = Dimensions(width=40, height=40)
        assert render_shape(RectangleShape(dimensions=dims)).outline == Outline.RECTANGLE.value
        task = render_shape(TaskShape(dimensions=dims))
        assert task.outline == Outline.ROUNDED_RECTANGLE.value
        assert task.corner_radius == 8
        assert render_shape(EventShape(dimensions=dims)).outline == Outline.ELLIPSE.value
        assert render_shape(GatewayShape(dimensions=dims)).outline == Outline.DIAMOND.value

    def test_end_event_has_thicker_inner_ring(self):
        spec = render_shape(EventShape(dimensions=Dimensions(width=40, height=40), sub_type="end"))
        assert len(spec.inner_outlines) == 1
        assert spec.inner_outlines[0].stroke_width == spec.style.stroke_width * 1.5

    def test_unregistered_sub_type_uses_base_renderer(self):
        spec = render_shape(EventShape(dimensions=Dimensions(width=40, height=40), sub_type="timer"))
        assert spec.outline == Outline.ELLIPSE.value
        assert spec.inner_outlines == []

    def test_unknown_shape_type(self):
        assert render_shape(BaseShape(shape_type="blob")) is None

    def test_custom_renderer(self):
        shape_renderers.register(
            "blob",
            lambda shape, context, config: describe_shape(shape, context, config, outline=Outline.ELLIPSE.value),
        )
        assert render_shape(BaseShape(shape_type="blob")).outline == Outline.ELLIPSE.value

    def test_text_below_shape(self):
        event = EventShape(
            position=Position(x=0, y=0),
            dimensions=Dimensions(width=40, height=40),
            text="Start",
            text_placement="below",
            max_lines=2,
        )
        spec = render_shape(event)
        assert spec.text_bounds.y == 44
        assert spec.text_bounds.height == pytest.approx(14 * 1.2 * 2)

    def test_text_inside_shape(self, shape_a):
        assert render_shape(shape_a).text_bounds == Bounds(x=0, y=0, width=100, height=50)


class TestStyleResolution:
    """Tests for entity -> theme -> default precedence."""

    def test_defaults_from_config(self, shape_a):
        style = resolve_shape_style(shape_a, RenderContext(), EngineConfig())
        assert style.fill_color == "#ffffff"
        assert style.stroke_color == "#000000"
        assert style.stroke_width == 1.0

    def test_theme_beats_config(self, shape_a):
        context = RenderContext(theme=RenderTheme(shape_fill="#111111", shape_stroke="#222222"))
        style = resolve_shape_style(shape_a, context, EngineConfig())
        assert style.fill_color == "#111111"
        assert style.stroke_color == "#222222"

    def test_entity_beats_theme(self, shape_a):
        shape = shape_a.model_copy(update={"fill_color": "#abcdef"})
        context = RenderContext(theme=RenderTheme(shape_fill="#111111"))
        assert resolve_shape_style(shape, context, EngineConfig()).fill_color == "#abcdef"

    def test_selected_shape(self, shape_a):
        context = RenderContext(state=RenderState.SELECTED.value)
        style = resolve_shape_style(shape_a, context, EngineConfig())
        assert style.stroke_color == "#ff6b35"
        assert style.stroke_width == 3.0

    def test_stroke_width_divided_by_scale(self, shape_a):
        shape = shape_a.model_copy(update={"stroke_width": 4})
        style = resolve_shape_style(shape, RenderContext(scale=2), EngineConfig())
        assert style.stroke_width == 2

    def test_connector_hover(self, straight_e_to_w):
        context = RenderContext(state=RenderState.HOVER.value, theme=RenderTheme(hover="#00ff00"))
        assert resolve_connector_style(straight_e_to_w, context, EngineConfig()).stroke_color == "#00ff00"

    def test_connector_default(self, straight_e_to_w):
        style = resolve_connector_style(straight_e_to_w, RenderContext(), EngineConfig())
        assert style.stroke_color == "#1F2937"
        assert style.stroke_width == 2.0


class TestConnectorRendering:
    """Tests for connector render specs."""

    def test_end_arrow_only(self, straight_e_to_w, shape_map):
        spec = render_connector(straight_e_to_w, RenderContext(shapes=shape_map))
        assert len(spec.arrows) == 1
        assert spec.arrows[0].position == Position(x=200, y=25)
        assert spec.arrows[0].angle == 0

    def test_both_arrows(self, straight_e_to_w, shape_map):
        connector = straight_e_to_w.model_copy(update={"arrow_start": True})
        spec = render_connector(connector, RenderContext(shapes=shape_map))
        assert [a.position.as_tuple() for a in spec.arrows] == [(100, 25), (200, 25)]
        assert spec.arrows[0].angle == pytest.approx(math.pi)

    def test_curve_carries_control_points(self, shape_map):
        connector = CurvedConnector(
            id="c1",
            source=ConnectionPoint(shape_id="shape-a", anchor="e"),
            target=ConnectionPoint(shape_id="shape-b", anchor="w"),
        )
        spec = render_connector(connector, RenderContext(shapes=shape_map))
        assert len(spec.control_points) == 2

    def test_dangling_connector_is_not_drawn(self, straight_e_to_w, shape_a):
        assert render_connector(straight_e_to_w, RenderContext(shapes={shape_a.id: shape_a})) is None

    def test_unregistered_connector_type(self, straight_e_to_w, shape_map):
        connector_renderers.unregister("straight")
        assert render_connector(straight_e_to_w, RenderContext(shapes=shape_map)) is None
