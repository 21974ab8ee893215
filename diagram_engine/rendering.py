"""
Rendering boundary.

The engine does not paint. For each entity it produces a render spec:
the outline to draw, its bounds, resolved colors and widths, the text
box, and for connectors the path and arrowheads with their angles. A
drawing backend consumes these specs.

Colors are never read from global state. The caller passes a RenderTheme;
entity style fields win over the theme, and the engine config supplies
the last-resort defaults.

Renderers live in two registries so new kinds can be added without
touching dispatch:
- shape_renderers, keyed by shape key ('event:end') with fallback to the
  base shape type ('event')
- connector_renderers, keyed by connector type
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping, Optional

from .config import EngineConfig, get_config
from .connectors import calculate_connector_geometry
from .geometry import Bounds, Position
from .models import BaseConnector, BaseShape, ConnectorType, EventType, ShapeType, TextPlacement, get_shape_key
from .registry import HandlerRegistry

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 14
TEXT_GAP_BELOW = 4


class RenderState(str, Enum):
    NORMAL = "normal"
    SELECTED = "selected"
    HOVER = "hover"


class Outline(str, Enum):
    """Outline primitives a drawing backend must support."""
    RECTANGLE = "rectangle"
    ROUNDED_RECTANGLE = "rounded-rectangle"
    ELLIPSE = "ellipse"
    DIAMOND = "diamond"


@dataclass
class RenderTheme:
    """Caller-supplied theme colors (None means use the engine default)."""
    shape_fill: Optional[str] = None
    shape_stroke: Optional[str] = None
    text_color: Optional[str] = None
    connector_stroke: Optional[str] = None
    selection: Optional[str] = None
    hover: Optional[str] = None


@dataclass
class RenderContext:
    """Everything a renderer needs besides the entity itself."""
    shapes: Optional[Mapping[str, BaseShape]] = None
    theme: RenderTheme = field(default_factory=RenderTheme)
    state: str = RenderState.NORMAL.value
    scale: float = 1.0

    @property
    def is_selected(self) -> bool:
        return self.state == RenderState.SELECTED.value


@dataclass
class ResolvedStyle:
    stroke_color: str
    stroke_width: float
    fill_color: Optional[str] = None
    text_color: Optional[str] = None


@dataclass
class InnerOutline:
    """An additional concentric outline (e.g. the ring of an end event)."""
    inset: float
    stroke_width: float


@dataclass
class ShapeRenderSpec:
    entity_id: str
    shape_key: str
    outline: str
    bounds: Bounds
    style: ResolvedStyle
    corner_radius: float = 0
    inner_outlines: list[InnerOutline] = field(default_factory=list)
    text: str = ""
    text_bounds: Optional[Bounds] = None
    text_wrap: bool = True
    max_lines: Optional[int] = None
    text_truncation: str = "ellipsis"
    font_size: float = DEFAULT_FONT_SIZE
    line_height: float = 1.2


@dataclass
class Arrowhead:
    position: Position
    angle: float
    length: float
    width: float


@dataclass
class ConnectorRenderSpec:
    entity_id: str
    connector_type: str
    path: list[Position]
    style: ResolvedStyle
    control_points: list[Position] = field(default_factory=list)
    arrows: list[Arrowhead] = field(default_factory=list)


ShapeRenderer = Callable[[BaseShape, RenderContext, EngineConfig], ShapeRenderSpec]
ConnectorRenderer = Callable[[BaseConnector, RenderContext, EngineConfig], Optional[ConnectorRenderSpec]]


# --- Style resolution ---

def _scaled(width: float, scale: float) -> float:
    return width / scale if scale > 0 else width


def resolve_shape_style(
    shape: BaseShape, context: RenderContext, config: Optional[EngineConfig] = None
) -> ResolvedStyle:
    """Entity style, then theme, then engine defaults; selection/hover override the stroke."""
    config = config or get_config()
    theme = context.theme
    stroke_color = shape.stroke_color or theme.shape_stroke or config.default_shape_stroke
    stroke_width = shape.stroke_width if shape.stroke_width is not None else config.shape_stroke_width
    if context.state == RenderState.SELECTED.value:
        stroke_color = theme.selection or config.selection_color
        stroke_width = max(stroke_width, config.selected_stroke_width)
    elif context.state == RenderState.HOVER.value:
        stroke_color = theme.hover or config.hover_color
    return ResolvedStyle(
        stroke_color=stroke_color,
        stroke_width=_scaled(stroke_width, context.scale),
        fill_color=shape.fill_color or theme.shape_fill or config.default_shape_fill,
        text_color=shape.text_color or theme.text_color or config.default_text_color,
    )


def resolve_connector_style(
    connector: BaseConnector, context: RenderContext, config: Optional[EngineConfig] = None
) -> ResolvedStyle:
    config = config or get_config()
    theme = context.theme
    if context.state == RenderState.SELECTED.value:
        stroke_color = theme.selection or config.selection_color
        stroke_width = config.selected_stroke_width
    else:
        stroke_color = connector.stroke_color or theme.connector_stroke or config.default_connector_stroke
        if context.state == RenderState.HOVER.value:
            stroke_color = theme.hover or config.hover_color
        stroke_width = connector.stroke_width if connector.stroke_width is not None else config.connector_stroke_width
    return ResolvedStyle(stroke_color=stroke_color, stroke_width=_scaled(stroke_width, context.scale))


# --- Shape renderers ---

def _text_bounds(shape: BaseShape, font_size: float) -> Bounds:
    bounds = shape.bounds
    if shape.text_placement == TextPlacement.BELOW.value:
        lines = shape.max_lines or 1
        return Bounds(
            x=bounds.x,
            y=bounds.bottom + TEXT_GAP_BELOW,
            width=bounds.width,
            height=font_size * shape.line_height * lines,
        )
    return bounds


def describe_shape(
    shape: BaseShape,
    context: RenderContext,
    config: EngineConfig,
    outline: str = Outline.RECTANGLE.value,
    corner_radius: float = 0,
    inner_outlines: Optional[list[InnerOutline]] = None,
) -> ShapeRenderSpec:
    """Common spec builder used by every built-in shape renderer."""
    font_size = shape.font_size or DEFAULT_FONT_SIZE
    return ShapeRenderSpec(
        entity_id=shape.id,
        shape_key=get_shape_key(shape),
        outline=outline,
        bounds=shape.bounds,
        style=resolve_shape_style(shape, context, config),
        corner_radius=corner_radius,
        inner_outlines=inner_outlines or [],
        text=shape.text,
        text_bounds=_text_bounds(shape, font_size),
        text_wrap=shape.text_wrap,
        max_lines=shape.max_lines,
        text_truncation=shape.text_truncation,
        font_size=font_size,
        line_height=shape.line_height,
    )


def _render_rectangle(shape, context, config):
    return describe_shape(shape, context, config)


def _render_task(shape, context, config):
    return describe_shape(
        shape, context, config,
        outline=Outline.ROUNDED_RECTANGLE.value,
        corner_radius=getattr(shape, "corner_radius", 8),
    )


def _render_event(shape, context, config):
    return describe_shape(shape, context, config, outline=Outline.ELLIPSE.value)


def _render_end_event(shape, context, config):
    spec = describe_shape(shape, context, config, outline=Outline.ELLIPSE.value)
    spec.inner_outlines.append(InnerOutline(inset=3, stroke_width=spec.style.stroke_width * 1.5))
    return spec


def _render_intermediate_event(shape, context, config):
    spec = describe_shape(shape, context, config, outline=Outline.ELLIPSE.value)
    spec.inner_outlines.append(InnerOutline(inset=2, stroke_width=spec.style.stroke_width))
    return spec


def _render_gateway(shape, context, config):
    return describe_shape(shape, context, config, outline=Outline.DIAMOND.value)


def _seed_shape_renderers(registry: HandlerRegistry):
    registry.register(ShapeType.RECTANGLE.value, _render_rectangle, "Rectangle")
    registry.register(ShapeType.TASK.value, _render_task, "Task")
    registry.register(ShapeType.EVENT.value, _render_event, "Event")
    registry.register(f"{ShapeType.EVENT.value}:{EventType.END.value}", _render_end_event, "End Event")
    registry.register(
        f"{ShapeType.EVENT.value}:{EventType.INTERMEDIATE.value}",
        _render_intermediate_event,
        "Intermediate Event",
    )
    registry.register(ShapeType.GATEWAY.value, _render_gateway, "Gateway")
    registry.register(ShapeType.POOL.value, _render_rectangle, "Pool")


shape_renderers: HandlerRegistry[ShapeRenderer] = HandlerRegistry("shape_renderers", _seed_shape_renderers)


# --- Connector renderers ---

def describe_connector(
    connector: BaseConnector, context: RenderContext, config: EngineConfig
) -> Optional[ConnectorRenderSpec]:
    """Resolve path and arrowheads; None when an endpoint shape is missing."""
    geometry = calculate_connector_geometry(connector, context.shapes, config)
    if geometry is None:
        return None
    arrow_length = _scaled(config.arrowhead_length, context.scale)
    arrow_width = _scaled(config.arrowhead_width, context.scale)
    arrows = []
    if connector.arrow_start:
        arrows.append(Arrowhead(geometry.start, geometry.start_angle, arrow_length, arrow_width))
    if connector.arrow_end:
        arrows.append(Arrowhead(geometry.end, geometry.end_angle, arrow_length, arrow_width))
    return ConnectorRenderSpec(
        entity_id=connector.id,
        connector_type=connector.connector_type,
        path=geometry.path,
        style=resolve_connector_style(connector, context, config),
        control_points=geometry.control_points,
        arrows=arrows,
    )


def _seed_connector_renderers(registry: HandlerRegistry):
    registry.register(ConnectorType.STRAIGHT.value, describe_connector, "Straight")
    registry.register(ConnectorType.ORTHOGONAL.value, describe_connector, "Orthogonal")
    registry.register(ConnectorType.CURVED.value, describe_connector, "Curved")


connector_renderers: HandlerRegistry[ConnectorRenderer] = HandlerRegistry(
    "connector_renderers", _seed_connector_renderers
)


# --- Dispatch ---

def render_shape(
    shape: BaseShape, context: Optional[RenderContext] = None, config: Optional[EngineConfig] = None
) -> Optional[ShapeRenderSpec]:
    """Render spec for a shape, or None if no renderer is registered for it."""
    renderer = shape_renderers.get(get_shape_key(shape))
    if renderer is None:
        logger.warning("No renderer registered for shape type %r", get_shape_key(shape))
        return None
    return renderer(shape, context or RenderContext(), config or get_config())


def render_connector(
    connector: BaseConnector, context: Optional[RenderContext] = None, config: Optional[EngineConfig] = None
) -> Optional[ConnectorRenderSpec]:
    """Render spec for a connector, or None when it cannot be drawn."""
    renderer = connector_renderers.get(connector.connector_type)
    if renderer is None:
        logger.warning("No renderer registered for connector type %r", connector.connector_type)
        return None
    return renderer(connector, context or RenderContext(), config or get_config())
