"""
Factory functions for shapes and connectors.

Factories take numeric coordinates plus a reference point ('center' or
'top-left'), fill in per-type defaults, validate the result and return a
FactoryResult. They never raise for validation problems; the caller
inspects `result.ok` and `result.errors`.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, Mapping, Optional, TypeVar

from .config import EngineConfig, get_config
from .connectors import calculate_connector_bounds
from .geometry import Dimensions, Position, calculate_position
from .models import (
    BaseConnector,
    BaseShape,
    ConnectionPoint,
    ConnectorType,
    EventType,
    ShapeType,
    TextPlacement,
    connector_model_for,
    generate_connector_id,
    generate_shape_id,
    get_shape_key,
    shape_model_for,
)
from .validation import validate_connector, validate_shape

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FactoryResult(Generic[T]):
    """Either a freshly built entity or the reasons it could not be built."""
    value: Optional[T] = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors

    def unwrap(self) -> T:
        """Return the value, raising ValueError if creation failed."""
        if not self.ok:
            raise ValueError("; ".join(self.errors) or "Factory produced no value")
        return self.value


# Default (width, height) per shape category
DEFAULT_SIZES: dict[str, tuple[float, float]] = {
    ShapeType.RECTANGLE.value: (120, 80),
    ShapeType.TASK.value: (120, 80),
    ShapeType.EVENT.value: (40, 40),
    ShapeType.GATEWAY.value: (50, 50),
    ShapeType.POOL.value: (600, 200),
}

# Default text layout per shape category: (placement, max_lines, line_height)
DEFAULT_TEXT_CONFIG: dict[str, tuple[str, int, float]] = {
    ShapeType.EVENT.value: (TextPlacement.BELOW.value, 2, 1.2),
    ShapeType.TASK.value: (TextPlacement.INSIDE.value, 3, 1.2),
    ShapeType.GATEWAY.value: (TextPlacement.BELOW.value, 2, 1.2),
    ShapeType.POOL.value: (TextPlacement.INSIDE.value, 5, 1.2),
    ShapeType.RECTANGLE.value: (TextPlacement.INSIDE.value, 3, 1.2),
}


def default_text_config(shape_type: str) -> dict:
    """Text layout defaults for a shape category (rectangle for unknown ones)."""
    placement, max_lines, line_height = DEFAULT_TEXT_CONFIG.get(
        shape_type, DEFAULT_TEXT_CONFIG[ShapeType.RECTANGLE.value]
    )
    return {"text_placement": placement, "max_lines": max_lines, "line_height": line_height}


# --- Shapes ---

def create_shape(
    shape_type: str,
    x: float,
    y: float,
    width: Optional[float] = None,
    height: Optional[float] = None,
    reference: str = "center",
    sub_type: Optional[str] = None,
    config: Optional[EngineConfig] = None,
    **options: Any,
) -> FactoryResult[BaseShape]:
    """
    Create and validate a shape.

    Args:
        shape_type: Shape category ('rectangle', 'task', 'event', ...)
        x, y: Reference point coordinates
        width, height: Size (defaults depend on the category)
        reference: 'center' or 'top-left'
        sub_type: Optional category variant
        config: Engine config supplying default colors and stroke width
        **options: Any other shape field (fill_color, text, corner_radius, ...)

    Returns:
        FactoryResult holding the shape or the validation errors
    """
    config = config or get_config()
    default_width, default_height = DEFAULT_SIZES.get(shape_type, DEFAULT_SIZES[ShapeType.RECTANGLE.value])
    width = default_width if width is None else width
    height = default_height if height is None else height

    data = {
        "id": options.pop("id", None) or generate_shape_id(),
        "shape_type": shape_type,
        "position": calculate_position(x, y, width, height, reference),
        "dimensions": Dimensions(width=width, height=height),
        "fill_color": config.default_shape_fill,
        "stroke_color": config.default_shape_stroke,
        "stroke_width": config.shape_stroke_width,
        **default_text_config(shape_type),
    }
    if sub_type is not None:
        data["sub_type"] = sub_type
    data.update(options)

    shape = shape_model_for(shape_type)(**data)
    result = validate_shape(shape)
    if not result.valid:
        logger.debug("Rejected %s shape: %s", get_shape_key(shape), result.errors)
        return FactoryResult(
            errors=[f"{shape_type} shape validation failed: {', '.join(result.errors)}"]
        )
    return FactoryResult(value=shape)


def create_rectangle(x: float, y: float, **options: Any) -> FactoryResult[BaseShape]:
    return create_shape(ShapeType.RECTANGLE.value, x, y, **options)


def create_task(x: float, y: float, corner_radius: float = 8, **options: Any) -> FactoryResult[BaseShape]:
    """Create a BPMN task (rounded rectangle)."""
    return create_shape(ShapeType.TASK.value, x, y, corner_radius=corner_radius, **options)


def create_event(
    x: float,
    y: float,
    sub_type: str = EventType.START.value,
    diameter: float = 40,
    **options: Any,
) -> FactoryResult[BaseShape]:
    """Create a BPMN event (circle)."""
    return create_shape(
        ShapeType.EVENT.value, x, y, width=diameter, height=diameter, sub_type=sub_type, **options
    )


def create_start_event(x: float, y: float, **options: Any) -> FactoryResult[BaseShape]:
    return create_event(x, y, sub_type=EventType.START.value, **options)


def create_end_event(x: float, y: float, **options: Any) -> FactoryResult[BaseShape]:
    return create_event(x, y, sub_type=EventType.END.value, **options)


def create_gateway(x: float, y: float, size: float = 50, **options: Any) -> FactoryResult[BaseShape]:
    """Create a BPMN gateway (diamond)."""
    return create_shape(ShapeType.GATEWAY.value, x, y, width=size, height=size, **options)


def create_pool(x: float, y: float, **options: Any) -> FactoryResult[BaseShape]:
    return create_shape(ShapeType.POOL.value, x, y, **options)


def clone_shape(shape: BaseShape, offset: Optional[Position] = None) -> FactoryResult[BaseShape]:
    """Copy a shape under a new id, shifted by `offset` (20, 20 by default)."""
    offset = offset or Position(x=20, y=20)
    clone = shape.model_copy(
        deep=True,
        update={
            "id": generate_shape_id(),
            "position": Position(x=shape.position.x + offset.x, y=shape.position.y + offset.y),
        },
    )
    result = validate_shape(clone)
    if not result.valid:
        return FactoryResult(errors=result.errors)
    return FactoryResult(value=clone)


# --- Connectors ---

def create_connector(
    source: ConnectionPoint,
    target: ConnectionPoint,
    connector_type: str = ConnectorType.STRAIGHT.value,
    shapes: Optional[Mapping[str, BaseShape]] = None,
    config: Optional[EngineConfig] = None,
    **options: Any,
) -> FactoryResult[BaseConnector]:
    """
    Create and validate a connector.

    When `shapes` is given the endpoints must exist, and the connector's
    derived position/dimensions are filled in from its endpoints.
    """
    config = config or get_config()
    data = {
        "id": options.pop("id", None) or generate_connector_id(),
        "connector_type": connector_type,
        "source": source,
        "target": target,
        **options,
    }
    connector = connector_model_for(connector_type)(**data)

    result = validate_connector(connector, shapes)
    if not result.valid:
        logger.debug("Rejected %s connector: %s", connector_type, result.errors)
        return FactoryResult(errors=[f"connector validation failed: {', '.join(result.errors)}"])

    if shapes is not None:
        bounds = calculate_connector_bounds(connector, shapes, config.connector_padding)
        if bounds is not None:
            connector = connector.model_copy(update={
                "position": Position(x=bounds.x, y=bounds.y),
                "dimensions": Dimensions(width=bounds.width, height=bounds.height),
            })
    return FactoryResult(value=connector)


def create_straight_connector(
    source: ConnectionPoint, target: ConnectionPoint, **options: Any
) -> FactoryResult[BaseConnector]:
    return create_connector(source, target, ConnectorType.STRAIGHT.value, **options)


def create_orthogonal_connector(
    source: ConnectionPoint,
    target: ConnectionPoint,
    waypoints: Optional[list[Position]] = None,
    **options: Any,
) -> FactoryResult[BaseConnector]:
    return create_connector(
        source, target, ConnectorType.ORTHOGONAL.value, waypoints=waypoints or [], **options
    )


def create_curved_connector(
    source: ConnectionPoint,
    target: ConnectionPoint,
    curvature: float = 1.0,
    **options: Any,
) -> FactoryResult[BaseConnector]:
    return create_connector(source, target, ConnectorType.CURVED.value, curvature=curvature, **options)
