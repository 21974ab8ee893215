"""
Entity models for diagrams.

A diagram is a flat collection of entities keyed by id:
- Shapes, discriminated by `shape_type` (and optionally `sub_type`)
- Connectors, discriminated by `connector_type`, attached to shapes
  through a ConnectionPoint (shape id + anchor)

Tag fields hold plain strings rather than enum members so that values
outside the built-in vocabularies can be represented; the validation
rules decide whether they are acceptable. A connector's position and
dimensions are derived from its endpoints and are refreshed by the
session whenever an attached shape changes.
"""

import uuid
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .geometry import AnchorPosition, Bounds, Dimensions, Position


class DiagramEntityType(str, Enum):
    """Top-level entity tag."""
    SHAPE = "shape"
    CONNECTOR = "connector"


class ShapeType(str, Enum):
    """Built-in shape categories."""
    RECTANGLE = "rectangle"
    TASK = "task"
    EVENT = "event"
    GATEWAY = "gateway"
    POOL = "pool"


class TaskType(str, Enum):
    """BPMN task variants."""
    USER = "user"
    SERVICE = "service"
    SCRIPT = "script"
    MANUAL = "manual"
    BUSINESS_RULE = "business-rule"
    SEND = "send"
    RECEIVE = "receive"


class EventType(str, Enum):
    """BPMN event variants."""
    START = "start"
    END = "end"
    INTERMEDIATE = "intermediate"
    TIMER = "timer"
    MESSAGE = "message"
    ERROR = "error"
    CONDITIONAL = "conditional"
    SIGNAL = "signal"
    ESCALATION = "escalation"
    COMPENSATION = "compensation"
    CANCEL = "cancel"
    LINK = "link"


class GatewayType(str, Enum):
    """BPMN gateway variants."""
    EXCLUSIVE = "exclusive"
    INCLUSIVE = "inclusive"
    PARALLEL = "parallel"
    EVENT_BASED = "event-based"
    COMPLEX = "complex"


class ConnectorType(str, Enum):
    """Connector routing styles."""
    STRAIGHT = "straight"
    ORTHOGONAL = "orthogonal"
    CURVED = "curved"


class TextTruncation(str, Enum):
    CLIP = "clip"
    ELLIPSIS = "ellipsis"


class TextPlacement(str, Enum):
    INSIDE = "inside"
    BELOW = "below"


# Sub-type vocabularies per shape category
SUB_TYPE_VOCABULARIES: dict[str, frozenset[str]] = {
    ShapeType.TASK.value: frozenset(t.value for t in TaskType),
    ShapeType.EVENT.value: frozenset(t.value for t in EventType),
    ShapeType.GATEWAY.value: frozenset(t.value for t in GatewayType),
}

# Shape tags used by older saved diagrams
LEGACY_SHAPE_TYPES: dict[str, tuple[str, Optional[str]]] = {
    "start-event": (ShapeType.EVENT.value, EventType.START.value),
    "end-event": (ShapeType.EVENT.value, EventType.END.value),
}


def generate_id(prefix: str) -> str:
    """Generate a unique entity ID with the given prefix."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def generate_shape_id() -> str:
    """Generate a unique shape ID."""
    return generate_id("shape")


def generate_connector_id() -> str:
    """Generate a unique connector ID."""
    return generate_id("connector")


def migrate_legacy_shape(data: Any) -> Any:
    """Rewrite legacy shape tags (e.g. 'start-event') into shape_type + sub_type."""
    if isinstance(data, dict) and data.get("shape_type") in LEGACY_SHAPE_TYPES:
        data = dict(data)
        shape_type, sub_type = LEGACY_SHAPE_TYPES[data["shape_type"]]
        data["shape_type"] = shape_type
        if sub_type and not data.get("sub_type"):
            data["sub_type"] = sub_type
    return data


class DiagramEntity(BaseModel):
    """Fields shared by every entity in a diagram."""
    id: str
    type: str
    position: Position = Field(default_factory=Position)
    dimensions: Dimensions = Field(default_factory=Dimensions)

    @property
    def bounds(self) -> Bounds:
        return Bounds.from_position(self.position, self.dimensions)


# --- Shapes ---

class BaseShape(DiagramEntity):
    """
    A shape on the canvas.

    Style fields left as None are resolved against the caller's theme
    at render time.
    """
    id: str = Field(default_factory=generate_shape_id)
    type: Literal["shape"] = DiagramEntityType.SHAPE.value
    shape_type: str = ShapeType.RECTANGLE.value
    sub_type: Optional[str] = None
    # Style
    fill_color: Optional[str] = None
    stroke_color: Optional[str] = None
    stroke_width: Optional[float] = None
    text_color: Optional[str] = None
    font_size: Optional[float] = None
    # Text layout
    text: str = ""
    text_wrap: bool = True
    max_lines: Optional[int] = None
    text_truncation: str = TextTruncation.ELLIPSIS.value
    text_placement: str = TextPlacement.INSIDE.value
    line_height: float = 1.2

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_shape_type(cls, data: Any) -> Any:
        """Convert legacy 'start-event'/'end-event' tags."""
        return migrate_legacy_shape(data)

    @property
    def shape_key(self) -> str:
        return get_shape_key(self)


class RectangleShape(BaseShape):
    shape_type: Literal["rectangle"] = ShapeType.RECTANGLE.value


class TaskShape(BaseShape):
    """BPMN task (rounded rectangle)."""
    shape_type: Literal["task"] = ShapeType.TASK.value
    corner_radius: float = 8


class EventShape(BaseShape):
    """BPMN event (circle); the sub-type is mandatory."""
    shape_type: Literal["event"] = ShapeType.EVENT.value
    sub_type: str = EventType.START.value


class GatewayShape(BaseShape):
    """BPMN gateway (diamond)."""
    shape_type: Literal["gateway"] = ShapeType.GATEWAY.value


class PoolShape(BaseShape):
    """BPMN pool (large container rectangle)."""
    shape_type: Literal["pool"] = ShapeType.POOL.value


def get_shape_key(shape: BaseShape) -> str:
    """Composite registry key: 'type:subType' when a sub-type is set."""
    if shape.sub_type:
        return f"{shape.shape_type}:{shape.sub_type}"
    return shape.shape_type


# --- Connectors ---

class ConnectionPoint(BaseModel):
    """Where a connector attaches: a shape id plus one of its anchors."""
    shape_id: str
    anchor: str = AnchorPosition.CENTER.value


class BaseConnector(DiagramEntity):
    """A connector between two shapes."""
    id: str = Field(default_factory=generate_connector_id)
    type: Literal["connector"] = DiagramEntityType.CONNECTOR.value
    connector_type: str = ConnectorType.STRAIGHT.value
    source: ConnectionPoint
    target: ConnectionPoint
    stroke_color: Optional[str] = None
    stroke_width: Optional[float] = None
    arrow_start: bool = False
    arrow_end: bool = True

    def attached_shape_ids(self) -> tuple[str, str]:
        return (self.source.shape_id, self.target.shape_id)


class StraightConnector(BaseConnector):
    connector_type: Literal["straight"] = ConnectorType.STRAIGHT.value


class OrthogonalConnector(BaseConnector):
    """Right-angled connector; empty waypoints means the path is auto-routed."""
    connector_type: Literal["orthogonal"] = ConnectorType.ORTHOGONAL.value
    waypoints: list[Position] = Field(default_factory=list)


class CurvedConnector(BaseConnector):
    """Cubic curve; curvature 1.0 is the normal bow, 0 is a straight line."""
    connector_type: Literal["curved"] = ConnectorType.CURVED.value
    curvature: float = 1.0


Entity = Union[BaseShape, BaseConnector]


# --- Variant tables ---

_SHAPE_MODELS: dict[str, type[BaseShape]] = {
    ShapeType.RECTANGLE.value: RectangleShape,
    ShapeType.TASK.value: TaskShape,
    ShapeType.EVENT.value: EventShape,
    ShapeType.GATEWAY.value: GatewayShape,
    ShapeType.POOL.value: PoolShape,
}

_CONNECTOR_MODELS: dict[str, type[BaseConnector]] = {
    ConnectorType.STRAIGHT.value: StraightConnector,
    ConnectorType.ORTHOGONAL.value: OrthogonalConnector,
    ConnectorType.CURVED.value: CurvedConnector,
}


def register_shape_model(shape_type: str, model: type[BaseShape]):
    """Register the model class used to parse a new shape category."""
    _SHAPE_MODELS[shape_type] = model


def register_connector_model(connector_type: str, model: type[BaseConnector]):
    """Register the model class used to parse a new connector type."""
    _CONNECTOR_MODELS[connector_type] = model


def shape_model_for(shape_type: str) -> type[BaseShape]:
    """Model class for a shape tag (unknown tags use BaseShape)."""
    return _SHAPE_MODELS.get(shape_type, BaseShape)


def connector_model_for(connector_type: str) -> type[BaseConnector]:
    """Model class for a connector tag (unknown tags use BaseConnector)."""
    return _CONNECTOR_MODELS.get(connector_type, BaseConnector)


def parse_shape(data: dict) -> BaseShape:
    """Build the shape variant matching `data['shape_type']`."""
    data = migrate_legacy_shape(data)
    model = shape_model_for(data.get("shape_type", ShapeType.RECTANGLE.value))
    return model.model_validate(data)


def parse_connector(data: dict) -> BaseConnector:
    """Build the connector variant matching `data['connector_type']`."""
    model = connector_model_for(data.get("connector_type", ConnectorType.STRAIGHT.value))
    return model.model_validate(data)


def parse_entity(data: dict) -> Entity:
    """Build a shape or connector from a plain dict."""
    if data.get("type") == DiagramEntityType.CONNECTOR.value:
        return parse_connector(data)
    return parse_shape(data)


class UnknownFieldError(ValueError):
    """An update named fields the target entity model does not have."""

    def __init__(self, entity_id: str, fields: list[str]):
        self.entity_id = entity_id
        self.fields = fields
        super().__init__(f"Unknown field(s) for {entity_id}: {', '.join(fields)}")


def apply_updates(entity: Entity, updates: dict) -> Entity:
    """
    Return a new entity with `updates` merged in.

    A change of shape_type/connector_type re-dispatches to the matching
    variant, and every updated key must be a field of that variant.

    Raises:
        UnknownFieldError: an updated key is not a model field
        ValidationError: a value is malformed
    """
    data = entity.model_dump()
    for key, value in updates.items():
        if isinstance(value, BaseModel):
            value = value.model_dump()
        elif isinstance(value, list):
            value = [v.model_dump() if isinstance(v, BaseModel) else v for v in value]
        data[key] = value

    if data.get("type") == DiagramEntityType.CONNECTOR.value:
        model = connector_model_for(data.get("connector_type", ConnectorType.STRAIGHT.value))
    else:
        model = shape_model_for(migrate_legacy_shape(data).get("shape_type", ShapeType.RECTANGLE.value))
    unknown = [key for key in updates if key not in model.model_fields]
    if unknown:
        raise UnknownFieldError(entity.id, unknown)
    return parse_entity(data)


def is_shape(entity: Any) -> bool:
    return isinstance(entity, BaseShape)


def is_connector(entity: Any) -> bool:
    return isinstance(entity, BaseConnector)


class DiagramSnapshot(BaseModel):
    """
    The complete entity set of a diagram.
    This is what import/export adapters produce and consume.
    """
    shapes: list[BaseShape] = Field(default_factory=list)
    connectors: list[BaseConnector] = Field(default_factory=list)

    @field_validator("shapes", mode='before')
    @classmethod
    def dispatch_shapes(cls, v: Any) -> Any:
        """Raw dicts become the shape variant their shape_type names."""
        if isinstance(v, list):
            return [parse_shape(s) if isinstance(s, dict) else s for s in v]
        return v

    @field_validator("connectors", mode='before')
    @classmethod
    def dispatch_connectors(cls, v: Any) -> Any:
        """Raw dicts become the connector variant their connector_type names."""
        if isinstance(v, list):
            return [parse_connector(c) if isinstance(c, dict) else c for c in v]
        return v

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "shapes": [s.model_dump(mode="json") for s in self.shapes],
            "connectors": [c.model_dump(mode="json") for c in self.connectors],
        }

    @classmethod
    def from_json_dict(cls, data: dict) -> "DiagramSnapshot":
        """Create a snapshot from a JSON dict, dispatching each entity to its variant."""
        return cls(shapes=data.get("shapes", []), connectors=data.get("connectors", []))
