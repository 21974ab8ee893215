"""
Diagram Engine - entity model, geometry, validation and editing core.

This package decides where diagram entities are and whether an edit is
legal, independent of how they get drawn. A drawing layer consumes the
render specs; import/export adapters exchange DiagramSnapshot payloads.
"""

from .geometry import (
    Position,
    Dimensions,
    Bounds,
    AnchorPosition,
    STANDARD_ANCHORS,
    anchor_point,
    anchor_direction,
    nearest_anchor,
    opposite_anchor,
    calculate_position,
    combine_bounds,
    SnapMode,
    grid_size_for_zoom,
    snap_to_grid,
)
from .models import (
    # Enums
    DiagramEntityType,
    ShapeType,
    TaskType,
    EventType,
    GatewayType,
    ConnectorType,
    # Shapes
    BaseShape,
    RectangleShape,
    TaskShape,
    EventShape,
    GatewayShape,
    PoolShape,
    # Connectors
    ConnectionPoint,
    BaseConnector,
    StraightConnector,
    OrthogonalConnector,
    CurvedConnector,
    # Helpers
    DiagramSnapshot,
    get_shape_key,
    parse_entity,
    apply_updates,
    UnknownFieldError,
    register_shape_model,
    register_connector_model,
)
from .errors import DiagramError, ErrorCode, ErrorSeverity, log_error
from .config import EngineConfig, load_config, get_config, set_config
from .registry import HandlerRegistry
from .validation import (
    ValidationResult,
    ValidationContext,
    ValidationRule,
    ValidationEngine,
    shape_kind_rules,
    validate_shape,
    validate_connector,
    validate_entity,
)
from .connectors import (
    ConnectorGeometry,
    get_connector_endpoints,
    calculate_connector_geometry,
    calculate_connector_bounds,
    generate_orthogonal_path,
    route_orthogonal,
    generate_curve_control_points,
    recalculate_anchors,
    find_connection_point_at,
)
from .rendering import RenderContext, RenderTheme, shape_renderers, connector_renderers
from .entity_system import EntitySystem, entity_system
from .factories import (
    FactoryResult,
    create_shape,
    create_rectangle,
    create_task,
    create_event,
    create_start_event,
    create_end_event,
    create_gateway,
    create_pool,
    create_connector,
)
from .commands import Command, CommandHistory, EntityMove
from .session import DiagramSession, MoveGesture

__all__ = [
    # Geometry
    "Position",
    "Dimensions",
    "Bounds",
    "AnchorPosition",
    "STANDARD_ANCHORS",
    "anchor_point",
    "anchor_direction",
    "nearest_anchor",
    "opposite_anchor",
    "calculate_position",
    "combine_bounds",
    "SnapMode",
    "grid_size_for_zoom",
    "snap_to_grid",
    # Enums
    "DiagramEntityType",
    "ShapeType",
    "TaskType",
    "EventType",
    "GatewayType",
    "ConnectorType",
    # Models
    "BaseShape",
    "RectangleShape",
    "TaskShape",
    "EventShape",
    "GatewayShape",
    "PoolShape",
    "ConnectionPoint",
    "BaseConnector",
    "StraightConnector",
    "OrthogonalConnector",
    "CurvedConnector",
    "DiagramSnapshot",
    "get_shape_key",
    "parse_entity",
    "apply_updates",
    "UnknownFieldError",
    "register_shape_model",
    "register_connector_model",
    # Errors and config
    "DiagramError",
    "ErrorCode",
    "ErrorSeverity",
    "log_error",
    "EngineConfig",
    "load_config",
    "get_config",
    "set_config",
    # Registries and validation
    "HandlerRegistry",
    "ValidationResult",
    "ValidationContext",
    "ValidationRule",
    "ValidationEngine",
    "shape_kind_rules",
    "validate_shape",
    "validate_connector",
    "validate_entity",
    # Connector geometry
    "ConnectorGeometry",
    "get_connector_endpoints",
    "calculate_connector_geometry",
    "calculate_connector_bounds",
    "generate_orthogonal_path",
    "route_orthogonal",
    "generate_curve_control_points",
    "recalculate_anchors",
    "find_connection_point_at",
    # Rendering boundary
    "RenderContext",
    "RenderTheme",
    "shape_renderers",
    "connector_renderers",
    # Entity system
    "EntitySystem",
    "entity_system",
    # Factories
    "FactoryResult",
    "create_shape",
    "create_rectangle",
    "create_task",
    "create_event",
    "create_start_event",
    "create_end_event",
    "create_gateway",
    "create_pool",
    "create_connector",
    # Editing
    "Command",
    "CommandHistory",
    "EntityMove",
    "DiagramSession",
    "MoveGesture",
]
