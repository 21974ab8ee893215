"""
Entity system - one entry point for generic operations on entities.

Routes bounds, hit-testing, validation and rendering to the shape or
connector implementation based on the entity's type. The facade holds
no diagram state: the shape map it needs for connectors is passed in
with every call.
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Sequence

from .config import EngineConfig, get_config
from .connectors import calculate_connector_bounds, distance_to_connector
from .geometry import Bounds, Position, point_in_diamond, point_in_ellipse
from .models import BaseConnector, BaseShape, ShapeType, is_connector, is_shape
from .rendering import RenderContext, render_connector, render_shape
from .validation import ValidationResult, coerce_context, validate_entity

logger = logging.getLogger(__name__)


class EntitySystem:
    """Type-dispatching facade over shapes and connectors."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self._config = config

    @property
    def config(self) -> EngineConfig:
        return self._config or get_config()

    # --- Type checks ---

    @staticmethod
    def is_shape(entity: Any) -> bool:
        return is_shape(entity)

    @staticmethod
    def is_connector(entity: Any) -> bool:
        return is_connector(entity)

    # --- Bounds ---

    def get_bounds(
        self, entity: Any, shapes: Optional[Mapping[str, BaseShape]] = None
    ) -> Optional[Bounds]:
        """
        Bounding box of any entity.

        Shapes use their own position and dimensions. Connectors are
        computed from their endpoints; without the shape map (or with a
        missing endpoint) there is no result.
        """
        if is_shape(entity):
            return entity.bounds
        if is_connector(entity):
            return calculate_connector_bounds(entity, shapes, self.config.connector_padding)
        logger.warning("get_bounds called with unknown entity type %s", type(entity).__name__)
        return None

    # --- Hit testing ---

    def hit_test(
        self,
        entity: Any,
        x: float,
        y: float,
        shapes: Optional[Mapping[str, BaseShape]] = None,
    ) -> bool:
        """
        Check if a point hits an entity.

        Connectors need the shape map; without it (or with a dangling
        endpoint) they are never hit.
        """
        if is_shape(entity):
            return self._hit_test_shape(entity, x, y)
        if is_connector(entity):
            return self._hit_test_connector(entity, x, y, shapes)
        return False

    def _hit_test_shape(self, shape: BaseShape, x: float, y: float) -> bool:
        bounds = shape.bounds
        if not bounds.contains(x, y):
            return False
        if not self.config.precise_hit_testing:
            return True
        if shape.shape_type == ShapeType.EVENT.value:
            return point_in_ellipse(bounds, x, y)
        if shape.shape_type == ShapeType.GATEWAY.value:
            return point_in_diamond(bounds, x, y)
        return True

    def _hit_test_connector(
        self,
        connector: BaseConnector,
        x: float,
        y: float,
        shapes: Optional[Mapping[str, BaseShape]],
    ) -> bool:
        if shapes is None:
            return False
        distance = distance_to_connector(connector, Position(x=x, y=y), shapes, self.config)
        if distance is None:
            return False
        return distance <= self.config.hit_tolerance

    def find_entity_at_point(
        self,
        entities: Sequence[Any],
        x: float,
        y: float,
        shapes: Optional[Mapping[str, BaseShape]] = None,
    ) -> Optional[Any]:
        """Topmost entity under the point (last in z-order wins)."""
        for entity in reversed(entities):
            if self.hit_test(entity, x, y, shapes):
                return entity
        return None

    def find_entities_in_box(
        self,
        entities: Iterable[Any],
        box: Bounds,
        shapes: Optional[Mapping[str, BaseShape]] = None,
    ) -> list[Any]:
        """All entities whose bounds intersect the box."""
        found = []
        for entity in entities:
            bounds = self.get_bounds(entity, shapes)
            if bounds is not None and bounds.intersects(box):
                found.append(entity)
        return found

    # --- Validation ---

    def validate(self, entity: Any, context: Any = None) -> ValidationResult:
        return validate_entity(entity, context)

    def validate_many(self, entities: Iterable[Any], context: Any = None) -> dict[str, ValidationResult]:
        """Validate every entity; results are keyed by entity id."""
        context = coerce_context(context)
        return {entity.id: validate_entity(entity, context) for entity in entities}

    # --- Rendering ---

    def render(self, entity: Any, context: Optional[RenderContext] = None):
        """Render spec for any entity, or None when it cannot be drawn."""
        if is_shape(entity):
            return render_shape(entity, context, self.config)
        if is_connector(entity):
            return render_connector(entity, context, self.config)
        return None


entity_system = EntitySystem()
