"""
Composable validation for diagram entities.

A rule takes a value (plus an optional ValidationContext) and returns a
ValidationResult. Rules are combined with a ValidationBuilder, which
runs every rule and concatenates the error messages, so callers always
see every violation at once. Validation never mutates the entity and is
advisory: factories and session mutators decide what to do with the
result.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional

from .geometry import ANCHOR_VALUES, AnchorPosition
from .models import (
    SUB_TYPE_VOCABULARIES,
    BaseConnector,
    BaseShape,
    ConnectorType,
    ShapeType,
    TextPlacement,
    TextTruncation,
)
from .registry import HandlerRegistry

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r"^#([0-9A-Fa-f]{3}){1,2}$")
RGB_COLOR = re.compile(r"^rgba?\(\s*\d+\s*,\s*\d+\s*,\s*\d+\s*(,\s*[\d.]+\s*)?\)$")
NAMED_COLORS = frozenset({
    "transparent",
    "currentcolor",
    "black",
    "white",
    "gray",
    "grey",
    "red",
    "green",
    "blue",
    "yellow",
    "orange",
    "purple",
})

MAX_STROKE_WIDTH = 100


@dataclass
class ValidationResult:
    """Outcome of running one or more rules."""
    valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, *errors: str) -> "ValidationResult":
        return cls(valid=False, errors=list(errors))

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors)}


@dataclass
class ValidationContext:
    """
    Cross-entity information a rule may need.

    Attributes:
        shapes: Map of shape id -> shape, needed to check connector endpoints
        allow_zero_dimensions: Accept width/height of 0 (connectors, guides)
    """
    shapes: Optional[Mapping[str, BaseShape]] = None
    allow_zero_dimensions: bool = False


@dataclass
class ValidationRule:
    """A named check: (value, context) -> ValidationResult."""
    name: str
    check: Callable[[Any, ValidationContext], ValidationResult]

    def validate(self, value: Any, context: Any = None) -> ValidationResult:
        return self.check(value, coerce_context(context))


def coerce_context(context: Any) -> ValidationContext:
    """
    Normalize the context argument accepted by the public entry points.

    Accepts None, a ValidationContext, or a plain shape map. Anything else
    is a programming error and raises TypeError.
    """
    if context is None:
        return ValidationContext()
    if isinstance(context, ValidationContext):
        return context
    if isinstance(context, Mapping):
        return ValidationContext(shapes=context)
    raise TypeError(
        f"Validation context must be a ValidationContext or shape map, got {type(context).__name__}"
    )


class ValidationBuilder:
    """Accumulates rules for one value and runs them all on execute()."""

    def __init__(self, value: Any):
        self._value = value
        self._context = ValidationContext()
        self._rules: list[ValidationRule] = []

    def with_context(self, context: Any) -> "ValidationBuilder":
        self._context = coerce_context(context)
        return self

    def rule(self, rule: ValidationRule) -> "ValidationBuilder":
        self._rules.append(rule)
        return self

    def rules(self, rules: Iterable[ValidationRule]) -> "ValidationBuilder":
        self._rules.extend(rules)
        return self

    def execute(self) -> ValidationResult:
        """Run every rule; never stops at the first failure."""
        errors: list[str] = []
        for rule in self._rules:
            result = rule.check(self._value, self._context)
            if not result.valid:
                errors.extend(result.errors)
        if errors:
            return ValidationResult.fail(*errors)
        return ValidationResult.ok()


class ValidationEngine:
    """Entry points for running rules."""

    @staticmethod
    def for_entity(value: Any) -> ValidationBuilder:
        return ValidationBuilder(value)

    @staticmethod
    def validate(value: Any, rule: ValidationRule, context: Any = None) -> ValidationResult:
        return rule.validate(value, context)

    @staticmethod
    def validate_many(
        values: Iterable[Any], rule: ValidationRule, context: Any = None
    ) -> ValidationResult:
        """Validate several values, prefixing each error with its index."""
        context = coerce_context(context)
        errors: list[str] = []
        for i, value in enumerate(values):
            result = rule.check(value, context)
            if not result.valid:
                errors.extend(f"Entity {i}: {error}" for error in result.errors)
        if errors:
            return ValidationResult.fail(*errors)
        return ValidationResult.ok()

    @staticmethod
    def combine(*results: ValidationResult) -> ValidationResult:
        errors = [error for result in results if not result.valid for error in result.errors]
        if errors or any(not result.valid for result in results):
            return ValidationResult(valid=False, errors=errors)
        return ValidationResult.ok()


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


# --- Atomic rules ---

def _check_entity_id(entity, context) -> ValidationResult:
    entity_id = getattr(entity, "id", None)
    if not isinstance(entity_id, str) or not entity_id.strip():
        return ValidationResult.fail("Entity ID is required and must be a non-empty string")
    return ValidationResult.ok()


def _check_position(entity, context) -> ValidationResult:
    position = getattr(entity, "position", None)
    if position is None:
        return ValidationResult.fail("Position is required")
    errors = []
    if not _is_finite_number(position.x):
        errors.append("Position x must be a finite number")
    if not _is_finite_number(position.y):
        errors.append("Position y must be a finite number")
    return ValidationResult.fail(*errors) if errors else ValidationResult.ok()


def _check_dimension(label: str, value: Any, allow_zero: bool) -> list[str]:
    if not _is_finite_number(value):
        return [f"{label} must be a finite number"]
    if value < 0:
        return [f"{label} cannot be negative"]
    if value == 0 and not allow_zero:
        return [f"{label} cannot be zero"]
    return []


def _check_dimensions(entity, context) -> ValidationResult:
    dimensions = getattr(entity, "dimensions", None)
    if dimensions is None:
        return ValidationResult.fail("Dimensions are required")
    errors = _check_dimension("Width", dimensions.width, context.allow_zero_dimensions)
    errors += _check_dimension("Height", dimensions.height, context.allow_zero_dimensions)
    return ValidationResult.fail(*errors) if errors else ValidationResult.ok()


def _check_color(color, context) -> ValidationResult:
    if not isinstance(color, str) or not color.strip():
        return ValidationResult.fail("Color must be a non-empty string")
    if HEX_COLOR.match(color) or RGB_COLOR.match(color) or color.lower() in NAMED_COLORS:
        return ValidationResult.ok()
    return ValidationResult.fail(
        f"Invalid color format: {color}. Expected hex (#RGB or #RRGGBB), rgb/rgba, or named color"
    )


def _check_stroke_width(width, context) -> ValidationResult:
    if not _is_finite_number(width):
        return ValidationResult.fail("Stroke width must be a finite number")
    if not (0 <= width <= MAX_STROKE_WIDTH):
        return ValidationResult.fail(f"Stroke width must be between 0 and {MAX_STROKE_WIDTH}")
    return ValidationResult.ok()


def _check_anchor(anchor, context) -> ValidationResult:
    if isinstance(anchor, AnchorPosition):
        anchor = anchor.value
    if anchor not in ANCHOR_VALUES:
        allowed = ", ".join(a.value for a in AnchorPosition)
        return ValidationResult.fail(f"Invalid anchor: {anchor}. Must be one of: {allowed}")
    return ValidationResult.ok()


def _check_connection_point(point, context) -> ValidationResult:
    errors = []
    shape_id = getattr(point, "shape_id", None)
    if not isinstance(shape_id, str) or not shape_id.strip():
        errors.append("Connection point shape_id is required and must be a non-empty string")
    result = _check_anchor(getattr(point, "anchor", None), context)
    errors.extend(result.errors)
    return ValidationResult.fail(*errors) if errors else ValidationResult.ok()


def _check_endpoints_exist(connector, context) -> ValidationResult:
    if context.shapes is None:
        return ValidationResult.fail("Shapes map context is required for endpoint validation")
    errors = []
    if connector.source.shape_id not in context.shapes:
        errors.append(f"Source shape with ID {connector.source.shape_id} does not exist")
    if connector.target.shape_id not in context.shapes:
        errors.append(f"Target shape with ID {connector.target.shape_id} does not exist")
    return ValidationResult.fail(*errors) if errors else ValidationResult.ok()


def _check_text_layout(shape, context) -> ValidationResult:
    errors = []
    if shape.max_lines is not None and shape.max_lines < 1:
        errors.append("Max lines must be at least 1")
    if not _is_finite_number(shape.line_height) or shape.line_height <= 0:
        errors.append("Line height must be a positive number")
    if shape.text_truncation not in {t.value for t in TextTruncation}:
        errors.append(f"Invalid text truncation: {shape.text_truncation}")
    if shape.text_placement not in {p.value for p in TextPlacement}:
        errors.append(f"Invalid text placement: {shape.text_placement}")
    if shape.font_size is not None and (not _is_finite_number(shape.font_size) or shape.font_size <= 0):
        errors.append("Font size must be a positive number")
    return ValidationResult.fail(*errors) if errors else ValidationResult.ok()


entity_id_rule = ValidationRule("entity_id", _check_entity_id)
position_rule = ValidationRule("position", _check_position)
dimensions_rule = ValidationRule("dimensions", _check_dimensions)
color_rule = ValidationRule("color", _check_color)
stroke_width_rule = ValidationRule("stroke_width", _check_stroke_width)
anchor_rule = ValidationRule("anchor", _check_anchor)
connection_point_rule = ValidationRule("connection_point", _check_connection_point)
connector_endpoints_exist_rule = ValidationRule("connector_endpoints_exist", _check_endpoints_exist)
text_layout_rule = ValidationRule("text_layout", _check_text_layout)


def _field_rule(name: str, attribute: str, rule: ValidationRule) -> ValidationRule:
    """Apply `rule` to one attribute of the entity being validated."""
    return ValidationRule(name, lambda entity, context: rule.check(getattr(entity, attribute), context))


# --- Shape-kind rules ---

def _sub_type_rule(shape_type: str, required: bool = False) -> ValidationRule:
    vocabulary = SUB_TYPE_VOCABULARIES[shape_type]

    def check(shape, context) -> ValidationResult:
        if shape.sub_type is None or shape.sub_type == "":
            if required:
                return ValidationResult.fail(f"{shape_type.capitalize()} shapes require a sub-type")
            return ValidationResult.ok()
        if shape.sub_type not in vocabulary:
            allowed = ", ".join(sorted(vocabulary))
            return ValidationResult.fail(
                f"Invalid {shape_type} sub-type: {shape.sub_type}. Must be one of: {allowed}"
            )
        return ValidationResult.ok()

    return ValidationRule(f"{shape_type}_sub_type", check)


def _check_task(shape, context) -> ValidationResult:
    result = _sub_type_rule(ShapeType.TASK.value).check(shape, context)
    radius = getattr(shape, "corner_radius", 0)
    if not _is_finite_number(radius) or radius < 0:
        return ValidationEngine.combine(result, ValidationResult.fail("Corner radius cannot be negative"))
    return result


def _seed_shape_kind_rules(registry: HandlerRegistry):
    registry.register(ShapeType.TASK.value, ValidationRule("task", _check_task), "Task")
    registry.register(ShapeType.EVENT.value, _sub_type_rule(ShapeType.EVENT.value, required=True), "Event")
    registry.register(ShapeType.GATEWAY.value, _sub_type_rule(ShapeType.GATEWAY.value), "Gateway")


# Extra per-category checks, keyed by shape_type
shape_kind_rules: HandlerRegistry[ValidationRule] = HandlerRegistry("shape_kind_rules", _seed_shape_kind_rules)


# --- Connector-kind rules ---

def _check_curvature(connector, context) -> ValidationResult:
    curvature = getattr(connector, "curvature", 1.0)
    if not _is_finite_number(curvature) or curvature < 0:
        return ValidationResult.fail("Curvature must be a non-negative number")
    return ValidationResult.ok()


def _check_waypoints(connector, context) -> ValidationResult:
    errors = []
    for i, point in enumerate(getattr(connector, "waypoints", None) or []):
        if not (_is_finite_number(point.x) and _is_finite_number(point.y)):
            errors.append(f"Waypoint {i} must have finite coordinates")
    return ValidationResult.fail(*errors) if errors else ValidationResult.ok()


_CONNECTOR_KIND_RULES: dict[str, ValidationRule] = {
    ConnectorType.CURVED.value: ValidationRule("curvature", _check_curvature),
    ConnectorType.ORTHOGONAL.value: ValidationRule("waypoints", _check_waypoints),
}


# --- Composite rules ---

def _check_shape(shape, context) -> ValidationResult:
    builder = (
        ValidationEngine.for_entity(shape)
        .with_context(ValidationContext(allow_zero_dimensions=context.allow_zero_dimensions))
        .rule(entity_id_rule)
        .rule(position_rule)
        .rule(dimensions_rule)
        .rule(text_layout_rule)
    )
    # Optional style fields are only checked when present
    if shape.fill_color is not None:
        builder.rule(_field_rule("fill_color", "fill_color", color_rule))
    if shape.stroke_color is not None:
        builder.rule(_field_rule("stroke_color", "stroke_color", color_rule))
    if shape.text_color is not None:
        builder.rule(_field_rule("text_color", "text_color", color_rule))
    if shape.stroke_width is not None:
        builder.rule(_field_rule("stroke_width", "stroke_width", stroke_width_rule))

    kind_rule = shape_kind_rules.get(shape.shape_type)
    if kind_rule is not None:
        builder.rule(kind_rule)
    return builder.execute()


def _check_connector(connector, context) -> ValidationResult:
    builder = (
        ValidationEngine.for_entity(connector)
        .rule(entity_id_rule)
        .rule(_field_rule("source", "source", connection_point_rule))
        .rule(_field_rule("target", "target", connection_point_rule))
    )
    if connector.stroke_color is not None:
        builder.rule(_field_rule("stroke_color", "stroke_color", color_rule))
    if connector.stroke_width is not None:
        builder.rule(_field_rule("stroke_width", "stroke_width", stroke_width_rule))

    kind_rule = _CONNECTOR_KIND_RULES.get(connector.connector_type)
    if kind_rule is not None:
        builder.rule(kind_rule)

    # Endpoint existence is only checked when a shape map is available
    if context.shapes is not None:
        builder.with_context(context).rule(connector_endpoints_exist_rule)
    return builder.execute()


def _check_entity(entity, context) -> ValidationResult:
    if isinstance(entity, BaseConnector):
        return _check_connector(entity, context)
    if isinstance(entity, BaseShape):
        return _check_shape(entity, context)
    return ValidationResult.fail("Unknown entity type: must be Shape or Connector")


shape_rule = ValidationRule("shape", _check_shape)
connector_rule = ValidationRule("connector", _check_connector)
entity_rule = ValidationRule("entity", _check_entity)


def validate_shape(shape: BaseShape) -> ValidationResult:
    """Validate a shape on its own."""
    return shape_rule.validate(shape)


def validate_connector(
    connector: BaseConnector, shapes: Optional[Mapping[str, BaseShape]] = None
) -> ValidationResult:
    """Validate a connector; endpoints are checked only when `shapes` is given."""
    return connector_rule.validate(connector, ValidationContext(shapes=shapes))


def validate_entity(entity: Any, context: Any = None) -> ValidationResult:
    """Validate a shape or connector, dispatching on its type."""
    return entity_rule.validate(entity, context)
