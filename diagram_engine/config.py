"""
Engine configuration.

All tunables live in one pydantic model. `load_config()` layers
DIAGRAM_ENGINE_<FIELD> environment variables over explicit overrides,
e.g. DIAGRAM_ENGINE_HIT_TOLERANCE=8.
"""

import json
import logging
import os
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .geometry import DEFAULT_GRID_THRESHOLDS, SnapMode

logger = logging.getLogger(__name__)

ENV_PREFIX = "DIAGRAM_ENGINE_"


class EngineConfig(BaseModel):
    """Tunables for hit-testing, routing, history and default styling."""
    # Interaction
    hit_tolerance: float = 5.0           # Max distance (px) for a connector hit
    connection_point_tolerance: float = 8.0  # Snap distance for anchor hover
    precise_hit_testing: bool = False    # Use ellipse/diamond silhouettes for shapes
    # Grid
    snap_mode: str = SnapMode.NONE.value  # Default snapping for drags: none | minor | major
    grid_zoom_thresholds: list[tuple[float, float, float]] = Field(
        default_factory=lambda: list(DEFAULT_GRID_THRESHOLDS)
    )  # (min_zoom, minor, major), any order
    # Connector geometry
    connector_padding: float = 10.0      # Padding around derived connector bounds
    anchor_aware_routing: bool = True    # Orthogonal router honors anchor directions
    orthogonal_stub_length: float = 20.0
    curve_samples: int = 32              # Segments used to flatten curves for hit-testing
    # History
    max_history: int = 50
    # Default styling (used when neither entity nor theme supplies a value)
    default_shape_fill: str = "#ffffff"
    default_shape_stroke: str = "#000000"
    default_text_color: str = "#000000"
    default_connector_stroke: str = "#1F2937"
    selection_color: str = "#ff6b35"
    hover_color: str = "#3B82F6"
    shape_stroke_width: float = 1.0
    connector_stroke_width: float = 2.0
    selected_stroke_width: float = 3.0
    arrowhead_length: float = 10.0
    arrowhead_width: float = 8.0

    @field_validator(
        "hit_tolerance",
        "connection_point_tolerance",
        "connector_padding",
        "orthogonal_stub_length",
    )
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError(f"must be >= 0, got: {v}")
        return v

    @field_validator("max_history", "curve_samples")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError(f"must be >= 1, got: {v}")
        return v

    @field_validator("shape_stroke_width", "connector_stroke_width", "selected_stroke_width")
    @classmethod
    def validate_stroke_width(cls, v):
        """Stroke widths share the [0, 100] range enforced for entities."""
        if not (0 <= v <= 100):
            raise ValueError(f"stroke width must be between 0-100, got: {v}")
        return v

    @field_validator("snap_mode")
    @classmethod
    def validate_snap_mode(cls, v):
        modes = [m.value for m in SnapMode]
        if v not in modes:
            raise ValueError(f"snap mode must be one of {modes}, got: {v!r}")
        return v

    @field_validator("grid_zoom_thresholds", mode="before")
    @classmethod
    def parse_grid_thresholds(cls, v):
        """Environment values arrive as JSON text."""
        if isinstance(v, str):
            return json.loads(v)
        return v

    @field_validator("grid_zoom_thresholds")
    @classmethod
    def validate_grid_thresholds(cls, v):
        if not v:
            raise ValueError("at least one grid threshold is required")
        for min_zoom, minor, major in v:
            if minor <= 0 or major <= 0:
                raise ValueError(f"grid spacing must be > 0, got: {(min_zoom, minor, major)}")
        return sorted(v, key=lambda t: t[0], reverse=True)


def _env_overrides(environ) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in EngineConfig.model_fields:
        key = f"{ENV_PREFIX}{name.upper()}"
        if key in environ:
            overrides[name] = environ[key]
    return overrides


def load_config(environ: Optional[dict] = None, **overrides: Any) -> EngineConfig:
    """
    Build an EngineConfig from keyword overrides and the environment.

    Environment variables win over keyword overrides. Values are coerced
    and checked by pydantic, so a bad value raises ValidationError.
    """
    environ = os.environ if environ is None else environ
    values = dict(overrides)
    from_env = _env_overrides(environ)
    if from_env:
        logger.debug("Config overrides from environment: %s", sorted(from_env))
    values.update(from_env)
    return EngineConfig(**values)


_default_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Process-wide default config, loaded lazily on first use."""
    global _default_config
    if _default_config is None:
        _default_config = load_config()
    return _default_config


def set_config(config: Optional[EngineConfig]):
    """Replace (or with None, reset) the process-wide default config."""
    global _default_config
    _default_config = config
