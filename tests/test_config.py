"""
Tests for engine configuration and structured errors.
"""

import logging

import pytest
from pydantic import ValidationError

from diagram_engine.config import EngineConfig, get_config, load_config, set_config
from diagram_engine.errors import DiagramError, ErrorCode, ErrorSeverity, create_error, log_error


class TestEngineConfig:
    """Tests for config loading."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.hit_tolerance == 5.0
        assert config.max_history == 50
        assert config.connector_padding == 10.0

    def test_environment_overrides(self):
        config = load_config(environ={"DIAGRAM_ENGINE_HIT_TOLERANCE": "8", "DIAGRAM_ENGINE_MAX_HISTORY": "10"})
        assert config.hit_tolerance == 8.0
        assert config.max_history == 10

    def test_environment_beats_keyword(self):
        config = load_config(environ={"DIAGRAM_ENGINE_HIT_TOLERANCE": "8"}, hit_tolerance=2)
        assert config.hit_tolerance == 8.0

    def test_keyword_overrides(self):
        assert load_config(environ={}, precise_hit_testing=True).precise_hit_testing is True

    def test_grid_thresholds_from_environment(self):
        config = load_config(environ={"DIAGRAM_ENGINE_GRID_ZOOM_THRESHOLDS": "[[0, 8, 32], [1, 4, 16]]"})
        assert config.grid_zoom_thresholds == [(1.0, 4.0, 16.0), (0.0, 8.0, 32.0)]

    def test_grid_defaults(self):
        config = EngineConfig()
        assert config.snap_mode == "none"
        assert config.grid_zoom_thresholds[0] == (4.0, 1.0, 4.0)

    @pytest.mark.parametrize("field,value", [
        ("hit_tolerance", -1),
        ("max_history", 0),
        ("connector_stroke_width", 101),
        ("snap_mode", "diagonal"),
        ("grid_zoom_thresholds", []),
        ("grid_zoom_thresholds", [(0.0, 0, 10)]),
    ])
    def test_rejects_bad_values(self, field, value):
        with pytest.raises(ValidationError):
            EngineConfig(**{field: value})

    def test_global_config(self):
        custom = EngineConfig(hit_tolerance=1)
        set_config(custom)
        assert get_config() is custom
        set_config(None)
        assert get_config() is not custom


class TestDiagramError:
    """Tests for structured errors."""

    def test_create_error_stores_code_value(self):
        error = create_error("Entity not found: x", ErrorCode.ENTITY_NOT_FOUND, entity_id="x")
        assert error.code == "ENTITY_NOT_FOUND"
        assert error.context == {"entity_id": "x"}
        assert str(error) == "[ENTITY_NOT_FOUND] Entity not found: x"

    def test_to_dict(self):
        error = DiagramError("oops", ErrorSeverity.WARNING)
        assert error.to_dict() == {"severity": "warning", "message": "oops"}

    def test_log_error_uses_severity_level(self, caplog):
        error = create_error("careful", severity=ErrorSeverity.WARNING)
        with caplog.at_level(logging.DEBUG, logger="diagram_engine.errors"):
            returned = log_error(error)
        assert returned is error
        assert caplog.records[-1].levelno == logging.WARNING
        assert "careful" in caplog.records[-1].getMessage()
