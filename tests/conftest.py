"""
Pytest configuration and shared fixtures for diagram engine tests.
"""

import pytest

from diagram_engine.config import EngineConfig, set_config
from diagram_engine.geometry import Dimensions, Position
from diagram_engine.models import ConnectionPoint, RectangleShape, StraightConnector
from diagram_engine.rendering import connector_renderers, shape_renderers
from diagram_engine.session import DiagramSession
from diagram_engine.validation import shape_kind_rules


# ============== Global State ==============

@pytest.fixture(autouse=True)
def reset_engine_state():
    """Restore the default config and built-in registries around each test."""
    set_config(None)
    yield
    set_config(None)
    shape_renderers.reset()
    connector_renderers.reset()
    shape_kind_rules.reset()


# ============== Model Fixtures ==============

@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def shape_a() -> RectangleShape:
    """Rectangle at bounds (0, 0, 100, 50)."""
    return RectangleShape(
        id="shape-a",
        position=Position(x=0, y=0),
        dimensions=Dimensions(width=100, height=50),
    )


@pytest.fixture
def shape_b() -> RectangleShape:
    """Rectangle at bounds (200, 0, 100, 50)."""
    return RectangleShape(
        id="shape-b",
        position=Position(x=200, y=0),
        dimensions=Dimensions(width=100, height=50),
    )


@pytest.fixture
def shape_map(shape_a, shape_b) -> dict:
    return {shape_a.id: shape_a, shape_b.id: shape_b}


@pytest.fixture
def straight_e_to_w() -> StraightConnector:
    """Straight connector from shape-a's east anchor to shape-b's west anchor."""
    return StraightConnector(
        id="conn-ab",
        source=ConnectionPoint(shape_id="shape-a", anchor="e"),
        target=ConnectionPoint(shape_id="shape-b", anchor="w"),
    )


# ============== Session Fixtures ==============

@pytest.fixture
def session(config) -> DiagramSession:
    """An empty session with default config."""
    return DiagramSession(config)


@pytest.fixture
def populated_session(session, shape_a, shape_b, straight_e_to_w) -> DiagramSession:
    """Session holding shape-a, shape-b and one connector between them."""
    assert session.add_shape(shape_a)
    assert session.add_shape(shape_b)
    assert session.add_connector(straight_e_to_w)
    session.clear_history()
    return session
