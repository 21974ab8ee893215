"""
Diagram Session - owner of a diagram's entities and edit history.

This module implements:
- O(1) shape/connector lookups plus a shape -> connectors index
- Internal mutators that validate before every raw collection edit
- Public edit operations that run as commands on a bounded undo/redo history
- Live drag updates that bypass history, committed as one move command
- Change callbacks for UI layers

The session is single-threaded: all calls are expected from the same
interaction thread.
"""

import logging
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from .commands import (
    AddEntityCommand,
    Command,
    CommandHistory,
    CompositeCommand,
    DeleteConnectorCommand,
    DeleteEntitiesCommand,
    DeleteShapeCommand,
    EntityMove,
    ImportDiagramCommand,
    MoveEntitiesCommand,
    UpdateEntityCommand,
)
from .config import EngineConfig, get_config
from .connectors import calculate_connector_bounds, recalculate_anchors
from .entity_system import EntitySystem
from .errors import DiagramError, ErrorCode, ErrorSeverity, create_error, log_error
from .geometry import Bounds, Dimensions, Position, snap_to_grid
from .models import (
    BaseConnector,
    BaseShape,
    DiagramSnapshot,
    Entity,
    UnknownFieldError,
    apply_updates,
    is_connector,
)
from .validation import ValidationContext, ValidationResult

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = ("id", "type")


class MoveGesture:
    """
    One drag interaction.

    Positions change live through the session's internal path while the
    pointer moves; commit() records the whole drag as a single command and
    cancel() puts every shape back where it started.
    """

    def __init__(self, session: "DiagramSession", shape_ids: Iterable[str]):
        self.session = session
        self.start_positions: dict[str, Position] = {}
        for shape_id in shape_ids:
            shape = session.get_shape(shape_id)
            if shape is not None:
                self.start_positions[shape_id] = shape.position
        self.active = True

    def update(self, dx: float, dy: float, zoom: float = 1.0, snap_mode: Optional[str] = None):
        """
        Move every shape by (dx, dy) relative to its start position.

        Each new top-left is snapped to the grid for `zoom` unless the snap
        mode (defaulting to the config's) is 'none'.
        """
        if not self.active:
            return
        config = self.session.config
        mode = config.snap_mode if snap_mode is None else snap_mode
        for shape_id, start in self.start_positions.items():
            target = snap_to_grid(start.x + dx, start.y + dy, zoom, mode, config.grid_zoom_thresholds)
            self.session.move_entity_live(shape_id, target)

    def moves(self) -> list[EntityMove]:
        moves = []
        for shape_id, start in self.start_positions.items():
            shape = self.session.get_shape(shape_id)
            if shape is not None:
                moves.append(EntityMove(shape_id, start, shape.position))
        return moves

    def commit(self) -> bool:
        """Record the drag on the history. Returns False if nothing moved."""
        if not self.active:
            return False
        self.active = False
        return self.session.commit_move(self.moves())

    def cancel(self):
        if not self.active:
            return
        self.active = False
        for shape_id, start in self.start_positions.items():
            self.session.move_entity_live(shape_id, start)


class DiagramSession:
    """
    Manages one diagram's entities, validation and history.

    Shapes and connectors share one id namespace. Entities are treated as
    immutable values: every edit replaces the stored model.
    """

    def __init__(self, config: Optional[EngineConfig] = None, entity_system: Optional[EntitySystem] = None):
        self._config = config or get_config()
        self._entity_system = entity_system or EntitySystem(self._config)
        self._history = CommandHistory(max_size=self._config.max_history)
        self._on_change_callbacks: list[Callable] = []
        self._last_error: Optional[DiagramError] = None

        # O(1) lookup indexes
        self._shapes: dict[str, BaseShape] = {}
        self._connectors: dict[str, BaseConnector] = {}
        self._connectors_by_shape: dict[str, set[str]] = {}  # shape_id -> connector ids

    # --- Index Management ---

    def _index_connector(self, connector: BaseConnector):
        for shape_id in connector.attached_shape_ids():
            if shape_id not in self._connectors_by_shape:
                self._connectors_by_shape[shape_id] = set()
            self._connectors_by_shape[shape_id].add(connector.id)

    def _unindex_connector(self, connector: BaseConnector):
        for shape_id in connector.attached_shape_ids():
            if shape_id in self._connectors_by_shape:
                self._connectors_by_shape[shape_id].discard(connector.id)
                if not self._connectors_by_shape[shape_id]:
                    del self._connectors_by_shape[shape_id]

    def _rebuild_indexes(self):
        self._connectors_by_shape.clear()
        for connector in self._connectors.values():
            self._index_connector(connector)

    @staticmethod
    def _insert_at(items: dict, key: str, value: Any, index: Optional[int]):
        """Insert into an ordered dict at a z-order position (None appends)."""
        if index is None or index >= len(items):
            items[key] = value
            return
        tail = list(items.items())[index:]
        for tail_key, _ in tail:
            del items[tail_key]
        items[key] = value
        items.update(tail)

    # --- Properties ---

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def shapes(self) -> Mapping[str, BaseShape]:
        """Read-only view of the shapes, in insertion order."""
        return MappingProxyType(self._shapes)

    @property
    def connectors(self) -> Mapping[str, BaseConnector]:
        """Read-only view of the connectors, in insertion order."""
        return MappingProxyType(self._connectors)

    @property
    def history(self) -> CommandHistory:
        return self._history

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def last_error(self) -> Optional[DiagramError]:
        """The most recent recoverable failure, if any."""
        return self._last_error

    # --- Change Callbacks ---

    def on_change(self, callback: Callable):
        """Register a callback for entity changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    def _fail(
        self,
        message: str,
        code: ErrorCode,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        **context: Any,
    ) -> bool:
        self._last_error = log_error(create_error(message, code, severity, **context), logger)
        return False

    # --- Queries ---

    def get_shape(self, shape_id: str) -> Optional[BaseShape]:
        return self._shapes.get(shape_id)

    def get_connector(self, connector_id: str) -> Optional[BaseConnector]:
        return self._connectors.get(connector_id)

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        """Get a shape or connector by ID (O(1) lookup)."""
        if entity_id in self._shapes:
            return self._shapes[entity_id]
        return self._connectors.get(entity_id)

    def has_entity(self, entity_id: str) -> bool:
        return entity_id in self._shapes or entity_id in self._connectors

    def z_index(self, entity_id: str) -> Optional[int]:
        """Position of an entity within its own collection (shapes or connectors)."""
        collection = self._shapes if entity_id in self._shapes else self._connectors
        for index, key in enumerate(collection):
            if key == entity_id:
                return index
        return None

    def get_connectors_for_shape(self, shape_id: str) -> list[BaseConnector]:
        """Connectors attached to a shape, in insertion order."""
        ids = self._connectors_by_shape.get(shape_id)
        if not ids:
            return []
        return [c for cid, c in self._connectors.items() if cid in ids]

    def entities(self) -> list[Entity]:
        """All entities in z-order (shapes below connectors)."""
        return [*self._shapes.values(), *self._connectors.values()]

    def get_bounds(self, entity_id: str) -> Optional[Bounds]:
        entity = self.get_entity(entity_id)
        if entity is None:
            return None
        return self._entity_system.get_bounds(entity, self._shapes)

    def entity_at(self, x: float, y: float) -> Optional[Entity]:
        """Topmost entity under the point."""
        return self._entity_system.find_entity_at_point(self.entities(), x, y, self._shapes)

    def entities_in_box(self, box: Bounds) -> list[Entity]:
        return self._entity_system.find_entities_in_box(self.entities(), box, self._shapes)

    def validate_all(self) -> dict[str, ValidationResult]:
        """Validate every entity against the current shape map."""
        return self._entity_system.validate_many(self.entities(), ValidationContext(shapes=self._shapes))

    def snapshot(self) -> DiagramSnapshot:
        return DiagramSnapshot(shapes=list(self._shapes.values()), connectors=list(self._connectors.values()))

    def to_json_dict(self) -> dict:
        return self.snapshot().to_json_dict()

    # --- Internal mutators (no history) ---

    def _validate(self, entity: Entity) -> ValidationResult:
        return self._entity_system.validate(entity, ValidationContext(shapes=self._shapes))

    def _with_derived_bounds(self, connector: BaseConnector) -> BaseConnector:
        bounds = calculate_connector_bounds(connector, self._shapes, self._config.connector_padding)
        if bounds is None:
            return connector
        return connector.model_copy(update={
            "position": Position(x=bounds.x, y=bounds.y),
            "dimensions": Dimensions(width=bounds.width, height=bounds.height),
        })

    def _refresh_connectors_for(self, shape_id: str):
        for connector in self.get_connectors_for_shape(shape_id):
            self._connectors[connector.id] = self._with_derived_bounds(connector)

    def _internal_add(self, entity: Entity, index: Optional[int] = None) -> bool:
        """
        Validate and insert an entity. A failed check leaves the collections unchanged.

        `index` restores a z-order position on undo; by default the entity goes on top.
        """
        if self.has_entity(entity.id):
            return self._fail(f"Entity ID already exists: {entity.id}", ErrorCode.DUPLICATE_ID, entity_id=entity.id)

        result = self._validate(entity)
        if not result.valid:
            code = ErrorCode.INVALID_CONNECTOR if is_connector(entity) else ErrorCode.INVALID_SHAPE
            return self._fail(
                f"Cannot add {entity.type} {entity.id}: {'; '.join(result.errors)}",
                code,
                entity_id=entity.id,
                errors=result.errors,
            )

        if is_connector(entity):
            self._insert_at(self._connectors, entity.id, self._with_derived_bounds(entity), index)
            self._index_connector(entity)
        else:
            self._insert_at(self._shapes, entity.id, entity, index)
            self._refresh_connectors_for(entity.id)
        return True

    def _internal_update(self, entity_id: str, updates: dict[str, Any]) -> bool:
        """Validate and apply field updates to an entity."""
        entity = self.get_entity(entity_id)
        if entity is None:
            return self._fail(
                f"Entity not found: {entity_id}", ErrorCode.ENTITY_NOT_FOUND, ErrorSeverity.WARNING,
                entity_id=entity_id,
            )
        for name in IMMUTABLE_FIELDS:
            if name in updates and updates[name] != getattr(entity, name):
                return self._fail(
                    f"Field '{name}' cannot be changed on {entity_id}", ErrorCode.IMMUTABLE_FIELD,
                    entity_id=entity_id,
                )
        try:
            updated = apply_updates(entity, updates)
        except ValidationError as e:
            return self._fail(
                f"Invalid update for {entity_id}: {e.error_count()} malformed field(s)",
                ErrorCode.INVALID_UPDATE,
                entity_id=entity_id,
                errors=[err["msg"] for err in e.errors()],
            )
        except UnknownFieldError as e:
            return self._fail(str(e), ErrorCode.INVALID_UPDATE, entity_id=entity_id, fields=e.fields)
        return self._store_updated(entity, updated)

    def _internal_replace(self, entity: Entity) -> bool:
        """Swap in a complete entity (same id and type) after validating it."""
        current = self.get_entity(entity.id)
        if current is None:
            return self._fail(
                f"Entity not found: {entity.id}", ErrorCode.ENTITY_NOT_FOUND, ErrorSeverity.WARNING,
                entity_id=entity.id,
            )
        if current.type != entity.type:
            return self._fail(f"Field 'type' cannot be changed on {entity.id}", ErrorCode.IMMUTABLE_FIELD)
        return self._store_updated(current, entity)

    def _store_updated(self, old: Entity, new: Entity) -> bool:
        result = self._validate(new)
        if not result.valid:
            return self._fail(
                f"Invalid update for {old.id}: {'; '.join(result.errors)}",
                ErrorCode.INVALID_UPDATE,
                entity_id=old.id,
                errors=result.errors,
            )
        if is_connector(new):
            self._unindex_connector(old)
            self._connectors[new.id] = self._with_derived_bounds(new)
            self._index_connector(new)
        else:
            self._shapes[new.id] = new
            self._refresh_connectors_for(new.id)
        return True

    def _internal_delete(self, entity_id: str) -> bool:
        """
        Remove one entity. Does not cascade: deleting a shape here leaves
        its connectors dangling, which callers resolve themselves.
        """
        if entity_id in self._shapes:
            del self._shapes[entity_id]
            return True
        connector = self._connectors.pop(entity_id, None)
        if connector is not None:
            self._unindex_connector(connector)
            return True
        return self._fail(
            f"Entity not found: {entity_id}", ErrorCode.ENTITY_NOT_FOUND, ErrorSeverity.WARNING,
            entity_id=entity_id,
        )

    def _internal_load(self, snapshot: DiagramSnapshot):
        """Replace the whole entity set with a snapshot taken from a valid state."""
        self._shapes.clear()
        self._shapes.update((s.id, s) for s in snapshot.shapes)
        self._connectors.clear()
        self._connectors.update((c.id, c) for c in snapshot.connectors)
        self._rebuild_indexes()

    # --- Command execution ---

    def execute(self, command: Command) -> bool:
        """Run a command on the history and notify listeners if it applied."""
        self._last_error = None
        if not self._history.execute(command):
            return False
        self._notify_change()
        return True

    def undo(self) -> bool:
        return self._step(self._history.can_undo, self._history.undo, "Undo")

    def redo(self) -> bool:
        return self._step(self._history.can_redo, self._history.redo, "Redo")

    def _step(self, available: bool, step: Callable[[], Optional[Command]], label: str) -> bool:
        """Run one history step; a failed step leaves the entity set as it was."""
        if not available:
            return False
        self._last_error = None
        before = self.snapshot()
        command = step()
        if command is None:
            self._internal_load(before)
            if self._last_error is None:
                self._fail(f"{label} failed", ErrorCode.HISTORY_STEP_FAILED)
            return False
        self._notify_change()
        return True

    def clear_history(self):
        self._history.clear()

    def clear(self):
        """Start over with an empty diagram and history."""
        self._internal_load(DiagramSnapshot())
        self._history.clear()
        self._last_error = None
        self._notify_change()

    # --- Public edit operations ---

    def add_shape(self, shape: BaseShape) -> bool:
        return self.execute(AddEntityCommand(self, shape))

    def add_connector(self, connector: BaseConnector) -> bool:
        return self.execute(AddEntityCommand(self, connector))

    def add_entity(self, entity: Entity) -> bool:
        return self.execute(AddEntityCommand(self, entity))

    def update_entity(self, entity_id: str, updates: dict[str, Any], description: Optional[str] = None) -> bool:
        """Update fields of a shape or connector as one undoable step."""
        entity = self.get_entity(entity_id)
        if entity is None:
            return self._fail(
                f"Entity not found: {entity_id}", ErrorCode.ENTITY_NOT_FOUND, ErrorSeverity.WARNING,
                entity_id=entity_id,
            )
        kind = "connector" if is_connector(entity) else "shape"
        return self.execute(UpdateEntityCommand(self, entity_id, updates, description or f"Update {kind}"))

    def delete_entity(self, entity_id: str) -> bool:
        """Delete a shape (with its connectors) or a connector."""
        self._last_error = None
        if entity_id in self._shapes:
            return self.execute(DeleteShapeCommand(self, entity_id))
        if entity_id in self._connectors:
            return self.execute(DeleteConnectorCommand(self, entity_id))
        return self._fail(
            f"Entity not found: {entity_id}", ErrorCode.ENTITY_NOT_FOUND, ErrorSeverity.WARNING,
            entity_id=entity_id,
        )

    def delete_entities(self, entity_ids: Iterable[str]) -> bool:
        """Delete a selection as one undoable step."""
        return self.execute(DeleteEntitiesCommand(self, list(entity_ids)))

    # --- Moves ---

    def move_entity_live(self, shape_id: str, position: Position) -> bool:
        """Move a shape without recording history (for drag previews)."""
        if shape_id not in self._shapes:
            return self._fail(
                f"Shape not found: {shape_id}", ErrorCode.ENTITY_NOT_FOUND, ErrorSeverity.WARNING,
                entity_id=shape_id,
            )
        if not self._internal_update(shape_id, {"position": position}):
            return False
        self._notify_change()
        return True

    def begin_move(self, shape_ids: Iterable[str]) -> MoveGesture:
        """Start a drag of one or more shapes."""
        return MoveGesture(self, shape_ids)

    def commit_move(self, moves: list[EntityMove]) -> bool:
        """Record an already previewed drag as one command."""
        moves = [
            m for m in moves
            if m.entity_id in self._shapes
            and (m.from_position.x, m.from_position.y) != (m.to_position.x, m.to_position.y)
        ]
        if not moves:
            return False
        return self.execute(MoveEntitiesCommand(self, moves))

    def move_entities(self, positions: Mapping[str, Position]) -> bool:
        """Move several shapes to new positions as one undoable step."""
        moves = []
        for shape_id, position in positions.items():
            shape = self._shapes.get(shape_id)
            if shape is None:
                self._fail(
                    f"Shape not found: {shape_id}", ErrorCode.ENTITY_NOT_FOUND, ErrorSeverity.WARNING,
                    entity_id=shape_id,
                )
                continue
            moves.append(EntityMove(shape_id, shape.position, position))
        return self.commit_move(moves)

    # --- Anchors ---

    def recalculate_anchors(self, shape_id: Optional[str] = None) -> int:
        """
        Snap connectors to the nearest anchor pair between their shapes.

        Applies to the connectors of `shape_id`, or to every connector.
        All changes form one undoable step.

        Returns:
            Number of connectors whose anchors changed
        """
        connectors = (
            self.get_connectors_for_shape(shape_id) if shape_id is not None
            else list(self._connectors.values())
        )
        commands: list[Command] = []
        for connector in connectors:
            updates = recalculate_anchors(connector, self._shapes)
            if updates:
                commands.append(UpdateEntityCommand(self, connector.id, updates, "Recalculate anchors"))
        if not commands:
            return 0
        if not self.execute(CompositeCommand(commands, "Recalculate anchors")):
            return 0
        return len(commands)

    # --- Import / export ---

    def check_import(self, snapshot: DiagramSnapshot, mode: str = "replace") -> list[str]:
        """Problems that would leave the diagram with duplicate ids or invalid entities."""
        errors: list[str] = []
        existing = set() if mode == "replace" else set(self._shapes) | set(self._connectors)
        seen: set[str] = set()
        for entity in [*snapshot.shapes, *snapshot.connectors]:
            if entity.id in seen or entity.id in existing:
                errors.append(f"Duplicate entity ID: {entity.id}")
            seen.add(entity.id)

        shapes = {} if mode == "replace" else dict(self._shapes)
        shapes.update({s.id: s for s in snapshot.shapes})
        results = self._entity_system.validate_many(
            [*snapshot.shapes, *snapshot.connectors], ValidationContext(shapes=shapes)
        )
        for entity_id, result in results.items():
            errors.extend(f"{entity_id}: {error}" for error in result.errors)
        return errors

    def import_diagram(self, snapshot: Union[DiagramSnapshot, dict], mode: str = "replace") -> bool:
        """
        Load the output of an import adapter as one undoable step.

        The whole snapshot is checked first; any problem rejects the import.
        """
        self._last_error = None
        if isinstance(snapshot, dict):
            snapshot = DiagramSnapshot.from_json_dict(snapshot)
        command = ImportDiagramCommand(self, snapshot, mode)
        errors = self.check_import(snapshot, mode)
        if errors:
            return self._fail(
                f"Import rejected: {len(errors)} problem(s)", ErrorCode.INVALID_IMPORT, errors=errors,
            )
        return self.execute(command)
