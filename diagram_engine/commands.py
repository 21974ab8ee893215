"""
Command pattern for reversible edits.

Each command captures exactly what it needs to reverse itself and
performs its edits through the session's internal mutators, which
validate before changing anything. CommandHistory keeps a bounded
undo stack and a redo stack.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from .geometry import Position
from .models import BaseConnector, BaseShape, DiagramSnapshot, Entity

if TYPE_CHECKING:
    from .session import DiagramSession

logger = logging.getLogger(__name__)


class Command(ABC):
    """A reversible, atomic mutation."""

    description: str = "Command"

    @abstractmethod
    def execute(self) -> bool:
        """Apply the edit. Returns False if nothing could be applied."""

    @abstractmethod
    def undo(self) -> bool:
        """Reverse the edit."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.description!r}>"


class AddEntityCommand(Command):
    """Insert a shape or connector; undo deletes it by id."""

    def __init__(self, session: "DiagramSession", entity: Entity):
        self.session = session
        self.entity = entity
        kind = "connector" if isinstance(entity, BaseConnector) else getattr(entity, "shape_type", "entity")
        self.description = f"Add {kind}"

    def execute(self) -> bool:
        return self.session._internal_add(self.entity)

    def undo(self) -> bool:
        return self.session._internal_delete(self.entity.id)


class DeleteConnectorCommand(Command):
    """Remove one connector; undo re-inserts the captured copy at its old z-order."""

    def __init__(self, session: "DiagramSession", connector_id: str):
        self.session = session
        self.connector_id = connector_id
        self.connector: Optional[BaseConnector] = None
        self.index: Optional[int] = None
        self.description = "Delete connector"

    def execute(self) -> bool:
        self.connector = self.session.get_connector(self.connector_id)
        if self.connector is None:
            return False
        self.index = self.session.z_index(self.connector_id)
        return self.session._internal_delete(self.connector_id)

    def undo(self) -> bool:
        if self.connector is None:
            return False
        return self.session._internal_add(self.connector, self.index)


def _capture(session: "DiagramSession", entities: list) -> list[tuple[Optional[int], Entity]]:
    """Pair entities with their z-order, lowest first, so re-inserting restores the order."""
    captured = [(session.z_index(entity.id), entity) for entity in entities]
    captured.sort(key=lambda item: item[0] if item[0] is not None else -1)
    return captured


def _restore(session: "DiagramSession", captured: list[tuple[Optional[int], Entity]]) -> bool:
    restored = True
    for index, entity in captured:
        restored = session._internal_add(entity, index) and restored
    return restored


class DeleteShapeCommand(Command):
    """
    Remove a shape together with every connector attached to it.

    The shape and its connectors form one undo step; undo restores the
    shape first so the connectors' endpoints exist when they come back.
    """

    def __init__(self, session: "DiagramSession", shape_id: str):
        self.session = session
        self.shape_id = shape_id
        self.shape: Optional[BaseShape] = None
        self.shape_index: Optional[int] = None
        self.connectors: list[tuple[Optional[int], BaseConnector]] = []
        self.description = "Delete shape"

    def execute(self) -> bool:
        self.shape = self.session.get_shape(self.shape_id)
        if self.shape is None:
            return False
        self.description = f"Delete {self.shape.shape_type}"
        self.shape_index = self.session.z_index(self.shape_id)
        self.connectors = _capture(self.session, self.session.get_connectors_for_shape(self.shape_id))
        for _, connector in self.connectors:
            self.session._internal_delete(connector.id)
        return self.session._internal_delete(self.shape_id)

    def undo(self) -> bool:
        if self.shape is None:
            return False
        restored = self.session._internal_add(self.shape, self.shape_index)
        return _restore(self.session, self.connectors) and restored

    @property
    def connector_count(self) -> int:
        return len(self.connectors)


class DeleteEntitiesCommand(Command):
    """Delete a multi-selection of shapes and connectors as one step."""

    def __init__(self, session: "DiagramSession", entity_ids: list[str]):
        self.session = session
        self.entity_ids = list(entity_ids)
        self.shapes: list[tuple[Optional[int], BaseShape]] = []
        self.connectors: list[tuple[Optional[int], BaseConnector]] = []
        self.description = f"Delete {len(self.entity_ids)} entities"

    def execute(self) -> bool:
        shapes: list[BaseShape] = []
        connectors: list[BaseConnector] = []
        connector_ids: set[str] = set()

        for entity_id in self.entity_ids:
            shape = self.session.get_shape(entity_id)
            if shape is not None:
                shapes.append(shape)
                for connector in self.session.get_connectors_for_shape(entity_id):
                    if connector.id not in connector_ids:
                        connector_ids.add(connector.id)
                        connectors.append(connector)
                continue
            connector = self.session.get_connector(entity_id)
            if connector is not None and connector.id not in connector_ids:
                connector_ids.add(connector.id)
                connectors.append(connector)

        if not shapes and not connectors:
            return False
        self.shapes = _capture(self.session, shapes)
        self.connectors = _capture(self.session, connectors)
        for _, connector in self.connectors:
            self.session._internal_delete(connector.id)
        for _, shape in self.shapes:
            self.session._internal_delete(shape.id)
        return True

    def undo(self) -> bool:
        restored = _restore(self.session, self.shapes)
        return _restore(self.session, self.connectors) and restored


class UpdateEntityCommand(Command):
    """Apply field updates; undo re-applies the full pre-update snapshot."""

    def __init__(self, session: "DiagramSession", entity_id: str, updates: dict[str, Any],
                 description: str = "Update entity"):
        self.session = session
        self.entity_id = entity_id
        self.updates = dict(updates)
        self.before: Optional[Entity] = None
        self.description = description

    def execute(self) -> bool:
        self.before = self.session.get_entity(self.entity_id)
        if self.before is None:
            return False
        return self.session._internal_update(self.entity_id, self.updates)

    def undo(self) -> bool:
        if self.before is None:
            return False
        return self.session._internal_replace(self.before)


@dataclass
class EntityMove:
    """One shape's displacement within a drag gesture."""
    entity_id: str
    from_position: Position
    to_position: Position


class MoveEntitiesCommand(Command):
    """All shape moves of one drag gesture, undone together."""

    def __init__(self, session: "DiagramSession", moves: list[EntityMove]):
        self.session = session
        self.moves = list(moves)
        self.description = "Move shape" if len(self.moves) == 1 else f"Move {len(self.moves)} shapes"

    def execute(self) -> bool:
        moved = False
        for move in self.moves:
            moved = self.session._internal_update(move.entity_id, {"position": move.to_position}) or moved
        return moved

    def undo(self) -> bool:
        restored = True
        for move in reversed(self.moves):
            restored = self.session._internal_update(move.entity_id, {"position": move.from_position}) and restored
        return restored

    @property
    def shape_count(self) -> int:
        return len(self.moves)


class CompositeCommand(Command):
    """Run several commands as one; undo runs them in reverse order."""

    def __init__(self, commands: list[Command], description: str = "Composite"):
        self.commands = list(commands)
        self.description = description

    def execute(self) -> bool:
        executed = False
        for command in self.commands:
            executed = command.execute() or executed
        return executed

    def undo(self) -> bool:
        restored = True
        for command in reversed(self.commands):
            restored = command.undo() and restored
        return restored

    @property
    def command_count(self) -> int:
        return len(self.commands)


class ImportDiagramCommand(Command):
    """
    Load a snapshot produced by an import adapter.

    mode='replace' swaps out the whole entity set, mode='append' adds to
    it. Undo restores the entity set captured before the import.
    """

    MODES = ("replace", "append")

    def __init__(self, session: "DiagramSession", snapshot: DiagramSnapshot, mode: str = "replace"):
        if mode not in self.MODES:
            raise ValueError(f"Unknown import mode: {mode!r} (expected one of {self.MODES})")
        self.session = session
        self.snapshot = snapshot
        self.mode = mode
        self.before: Optional[DiagramSnapshot] = None
        count = len(snapshot.shapes) + len(snapshot.connectors)
        self.description = f"Import diagram ({count} entities)"

    def execute(self) -> bool:
        self.before = self.session.snapshot()
        if self.mode == "replace":
            self.session._internal_load(DiagramSnapshot())
        added = True
        for shape in self.snapshot.shapes:
            added = self.session._internal_add(shape) and added
        for connector in self.snapshot.connectors:
            added = self.session._internal_add(connector) and added
        if not added:
            # Partial imports are rolled back
            self.session._internal_load(self.before)
        return added

    def undo(self) -> bool:
        if self.before is None:
            return False
        self.session._internal_load(self.before)
        return True


class CommandHistory:
    """
    Bounded undo/redo stacks.

    Executing a new command clears the redo stack. When the undo stack
    exceeds `max_size` the oldest command is dropped.
    """

    def __init__(self, max_size: int = 50):
        self._undo_stack: list[Command] = []
        self._redo_stack: list[Command] = []
        self._max_size = max_size

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def can_undo(self) -> bool:
        return len(self._undo_stack) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._redo_stack) > 0

    @property
    def undo_count(self) -> int:
        return len(self._undo_stack)

    @property
    def redo_count(self) -> int:
        return len(self._redo_stack)

    def execute(self, command: Command) -> bool:
        """Run a command and record it if it applied."""
        if not command.execute():
            logger.debug("Command %r did not apply, not recorded", command)
            return False
        self._undo_stack.append(command)
        self._redo_stack.clear()
        if len(self._undo_stack) > self._max_size:
            self._undo_stack.pop(0)
        return True

    def undo(self) -> Optional[Command]:
        """
        Undo the most recent command. Returns it, or None if the stack is
        empty or the command could not be reversed. A command that fails to
        reverse stays on the undo stack.
        """
        if not self.can_undo:
            return None
        command = self._undo_stack.pop()
        if not command.undo():
            logger.warning("Undo of %r failed, kept on the undo stack", command)
            self._undo_stack.append(command)
            return None
        self._redo_stack.append(command)
        return command

    def redo(self) -> Optional[Command]:
        """Re-apply the most recently undone command. A failed redo stays on the redo stack."""
        if not self.can_redo:
            return None
        command = self._redo_stack.pop()
        if not command.execute():
            logger.warning("Redo of %r failed, kept on the redo stack", command)
            self._redo_stack.append(command)
            return None
        self._undo_stack.append(command)
        return command

    def clear(self):
        self._undo_stack.clear()
        self._redo_stack.clear()

    def undo_description(self) -> Optional[str]:
        return self._undo_stack[-1].description if self._undo_stack else None

    def redo_description(self) -> Optional[str]:
        return self._redo_stack[-1].description if self._redo_stack else None

    def history(self) -> list[str]:
        """Descriptions of undoable commands, oldest first."""
        return [command.description for command in self._undo_stack]
