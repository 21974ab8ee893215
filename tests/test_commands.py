"""
Tests for the command classes and CommandHistory.
"""

from diagram_engine.commands import (
    Command,
    CommandHistory,
    CompositeCommand,
    DeleteShapeCommand,
    EntityMove,
    MoveEntitiesCommand,
)
from diagram_engine.geometry import Position


class RecordingCommand(Command):
    """Appends to a shared log instead of touching a session."""

    def __init__(self, name: str, log: list, applies: bool = True, reverses: bool = True):
        self.name = name
        self.log = log
        self.applies = applies
        self.reverses = reverses
        self.description = name

    def execute(self) -> bool:
        self.log.append(f"do {self.name}")
        return self.applies

    def undo(self) -> bool:
        self.log.append(f"undo {self.name}")
        return self.reverses


class TestCommandHistory:
    """Tests for the undo/redo stacks."""

    def test_failed_command_not_recorded(self):
        history = CommandHistory()
        assert not history.execute(RecordingCommand("noop", [], applies=False))
        assert not history.can_undo

    def test_undo_redo_order(self):
        log = []
        history = CommandHistory()
        history.execute(RecordingCommand("a", log))
        history.execute(RecordingCommand("b", log))
        assert history.undo().name == "b"
        assert history.redo().name == "b"
        assert log == ["do a", "do b", "undo b", "do b"]

    def test_oldest_dropped_past_max_size(self):
        history = CommandHistory(max_size=2)
        for name in "abc":
            history.execute(RecordingCommand(name, []))
        assert history.history() == ["b", "c"]

    def test_descriptions(self):
        history = CommandHistory()
        assert history.undo_description() is None
        history.execute(RecordingCommand("Add task", []))
        assert history.undo_description() == "Add task"
        history.undo()
        assert history.redo_description() == "Add task"
        assert history.redo_count == 1

    def test_empty_stacks(self):
        history = CommandHistory()
        assert history.undo() is None
        assert history.redo() is None

    def test_failed_undo_stays_on_undo_stack(self):
        history = CommandHistory()
        history.execute(RecordingCommand("stuck", [], reverses=False))
        assert history.undo() is None
        assert history.undo_description() == "stuck"
        assert not history.can_redo

    def test_failed_redo_stays_on_redo_stack(self):
        command = RecordingCommand("flaky", [])
        history = CommandHistory()
        history.execute(command)
        history.undo()
        command.applies = False
        assert history.redo() is None
        assert history.redo_description() == "flaky"
        assert not history.can_undo


class TestCompositeCommand:
    """Tests for grouped commands."""

    def test_undo_runs_in_reverse(self):
        log = []
        composite = CompositeCommand([RecordingCommand("a", log), RecordingCommand("b", log)], "Group")
        composite.execute()
        composite.undo()
        assert log == ["do a", "do b", "undo b", "undo a"]
        assert composite.command_count == 2

    def test_applies_if_any_child_applies(self):
        composite = CompositeCommand([
            RecordingCommand("a", [], applies=False),
            RecordingCommand("b", []),
        ])
        assert composite.execute()


class TestEntityCommands:
    """Tests for commands run directly against a session."""

    def test_delete_shape_captures_connectors(self, populated_session):
        command = DeleteShapeCommand(populated_session, "shape-a")
        assert command.execute()
        assert command.connector_count == 1
        assert command.description == "Delete rectangle"
        assert command.undo()
        assert populated_session.get_connector("conn-ab") is not None

    def test_delete_missing_shape(self, populated_session):
        assert not DeleteShapeCommand(populated_session, "ghost").execute()

    def test_move_description(self, populated_session):
        one = MoveEntitiesCommand(populated_session, [EntityMove("shape-a", Position(), Position(x=1, y=1))])
        assert one.description == "Move shape"
        assert one.shape_count == 1
