"""
Unit tests for core/selection.py - the single-node edit state machine.

Tests:
- UNSELECTED / EDITING transitions
- Live reads of the selected node
- Write-through edits
- Reset on deletion of the selected node
"""
import pytest

from core.ontology import SelectionStatus
from infrastructure.event_bus import EventType, get_event_bus
from infrastructure.logger import MutationType


@pytest.fixture
def two_nodes(fresh_db):
    return fresh_db, fresh_db.add_node(), fresh_db.add_node()


class TestTransitions:

    def test_starts_unselected(self, fresh_db):
        selection = fresh_db.selection
        assert selection.status == SelectionStatus.UNSELECTED
        assert selection.is_editing is False
        assert selection.selected_node is None
        assert selection.message is None

    def test_select_enters_editing(self, two_nodes):
        db, n1, _ = two_nodes

        assert db.selection.select(n1) is True

        assert db.selection.status == SelectionStatus.EDITING
        assert db.selection.selected_id == n1
        assert db.selection.message == "test message"

    def test_select_unknown_node_is_refused(self, fresh_db):
        assert fresh_db.selection.select("node-404") is False
        assert fresh_db.selection.status == SelectionStatus.UNSELECTED

    def test_select_other_node_switches_focus(self, two_nodes):
        db, n1, n2 = two_nodes
        db.selection.select(n1)

        db.selection.select(n2)

        assert db.selection.selected_id == n2

    def test_deselect_returns_to_unselected(self, two_nodes):
        db, n1, _ = two_nodes
        db.selection.select(n1)

        db.selection.deselect()

        assert db.selection.status == SelectionStatus.UNSELECTED
        assert db.selection.selected_id is None

    def test_deselect_when_unselected_is_harmless(self, fresh_db):
        fresh_db.selection.deselect()
        assert fresh_db.selection.status == SelectionStatus.UNSELECTED

    def test_node_deleted_ignores_other_ids(self, two_nodes):
        db, n1, n2 = two_nodes
        db.selection.select(n1)

        assert db.selection.node_deleted(n2) is False
        assert db.selection.selected_id == n1


class TestEditing:

    def test_edit_keeps_editing_state(self, two_nodes):
        db, n1, _ = two_nodes
        db.selection.select(n1)

        assert db.selection.edit_message("hel") is True
        assert db.selection.edit_message("hello") is True

        assert db.selection.status == SelectionStatus.EDITING
        assert db.selection.selected_id == n1
        assert db.get_node(n1).message == "hello"

    def test_reads_reflect_live_store_value(self, two_nodes):
        """An edit made directly on the store shows up in the panel."""
        db, n1, _ = two_nodes
        db.selection.select(n1)

        db.set_message(n1, "changed elsewhere")

        assert db.selection.message == "changed elsewhere"
        assert db.selection.selected_node is db.get_node(n1)

    def test_edit_targets_selected_node_after_other_deletes(self, fresh_db):
        """Selection is keyed by identity, so earlier deletes don't shift it."""
        n1 = fresh_db.add_node()
        n2 = fresh_db.add_node()
        n3 = fresh_db.add_node()
        fresh_db.selection.select(n3)

        fresh_db.remove_node(n1)
        fresh_db.selection.edit_message("third")

        assert fresh_db.get_node(n3).message == "third"
        assert fresh_db.get_node(n2).message == "test message"

    def test_edit_without_selection_is_refused(self, two_nodes):
        db, n1, n2 = two_nodes

        assert db.selection.edit_message("lost") is False
        assert db.get_node(n1).message == "test message"
        assert db.get_node(n2).message == "test message"

    def test_delete_after_edit_clears_everything(self, two_nodes):
        db, n1, _ = two_nodes
        db.selection.select(n1)
        db.selection.edit_message("hello")

        db.remove_node(n1)

        assert db.selection.status == SelectionStatus.UNSELECTED
        assert db.selection.to_dict() == {
            "status": "unselected",
            "node_id": None,
            "payload": None,
        }
        assert db.selection.edit_message("again") is False

    def test_to_dict_while_editing(self, two_nodes):
        db, n1, _ = two_nodes
        db.selection.select(n1)

        assert db.selection.to_dict() == {
            "status": "editing",
            "node_id": n1,
            "payload": {"message": "test message"},
        }


class TestSelectionEvents:

    def test_changes_are_logged_and_published(self, two_nodes):
        db, n1, n2 = two_nodes
        published = []
        get_event_bus().subscribe(EventType.SELECTION_CHANGED, lambda e: published.append(e.payload))

        db.selection.select(n1)
        db.selection.select(n1)
        db.selection.select(n2)
        db.remove_node(n2)

        assert published == [
            {"node_id": n1, "previous_node_id": None},
            {"node_id": n2, "previous_node_id": n1},
            {"node_id": None, "previous_node_id": n2},
        ]
        logged = db.logger.get_events_by_type(MutationType.SELECTION_CHANGED.value)
        assert len(logged) == 3
