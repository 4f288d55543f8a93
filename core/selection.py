"""
FLOWBUILDER SELECTION - The single-node edit state machine

States:
    UNSELECTED
    EDITING(node_id)

Transitions:
    UNSELECTED  --select(id)-->        EDITING(id)
    EDITING(a)  --select(b)-->         EDITING(b)
    EDITING(id) --deselect-->          UNSELECTED
    EDITING(id) --node_deleted(id)-->  UNSELECTED
    EDITING(id) --edit_message-->      EDITING(id)

Selection is keyed by node identity, never by list position. The selected
node is resolved through the store on every read, so the edit panel always
shows live data. Edits are written straight through to the store; there is
no separate uncommitted buffer to go stale.
"""
import logging
from typing import TYPE_CHECKING, Optional

import msgspec

from core.ontology import SelectionStatus
from core.schemas import NodeData

if TYPE_CHECKING:
    from core.graph_db import FlowDB


logger = logging.getLogger("flowbuilder.selection")


class SelectionState:
    """
    Tracks which node, if any, is open in the edit panel.

    Owned by a FlowDB; the store calls node_deleted() as part of
    remove_node so a deleted node can never stay selected.
    """

    def __init__(self, db: "FlowDB"):
        self._db = db
        self._node_id: Optional[str] = None

    @property
    def status(self) -> SelectionStatus:
        if self._node_id is None:
            return SelectionStatus.UNSELECTED
        return SelectionStatus.EDITING

    @property
    def is_editing(self) -> bool:
        return self._node_id is not None

    @property
    def selected_id(self) -> Optional[str]:
        return self._node_id

    @property
    def selected_node(self) -> Optional[NodeData]:
        """The live node under edit, looked up by identity."""
        if self._node_id is None:
            return None
        return self._db.find_node(self._node_id)

    @property
    def message(self) -> Optional[str]:
        """Text to show in the edit panel, or None when nothing is selected."""
        node = self.selected_node
        return node.message if node is not None else None

    def select(self, node_id: str) -> bool:
        """
        Open a node in the edit panel.

        Returns:
            False (and no state change) if the node does not exist
        """
        if not self._db.has_node(node_id):
            logger.debug(f"Ignoring select of unknown node {node_id}")
            return False
        previous = self._node_id
        self._node_id = node_id
        if previous != node_id:
            self._db.publish_selection(node_id, previous)
        return True

    def deselect(self) -> None:
        """Close the edit panel (the back arrow)."""
        if self._node_id is not None:
            previous = self._node_id
            self._node_id = None
            self._db.publish_selection(None, previous)

    def node_deleted(self, node_id: str) -> bool:
        """
        Drop the selection if it points at a deleted node.

        Returns:
            True if the selection was reset
        """
        if self._node_id == node_id:
            self.deselect()
            return True
        return False

    def edit_message(self, text: str) -> bool:
        """
        Write the edit panel text into the selected node.

        Returns:
            False if nothing is selected or the node has no message field
        """
        if self._node_id is None:
            return False
        node = self.selected_node
        if node is None or node.message is None:
            return False
        return self._db.set_message(self._node_id, text)

    def to_dict(self) -> dict:
        """Plain snapshot of the selection for the edit panel."""
        node = self.selected_node
        return {
            "status": self.status.value,
            "node_id": self._node_id,
            "payload": msgspec.to_builtins(node.payload) if node is not None else None,
        }

    def __repr__(self) -> str:
        return f"SelectionState(status={self.status.value}, node_id={self._node_id!r})"
