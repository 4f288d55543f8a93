"""
FLOWBUILDER EDITOR - The intent boundary

The canvas, the edit panel and the save button talk to the engine through
FlowEditor. Each intent is applied to completion and answered with an
IntentResult; expected failures (rejected connections, unknown kinds,
disconnected nodes) never escape as exceptions. Anything the user needs
to see is published as a notification on the event bus.

Usage:
    editor = FlowEditor()
    first = editor.drop_node("text").node_id
    second = editor.drop_node("text", Position(x=250, y=0)).node_id
    editor.connect(first, second)
    editor.submit()        # IntentResult(ok=True, message="Flow saved")
"""
import logging
from typing import List, Optional

import msgspec

from core.graph_db import (
    FlowDB,
    ConnectionRejectedError,
    UnknownNodeKindError,
)
from core.ontology import resolve_palette_type
from core.schemas import Position
from core.validation import ValidationResult, validate
from infrastructure.event_bus import publish_notification


logger = logging.getLogger("flowbuilder.editor")

UNKNOWN_KIND = "unknown-node-kind"


class IntentResult(msgspec.Struct, kw_only=True, frozen=True):
    """Outcome of a user intent."""
    ok: bool
    reason: Optional[str] = None
    message: str = ""
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    node_ids: List[str] = msgspec.field(default_factory=list)


class FlowEditor:
    """
    Applies UI intents to a FlowDB.

    Attributes:
        db: The graph store being edited
    """

    def __init__(self, db: Optional[FlowDB] = None):
        # An empty FlowDB is falsy, so compare against None
        self.db = db if db is not None else FlowDB()

    @property
    def selection(self):
        return self.db.selection

    # =========================================================================
    # CANVAS INTENTS
    # =========================================================================

    def drop_node(self, palette_type: str, position: Optional[Position] = None) -> IntentResult:
        """Create a node for a block dragged from the sidebar."""
        kind = resolve_palette_type(palette_type) or palette_type
        try:
            node_id = self.db.add_node(kind, position)
        except UnknownNodeKindError as e:
            logger.warning(str(e))
            return self._fail(UNKNOWN_KIND, f"Unknown type: {palette_type}")
        return IntentResult(ok=True, node_id=node_id)

    def connect(
        self,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
    ) -> IntentResult:
        """Draw an edge from source's output to target's input."""
        try:
            edge = self.db.add_edge(source, target, source_handle, target_handle)
        except ConnectionRejectedError as e:
            logger.info(str(e))
            return self._fail(e.reason, e.decision.message, [source, target])
        return IntentResult(ok=True, edge_id=edge.id)

    def disconnect(self, edge_id: str) -> IntentResult:
        """Remove a single edge. Absent edges are a successful no-op."""
        edge = self.db.remove_edge(edge_id)
        return IntentResult(ok=True, edge_id=edge_id if edge is not None else None)

    def delete_node(self, node_id: str) -> IntentResult:
        """Delete a node, its edges and its selection. Absent nodes are a no-op."""
        removed = self.db.remove_node(node_id)
        return IntentResult(ok=True, node_id=node_id if removed is not None else None)

    def move_node(self, node_id: str, position: Position) -> IntentResult:
        moved = self.db.move_node(node_id, position)
        return IntentResult(ok=moved, node_id=node_id)

    # =========================================================================
    # EDIT PANEL INTENTS
    # =========================================================================

    def select(self, node_id: str) -> IntentResult:
        """A node was clicked on the canvas."""
        selected = self.selection.select(node_id)
        return IntentResult(ok=selected, node_id=node_id if selected else None)

    def deselect(self) -> IntentResult:
        """The back arrow of the edit panel."""
        self.selection.deselect()
        return IntentResult(ok=True)

    def edit_message(self, text: str) -> IntentResult:
        """A keystroke in the edit panel's text area."""
        node_id = self.selection.selected_id
        edited = self.selection.edit_message(text)
        return IntentResult(ok=edited, node_id=node_id)

    # =========================================================================
    # SAVE
    # =========================================================================

    def check(self) -> ValidationResult:
        """Run the validation gate without notifying anyone."""
        return validate(self.db.connectivity)

    def submit(self) -> IntentResult:
        """The save button: validate and tell the user the outcome."""
        result = self.check()
        if not result.ok:
            return self._fail(result.reason, result.message, result.node_ids)

        publish_notification(result.message, urgency="success", bus=self.db.event_bus)
        return IntentResult(ok=True, message=result.message)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _fail(
        self,
        reason: Optional[str],
        message: str,
        node_ids: Optional[List[str]] = None,
    ) -> IntentResult:
        publish_notification(
            message,
            urgency="error",
            reason=reason,
            related_node_ids=node_ids,
            bus=self.db.event_bus,
        )
        return IntentResult(
            ok=False,
            reason=reason,
            message=message,
            node_ids=node_ids or [],
        )
