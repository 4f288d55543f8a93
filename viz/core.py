"""
FLOWBUILDER CANVAS CORE - The render surface's data model

This module turns FlowDB state into the flat structures the canvas renders.
It carries no rendering logic: only what to draw, where, and how it is
flagged (selected, disconnected).

Architecture:
- CanvasNode/CanvasEdge: Render-focused representations
- CanvasSnapshot: Full graph state for a render pass
- serialize_to_arrow: polars Arrow IPC export of a snapshot

Performance:
- Uses polars for Arrow IPC serialization
- Labels and flags computed here so the canvas stays dumb
"""
import io
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import msgspec
import polars as pl

from core.ontology import get_kind_spec


# =============================================================================
# COLOR PALETTE
# =============================================================================

NODE_COLORS: Dict[str, str] = {
    "message": "#B2F0E3",       # Teal header of a message block
    "default": "#6C757D",
}

DISCONNECTED_COLOR = "#DC3545"  # Red outline for isolated nodes
EDGE_COLOR = "#555555"


# =============================================================================
# CANVAS DATA STRUCTURES
# =============================================================================

class CanvasNode(msgspec.Struct, kw_only=True):
    """A node as the canvas draws it."""
    id: str
    kind: str
    label: str                          # Block header
    text: str                           # Body text
    x: float
    y: float
    color: str
    connectivity: int = 0
    selected: bool = False
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None

    @classmethod
    def from_node_data(
        cls,
        node,  # NodeData
        connectivity: int = 0,
        selected: bool = False,
    ) -> "CanvasNode":
        spec = get_kind_spec(node.kind)
        color = NODE_COLORS.get(node.kind, NODE_COLORS["default"])
        if connectivity == 0:
            color = DISCONNECTED_COLOR

        return cls(
            id=node.id,
            kind=node.kind,
            label=spec.label if spec else node.kind,
            text=node.message or "",
            x=node.position.x,
            y=node.position.y,
            color=color,
            connectivity=connectivity,
            selected=selected,
            source_handle=spec.source_handle if spec else None,
            target_handle=spec.target_handle if spec else None,
        )


class CanvasEdge(msgspec.Struct, kw_only=True):
    """An edge as the canvas draws it."""
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    color: str = EDGE_COLOR

    @classmethod
    def from_edge_data(cls, edge) -> "CanvasEdge":
        return cls(
            id=edge.id,
            source=edge.source,
            target=edge.target,
            source_handle=edge.source_handle,
            target_handle=edge.target_handle,
        )


class CanvasSnapshot(msgspec.Struct, kw_only=True):
    """Complete graph state for one render pass."""
    timestamp: str
    node_count: int
    edge_count: int
    nodes: List[CanvasNode]
    edges: List[CanvasEdge]
    selected_id: Optional[str] = None
    disconnected_ids: List[str] = msgspec.field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to builtins for JSON serialization."""
        return msgspec.to_builtins(self)

    def get_node(self, node_id: str) -> Optional[CanvasNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


def create_snapshot_from_db(db) -> CanvasSnapshot:
    """
    Build a CanvasSnapshot from a FlowDB.

    Args:
        db: FlowDB instance

    Returns:
        Snapshot with per-node connectivity and selection flags
    """
    connectivity = db.connectivity
    selected_id = db.selection.selected_id

    nodes = [
        CanvasNode.from_node_data(
            node,
            connectivity=connectivity.get(node.id, 0),
            selected=node.id == selected_id,
        )
        for node in db.iter_nodes()
    ]
    edges = [CanvasEdge.from_edge_data(edge) for edge in db.get_all_edges()]

    return CanvasSnapshot(
        timestamp=datetime.now(timezone.utc).isoformat(),
        node_count=len(nodes),
        edge_count=len(edges),
        nodes=nodes,
        edges=edges,
        selected_id=selected_id,
        disconnected_ids=sorted(n.id for n in nodes if n.connectivity == 0),
    )


# =============================================================================
# POLARS EXPORT
# =============================================================================

def nodes_frame(snapshot: CanvasSnapshot) -> pl.DataFrame:
    """One row per node."""
    return pl.DataFrame(
        {
            "id": [n.id for n in snapshot.nodes],
            "kind": [n.kind for n in snapshot.nodes],
            "label": [n.label for n in snapshot.nodes],
            "text": [n.text for n in snapshot.nodes],
            "x": [n.x for n in snapshot.nodes],
            "y": [n.y for n in snapshot.nodes],
            "color": [n.color for n in snapshot.nodes],
            "connectivity": [n.connectivity for n in snapshot.nodes],
            "selected": [n.selected for n in snapshot.nodes],
        },
        schema={
            "id": pl.Utf8,
            "kind": pl.Utf8,
            "label": pl.Utf8,
            "text": pl.Utf8,
            "x": pl.Float64,
            "y": pl.Float64,
            "color": pl.Utf8,
            "connectivity": pl.Int64,
            "selected": pl.Boolean,
        },
    )


def edges_frame(snapshot: CanvasSnapshot) -> pl.DataFrame:
    """One row per edge."""
    return pl.DataFrame(
        {
            "id": [e.id for e in snapshot.edges],
            "source": [e.source for e in snapshot.edges],
            "target": [e.target for e in snapshot.edges],
            "source_handle": [e.source_handle for e in snapshot.edges],
            "target_handle": [e.target_handle for e in snapshot.edges],
        },
        schema={
            "id": pl.Utf8,
            "source": pl.Utf8,
            "target": pl.Utf8,
            "source_handle": pl.Utf8,
            "target_handle": pl.Utf8,
        },
    )


def serialize_to_arrow(snapshot: CanvasSnapshot) -> Tuple[bytes, bytes]:
    """
    Serialize a CanvasSnapshot to Apache Arrow IPC.

    Returns:
        Tuple of (nodes_arrow_bytes, edges_arrow_bytes)
    """
    nodes_buffer = io.BytesIO()
    edges_buffer = io.BytesIO()

    nodes_frame(snapshot).write_ipc(nodes_buffer)
    edges_frame(snapshot).write_ipc(edges_buffer)

    return nodes_buffer.getvalue(), edges_buffer.getvalue()
