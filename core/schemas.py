"""
FLOWBUILDER SCHEMAS - The Grammar of the Flow Graph

If ontology.py is the Dictionary (defining the words we can use),
schemas.py is the Grammar (defining how we structure sentences).

This module defines the core data structures that flow through the graph:
- Position: Canvas coordinates, opaque to the core logic
- MessagePayload: The editable record of a message block
- NodeData: The payload attached to every graph node
- EdgeData: The payload attached to every graph edge

Design Principles:
1. STRICT TYPING: msgspec.Struct with no silent type coercion
2. KW_ONLY: Enforce keyword arguments to prevent positional mix-ups
3. IMMUTABLE IDS: Node/edge IDs and node kinds are set once and never change
4. PAYLOAD BY KIND: Each kind owns a payload struct, created from the registry
"""
import msgspec
from typing import Callable, Dict, Optional, Union
from datetime import datetime, timezone

from core.ontology import NodeKind


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


def make_edge_id(
    source: str,
    target: str,
    source_handle: Optional[str] = None,
    target_handle: Optional[str] = None,
) -> str:
    """Derive an edge ID from its endpoints and port handles."""
    return f"edge__{source}{source_handle or ''}-{target}{target_handle or ''}"


# =============================================================================
# POSITION & PAYLOADS
# =============================================================================

class Position(msgspec.Struct, kw_only=True, frozen=True):
    """Canvas coordinates. Only the render surface interprets these."""
    x: float = 0.0
    y: float = 0.0


DEFAULT_MESSAGE = "test message"


class MessagePayload(msgspec.Struct, kw_only=True):
    """Editable record of a message block."""
    message: str = DEFAULT_MESSAGE


# Union of all kind payloads. Extend alongside NODE_KINDS.
NodePayload = Union[MessagePayload]

PAYLOAD_TYPES: Dict[str, type] = {
    NodeKind.MESSAGE.value: MessagePayload,
}


def default_payload(kind: str, default_message: str = DEFAULT_MESSAGE) -> NodePayload:
    """
    Build the initial payload for a freshly dropped node.

    Raises:
        KeyError: If the kind has no payload type registered
    """
    payload_type = PAYLOAD_TYPES[kind]
    if payload_type is MessagePayload:
        return MessagePayload(message=default_message)
    return payload_type()


# =============================================================================
# NODE DATA
# =============================================================================

class NodeData(msgspec.Struct, kw_only=True, frozen=False):
    """
    The payload attached to every node in the rustworkx graph.

    Architecture Notes:
    - `id`: Business identity (string), NOT the rustworkx integer index
    - `kind`: NodeKind.value, immutable after creation
    - `payload`: The user-editable record for this kind
    """
    # === Identity ===
    id: str
    kind: str

    # === Layout (render surface only) ===
    position: Position = msgspec.field(default_factory=Position)

    # === Content ===
    payload: NodePayload = msgspec.field(default_factory=MessagePayload)

    # === Timestamps ===
    created_at: str = msgspec.field(default_factory=now_utc)
    updated_at: str = msgspec.field(default_factory=now_utc)
    version: int = 1                           # Incremented on each update

    def touch(self) -> None:
        """Update the updated_at timestamp and increment version."""
        self.updated_at = now_utc()
        self.version += 1

    @property
    def message(self) -> Optional[str]:
        """Message text for message nodes, None for other kinds."""
        return getattr(self.payload, "message", None)


PayloadMutator = Callable[[NodePayload], Optional[NodePayload]]


# =============================================================================
# EDGE DATA
# =============================================================================

class EdgeData(msgspec.Struct, kw_only=True, frozen=True):
    """
    The payload attached to every edge in the rustworkx graph.

    Edges are intentionally thin: a directed link from one node's output
    port to another node's input port. Source and target are business IDs;
    FlowDB translates them to rustworkx indices.
    """
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    created_at: str = msgspec.field(default_factory=now_utc)

    @classmethod
    def create(
        cls,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
    ) -> "EdgeData":
        """Factory method deriving the edge ID from endpoints and handles."""
        return cls(
            id=make_edge_id(source, target, source_handle, target_handle),
            source=source,
            target=target,
            source_handle=source_handle,
            target_handle=target_handle,
        )
