"""
FLOWBUILDER ONTOLOGY - The Dictionary of the Flow Graph

If schemas.py is the Grammar (how we structure nodes and edges),
ontology.py is the Dictionary (the words we can use).

This module defines:
- Enums: The vocabulary (NodeKind, RejectReason, SelectionStatus)
- NodeKindSpec: Per-kind shape (handles, label, out-degree limit)
- NODE_KINDS: The kind registry consulted by the store on every add
- PALETTE_TYPES: Sidebar drag types mapped onto node kinds

Key Principle: adding a node kind means adding a registry entry and a
payload struct. The store, policy and validation gate never switch on kind.
"""
from typing import Dict, Optional
from enum import Enum

import msgspec


# =============================================================================
# ENUMS (The Vocabulary)
# =============================================================================

class NodeKind(str, Enum):
    """Kinds of blocks that can be placed on the canvas."""
    MESSAGE = "message"              # Send a text message


class RejectReason(str, Enum):
    """Why a proposed edge was refused by the connection policy."""
    SOURCE_ALREADY_CONNECTED = "source-already-has-outgoing-edge"
    SELF_LOOP = "self-loop"
    UNKNOWN_ENDPOINT = "unknown-endpoint"
    UNKNOWN_HANDLE = "unknown-handle"


class SelectionStatus(str, Enum):
    """States of the single-selection edit machine."""
    UNSELECTED = "unselected"
    EDITING = "editing"


# Human-readable text for the notification surface
REJECT_MESSAGES: Dict[str, str] = {
    RejectReason.SOURCE_ALREADY_CONNECTED.value: "One Node can only be a source to one other node",
    RejectReason.SELF_LOOP.value: "A node cannot be connected to itself",
    RejectReason.UNKNOWN_ENDPOINT.value: "Both ends of a connection must be existing nodes",
    RejectReason.UNKNOWN_HANDLE.value: "Connections must use the ports the node declares",
}

DISCONNECTED_NODE = "disconnected-node"
DISCONNECTED_MESSAGE = "One node is disconnected"
SAVED_MESSAGE = "Flow saved"


# =============================================================================
# NODE KIND REGISTRY
# =============================================================================

class NodeKindSpec(msgspec.Struct, kw_only=True, frozen=True):
    """
    Shape of a node kind.

    Every message node has exactly one input port and one output port, so
    its handles are constants. Kinds with several ports would list them here.
    """
    kind: str                                # NodeKind.value
    label: str                               # Header shown on the canvas block
    source_handle: Optional[str] = "a"       # Output port discriminator
    target_handle: Optional[str] = None      # Input port discriminator


NODE_KINDS: Dict[str, NodeKindSpec] = {
    NodeKind.MESSAGE.value: NodeKindSpec(
        kind=NodeKind.MESSAGE.value,
        label="Send Message",
    ),
}

# Sidebar drag types -> node kinds
PALETTE_TYPES: Dict[str, str] = {
    "text": NodeKind.MESSAGE.value,
    NodeKind.MESSAGE.value: NodeKind.MESSAGE.value,
}


def get_kind_spec(kind: str) -> Optional[NodeKindSpec]:
    """Look up a kind in the registry. None for unknown kinds."""
    return NODE_KINDS.get(kind)


def is_known_kind(kind: str) -> bool:
    """Check if a string names a registered node kind."""
    return kind in NODE_KINDS


def resolve_palette_type(palette_type: str) -> Optional[str]:
    """Map a sidebar drag type onto a node kind, or None if unrecognised."""
    return PALETTE_TYPES.get(palette_type)


def reject_message(reason: str) -> str:
    """Notification text for a connection rejection reason."""
    return REJECT_MESSAGES.get(reason, "Connection rejected")
