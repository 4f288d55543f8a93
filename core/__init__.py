"""
FLOWBUILDER CORE - The flow graph state engine

This module provides access to:
- FlowDB: The graph store (nodes, edges, connectivity, selection)
- FlowEditor: The intent boundary used by the UI surfaces
- Connection policy and validation gate
"""

from core.graph_db import (
    FlowDB,
    GraphError,
    NodeNotFoundError,
    EdgeNotFoundError,
    UnknownNodeKindError,
    ConnectionRejectedError,
)
from core.editor import FlowEditor, IntentResult
from core.connection_policy import ConnectionPolicy, PolicyDecision
from core.connectivity import compute_connectivity
from core.validation import ValidationResult, ValidationFailedError, validate
from core.schemas import NodeData, EdgeData, Position, MessagePayload
from core.ontology import NodeKind, RejectReason, SelectionStatus

__all__ = [
    "FlowDB",
    "GraphError",
    "NodeNotFoundError",
    "EdgeNotFoundError",
    "UnknownNodeKindError",
    "ConnectionRejectedError",
    "FlowEditor",
    "IntentResult",
    "ConnectionPolicy",
    "PolicyDecision",
    "compute_connectivity",
    "ValidationResult",
    "ValidationFailedError",
    "validate",
    "NodeData",
    "EdgeData",
    "Position",
    "MessagePayload",
    "NodeKind",
    "RejectReason",
    "SelectionStatus",
]
