"""
FLOWBUILDER GRAPH DATABASE - The canonical flow graph

This file owns the nodes and edges of the flow being edited. It bridges
string node IDs with rustworkx's integer indices:

  Business Layer (FlowEditor, SelectionState)
  - Uses string IDs: "node-1760870400123"
  - Calls: db.add_node("message"), db.add_edge("node-1", "node-2")

  Bridge Layer (This File)
  - _node_map: Dict[str, int]  (ID -> Index)
  - _inv_map: Dict[int, str]   (Index -> ID)
  - _edge_map: Dict[str, int]  (edge ID -> edge index)

  Rust Layer (rustworkx.PyDiGraph)
  - Uses integer indices, removes incident edges with the node

Mutation contract:
- Every structural mutation (add/remove node, add/remove edge) rebuilds
  the connectivity mapping before returning.
- remove_node drops the node, its incident edges and its selection in a
  single call; nothing observes a half-deleted node.
- Rejected connections leave the graph untouched.

Thread Safety:
    NOT thread-safe. The editor processes one intent at a time.
"""
import rustworkx as rx
from typing import Dict, List, Optional, Iterator
import logging

import msgspec

from core.schemas import (
    NodeData,
    EdgeData,
    Position,
    NodePayload,
    PayloadMutator,
    PAYLOAD_TYPES,
    default_payload,
    make_edge_id,
)
from core.ontology import NodeKind, RejectReason, get_kind_spec, is_known_kind
from core.identity import NodeIdAllocator
from core.connection_policy import ConnectionPolicy, PolicyDecision
from core.connectivity import (
    Connectivity,
    compute_connectivity,
    degrees_from_graph,
    diff_connectivity,
)
from core.selection import SelectionState
from infrastructure.config import EditorConfig, get_config
from infrastructure.logger import MutationLogger, get_logger
from infrastructure.event_bus import EventBus, EventType, get_event_bus, publish_graph_event


log = logging.getLogger("flowbuilder.graph_db")


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class GraphError(Exception):
    """Base exception for graph operations."""
    pass


class NodeNotFoundError(GraphError):
    """Raised when a node ID is not in the graph."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class EdgeNotFoundError(GraphError):
    """Raised when an edge ID is not in the graph."""
    def __init__(self, edge_id: str):
        self.edge_id = edge_id
        super().__init__(f"Edge not found: {edge_id}")


class UnknownNodeKindError(GraphError):
    """Raised when an add intent names a kind missing from the registry."""
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown node kind: {kind}")


class ConnectionRejectedError(GraphError):
    """Raised when the connection policy refuses a proposed edge."""
    def __init__(self, source: str, target: str, decision: PolicyDecision):
        self.source = source
        self.target = target
        self.reason = decision.reason
        self.decision = decision
        super().__init__(f"Cannot connect {source} -> {target}: {decision.message}")


# =============================================================================
# FLOW DATABASE (The Graph Store)
# =============================================================================

class FlowDB:
    """
    In-memory flow graph backed by rustworkx.

    All public methods accept/return string IDs; translation to integer
    indices is internal.

    Usage:
        db = FlowDB()

        first = db.add_node("message", Position(x=0, y=0))
        second = db.add_node("message")
        db.add_edge(first, second)

        db.connectivity   # {first: 1, second: 1}
        db.selection.select(first)
        db.selection.edit_message("hello")
    """

    def __init__(
        self,
        id_allocator: Optional[NodeIdAllocator] = None,
        policy: Optional[ConnectionPolicy] = None,
        config: Optional[EditorConfig] = None,
        logger: Optional[MutationLogger] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize an empty flow graph.

        Args:
            id_allocator: Identity issuer. Defaults to one using the
                         configured ID prefix.
            policy: Connection rules. Defaults to the configured limits.
            config: Editor settings. Defaults to the loaded configuration.
            logger: Mutation logger. Defaults to the global logger.
            event_bus: Change notifications. Defaults to the global bus.
        """
        self.config = config or get_config().editor
        self._ids = id_allocator or NodeIdAllocator(prefix=self.config.id_prefix)
        self.policy = policy or ConnectionPolicy(
            max_outgoing_edges=self.config.max_outgoing_edges,
            allow_self_loops=self.config.allow_self_loops,
        )
        self.logger = logger or get_logger()
        self._event_bus = event_bus or get_event_bus()

        # Core storage: Rust-native directed graph
        self._graph: rx.PyDiGraph = rx.PyDiGraph(multigraph=True)

        # The Bridge: bidirectional ID <-> index mapping
        self._node_map: Dict[str, int] = {}
        self._inv_map: Dict[int, str] = {}
        self._edge_map: Dict[str, int] = {}

        self._connectivity: Connectivity = {}
        self.selection = SelectionState(self)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def node_count(self) -> int:
        return self._graph.num_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.num_edges()

    @property
    def is_empty(self) -> bool:
        return self.node_count == 0

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def connectivity(self) -> Connectivity:
        """Current node ID -> incident edge count (a copy)."""
        return dict(self._connectivity)

    # =========================================================================
    # NODE OPERATIONS
    # =========================================================================

    def add_node(
        self,
        kind: str = NodeKind.MESSAGE.value,
        position: Optional[Position] = None,
        payload: Optional[NodePayload] = None,
    ) -> str:
        """
        Place a new node on the canvas.

        Args:
            kind: NodeKind value, must be in the kind registry
            position: Drop coordinates (defaults to the origin)
            payload: Initial payload (defaults to the kind's default)

        Returns:
            The freshly issued node ID

        Raises:
            UnknownNodeKindError: If the kind is not registered (nothing created)
        """
        if not is_known_kind(kind) or kind not in PAYLOAD_TYPES:
            raise UnknownNodeKindError(kind)
        if payload is not None and not isinstance(payload, PAYLOAD_TYPES[kind]):
            raise TypeError(
                f"Payload {type(payload).__name__} does not match kind {kind}"
            )

        node_id = self._ids.next_id()
        data = NodeData(
            id=node_id,
            kind=kind,
            position=position or Position(),
            payload=payload if payload is not None else default_payload(
                kind, self.config.default_message
            ),
        )

        idx = self._graph.add_node(data)
        self._node_map[node_id] = idx
        self._inv_map[idx] = node_id
        self._refresh_connectivity()

        self.logger.log_node_created(node_id, kind)
        self._publish(EventType.NODE_CREATED, {
            "node_id": node_id,
            "kind": kind,
            "position": msgspec.to_builtins(data.position),
        })
        return node_id

    def get_node(self, node_id: str) -> NodeData:
        """
        Retrieve a node by its ID.

        Raises:
            NodeNotFoundError: If node doesn't exist
        """
        if node_id not in self._node_map:
            raise NodeNotFoundError(node_id)
        return self._graph[self._node_map[node_id]]

    def find_node(self, node_id: str) -> Optional[NodeData]:
        """Retrieve a node by its ID, or None if absent."""
        idx = self._node_map.get(node_id)
        return self._graph[idx] if idx is not None else None

    def has_node(self, node_id: str) -> bool:
        return node_id in self._node_map

    def update_payload(self, node_id: str, mutator: PayloadMutator) -> bool:
        """
        Apply an edit to a node's payload.

        The mutator receives a working copy of the payload. It may change it
        in place and return None, or return a replacement payload of the same
        type. The result is committed only if the mutator returns normally,
        so a failing mutator leaves the stored payload untouched.
        Identity, kind and position are never touched.

        Returns:
            False if the node does not exist or the mutator raised (no-op)

        Raises:
            TypeError: If the mutator returns a payload of another type
        """
        node = self.find_node(node_id)
        if node is None:
            log.debug(f"update_payload on missing node {node_id} ignored")
            return False

        working = msgspec.structs.replace(node.payload)
        try:
            replacement = mutator(working)
        except Exception as e:
            log.warning(f"Payload mutator failed for {node_id}: {e}", exc_info=True)
            return False

        if replacement is not None:
            if type(replacement) is not type(node.payload):
                raise TypeError(
                    f"Mutator returned {type(replacement).__name__}, "
                    f"expected {type(node.payload).__name__}"
                )
            working = replacement
        node.payload = working
        node.touch()

        self.logger.log_node_updated(node_id, node.kind)
        self._publish(EventType.NODE_UPDATED, {
            "node_id": node_id,
            "kind": node.kind,
            "payload": msgspec.to_builtins(node.payload),
        })
        return True

    def set_message(self, node_id: str, text: str) -> bool:
        """Replace the text of a message node. False if absent or not a message."""
        node = self.find_node(node_id)
        if node is None or node.message is None:
            return False
        return self.update_payload(
            node_id, lambda payload: msgspec.structs.replace(payload, message=text)
        )

    def move_node(self, node_id: str, position: Position) -> bool:
        """
        Record a node's new canvas position.

        Layout only: connectivity and payload are unaffected.

        Returns:
            False if the node does not exist (no-op)
        """
        node = self.find_node(node_id)
        if node is None:
            return False
        node.position = position
        node.touch()

        self.logger.log_node_moved(node_id, node.kind)
        self._publish(EventType.NODE_UPDATED, {
            "node_id": node_id,
            "kind": node.kind,
            "position": msgspec.to_builtins(position),
        })
        return True

    def remove_node(self, node_id: str) -> Optional[NodeData]:
        """
        Delete a node together with every edge touching it.

        If the node is selected, the selection is reset as part of the
        same call.

        Returns:
            The removed NodeData, or None if the node was absent (no-op)
        """
        idx = self._node_map.get(node_id)
        if idx is None:
            log.debug(f"remove_node on missing node {node_id} ignored")
            return None

        data = self._graph[idx]
        incident = self._incident_edges(idx)
        for edge in incident:
            del self._edge_map[edge.id]

        # rustworkx drops incident edges with the node
        self._graph.remove_node(idx)
        del self._node_map[node_id]
        del self._inv_map[idx]
        self._refresh_connectivity()

        # Selection observers run inline and must see the finished removal
        self.selection.node_deleted(node_id)

        for edge in incident:
            self.logger.log_edge_deleted(edge.id, edge.source, edge.target)
        self.logger.log_node_deleted(node_id, data.kind, edges_removed=len(incident))
        self._publish(EventType.NODE_DELETED, {
            "node_id": node_id,
            "kind": data.kind,
            "edges_removed": [edge.id for edge in incident],
        })
        return data

    def iter_nodes(self) -> Iterator[NodeData]:
        return iter(self._graph.nodes())

    def get_all_nodes(self) -> List[NodeData]:
        return list(self._graph.nodes())

    def get_node_ids(self) -> List[str]:
        return list(self._node_map)

    # =========================================================================
    # EDGE OPERATIONS
    # =========================================================================

    def may_connect(self, source: str, target: str) -> PolicyDecision:
        """Ask the connection policy about source -> target without mutating."""
        return self.policy.may_connect(
            source, target, self.get_all_edges(), node_exists=self.has_node
        )

    def add_edge(
        self,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
    ) -> EdgeData:
        """
        Connect source's output to target's input.

        Handles default to the source/target kinds' single ports. A handle
        the kind does not declare is refused like a policy rejection.

        Returns:
            The new EdgeData

        Raises:
            ConnectionRejectedError: If the policy refuses (graph unchanged)
        """
        decision = self.may_connect(source, target)
        if not decision.accepted:
            self.logger.log_connection_rejected(source, target, decision.reason)
            raise ConnectionRejectedError(source, target, decision)

        source_spec = get_kind_spec(self.get_node(source).kind)
        target_spec = get_kind_spec(self.get_node(target).kind)
        if source_handle is None:
            source_handle = source_spec.source_handle
        if target_handle is None:
            target_handle = target_spec.target_handle
        if (source_handle != source_spec.source_handle
                or target_handle != target_spec.target_handle):
            decision = PolicyDecision.reject(RejectReason.UNKNOWN_HANDLE)
            self.logger.log_connection_rejected(source, target, decision.reason)
            raise ConnectionRejectedError(source, target, decision)

        edge = EdgeData.create(source, target, source_handle, target_handle)
        if edge.id in self._edge_map:
            # Same endpoints and ports: the connection already exists
            return self.get_edge(edge.id)
        edge_idx = self._graph.add_edge(self._node_map[source], self._node_map[target], edge)
        self._edge_map[edge.id] = edge_idx
        self._refresh_connectivity()

        self.logger.log_edge_created(edge.id, source, target)
        self._publish(EventType.EDGE_CREATED, {
            "edge_id": edge.id,
            "source": source,
            "target": target,
        })
        return edge

    def get_edge(self, edge_id: str) -> EdgeData:
        """
        Retrieve an edge by its ID.

        Raises:
            EdgeNotFoundError: If edge doesn't exist
        """
        if edge_id not in self._edge_map:
            raise EdgeNotFoundError(edge_id)
        return self._graph.get_edge_data_by_index(self._edge_map[edge_id])

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self._edge_map

    def find_edge(
        self,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
    ) -> Optional[EdgeData]:
        """Look up an edge by endpoints and handles."""
        edge_id = make_edge_id(source, target, source_handle, target_handle)
        if edge_id not in self._edge_map:
            return None
        return self.get_edge(edge_id)

    def remove_edge(self, edge_id: str) -> Optional[EdgeData]:
        """
        Delete a single edge.

        Returns:
            The removed EdgeData, or None if the edge was absent (no-op)
        """
        edge_idx = self._edge_map.pop(edge_id, None)
        if edge_idx is None:
            return None

        edge = self._graph.get_edge_data_by_index(edge_idx)
        self._graph.remove_edge_from_index(edge_idx)
        self._refresh_connectivity()

        self.logger.log_edge_deleted(edge.id, edge.source, edge.target)
        self._publish(EventType.EDGE_DELETED, {
            "edge_id": edge.id,
            "source": edge.source,
            "target": edge.target,
        })
        return edge

    def get_all_edges(self) -> List[EdgeData]:
        return list(self._graph.edges())

    def get_outgoing_edges(self, node_id: str) -> List[EdgeData]:
        idx = self._get_index(node_id)
        return [data for _, _, data in self._graph.out_edges(idx)]

    def get_incoming_edges(self, node_id: str) -> List[EdgeData]:
        idx = self._get_index(node_id)
        return [data for _, _, data in self._graph.in_edges(idx)]

    def get_successor(self, node_id: str) -> Optional[NodeData]:
        """The next message in the flow, or None at the end of a chain."""
        outgoing = self.get_outgoing_edges(node_id)
        if not outgoing:
            return None
        return self.get_node(outgoing[0].target)

    def get_root_nodes(self) -> List[NodeData]:
        """Nodes with no incoming edges (flow entry points)."""
        return [
            self._graph[idx] for idx in self._graph.node_indices()
            if self._graph.in_degree(idx) == 0
        ]

    # =========================================================================
    # CONNECTIVITY
    # =========================================================================

    def _refresh_connectivity(self) -> None:
        """Rebuild the connectivity mapping from the current graph."""
        self._connectivity = compute_connectivity(self._node_map, self._graph.edges())

    def check_connectivity(self) -> Optional[Dict[str, tuple]]:
        """
        Cross-check the cached mapping against rustworkx degrees.

        Returns:
            None when consistent, otherwise the differing entries
        """
        return diff_connectivity(
            self._connectivity,
            degrees_from_graph(self._graph, self._inv_map),
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _incident_edges(self, idx: int) -> List[EdgeData]:
        """Every edge touching a node, self-loops listed once."""
        seen: Dict[str, EdgeData] = {}
        for _, _, data in self._graph.out_edges(idx):
            seen[data.id] = data
        for _, _, data in self._graph.in_edges(idx):
            seen[data.id] = data
        return list(seen.values())

    def _publish(self, event_type: EventType, payload: Dict) -> None:
        publish_graph_event(event_type, payload, source="graph_db", bus=self.event_bus)

    def publish_selection(self, node_id: Optional[str], previous: Optional[str]) -> None:
        """Record and broadcast a selection change (called by SelectionState)."""
        self.logger.log_selection_changed(node_id, previous)
        self._publish(EventType.SELECTION_CHANGED, {
            "node_id": node_id,
            "previous_node_id": previous,
        })

    def _get_index(self, node_id: str) -> int:
        if node_id not in self._node_map:
            raise NodeNotFoundError(node_id)
        return self._node_map[node_id]

    def __len__(self) -> int:
        return self.node_count

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._node_map

    def __repr__(self) -> str:
        return f"FlowDB(nodes={self.node_count}, edges={self.edge_count})"
