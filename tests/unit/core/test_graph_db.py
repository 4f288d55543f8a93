"""
Unit tests for core/graph_db.py - FlowDB

Tests the flow graph store including:
- Node creation, payload edits, moves and deletion
- Edge creation, rejection and removal
- Cascading deletes and selection reset
- Connectivity recomputation after every structural mutation
"""
import random

import msgspec
import pytest

from core.graph_db import (
    FlowDB,
    NodeNotFoundError,
    EdgeNotFoundError,
    UnknownNodeKindError,
    ConnectionRejectedError,
)
from core.connection_policy import ConnectionPolicy
from core.connectivity import compute_connectivity, validate_degree_sum
from core.identity import NodeIdAllocator
from core.ontology import NodeKind, RejectReason, SelectionStatus
from core.schemas import MessagePayload, Position
from infrastructure.event_bus import EventType, get_event_bus
from infrastructure.logger import MutationType


# =============================================================================
# NODE OPERATIONS TESTS
# =============================================================================

def test_add_node_creates_message_node(fresh_db):
    """
    Validate that add_node creates a message node with default payload.

    Verifies:
    - Node count increases by 1
    - Kind is "message" and message text is the default
    - Position defaults to the origin
    """
    node_id = fresh_db.add_node()

    assert fresh_db.node_count == 1
    node = fresh_db.get_node(node_id)
    assert node.kind == NodeKind.MESSAGE.value
    assert node.message == "test message"
    assert node.position == Position(x=0.0, y=0.0)


def test_add_node_uses_given_position_and_payload(fresh_db):
    node_id = fresh_db.add_node(
        "message",
        Position(x=120.0, y=-40.0),
        MessagePayload(message="Welcome!"),
    )

    node = fresh_db.get_node(node_id)
    assert node.position.x == 120.0
    assert node.position.y == -40.0
    assert node.message == "Welcome!"


def test_add_node_starts_with_zero_connectivity(fresh_db):
    node_id = fresh_db.add_node()
    assert fresh_db.connectivity == {node_id: 0}


def test_add_node_unknown_kind_rejected(fresh_db):
    """
    Validate that an unregistered kind creates nothing.

    Verifies:
    - UnknownNodeKindError is raised and names the kind
    - Graph remains empty
    """
    with pytest.raises(UnknownNodeKindError) as exc_info:
        fresh_db.add_node("carousel")

    assert exc_info.value.kind == "carousel"
    assert fresh_db.node_count == 0
    assert fresh_db.connectivity == {}


def test_add_node_ids_unique_across_sequence(fresh_db):
    ids = [fresh_db.add_node() for _ in range(200)]
    assert len(set(ids)) == 200


def test_ids_not_reused_after_deletion(fresh_db):
    """Deleting nodes never frees their identities for reuse."""
    first = fresh_db.add_node()
    fresh_db.remove_node(first)
    second = fresh_db.add_node()
    fresh_db.remove_node(second)
    third = fresh_db.add_node()

    assert len({first, second, third}) == 3


def test_default_allocator_uses_config_prefix():
    from infrastructure.config import EditorConfig

    db = FlowDB(config=EditorConfig(id_prefix="msg-"))
    node_id = db.add_node()

    assert node_id.startswith("msg-")


def test_get_node_not_found_error(fresh_db):
    with pytest.raises(NodeNotFoundError) as exc_info:
        fresh_db.get_node("node-404")

    assert "node-404" in str(exc_info.value)
    assert fresh_db.find_node("node-404") is None


# =============================================================================
# PAYLOAD UPDATE TESTS
# =============================================================================

def test_update_payload_in_place(fresh_db):
    node_id = fresh_db.add_node()

    def set_text(payload):
        payload.message = "hello"

    assert fresh_db.update_payload(node_id, set_text) is True
    assert fresh_db.get_node(node_id).message == "hello"


def test_update_payload_with_replacement(fresh_db):
    node_id = fresh_db.add_node()

    updated = fresh_db.update_payload(
        node_id, lambda p: msgspec.structs.replace(p, message="replaced")
    )

    assert updated is True
    assert fresh_db.get_node(node_id).message == "replaced"


def test_update_payload_keeps_identity_kind_position(fresh_db):
    """
    Validate that payload edits never touch identity, kind or position.

    Verifies:
    - id, kind and position are unchanged
    - version is bumped
    """
    node_id = fresh_db.add_node("message", Position(x=5.0, y=6.0))
    before = fresh_db.get_node(node_id)
    version = before.version

    fresh_db.set_message(node_id, "")

    after = fresh_db.get_node(node_id)
    assert after.id == node_id
    assert after.kind == "message"
    assert after.position == Position(x=5.0, y=6.0)
    assert after.message == ""
    assert after.version == version + 1


def test_update_payload_missing_node_is_noop(fresh_db):
    calls = []
    assert fresh_db.update_payload("node-404", calls.append) is False
    assert calls == []
    assert fresh_db.set_message("node-404", "x") is False


def test_update_payload_rejects_wrong_payload_type(fresh_db):
    class OtherPayload(msgspec.Struct):
        url: str = ""

    node_id = fresh_db.add_node()

    with pytest.raises(TypeError):
        fresh_db.update_payload(node_id, lambda p: OtherPayload())

    assert fresh_db.get_node(node_id).message == "test message"


def test_update_payload_failing_mutator_leaves_payload(fresh_db):
    """
    Validate that a mutator raising half way through changes nothing.

    Verifies:
    - update_payload reports False instead of raising
    - The stored text and version are untouched
    - No NODE_UPDATED mutation is recorded
    """
    node_id = fresh_db.add_node()
    version = fresh_db.get_node(node_id).version

    def half_edit(payload):
        payload.message = "partial"
        raise ValueError("editor crashed")

    assert fresh_db.update_payload(node_id, half_edit) is False

    node = fresh_db.get_node(node_id)
    assert node.message == "test message"
    assert node.version == version
    assert fresh_db.logger.get_events_by_type(MutationType.NODE_UPDATED.value) == []


def test_message_has_no_length_limit(fresh_db):
    node_id = fresh_db.add_node()
    text = "x" * 100_000
    fresh_db.set_message(node_id, text)
    assert fresh_db.get_node(node_id).message == text


def test_move_node_does_not_touch_connectivity(chain_db):
    db, (n1, n2, n3) = chain_db
    before = db.connectivity

    assert db.move_node(n2, Position(x=300.0, y=80.0)) is True

    assert db.get_node(n2).position == Position(x=300.0, y=80.0)
    assert db.connectivity == before
    assert db.move_node("node-404", Position()) is False


# =============================================================================
# EDGE OPERATIONS TESTS
# =============================================================================

def test_add_edge_creates_edge(fresh_db):
    """
    Validate that add_edge connects two nodes.

    Verifies:
    - Edge uses the message kind's handles
    - Edge can be retrieved by its ID
    - Connectivity counts both endpoints
    """
    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()

    edge = fresh_db.add_edge(n1, n2)

    assert fresh_db.edge_count == 1
    assert edge.source == n1
    assert edge.target == n2
    assert edge.source_handle == "a"
    assert edge.target_handle is None
    assert fresh_db.get_edge(edge.id) == edge
    assert fresh_db.find_edge(n1, n2, "a") == edge
    assert fresh_db.connectivity == {n1: 1, n2: 1}


def test_add_edge_source_already_connected_rejected(fresh_db):
    """
    Validate that a second outgoing edge from the same source is refused.

    Verifies:
    - ConnectionRejectedError carries the out-degree reason
    - Edge set and connectivity are unchanged
    """
    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()
    n3 = fresh_db.add_node()
    fresh_db.add_edge(n1, n2)
    edges_before = fresh_db.get_all_edges()
    connectivity_before = fresh_db.connectivity

    with pytest.raises(ConnectionRejectedError) as exc_info:
        fresh_db.add_edge(n1, n3)

    assert exc_info.value.reason == RejectReason.SOURCE_ALREADY_CONNECTED.value
    assert fresh_db.get_all_edges() == edges_before
    assert fresh_db.connectivity == connectivity_before
    assert fresh_db.connectivity[n3] == 0


def test_add_edge_fan_in_allowed(fresh_db):
    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()
    n3 = fresh_db.add_node()

    fresh_db.add_edge(n1, n3)
    fresh_db.add_edge(n2, n3)

    assert fresh_db.connectivity == {n1: 1, n2: 1, n3: 2}
    assert len(fresh_db.get_incoming_edges(n3)) == 2


def test_add_edge_unknown_endpoint_rejected(fresh_db):
    n1 = fresh_db.add_node()

    with pytest.raises(ConnectionRejectedError) as exc_info:
        fresh_db.add_edge(n1, "node-404")

    assert exc_info.value.reason == RejectReason.UNKNOWN_ENDPOINT.value
    assert fresh_db.edge_count == 0


def test_self_loop_rejected_by_default(fresh_db):
    n1 = fresh_db.add_node()

    with pytest.raises(ConnectionRejectedError) as exc_info:
        fresh_db.add_edge(n1, n1)

    assert exc_info.value.reason == RejectReason.SELF_LOOP.value
    assert fresh_db.edge_count == 0


def test_self_loop_allowed_when_configured(sequential_ids):
    db = FlowDB(
        id_allocator=sequential_ids,
        policy=ConnectionPolicy(allow_self_loops=True),
    )
    n1 = db.add_node()

    db.add_edge(n1, n1)

    assert db.connectivity == {n1: 2}
    assert db.check_connectivity() is None

    db.remove_node(n1)
    assert db.edge_count == 0


def test_duplicate_edge_returns_existing_when_unlimited(sequential_ids):
    db = FlowDB(
        id_allocator=sequential_ids,
        policy=ConnectionPolicy(max_outgoing_edges=None),
    )
    n1 = db.add_node()
    n2 = db.add_node()

    first = db.add_edge(n1, n2)
    second = db.add_edge(n1, n2)

    assert first == second
    assert db.edge_count == 1


def test_remove_edge_recomputes_connectivity(fresh_db):
    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()
    edge = fresh_db.add_edge(n1, n2)

    removed = fresh_db.remove_edge(edge.id)

    assert removed == edge
    assert fresh_db.edge_count == 0
    assert fresh_db.connectivity == {n1: 0, n2: 0}
    assert fresh_db.remove_edge(edge.id) is None

    # The source is free to connect again
    fresh_db.add_edge(n1, n2)


def test_get_edge_not_found_error(fresh_db):
    with pytest.raises(EdgeNotFoundError):
        fresh_db.get_edge("edge__missing")


@pytest.mark.parametrize("handles", [("b", None), ("a", "in"), (None, "x")])
def test_add_edge_undeclared_handle_rejected(fresh_db, handles):
    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()

    with pytest.raises(ConnectionRejectedError) as exc_info:
        fresh_db.add_edge(n1, n2, *handles)

    assert exc_info.value.reason == RejectReason.UNKNOWN_HANDLE.value
    assert fresh_db.edge_count == 0
    assert fresh_db.connectivity == {n1: 0, n2: 0}


def test_add_edge_explicit_declared_handles_accepted(fresh_db):
    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()

    edge = fresh_db.add_edge(n1, n2, "a", None)

    assert edge.id == f"edge__{n1}a-{n2}"


# =============================================================================
# NODE DELETION TESTS
# =============================================================================

def test_remove_node_cascades_incident_edges(chain_db):
    """
    Validate deleting the middle of n1 -> n2 -> n3.

    Verifies:
    - Both edges touching n2 are removed
    - n1 and n3 drop to zero connectivity
    - The removed NodeData is returned
    """
    db, (n1, n2, n3) = chain_db

    removed = db.remove_node(n2)

    assert removed.id == n2
    assert db.edge_count == 0
    assert not db.has_node(n2)
    assert db.connectivity == {n1: 0, n3: 0}
    for edge in db.get_all_edges():
        assert n2 not in (edge.source, edge.target)


def test_remove_node_frees_source_for_new_edge(chain_db):
    db, (n1, n2, n3) = chain_db

    db.remove_node(n2)
    db.add_edge(n1, n3)

    assert db.connectivity == {n1: 1, n3: 1}


def test_remove_node_missing_is_noop(chain_db):
    db, _ = chain_db
    before_nodes = db.node_count
    before_edges = db.edge_count

    assert db.remove_node("node-404") is None

    assert db.node_count == before_nodes
    assert db.edge_count == before_edges


def test_remove_selected_node_resets_selection(fresh_db):
    n1 = fresh_db.add_node()
    fresh_db.selection.select(n1)
    fresh_db.selection.edit_message("hello")

    fresh_db.remove_node(n1)

    assert fresh_db.selection.status == SelectionStatus.UNSELECTED
    assert fresh_db.selection.selected_id is None
    assert fresh_db.selection.message is None


def test_remove_other_node_keeps_selection(fresh_db):
    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()
    fresh_db.selection.select(n1)

    fresh_db.remove_node(n2)

    assert fresh_db.selection.selected_id == n1


# =============================================================================
# TRAVERSAL TESTS
# =============================================================================

def test_get_successor_follows_chain(chain_db):
    db, (n1, n2, n3) = chain_db

    assert db.get_successor(n1).id == n2
    assert db.get_successor(n2).id == n3
    assert db.get_successor(n3) is None
    assert [n.id for n in db.get_root_nodes()] == [n1]


def test_outgoing_edges_unknown_node(fresh_db):
    with pytest.raises(NodeNotFoundError):
        fresh_db.get_outgoing_edges("node-404")


# =============================================================================
# OBSERVABILITY TESTS
# =============================================================================

def test_mutations_are_logged(chain_db):
    db, (n1, n2, n3) = chain_db

    db.remove_node(n2)

    created = db.logger.get_events_by_type(MutationType.NODE_CREATED.value)
    deleted = db.logger.get_events_by_type(MutationType.NODE_DELETED.value)
    edge_deleted = db.logger.get_events_by_type(MutationType.EDGE_DELETED.value)
    assert len(created) == 3
    assert deleted[-1].node_id == n2
    assert deleted[-1].edges_removed == 2
    assert len(edge_deleted) == 2


def test_rejection_is_logged(fresh_db):
    n1 = fresh_db.add_node()

    with pytest.raises(ConnectionRejectedError):
        fresh_db.add_edge(n1, n1)

    rejected = fresh_db.logger.get_events_by_type(MutationType.CONNECTION_REJECTED.value)
    assert rejected[-1].reason == RejectReason.SELF_LOOP.value


def test_mutations_are_published(fresh_db):
    seen = []
    bus = get_event_bus()
    for event_type in (EventType.NODE_CREATED, EventType.EDGE_CREATED, EventType.NODE_DELETED):
        bus.subscribe(event_type, lambda e: seen.append((e.type, e.payload)))

    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()
    edge = fresh_db.add_edge(n1, n2)
    fresh_db.remove_node(n1)

    types = [t for t, _ in seen]
    assert types == [
        EventType.NODE_CREATED,
        EventType.NODE_CREATED,
        EventType.EDGE_CREATED,
        EventType.NODE_DELETED,
    ]
    assert seen[-1][1]["edges_removed"] == [edge.id]


# =============================================================================
# OBSERVER ORDERING TESTS
# =============================================================================

def _record_connectivity(db, event_type):
    """Capture (connectivity, edge_count) from inside a sync handler."""
    seen = []
    db.event_bus.subscribe(
        event_type,
        lambda event: seen.append((db.connectivity, db.edge_count)),
    )
    return seen


def test_selection_handler_sees_finished_removal(chain_db):
    """
    Validate deleting the selected node from a selection observer's view.

    Verifies:
    - The deleted node has no connectivity entry when the handler runs
    - The degree sum matches the remaining edge count
    """
    db, (n1, n2, n3) = chain_db
    db.selection.select(n2)
    seen = _record_connectivity(db, EventType.SELECTION_CHANGED)

    db.remove_node(n2)

    assert len(seen) == 1
    connectivity, edge_count = seen[0]
    assert n2 not in connectivity
    assert connectivity == {n1: 0, n3: 0}
    assert validate_degree_sum(connectivity, edge_count)


def test_node_deleted_handler_sees_finished_removal(chain_db):
    db, (n1, n2, n3) = chain_db
    seen = _record_connectivity(db, EventType.NODE_DELETED)

    db.remove_node(n3)

    connectivity, edge_count = seen[0]
    assert connectivity == {n1: 1, n2: 1}
    assert validate_degree_sum(connectivity, edge_count)


def test_add_handlers_see_recomputed_connectivity(fresh_db):
    node_seen = _record_connectivity(fresh_db, EventType.NODE_CREATED)
    edge_seen = _record_connectivity(fresh_db, EventType.EDGE_CREATED)

    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()
    fresh_db.add_edge(n1, n2)

    assert node_seen[0] == ({n1: 0}, 0)
    assert node_seen[1] == ({n1: 0, n2: 0}, 0)
    assert edge_seen == [({n1: 1, n2: 1}, 1)]


def test_edge_deleted_handler_sees_recomputed_connectivity(chain_db):
    db, (n1, n2, n3) = chain_db
    seen = _record_connectivity(db, EventType.EDGE_DELETED)
    edge = db.find_edge(n1, n2, "a")

    db.remove_edge(edge.id)

    assert seen == [({n1: 0, n2: 1, n3: 1}, 1)]


# =============================================================================
# RANDOMISED INVARIANT TESTS
# =============================================================================

@pytest.mark.parametrize("seed", range(10))
def test_invariants_hold_over_random_intents(seed):
    """
    Apply a random mix of mutations and check every invariant after each.

    Verifies:
    - Cached connectivity equals a from-scratch recompute
    - Connectivity agrees with rustworkx degrees
    - Every node has an entry and counts sum to 2 * |E|
    - No node is the source of more than one edge
    - No edge references a missing node
    - Selection never points at a missing node
    """
    rng = random.Random(seed)
    db = FlowDB(id_allocator=NodeIdAllocator(clock=lambda: 0))
    issued = []

    for _ in range(150):
        ids = db.get_node_ids()
        op = rng.choice(["add", "add", "edge", "edge", "edge", "remove", "unedge", "select", "edit"])

        if op == "add" or not ids:
            issued.append(db.add_node())
        elif op == "edge":
            try:
                db.add_edge(rng.choice(ids), rng.choice(ids))
            except ConnectionRejectedError:
                pass
        elif op == "remove":
            db.remove_node(rng.choice(ids))
        elif op == "unedge":
            edges = db.get_all_edges()
            if edges:
                db.remove_edge(rng.choice(edges).id)
        elif op == "select":
            db.selection.select(rng.choice(ids))
        else:
            db.selection.edit_message(f"text {rng.random()}")

        edges = db.get_all_edges()
        node_ids = set(db.get_node_ids())
        connectivity = db.connectivity

        assert connectivity == compute_connectivity(node_ids, edges)
        assert db.check_connectivity() is None
        assert set(connectivity) == node_ids
        assert sum(connectivity.values()) == 2 * len(edges)

        sources = [edge.source for edge in edges]
        assert len(sources) == len(set(sources))
        for edge in edges:
            assert edge.source in node_ids
            assert edge.target in node_ids

        selected = db.selection.selected_id
        assert selected is None or selected in node_ids

    assert len(issued) == len(set(issued))
