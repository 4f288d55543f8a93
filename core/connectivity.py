"""
FLOWBUILDER CONNECTIVITY - Per-node incident edge accounting

The connectivity mapping is derived state: node ID -> number of edge
endpoints touching that node. It is always rebuilt as a fold over the
current node and edge collections, never patched in place, so deleted
nodes cannot leave stale entries and new nodes always start at zero.

Invariants:
1. Totality: every current node has an entry (degree-0 nodes map to 0)
2. Degree sum: sum(counts) == 2 * |E|
"""
import rustworkx as rx
from typing import Dict, Iterable, List, Optional

from core.schemas import EdgeData


Connectivity = Dict[str, int]


def compute_connectivity(
    node_ids: Iterable[str],
    edges: Iterable[EdgeData],
) -> Connectivity:
    """
    Count edge endpoints per node.

    Each edge adds 1 to its source and 1 to its target. A self-loop
    therefore adds 2 to the same node.

    Args:
        node_ids: IDs of every node currently in the graph
        edges: Every edge currently in the graph

    Returns:
        Fresh mapping with an entry for every node
    """
    counts: Connectivity = {node_id: 0 for node_id in node_ids}
    for edge in edges:
        counts[edge.source] = counts.get(edge.source, 0) + 1
        counts[edge.target] = counts.get(edge.target, 0) + 1
    return counts


def find_isolated(connectivity: Connectivity) -> List[str]:
    """IDs of nodes with no incident edges, sorted for stable reporting."""
    return sorted(node_id for node_id, count in connectivity.items() if count == 0)


def validate_degree_sum(connectivity: Connectivity, edge_count: int) -> bool:
    """Handshaking check: total endpoint count equals twice the edge count."""
    return sum(connectivity.values()) == 2 * edge_count


def degrees_from_graph(
    graph: rx.PyDiGraph,
    inv_map: Dict[int, str],
) -> Connectivity:
    """
    Read in+out degree per node straight from rustworkx.

    Used as an independent cross-check of compute_connectivity; the two
    must agree for any consistent store.
    """
    return {
        inv_map[idx]: graph.in_degree(idx) + graph.out_degree(idx)
        for idx in graph.node_indices()
    }


def diff_connectivity(
    expected: Connectivity,
    actual: Connectivity,
) -> Optional[Dict[str, tuple]]:
    """Entries that differ between two mappings, or None if identical."""
    keys = set(expected) | set(actual)
    diff = {
        key: (expected.get(key), actual.get(key))
        for key in keys
        if expected.get(key) != actual.get(key)
    }
    return diff or None
