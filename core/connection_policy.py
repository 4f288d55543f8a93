"""
FLOWBUILDER CONNECTION POLICY - Which edges may be drawn

The policy is consulted before any edge touches the store. A rejected
connection changes nothing; the decision carries a reason code and the
text shown to the user.

Rules, evaluated in order:
1. Both endpoints must exist (only when a node lookup is supplied)
2. No self-loops, unless explicitly allowed by configuration
3. A node may be the source of at most `max_outgoing_edges` edges
"""
import logging
from typing import Callable, Iterable, Optional

import msgspec

from core.ontology import RejectReason, reject_message
from core.schemas import EdgeData


logger = logging.getLogger("flowbuilder.connection_policy")


class PolicyDecision(msgspec.Struct, kw_only=True, frozen=True):
    """Outcome of a connection check."""
    accepted: bool
    reason: Optional[str] = None             # RejectReason.value when refused
    message: str = ""

    @classmethod
    def accept(cls) -> "PolicyDecision":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: RejectReason) -> "PolicyDecision":
        return cls(
            accepted=False,
            reason=reason.value,
            message=reject_message(reason.value),
        )


class ConnectionPolicy:
    """
    Rule engine for proposed edges.

    Usage:
        policy = ConnectionPolicy()
        decision = policy.may_connect("node-1", "node-2", db.get_all_edges())
        if not decision.accepted:
            notify(decision.message)
    """

    def __init__(
        self,
        max_outgoing_edges: Optional[int] = 1,
        allow_self_loops: bool = False,
    ):
        self.max_outgoing_edges = max_outgoing_edges
        self.allow_self_loops = allow_self_loops

    def may_connect(
        self,
        source: str,
        target: str,
        existing_edges: Iterable[EdgeData],
        node_exists: Optional[Callable[[str], bool]] = None,
    ) -> PolicyDecision:
        """
        Decide whether source -> target may be added.

        Args:
            source: Proposed source node ID
            target: Proposed target node ID
            existing_edges: Every edge currently in the graph
            node_exists: Optional membership test for endpoint checking

        Returns:
            PolicyDecision, never raises
        """
        if node_exists is not None and not (node_exists(source) and node_exists(target)):
            return self._rejected(source, target, RejectReason.UNKNOWN_ENDPOINT)

        if source == target and not self.allow_self_loops:
            return self._rejected(source, target, RejectReason.SELF_LOOP)

        if self.max_outgoing_edges is not None:
            outgoing = sum(1 for edge in existing_edges if edge.source == source)
            if outgoing >= self.max_outgoing_edges:
                return self._rejected(source, target, RejectReason.SOURCE_ALREADY_CONNECTED)

        return PolicyDecision.accept()

    def _rejected(self, source: str, target: str, reason: RejectReason) -> PolicyDecision:
        logger.debug(f"Rejected {source} -> {target}: {reason.value}")
        return PolicyDecision.reject(reason)
