"""
FLOWBUILDER VALIDATION GATE - Save readiness

A flow may be saved only when every node touches at least one edge.
The gate reads a connectivity mapping and nothing else; it never blocks
further editing.
"""
from typing import List, Optional

import msgspec

from core.connectivity import Connectivity, find_isolated
from core.ontology import DISCONNECTED_MESSAGE, DISCONNECTED_NODE, SAVED_MESSAGE


class ValidationFailedError(Exception):
    """Raised by ValidationResult.raise_for_failure for a failed check."""
    def __init__(self, node_ids: List[str]):
        self.node_ids = node_ids
        super().__init__(f"{DISCONNECTED_MESSAGE}: {', '.join(node_ids)}")


class ValidationResult(msgspec.Struct, kw_only=True, frozen=True):
    """Pass/fail report of the validation gate."""
    ok: bool
    reason: Optional[str] = None
    node_ids: List[str] = msgspec.field(default_factory=list)
    message: str = ""

    def raise_for_failure(self) -> None:
        if not self.ok:
            raise ValidationFailedError(self.node_ids)


def validate(connectivity: Connectivity) -> ValidationResult:
    """
    Check that no node is disconnected.

    All offending node IDs are reported, sorted. An empty graph passes.
    """
    isolated = find_isolated(connectivity)
    if isolated:
        return ValidationResult(
            ok=False,
            reason=DISCONNECTED_NODE,
            node_ids=isolated,
            message=DISCONNECTED_MESSAGE,
        )
    return ValidationResult(ok=True, message=SAVED_MESSAGE)
