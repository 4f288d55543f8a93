"""
Node identity allocation.

Identities are issued by a single allocator owned by the store. Values are
timestamp-derived but strictly increasing, so two drops within the same
millisecond still receive distinct IDs, and an ID is never handed out twice
for the lifetime of the allocator.
"""
import time
from typing import Callable, Optional


class NodeIdAllocator:
    """
    Issues unique, never-recycled node identities.

    Usage:
        ids = NodeIdAllocator()
        ids.next_id()   # "node-1760870400123"
        ids.next_id()   # "node-1760870400124"

    Tests inject a fixed clock to get predictable identities.
    """

    def __init__(
        self,
        prefix: str = "node-",
        clock: Optional[Callable[[], int]] = None,
    ):
        self._prefix = prefix
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)
        self._last = 0
        self._issued = 0

    @property
    def issued(self) -> int:
        """Number of identities handed out so far."""
        return self._issued

    def next_id(self) -> str:
        value = max(self._clock(), self._last + 1)
        self._last = value
        self._issued += 1
        return f"{self._prefix}{value}"
