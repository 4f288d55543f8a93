"""
FLOWBUILDER MUTATION LOGGER - The record of every graph change

Every store mutation and rejected connection is recorded as a
MutationEvent with a monotonic sequence number, so a session can be
inspected after the fact.

Architecture:
- MutationLogger: Core logging interface used by FlowDB
- EventBuffer: In-memory ring buffer for recent events
- FileLogger: Optional newline-delimited JSON log, rotated daily

Usage:
    logger = MutationLogger()
    logger.log_node_created("node-1", "message")
    logger.log_edge_created("edge__node-1a-node-2", "node-1", "node-2")

    for event in logger.get_events_for_node("node-1"):
        print(f"{event.sequence}: {event.mutation_type}")
"""
import io
import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import msgspec

from infrastructure.config import LoggingConfig


_log = logging.getLogger("flowbuilder.logger")


# =============================================================================
# MUTATION TYPES
# =============================================================================

class MutationType(str, Enum):
    """Types of graph mutations for event tracking."""
    NODE_CREATED = "NODE_CREATED"
    NODE_UPDATED = "NODE_UPDATED"
    NODE_MOVED = "NODE_MOVED"
    NODE_DELETED = "NODE_DELETED"
    EDGE_CREATED = "EDGE_CREATED"
    EDGE_DELETED = "EDGE_DELETED"
    CONNECTION_REJECTED = "CONNECTION_REJECTED"
    SELECTION_CHANGED = "SELECTION_CHANGED"


class MutationEvent(msgspec.Struct, kw_only=True):
    """A single recorded mutation."""
    timestamp: str
    sequence: int
    mutation_type: str                  # MutationType value
    node_id: Optional[str] = None
    node_kind: Optional[str] = None

    # Edges
    edge_id: Optional[str] = None
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    reason: Optional[str] = None        # RejectReason value for rejections

    # Cascades and selection
    edges_removed: int = 0
    previous_node_id: Optional[str] = None


# =============================================================================
# EVENT BUFFER
# =============================================================================

class EventBuffer:
    """
    Ring buffer for recent mutation events.

    O(1) append, O(n) filtered queries.
    """

    def __init__(self, max_size: int = 10000):
        self._buffer: deque[MutationEvent] = deque(maxlen=max_size)
        self._sequence = 0

    def append(self, event: MutationEvent) -> None:
        self._buffer.append(event)

    def get_last(self, n: int) -> List[MutationEvent]:
        """Get the last n events."""
        items = list(self._buffer)
        return items[-n:] if len(items) >= n else items

    def get_by_node(self, node_id: str) -> List[MutationEvent]:
        """Events touching a node, as subject or as an edge endpoint."""
        return [
            e for e in self._buffer
            if node_id in (e.node_id, e.source_id, e.target_id)
        ]

    def get_by_type(self, mutation_type: str) -> List[MutationEvent]:
        return [e for e in self._buffer if e.mutation_type == mutation_type]

    def next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def clear(self) -> None:
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)


# =============================================================================
# FILE LOGGER
# =============================================================================

class FileLogger:
    """
    File-based event logger.

    Writes events as newline-delimited JSON. Rotates logs daily.
    """

    def __init__(self, log_path: Path):
        self._log_path = log_path
        self._current_file: Optional[io.TextIOWrapper] = None
        self._current_date: Optional[str] = None
        self._encoder = msgspec.json.Encoder()

        log_path.mkdir(parents=True, exist_ok=True)

    def write(self, event: MutationEvent) -> None:
        """Append an event to today's log file."""
        self._ensure_file()
        line = self._encoder.encode(event).decode("utf-8") + "\n"
        self._current_file.write(line)
        self._current_file.flush()

    def _ensure_file(self) -> None:
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")

        if self._current_date != today:
            if self._current_file:
                self._current_file.close()

            filepath = self._log_path / f"mutations_{today}.jsonl"
            self._current_file = open(filepath, "a", encoding="utf-8")
            self._current_date = today

    def close(self) -> None:
        if self._current_file:
            self._current_file.close()
            self._current_file = None

    def read_log(self, date: str) -> List[MutationEvent]:
        """Read events from a specific date's log (YYYY-MM-DD)."""
        filepath = self._log_path / f"mutations_{date}.jsonl"

        if not filepath.exists():
            return []

        events = []
        decoder = msgspec.json.Decoder(type=MutationEvent)

        with open(filepath, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(decoder.decode(line.encode()))
                except msgspec.DecodeError as e:
                    _log.warning(f"Skipping malformed line {lineno} in {filepath}: {e}")

        return events


# =============================================================================
# MUTATION LOGGER (Main Interface)
# =============================================================================

class MutationLogger:
    """
    Main logging interface for graph mutations.

    Events always go to the in-memory buffer, optionally to a JSONL file,
    and to any subscribed callbacks.
    """

    def __init__(self, config: Optional[LoggingConfig] = None):
        self.config = config or LoggingConfig()

        self._buffer = EventBuffer(self.config.buffer_size)
        self._file_logger: Optional[FileLogger] = None

        if self.config.enable_file_log and self.config.log_path:
            self._file_logger = FileLogger(Path(self.config.log_path))

        self._subscribers: List[Callable[[MutationEvent], None]] = []

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _emit(self, mutation_type: MutationType, **fields: Any) -> MutationEvent:
        event = MutationEvent(
            timestamp=self._now(),
            sequence=self._buffer.next_sequence(),
            mutation_type=mutation_type.value,
            **fields,
        )
        self._buffer.append(event)

        if self._file_logger:
            self._file_logger.write(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                _log.error(f"Mutation subscriber failed: {e}", exc_info=True)

        _log.debug(f"{event.sequence} {event.mutation_type} node={event.node_id} edge={event.edge_id}")
        return event

    # =========================================================================
    # LOGGING METHODS
    # =========================================================================

    def log_node_created(self, node_id: str, node_kind: str) -> MutationEvent:
        return self._emit(MutationType.NODE_CREATED, node_id=node_id, node_kind=node_kind)

    def log_node_updated(self, node_id: str, node_kind: str) -> MutationEvent:
        return self._emit(MutationType.NODE_UPDATED, node_id=node_id, node_kind=node_kind)

    def log_node_moved(self, node_id: str, node_kind: str) -> MutationEvent:
        return self._emit(MutationType.NODE_MOVED, node_id=node_id, node_kind=node_kind)

    def log_node_deleted(
        self,
        node_id: str,
        node_kind: str,
        edges_removed: int = 0,
    ) -> MutationEvent:
        """Log a node deletion together with the size of its edge cascade."""
        return self._emit(
            MutationType.NODE_DELETED,
            node_id=node_id,
            node_kind=node_kind,
            edges_removed=edges_removed,
        )

    def log_edge_created(self, edge_id: str, source_id: str, target_id: str) -> MutationEvent:
        return self._emit(
            MutationType.EDGE_CREATED,
            edge_id=edge_id,
            source_id=source_id,
            target_id=target_id,
        )

    def log_edge_deleted(self, edge_id: str, source_id: str, target_id: str) -> MutationEvent:
        return self._emit(
            MutationType.EDGE_DELETED,
            edge_id=edge_id,
            source_id=source_id,
            target_id=target_id,
        )

    def log_connection_rejected(
        self,
        source_id: str,
        target_id: str,
        reason: str,
    ) -> MutationEvent:
        return self._emit(
            MutationType.CONNECTION_REJECTED,
            source_id=source_id,
            target_id=target_id,
            reason=reason,
        )

    def log_selection_changed(
        self,
        node_id: Optional[str],
        previous_node_id: Optional[str] = None,
    ) -> MutationEvent:
        return self._emit(
            MutationType.SELECTION_CHANGED,
            node_id=node_id,
            previous_node_id=previous_node_id,
        )

    # =========================================================================
    # QUERY METHODS
    # =========================================================================

    def get_recent_events(self, n: int = 100) -> List[MutationEvent]:
        return self._buffer.get_last(n)

    def get_events_for_node(self, node_id: str) -> List[MutationEvent]:
        return self._buffer.get_by_node(node_id)

    def get_events_by_type(self, mutation_type: str) -> List[MutationEvent]:
        return self._buffer.get_by_type(mutation_type)

    def get_node_timeline(self, node_id: str) -> List[Dict[str, Any]]:
        """Simplified list of mutations touching a node, for debugging."""
        return [
            {
                "sequence": e.sequence,
                "time": e.timestamp,
                "type": e.mutation_type,
                "edge": e.edge_id,
                "reason": e.reason,
            }
            for e in self.get_events_for_node(node_id)
        ]

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        if self._file_logger:
            self._file_logger.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_global_logger: Optional[MutationLogger] = None


def get_logger() -> MutationLogger:
    """Get or create the global logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = MutationLogger()
    return _global_logger


def configure_logger(config: LoggingConfig) -> MutationLogger:
    """Configure and return a new global logger."""
    global _global_logger
    if _global_logger:
        _global_logger.close()
    _global_logger = MutationLogger(config)
    return _global_logger


def reset_logger() -> None:
    """Drop the global logger (tests)."""
    global _global_logger
    if _global_logger:
        _global_logger.close()
    _global_logger = None
