"""
Lightweight event bus for decoupled graph change notifications.

Follows publisher-subscriber pattern so the canvas, the edit panel and the
toast surface can react to engine changes without the engine knowing them.

Design Principles:
- Publisher-subscriber pattern (decoupled)
- Supports both sync and async handlers
- Non-blocking (async handlers scheduled via create_task)
- Singleton for global access
- Type-safe events via msgspec

Architecture:
    FlowDB / FlowEditor -> EventBus -> [Canvas, Edit panel, Notifications]

Usage:
    from infrastructure.event_bus import get_event_bus, EventType

    def show_toast(event):
        print(event.payload["urgency"], event.payload["message"])

    get_event_bus().subscribe(EventType.NOTIFICATION_CREATED, show_toast)
"""
from typing import Callable, List, Dict, Any, Optional, Set
from enum import Enum
import msgspec
import asyncio
import time
from collections import defaultdict
import logging


logger = logging.getLogger("flowbuilder.event_bus")


class EventType(str, Enum):
    """Types of events published by the engine."""
    NODE_CREATED = "node_created"
    NODE_UPDATED = "node_updated"
    NODE_DELETED = "node_deleted"
    EDGE_CREATED = "edge_created"
    EDGE_DELETED = "edge_deleted"
    SELECTION_CHANGED = "selection_changed"
    NOTIFICATION_CREATED = "notification_created"


class GraphEvent(msgspec.Struct, kw_only=True):
    """
    Event emitted when the flow graph or its selection changes.

    Attributes:
        type: Type of event (NODE_CREATED, EDGE_CREATED, etc.)
        payload: Event-specific data (node_id, edge_id, etc.)
        timestamp: Unix timestamp when event occurred
        source: Source of event ("graph_db", "editor")
    """
    type: EventType
    payload: Dict[str, Any]
    timestamp: float
    source: str


class EventBus:
    """
    Event bus for engine change notifications.

    Thread Safety:
        NOT thread-safe. The engine is single-threaded; async handlers are
        scheduled on the running loop when there is one.

    Performance:
        - O(1) event publishing
        - O(n) notification per event type (where n = subscriber count)
    """

    def __init__(self):
        self._subscribers: Dict[EventType, List[Callable]] = defaultdict(list)
        self._async_subscribers: Dict[EventType, List[Callable]] = defaultdict(list)
        # Strong references keep scheduled handlers alive until they finish
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: EventType, handler: Callable[[GraphEvent], None]):
        """Subscribe to events with a synchronous handler."""
        if handler not in self._subscribers[event_type]:
            self._subscribers[event_type].append(handler)
            logger.debug(f"Subscribed sync handler to {event_type.value}")

    def subscribe_async(self, event_type: EventType, handler: Callable[[GraphEvent], Any]):
        """Subscribe to events with an async handler."""
        if handler not in self._async_subscribers[event_type]:
            self._async_subscribers[event_type].append(handler)
            logger.debug(f"Subscribed async handler to {event_type.value}")

    def publish(self, event: GraphEvent):
        """
        Publish an event to all subscribers.

        Note:
            - Sync handlers run immediately (blocking)
            - Async handlers are scheduled and run in the background
            - Exceptions in handlers are logged but don't propagate
        """
        logger.debug(
            f"Publishing {event.type.value} from {event.source} "
            f"(payload keys: {list(event.payload.keys())})"
        )

        for handler in self._subscribers[event.type]:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Error in sync handler for {event.type.value}: {e}",
                    exc_info=True
                )

        for handler in self._async_subscribers[event.type]:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(
                    f"Cannot schedule async handler for {event.type.value}: "
                    "no event loop running"
                )
                continue
            task = loop.create_task(handler(event))
            self._pending.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        """Release a finished async handler and log its failure, if any."""
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error in async handler: {error}", exc_info=error)

    @property
    def pending_tasks(self) -> int:
        """Async handlers scheduled but not yet finished."""
        return len(self._pending)

    def unsubscribe(self, event_type: EventType, handler: Callable):
        """Unsubscribe a handler (must be the same instance)."""
        if handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)
            logger.debug(f"Unsubscribed sync handler from {event_type.value}")

        if handler in self._async_subscribers[event_type]:
            self._async_subscribers[event_type].remove(handler)
            logger.debug(f"Unsubscribed async handler from {event_type.value}")

    def clear_subscribers(self, event_type: EventType = None):
        """
        Clear all subscribers for an event type (or all types).

        Warning:
            This is primarily for testing.
        """
        if event_type is None:
            self._subscribers.clear()
            self._async_subscribers.clear()
            logger.info("Cleared all event subscribers")
        else:
            self._subscribers[event_type].clear()
            self._async_subscribers[event_type].clear()
            logger.info(f"Cleared subscribers for {event_type.value}")

    def subscriber_count(self, event_type: EventType = None) -> int:
        """Total number of subscribers (sync + async) for a type, or overall."""
        if event_type is None:
            total = sum(len(handlers) for handlers in self._subscribers.values())
            total += sum(len(handlers) for handlers in self._async_subscribers.values())
            return total
        return (
            len(self._subscribers[event_type]) +
            len(self._async_subscribers[event_type])
        )


# =============================================================================
# SINGLETON INSTANCE
# =============================================================================

_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance (singleton)."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
        logger.info("Initialized global event bus")
    return _event_bus


def reset_event_bus() -> None:
    """Drop the global event bus (tests)."""
    global _event_bus
    _event_bus = None


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def publish_graph_event(
    event_type: EventType,
    payload: Dict[str, Any],
    source: str = "graph_db",
    bus: Optional[EventBus] = None,
):
    """Publish a graph change on the given bus (global bus by default)."""
    (bus or get_event_bus()).publish(GraphEvent(
        type=event_type,
        payload=payload,
        timestamp=time.time(),
        source=source,
    ))


def publish_notification(
    message: str,
    urgency: str = "info",
    reason: Optional[str] = None,
    related_node_ids: Optional[List[str]] = None,
    source: str = "editor",
    bus: Optional[EventBus] = None,
):
    """
    Publish a user-facing notification (toast).

    Args:
        message: Human-readable notification message
        urgency: "success", "info" or "error"
        reason: Machine-readable reason code, if any
        related_node_ids: Nodes the notification is about
        source: Source of the event
        bus: Bus to publish on (global bus by default)
    """
    publish_graph_event(
        EventType.NOTIFICATION_CREATED,
        {
            "message": message,
            "urgency": urgency,
            "reason": reason,
            "related_node_ids": related_node_ids or [],
        },
        source=source,
        bus=bus,
    )
