"""
Pytest configuration and shared fixtures for the Flowbuilder test suite.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset global singletons before each test to ensure isolation."""
    from infrastructure.config import FlowConfig, set_config
    from infrastructure.event_bus import reset_event_bus
    from infrastructure.logger import reset_logger

    set_config(FlowConfig())
    reset_event_bus()
    reset_logger()

    yield

    set_config(None)
    reset_event_bus()
    reset_logger()


@pytest.fixture
def sequential_ids():
    """Allocator issuing node-1, node-2, ... regardless of wall clock."""
    from core.identity import NodeIdAllocator
    return NodeIdAllocator(clock=lambda: 0)


@pytest.fixture
def fresh_db(sequential_ids):
    """Provide an empty FlowDB with predictable node IDs."""
    from core.graph_db import FlowDB
    return FlowDB(id_allocator=sequential_ids)


@pytest.fixture
def chain_db(fresh_db):
    """Provide a three-node chain n1 -> n2 -> n3."""
    n1 = fresh_db.add_node()
    n2 = fresh_db.add_node()
    n3 = fresh_db.add_node()
    fresh_db.add_edge(n1, n2)
    fresh_db.add_edge(n2, n3)
    return fresh_db, (n1, n2, n3)


@pytest.fixture
def editor(fresh_db):
    """Provide a FlowEditor over an empty store."""
    from core.editor import FlowEditor
    return FlowEditor(fresh_db)


@pytest.fixture
def notifications():
    """Collect NOTIFICATION_CREATED payloads from the global bus."""
    from infrastructure.event_bus import EventType, get_event_bus

    received = []
    get_event_bus().subscribe(
        EventType.NOTIFICATION_CREATED,
        lambda event: received.append(event.payload),
    )
    return received
