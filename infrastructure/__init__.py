"""
FLOWBUILDER INFRASTRUCTURE - System-Level Modules

This package contains infrastructure components:
- config: Typed configuration loaded from flowbuilder.toml
- logger: Mutation event logging (ring buffer + JSONL files)
- event_bus: Publish/subscribe notifications for the UI surfaces
"""

from infrastructure.config import FlowConfig, get_config, load_config
from infrastructure.logger import MutationLogger, get_logger, configure_logger
from infrastructure.event_bus import EventBus, EventType, GraphEvent, get_event_bus

__all__ = [
    "FlowConfig",
    "get_config",
    "load_config",
    "MutationLogger",
    "get_logger",
    "configure_logger",
    "EventBus",
    "EventType",
    "GraphEvent",
    "get_event_bus",
]
