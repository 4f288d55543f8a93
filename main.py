"""
FLOWBUILDER MAIN - Entry Point and CLI

Commands:
    demo    - Build a sample message flow and print its canvas snapshot
    config  - Show the effective configuration

Usage:
    # Three connected messages, saved successfully
    python main.py demo

    # Leave the last message unconnected to see the save check fail
    python main.py demo --nodes 3 --leave-disconnected

    # Use another configuration file
    python main.py --config path/to/flowbuilder.toml config
"""
import sys
import json
import logging
from pathlib import Path
from typing import List, Optional

import msgspec

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from core.editor import FlowEditor
from core.graph_db import FlowDB
from core.schemas import Position
from infrastructure.config import FlowConfig, load_config, set_config
from infrastructure.event_bus import EventType, GraphEvent, get_event_bus
from infrastructure.logger import configure_logger
from viz.core import create_snapshot_from_db


def _print_notification(event: GraphEvent) -> None:
    print(f"[{event.payload['urgency']}] {event.payload['message']}")


def build_demo_flow(
    editor: FlowEditor,
    node_count: int = 3,
    leave_disconnected: bool = False,
) -> List[str]:
    """Drop node_count messages in a row and chain them together."""
    node_ids = []
    for i in range(node_count):
        result = editor.drop_node("text", Position(x=250.0 * i, y=0.0))
        node_ids.append(result.node_id)
        editor.select(result.node_id)
        editor.edit_message(f"Message {i + 1}")
        editor.deselect()

    links = list(zip(node_ids, node_ids[1:]))
    if leave_disconnected and links:
        links = links[:-1]
    for source, target in links:
        editor.connect(source, target)
    return node_ids


def cmd_demo(args, config: FlowConfig) -> int:
    """Build a sample flow, print its snapshot and try to save it."""
    bus = get_event_bus()
    bus.subscribe(EventType.NOTIFICATION_CREATED, _print_notification)

    editor = FlowEditor(FlowDB(config=config.editor))
    build_demo_flow(editor, args.nodes, args.leave_disconnected)

    snapshot = create_snapshot_from_db(editor.db)
    print(json.dumps(snapshot.to_dict(), indent=2))

    result = editor.submit()
    return 0 if result.ok else 1


def cmd_config(args, config: FlowConfig) -> int:
    """Print the effective configuration as JSON."""
    print(json.dumps(msgspec.to_builtins(config), indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with subcommands."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Flowbuilder - chatbot message flow engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, help="Path to flowbuilder.toml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    demo_parser = subparsers.add_parser("demo", help="Build and validate a sample flow")
    demo_parser.add_argument("--nodes", type=int, default=3, help="Number of message nodes")
    demo_parser.add_argument(
        "--leave-disconnected",
        action="store_true",
        help="Do not connect the last node",
    )
    demo_parser.set_defaults(func=cmd_demo)

    config_parser = subparsers.add_parser("config", help="Show effective configuration")
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    config = load_config(args.config)
    set_config(config)
    configure_logger(config.logging)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.logging.level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
