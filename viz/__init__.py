"""
FLOWBUILDER VISUALIZATION - Data for the canvas

This package provides what the render surface needs to draw the flow:
- core: Canvas snapshot structures and polars Arrow export
"""

from viz.core import (
    CanvasNode,
    CanvasEdge,
    CanvasSnapshot,
    create_snapshot_from_db,
    serialize_to_arrow,
)

__all__ = [
    "CanvasNode",
    "CanvasEdge",
    "CanvasSnapshot",
    "create_snapshot_from_db",
    "serialize_to_arrow",
]
