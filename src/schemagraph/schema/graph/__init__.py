"""Persisted property-graph model definitions."""

from .models import (
    STRUCTURAL_EDGE_TYPES,
    DeleteCounts,
    EdgeType,
    GraphData,
    GraphEdge,
    GraphFilter,
    GraphNode,
    GraphStats,
    NodeType,
)

__all__ = [
    "STRUCTURAL_EDGE_TYPES",
    "DeleteCounts",
    "EdgeType",
    "GraphData",
    "GraphEdge",
    "GraphFilter",
    "GraphNode",
    "GraphStats",
    "NodeType",
]
