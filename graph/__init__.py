"""Template reference graphs, traversals and the workspace index."""

from .model import (
    EdgeDirection,
    GraphEdge,
    GraphNode,
    MissingKey,
    NodeKind,
    RealKey,
    TemplateGraph,
    TreeNode,
    UnknownAliasKey,
)
from .builder import GraphBuilder
from .index import IndexSnapshot, WorkspaceIndex
from .workspace import FileChange, Workspace

__all__ = [
    "EdgeDirection",
    "GraphEdge",
    "GraphNode",
    "MissingKey",
    "NodeKind",
    "RealKey",
    "TemplateGraph",
    "TreeNode",
    "UnknownAliasKey",
    "GraphBuilder",
    "IndexSnapshot",
    "WorkspaceIndex",
    "FileChange",
    "Workspace",
]
