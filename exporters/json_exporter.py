"""JSON exporter for template graphs and trees (machine-friendly format)."""

import json
from pathlib import Path
from typing import Any, Dict, List

from graph.model import GraphNode, TemplateGraph, TreeNode

from .common import display_path, node_ref


def _node_dict(node: GraphNode, root: Path) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": node_ref(node, root),
        "label": node.label,
        "kind": node.kind.value,
        "parameterCount": node.parameter_count,
        "requiredParameterCount": node.required_parameter_count,
    }
    if node.path is not None:
        data["path"] = display_path(node.path, root)
    if node.repository:
        data["repository"] = node.repository
    if node.alias:
        data["alias"] = node.alias
    return data


def to_json(graph: TemplateGraph, root: Path, indent: int = 2) -> str:
    """
    Convert a template graph to JSON format.

    Args:
        graph: The template graph to export.
        root: Workspace root for relative paths.
        indent: JSON indentation level.

    Returns:
        JSON string with ``nodes`` and ``edges`` lists.
    """
    nodes = [_node_dict(node, root) for node in graph.nodes]

    edges: List[Dict[str, Any]] = []
    for source, target, edge in graph.iter_edges():
        entry: Dict[str, Any] = {
            "source": node_ref(source, root),
            "target": node_ref(target, root),
            "direction": edge.direction.value,
        }
        if edge.label:
            entry["label"] = edge.label
        edges.append(entry)

    data: Dict[str, Any] = {
        "nodes": nodes,
        "edges": edges,
    }

    return json.dumps(data, indent=indent)


def tree_to_json(tree: TreeNode, root: Path, indent: int = 2) -> str:
    """Convert a traversal tree to nested JSON."""
    return json.dumps(_tree_dict(tree, root), indent=indent)


def _tree_dict(tree: TreeNode, root: Path) -> Dict[str, Any]:
    data = _node_dict(tree.node, root)
    if tree.via:
        data["via"] = tree.via
    if tree.is_cycle:
        data["cycle"] = True
    if tree.truncated:
        data["truncated"] = True
    data["children"] = [_tree_dict(child, root) for child in tree.children]
    return data
