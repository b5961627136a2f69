"""Mermaid flowchart exporter for template graphs."""

import re
from pathlib import Path
from typing import Dict, List

from graph.model import EdgeDirection, GraphNode, NodeKey, NodeKind, TemplateGraph

from .common import node_display, parameter_badge


# Node shapes per kind: (open, close)
_SHAPES = {
    NodeKind.PIPELINE_ROOT: ("([", "])"),
    NodeKind.LOCAL_TEMPLATE: ("[", "]"),
    NodeKind.EXTERNAL_TEMPLATE: ("[[", "]]"),
    NodeKind.MISSING: ("[", "]"),
    NodeKind.UNKNOWN_ALIAS: ("{{", "}}"),
}

_STYLES = {
    NodeKind.MISSING: "stroke:#ff0000,stroke-dasharray: 5 5",
    NodeKind.UNKNOWN_ALIAS: "stroke:#ff9900,stroke-dasharray: 5 5",
    NodeKind.EXTERNAL_TEMPLATE: "stroke:#0066cc",
}

_SUFFIXES = {
    NodeKind.MISSING: " [MISSING]",
    NodeKind.UNKNOWN_ALIAS: " [UNKNOWN ALIAS]",
}


def to_mermaid(
    graph: TemplateGraph,
    root: Path,
    orientation: str = "LR",
    group_by_repository: bool = False,
    show_params: bool = False,
) -> str:
    """
    Convert a template graph to Mermaid flowchart syntax.

    Args:
        graph: The template graph to export.
        root: Workspace root for relative paths.
        orientation: Flowchart orientation (LR, TD, TB, RL, BT).
        group_by_repository: If True, wrap nodes in one subgraph per
            repository, with broken references in their own subgraph.
        show_params: If True, add parameter counts to node labels.

    Returns:
        Mermaid flowchart string.
    """
    lines = [f"flowchart {orientation}"]
    node_ids = _assign_ids(graph, root)
    nodes = sorted(graph.nodes, key=lambda node: node_ids[node.key])

    if group_by_repository:
        groups: Dict[str, List[GraphNode]] = {}
        for node in nodes:
            groups.setdefault(_group_name(node, root), []).append(node)
        for group_name in sorted(groups):
            lines.append(f"    subgraph {_sanitize_id_simple('group_' + group_name)}[{group_name}]")
            for node in groups[group_name]:
                lines.append(f"        {_node_definition(node, node_ids[node.key], root, show_params)}")
            lines.append("    end")
            lines.append("")
    else:
        for node in nodes:
            lines.append(f"    {_node_definition(node, node_ids[node.key], root, show_params)}")
        lines.append("")

    for source, target, edge in graph.iter_edges():
        arrow = "-.->" if target.is_synthetic else "-->"
        if edge.direction is EdgeDirection.UNDIRECTED and not target.is_synthetic:
            arrow = "---"
        if edge.label:
            arrow = f'{arrow}|"{edge.label}"|'
        lines.append(f"    {node_ids[source.key]} {arrow} {node_ids[target.key]}")

    styled = [node for node in nodes if node.kind in _STYLES]
    if styled:
        lines.append("")
        for node in styled:
            lines.append(f"    style {node_ids[node.key]} {_STYLES[node.kind]}")

    return "\n".join(lines)


def _node_definition(node: GraphNode, node_id: str, root: Path, show_params: bool) -> str:
    label = node_display(node, root) + _SUFFIXES.get(node.kind, "")
    if show_params:
        label += parameter_badge(node)
    open_, close = _SHAPES[node.kind]
    return f'{node_id}{open_}"{_escape_label(label)}"{close}'


def _group_name(node: GraphNode, root: Path) -> str:
    if node.is_synthetic:
        return "Broken References"
    return node.repository or root.name


def _assign_ids(graph: TemplateGraph, root: Path) -> Dict[NodeKey, str]:
    """Give every node a unique Mermaid id derived from its display name."""
    ids: Dict[NodeKey, str] = {}
    taken = set()
    for node in graph.nodes:
        prefix = {NodeKind.MISSING: "missing_", NodeKind.UNKNOWN_ALIAS: "unknown_"}.get(node.kind, "")
        base = _sanitize_id_simple(prefix + node_display(node, root))
        node_id, count = base, 1
        while node_id in taken:
            node_id = f"{base}_{count}"
            count += 1
        taken.add(node_id)
        ids[node.key] = node_id
    return ids


def _sanitize_id_simple(value: str) -> str:
    """Sanitize a string to be a valid Mermaid ID."""
    # Replace path separators and dots with underscores
    sanitized = re.sub(r"[/\\.\-@]", "_", value)
    # Remove any remaining invalid characters
    sanitized = re.sub(r"[^a-zA-Z0-9_]", "", sanitized)
    # Ensure it starts with a letter
    if sanitized and not sanitized[0].isalpha():
        sanitized = "n_" + sanitized
    return sanitized or "unknown"


def _escape_label(label: str) -> str:
    return label.replace('"', "#quot;")
