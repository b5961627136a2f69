"""ASCII tree-style exporter for template graphs and traversal trees."""

from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from graph.model import GraphNode, NodeKey, TemplateGraph, TreeNode

from .common import node_display, node_marker, parameter_badge


# Unicode tree characters
UNICODE_BRANCH = "├── "
UNICODE_LAST = "└── "
UNICODE_VERTICAL = "│   "
UNICODE_SPACE = "    "

# ASCII fallback characters
ASCII_BRANCH = "|-- "
ASCII_LAST = "\\-- "
ASCII_VERTICAL = "|   "
ASCII_SPACE = "    "

CYCLE_MARKER = " [CYCLE]"
TRUNCATED_MARKER = " [...]"


def _chars(style: str) -> Tuple[str, str, str, str]:
    if style == "ascii":
        return (ASCII_BRANCH, ASCII_LAST, ASCII_VERTICAL, ASCII_SPACE)
    return (UNICODE_BRANCH, UNICODE_LAST, UNICODE_VERTICAL, UNICODE_SPACE)


def _node_text(node: GraphNode, root: Path, show_params: bool, via: Optional[str] = None) -> str:
    text = node_display(node, root)
    if via:
        text += f" ({via})"
    text += node_marker(node)
    if show_params:
        text += parameter_badge(node)
    return text


def tree_to_ascii(
    tree: TreeNode,
    root: Path,
    style: str = "tree",
    show_params: bool = True,
) -> str:
    """
    Render a downstream or upstream traversal tree.

    Args:
        tree: Traversal result to render.
        root: Workspace root for relative paths.
        style: Output style - "tree" (Unicode) or "ascii" (pure ASCII).
        show_params: If True, append parameter counts to file nodes.

    Returns:
        ASCII tree string; cycle nodes carry a ``[CYCLE]`` marker and
        leaves cut off by the depth limit a ``[...]`` marker.
    """
    chars = _chars(style)
    lines: List[str] = [_node_text(tree.node, root, show_params)]
    _render_tree_children(tree, root, "", chars, show_params, lines)
    return "\n".join(lines)


def _render_tree_children(
    tree: TreeNode,
    root: Path,
    prefix: str,
    chars: Tuple[str, str, str, str],
    show_params: bool,
    lines: List[str],
) -> None:
    branch, last, vertical, space = chars
    for i, child in enumerate(tree.children):
        is_last = i == len(tree.children) - 1
        text = _node_text(child.node, root, show_params and not child.is_cycle, child.via)
        if child.is_cycle:
            text += CYCLE_MARKER
        elif child.truncated:
            text += TRUNCATED_MARKER
        lines.append(f"{prefix}{last if is_last else branch}{text}")
        _render_tree_children(child, root, prefix + (space if is_last else vertical), chars, show_params, lines)


def to_ascii(
    graph: TemplateGraph,
    root: Path,
    style: str = "tree",
    show_all: bool = False,
    show_params: bool = False,
) -> str:
    """
    Convert a template graph to ASCII tree representation.

    Every root (a node no other node references) starts its own tree. A
    node already on the current branch is printed with ``[CYCLE]`` and not
    expanded again.

    Args:
        graph: The template graph to export.
        root: Workspace root for relative paths.
        style: Output style - "tree" (Unicode) or "ascii" (pure ASCII).
        show_all: If True, include nodes with no connections. Default False.
        show_params: If True, append parameter counts to file nodes.

    Returns:
        ASCII tree string.
    """
    chars = _chars(style)

    if show_all:
        nodes_to_show = graph.nodes
    else:
        nodes_to_show = graph.get_connected_nodes()
    shown: Set[NodeKey] = {node.key for node in nodes_to_show}

    children: Dict[NodeKey, List[Tuple[GraphNode, Optional[str]]]] = {}
    for source, target, edge in graph.iter_edges():
        children.setdefault(source.key, []).append((target, edge.label))
    for key in children:
        children[key].sort(key=lambda item: node_display(item[0], root))

    root_nodes = [node for node in graph.get_roots() if node.key in shown]
    # Pure cycles have no root; start from every node with outgoing edges
    if not root_nodes:
        root_nodes = [node for node in nodes_to_show if node.key in children]
    root_nodes.sort(key=lambda node: node_display(node, root))

    lines: List[str] = []
    for i, node in enumerate(root_nodes):
        lines.append(_node_text(node, root, show_params))
        _render_graph_children(node, root, "", chars, children, shown, {node.key}, show_params, lines)
        # Add blank line between root trees (except after last)
        if i < len(root_nodes) - 1:
            lines.append("")

    return "\n".join(lines)


def _render_graph_children(
    node: GraphNode,
    root: Path,
    prefix: str,
    chars: Tuple[str, str, str, str],
    children: Dict[NodeKey, List[Tuple[GraphNode, Optional[str]]]],
    shown: Set[NodeKey],
    visited: Set[NodeKey],
    show_params: bool,
    lines: List[str],
) -> None:
    branch, last, vertical, space = chars
    items = [(child, label) for child, label in children.get(node.key, []) if child.key in shown]

    for i, (child, label) in enumerate(items):
        is_last = i == len(items) - 1
        connector = last if is_last else branch
        is_cycle = child.key in visited

        text = _node_text(child, root, show_params and not is_cycle, label)
        if is_cycle:
            lines.append(f"{prefix}{connector}{text}{CYCLE_MARKER}")
            continue
        lines.append(f"{prefix}{connector}{text}")

        visited.add(child.key)
        _render_graph_children(
            child, root, prefix + (space if is_last else vertical), chars, children, shown, visited, show_params, lines
        )
        # Remove from visited when backtracking so shared templates
        # are expanded under every caller
        visited.discard(child.key)
