"""Display helpers shared by the exporters."""

from pathlib import Path

from graph.model import GraphNode, MissingKey, NodeKind, UnknownAliasKey


def display_path(path: Path, root: Path) -> str:
    """
    Path relative to the workspace root.

    Files in sibling repositories are shown relative to the root's parent
    (``sibling-repo/stages/build.yml``); anything else stays absolute.
    """
    for base in (root, root.parent):
        try:
            return str(path.relative_to(base)).replace("\\", "/")
        except ValueError:
            continue
    return str(path).replace("\\", "/")


def node_display(node: GraphNode, root: Path) -> str:
    """Human-readable name of a node."""
    if isinstance(node.key, UnknownAliasKey):
        return node.key.raw_ref
    return display_path(node.key.path, root)


def node_ref(node: GraphNode, root: Path) -> str:
    """Stable identifier of a node with workspace-relative paths."""
    if isinstance(node.key, UnknownAliasKey):
        return node.key.id
    if isinstance(node.key, MissingKey):
        return f"missing:{display_path(node.key.path, root)}"
    return display_path(node.key.path, root)


def node_marker(node: GraphNode) -> str:
    """Bracketed status marker for broken or cross-repository nodes."""
    if node.kind is NodeKind.MISSING:
        return " [MISSING]"
    if node.kind is NodeKind.UNKNOWN_ALIAS:
        return f" [UNKNOWN ALIAS @{node.alias}]"
    return ""


def parameter_badge(node: GraphNode) -> str:
    """``(3 params, 1 required)`` style summary; empty without parameters."""
    if node.is_synthetic or not node.parameter_count:
        return ""
    noun = "param" if node.parameter_count == 1 else "params"
    if node.required_parameter_count:
        return f" ({node.parameter_count} {noun}, {node.required_parameter_count} required)"
    return f" ({node.parameter_count} {noun})"
