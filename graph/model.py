"""Graph data model for template reference relationships."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union


class NodeKind(Enum):
    """What a graph node stands for."""

    PIPELINE_ROOT = "pipelineRoot"
    LOCAL_TEMPLATE = "localTemplate"
    EXTERNAL_TEMPLATE = "externalTemplate"
    MISSING = "missing"
    UNKNOWN_ALIAS = "unknownAlias"


class EdgeDirection(Enum):
    """Direction of an edge relative to the focal file of a query."""

    DOWNSTREAM = "downstream"
    UPSTREAM = "upstream"
    UNDIRECTED = "undirected"


@dataclass(frozen=True)
class RealKey:
    """Identity of a node backed by a file on disk."""

    path: Path

    @property
    def id(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class MissingKey:
    """Identity of a reference that resolved to a path with no file."""

    path: Path

    @property
    def id(self) -> str:
        return f"missing:{self.path}"


@dataclass(frozen=True)
class UnknownAliasKey:
    """Identity of a reference whose ``@alias`` is not declared."""

    alias: str
    raw_ref: str

    @property
    def id(self) -> str:
        return f"unknown-alias:{self.alias}:{self.raw_ref}"


NodeKey = Union[RealKey, MissingKey, UnknownAliasKey]


@dataclass
class GraphNode:
    """
    A file or a synthetic placeholder for a broken reference.

    Parameter counts are only meaningful for nodes backed by a real file.
    """

    key: NodeKey
    kind: NodeKind
    label: str
    repository: Optional[str] = None
    alias: Optional[str] = None
    parameter_count: int = 0
    required_parameter_count: int = 0

    @property
    def id(self) -> str:
        return self.key.id

    @property
    def path(self) -> Optional[Path]:
        if isinstance(self.key, (RealKey, MissingKey)):
            return self.key.path
        return None

    @property
    def is_synthetic(self) -> bool:
        return self.kind in (NodeKind.MISSING, NodeKind.UNKNOWN_ALIAS)

    @classmethod
    def missing(cls, path: Path, repository: Optional[str] = None) -> "GraphNode":
        return cls(key=MissingKey(path), kind=NodeKind.MISSING, label=path.name, repository=repository)

    @classmethod
    def unknown_alias(cls, alias: str, raw_ref: str) -> "GraphNode":
        path_part = raw_ref.rpartition("@")[0] or raw_ref
        label = Path(path_part).name or raw_ref
        return cls(key=UnknownAliasKey(alias, raw_ref), kind=NodeKind.UNKNOWN_ALIAS, label=label, alias=alias)


@dataclass(frozen=True)
class GraphEdge:
    """A reference from source to target; label carries ``@alias`` if any."""

    source: NodeKey
    target: NodeKey
    direction: EdgeDirection = EdgeDirection.DOWNSTREAM
    label: Optional[str] = None

    @property
    def dedup_key(self) -> Tuple[NodeKey, NodeKey, EdgeDirection]:
        return (self.source, self.target, self.direction)


class TemplateGraph:
    """
    A directed graph of template references.

    Nodes are keyed by NodeKey so repeated broken references collapse into
    one synthetic node. Edges are deduplicated by (source, target, direction)
    and keep insertion order.
    """

    def __init__(self):
        self._nodes: Dict[NodeKey, GraphNode] = {}
        self._edges: Dict[Tuple[NodeKey, NodeKey, EdgeDirection], GraphEdge] = {}

    @property
    def nodes(self) -> List[GraphNode]:
        """Return all nodes in insertion order."""
        return list(self._nodes.values())

    @property
    def edges(self) -> List[GraphEdge]:
        """Return all edges in insertion order."""
        return list(self._edges.values())

    def add_node(self, node: GraphNode) -> GraphNode:
        """
        Add a node unless one with the same key exists.

        Returns:
            The node stored in the graph (the existing one if any).
        """
        existing = self._nodes.get(node.key)
        if existing is not None:
            return existing
        self._nodes[node.key] = node
        return node

    def get_node(self, key: NodeKey) -> Optional[GraphNode]:
        return self._nodes.get(key)

    def add_edge(self, edge: GraphEdge) -> bool:
        """
        Add an edge between two registered nodes.

        Returns:
            True if the edge was new, False if it was a duplicate.
        """
        if edge.source not in self._nodes or edge.target not in self._nodes:
            raise KeyError(f"Edge endpoints must be added first: {edge.source.id} -> {edge.target.id}")
        if edge.dedup_key in self._edges:
            return False
        self._edges[edge.dedup_key] = edge
        return True

    def get_targets(self, source: NodeKey) -> Set[NodeKey]:
        """Get all nodes that source references."""
        return {edge.target for edge in self._edges.values() if edge.source == source}

    def get_sources(self, target: NodeKey) -> Set[NodeKey]:
        """Get all nodes that reference target."""
        return {edge.source for edge in self._edges.values() if edge.target == target}

    def get_roots(self) -> List[GraphNode]:
        """
        Get nodes that are never referenced by other nodes.

        These are usually pipeline entry points.
        """
        all_targets = {edge.target for edge in self._edges.values() if edge.target != edge.source}
        return [node for key, node in self._nodes.items() if key not in all_targets]

    def get_connected_nodes(self) -> List[GraphNode]:
        """Get nodes that take part in at least one edge."""
        connected: Set[NodeKey] = set()
        for edge in self._edges.values():
            connected.add(edge.source)
            connected.add(edge.target)
        return [node for key, node in self._nodes.items() if key in connected]

    def nodes_of_kind(self, kind: NodeKind) -> List[GraphNode]:
        return [node for node in self._nodes.values() if node.kind is kind]

    def iter_edges(self) -> Iterator[Tuple[GraphNode, GraphNode, GraphEdge]]:
        """Iterate over edges together with their endpoint nodes."""
        for edge in self._edges.values():
            yield self._nodes[edge.source], self._nodes[edge.target], edge

    def merge(self, other: "TemplateGraph") -> None:
        """Add all nodes and edges of other; existing nodes win."""
        for node in other.nodes:
            self.add_node(node)
        for edge in other.edges:
            self.add_edge(edge)

    def __len__(self) -> int:
        """Return the number of nodes in the graph."""
        return len(self._nodes)

    def __contains__(self, key: NodeKey) -> bool:
        return key in self._nodes

    def __repr__(self) -> str:
        missing_count = len(self.nodes_of_kind(NodeKind.MISSING))
        unknown_count = len(self.nodes_of_kind(NodeKind.UNKNOWN_ALIAS))
        return (
            f"TemplateGraph(nodes={len(self._nodes)}, edges={len(self._edges)}, "
            f"missing={missing_count}, unknown_aliases={unknown_count})"
        )


@dataclass
class TreeNode:
    """
    One node of a downstream or upstream traversal.

    A cycle node repeats an ancestor's GraphNode and is never expanded.
    ``truncated`` marks a leaf left unexpanded by the depth limit although
    its file still references templates.
    ``via`` annotates the edge from the parent (``@alias``).
    """

    node: GraphNode
    children: List["TreeNode"] = field(default_factory=list)
    is_cycle: bool = False
    via: Optional[str] = None
    truncated: bool = False

    @property
    def key(self) -> NodeKey:
        return self.node.key

    def walk(self, depth: int = 0) -> Iterator[Tuple[int, "TreeNode"]]:
        """Yield (depth, tree node) pairs depth-first, self included."""
        yield depth, self
        for child in self.children:
            yield from child.walk(depth + 1)

    def find(self, key: NodeKey) -> Optional["TreeNode"]:
        """Return the first tree node for key in depth-first order."""
        for _, tree in self.walk():
            if tree.key == key:
                return tree
        return None

    def find_all(self, key: NodeKey) -> List["TreeNode"]:
        return [tree for _, tree in self.walk() if tree.key == key]

    def cycles(self) -> List["TreeNode"]:
        return [tree for _, tree in self.walk() if tree.is_cycle]

    def to_graph(self, direction: EdgeDirection = EdgeDirection.DOWNSTREAM) -> TemplateGraph:
        """
        Flatten the tree into a graph.

        Downstream trees produce parent -> child edges. Upstream trees hold
        callers as children, so their edges run child -> parent to keep
        every edge pointing from caller to callee.
        """
        graph = TemplateGraph()
        graph.add_node(self.node)
        stack = [self]
        while stack:
            parent = stack.pop()
            for child in parent.children:
                graph.add_node(child.node)
                if direction is EdgeDirection.UPSTREAM:
                    edge = GraphEdge(child.key, parent.key, direction, child.via)
                else:
                    edge = GraphEdge(parent.key, child.key, direction, child.via)
                graph.add_edge(edge)
                if not child.is_cycle:
                    stack.append(child)
        return graph
