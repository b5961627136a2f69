"""Graph builder that turns parsed templates into graphs and traversal trees."""

import logging
from collections import Counter
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Set

from scanner.cache import FileCache
from scanner.config import ScanConfig
from scanner.discovery import iter_files
from scanner.parser import ParameterDeclaration, extract_parameters, has_template_references, is_pipeline_root
from scanner.resolver import PathResolver

from .index import WorkspaceIndex
from .model import (
    EdgeDirection,
    GraphEdge,
    GraphNode,
    NodeKey,
    NodeKind,
    RealKey,
    TemplateGraph,
    TreeNode,
)
from .traversal import (
    NodeDescriber,
    build_upstream_tree,
    clamp_depth,
    describe_file,
    iter_reference_targets,
    synthetic_node,
)


logger = logging.getLogger(__name__)


class GraphBuilder:
    """
    Build workspace graphs and per-file reference trees.

    Args:
        root: Workspace root directory.
        cache: Shared file cache.
        resolver: Shared path resolver.
        index: Optional workspace index used for upstream queries once ready.
        config: Scan options; defaults when omitted.
    """

    def __init__(
        self,
        root: Path,
        cache: FileCache,
        resolver: PathResolver,
        index: Optional[WorkspaceIndex] = None,
        config: Optional[ScanConfig] = None,
    ):
        self.root = Path(root).resolve()
        self.cache = cache
        self.resolver = resolver
        self.index = index
        self.config = config or ScanConfig()

    def _iter_corpus(self, scan_root: Path):
        return iter_files(
            scan_root,
            include_ext=self.config.include_ext,
            exclude_dirs=self.config.exclude_dirs,
            max_depth=self.config.max_scan_depth,
        )

    # ------------------------------------------------------------------
    # Whole-workspace graph
    # ------------------------------------------------------------------

    def build_workspace_graph(self, sub_path: Optional[str] = None) -> TemplateGraph:
        """
        Build a graph with every template file as a node.

        Args:
            sub_path: Optional directory, relative to the root, to scan instead
                of the whole workspace (e.g. ``templates`` or ``pipelines/api``).

        Returns:
            TemplateGraph with undirected edges, labelled ``@alias`` for
            cross-repository and unknown-alias references.
        """
        scan_root = self.root
        if sub_path and sub_path.strip():
            scan_root = self.root / sub_path.strip().lstrip("/\\")

        graph = TemplateGraph()
        files = list(self._iter_corpus(scan_root))

        texts: Dict[Path, Optional[str]] = {}
        for path in files:
            text = self.cache.read(path)
            texts[path] = text
            kind = NodeKind.PIPELINE_ROOT if text and is_pipeline_root(text) else NodeKind.LOCAL_TEMPLATE
            graph.add_node(GraphNode(key=RealKey(path), kind=kind, label=path.name))

        stats: Counter = Counter()
        for path in files:
            text = texts[path]
            if text is None:
                continue
            for target in iter_reference_targets(path, text, self.resolver, self.cache, stats):
                if isinstance(target.key, RealKey):
                    node = graph.add_node(
                        GraphNode(
                            key=target.key,
                            kind=NodeKind.EXTERNAL_TEMPLATE if target.resolved.repository else NodeKind.LOCAL_TEMPLATE,
                            label=target.key.path.name,
                            repository=target.resolved.repository,
                        )
                    )
                    # Reached through a repository alias at least once
                    if target.resolved.repository and node.kind is not NodeKind.EXTERNAL_TEMPLATE:
                        node.kind = NodeKind.EXTERNAL_TEMPLATE
                        node.repository = target.resolved.repository
                else:
                    graph.add_node(synthetic_node(target))

                if graph.add_edge(GraphEdge(RealKey(path), target.key, EdgeDirection.UNDIRECTED, target.via)):
                    stats["edges"] += 1

        for node in graph.nodes:
            if node.kind is NodeKind.MISSING or not isinstance(node.key, RealKey):
                continue
            text = self.cache.read(node.key.path)
            if text is None:
                continue
            params = extract_parameters(text)
            node.parameter_count = len(params)
            node.required_parameter_count = sum(1 for p in params if p.required)

        logger.debug(
            "Workspace graph for %s: %d files, %d references, %d runtime skipped, "
            "%d unresolved, %d missing, %d unknown alias, %d edges",
            scan_root,
            len(files),
            stats["references"],
            stats["runtime"],
            stats["unresolved"],
            stats["missing"],
            stats["unknown_alias"],
            stats["edges"],
        )
        return graph

    # ------------------------------------------------------------------
    # Downstream
    # ------------------------------------------------------------------

    def downstream_tree(self, focal: Path, depth: Optional[int] = None) -> TreeNode:
        """
        Build the tree of templates referenced from focal.

        Args:
            focal: File to start from.
            depth: Levels to expand, clamped to 1..10.

        Returns:
            Tree rooted at focal. A reference back to a file already on the
            current branch becomes a cycle node; missing and unknown-alias
            targets are leaves.
        """
        depth = clamp_depth(depth, self.config.default_depth)
        focal = Path(focal).resolve()
        describe = NodeDescriber(self.cache)

        tree = TreeNode(describe(focal))
        self._expand_downstream(tree, focal, frozenset({focal}), depth, describe)
        return tree

    def _expand_downstream(
        self,
        tree: TreeNode,
        path: Path,
        ancestors: FrozenSet[Path],
        remaining: int,
        describe: NodeDescriber,
    ) -> None:
        text = self.cache.read(path)
        if text is None:
            return
        if remaining <= 0:
            tree.truncated = has_template_references(text)
            return

        seen: Set[NodeKey] = set()
        for target in iter_reference_targets(path, text, self.resolver, self.cache):
            if target.key in seen:
                continue
            seen.add(target.key)

            if not isinstance(target.key, RealKey):
                tree.children.append(TreeNode(synthetic_node(target), via=target.via))
                continue

            child_path = target.key.path
            child = TreeNode(describe(child_path, target.resolved.repository), via=target.via)
            tree.children.append(child)
            if child_path in ancestors:
                child.is_cycle = True
                continue
            self._expand_downstream(child, child_path, ancestors | {child_path}, remaining - 1, describe)

    # ------------------------------------------------------------------
    # Upstream
    # ------------------------------------------------------------------

    def scan_callers(self) -> Dict[Path, Set[Path]]:
        """
        Map every referenced path to the files referencing it, in one pass.

        Used when the workspace index is not ready yet.
        """
        callers: Dict[Path, Set[Path]] = {}
        for path in self._iter_corpus(self.root):
            text = self.cache.read(path)
            if text is None:
                continue
            for target in iter_reference_targets(path, text, self.resolver, self.cache):
                if target.path is not None:
                    callers.setdefault(target.path, set()).add(path)
        return callers

    def upstream_tree(self, focal: Path, depth: Optional[int] = None) -> TreeNode:
        """
        Build the tree of files that transitively reference focal.

        Uses the workspace index when it is ready; otherwise scans the corpus
        once and walks the resulting caller map.
        """
        depth = clamp_depth(depth, self.config.default_depth)
        focal = Path(focal).resolve()

        if self.index is not None and self.index.is_ready():
            get_callers = self.index.get_callers
        else:
            logger.debug("Index not ready, scanning corpus for callers of %s", focal)
            caller_map = self.scan_callers()

            def get_callers(path: Path) -> Set[Path]:
                return caller_map.get(path, set())

        return build_upstream_tree(focal, depth, get_callers, NodeDescriber(self.cache))

    # ------------------------------------------------------------------
    # Focal-file graph and helpers
    # ------------------------------------------------------------------

    def file_graph(self, focal: Path, depth: Optional[int] = None) -> TemplateGraph:
        """
        Merge the downstream and upstream trees of focal into one graph.

        Downstream edges run from focal to what it references; upstream edges
        run from callers to focal.
        """
        graph = self.downstream_tree(focal, depth).to_graph(EdgeDirection.DOWNSTREAM)
        graph.merge(self.upstream_tree(focal, depth).to_graph(EdgeDirection.UPSTREAM))
        return graph

    def parameters(self, path: Path) -> List[ParameterDeclaration]:
        """Parameter declarations of a template; empty if unreadable."""
        text = self.cache.read(path)
        if text is None:
            return []
        return extract_parameters(text)

    def describe(self, path: Path) -> GraphNode:
        """Node for a single file (kind and parameter counts)."""
        return describe_file(Path(path).resolve(), self.cache)
