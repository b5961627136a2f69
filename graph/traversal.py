"""Reference expansion and tree walking shared by the builder and the index."""

from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, Optional, Tuple

from scanner.cache import FileCache
from scanner.config import DEFAULT_DEPTH, MAX_DEPTH
from scanner.parser import (
    TemplateReference,
    extract_parameters,
    extract_repository_aliases,
    extract_template_references,
    is_pipeline_root,
    is_runtime_expression,
)
from scanner.resolver import SELF_ALIAS, PathResolver, ResolvedReference

from .model import GraphNode, MissingKey, NodeKey, NodeKind, RealKey, TreeNode, UnknownAliasKey


def clamp_depth(depth: Optional[int], default: int = DEFAULT_DEPTH) -> int:
    """Clamp a requested traversal depth to 1..MAX_DEPTH."""
    if depth is None:
        depth = default
    return max(1, min(int(depth), MAX_DEPTH))


@dataclass(frozen=True)
class ReferenceTarget:
    """A template reference together with its resolution and node identity."""

    reference: TemplateReference
    resolved: ResolvedReference
    key: NodeKey

    @property
    def via(self) -> Optional[str]:
        """Edge annotation: ``@alias`` for cross-repository references."""
        if self.resolved.unresolved_alias is not None:
            return f"@{self.resolved.unresolved_alias}"
        if self.resolved.alias and self.resolved.alias != SELF_ALIAS:
            return f"@{self.resolved.alias}"
        return None

    @property
    def path(self) -> Optional[Path]:
        return self.resolved.path


def iter_reference_targets(
    source: Path,
    text: str,
    resolver: PathResolver,
    cache: FileCache,
    stats: Optional[Counter] = None,
) -> Iterator[ReferenceTarget]:
    """
    Resolve every static template reference in one file.

    Runtime expressions and empty references are skipped. Existence is
    checked through the cache so a deleted target shows up as missing.

    Args:
        source: Absolute path of the file the text came from.
        text: The file's contents.
        resolver: Resolver used for every reference.
        cache: Cache used for the existence probe.
        stats: Optional counter updated with ``references``, ``runtime``,
            ``unresolved``, ``missing`` and ``unknown_alias`` tallies.

    Yields:
        One ReferenceTarget per resolvable reference, in file order.
    """
    if stats is None:
        stats = Counter()

    aliases = extract_repository_aliases(text)
    for ref in extract_template_references(text):
        stats["references"] += 1
        if is_runtime_expression(ref.raw_ref):
            stats["runtime"] += 1
            continue

        resolved = resolver.resolve(ref.raw_ref, source, aliases)
        if resolved is None:
            stats["unresolved"] += 1
            continue

        if resolved.is_unresolved_alias:
            stats["unknown_alias"] += 1
            key: NodeKey = UnknownAliasKey(resolved.unresolved_alias, ref.raw_ref)
        elif cache.exists(resolved.path):
            key = RealKey(resolved.path)
        else:
            stats["missing"] += 1
            key = MissingKey(resolved.path)

        yield ReferenceTarget(reference=ref, resolved=resolved, key=key)


def describe_file(path: Path, cache: FileCache, repository: Optional[str] = None) -> GraphNode:
    """
    Build the node for a real file, reading it through the cache.

    A file reached through a repository alias is an external template;
    otherwise it is a pipeline root when it has pipeline-only top-level keys.
    An unreadable file still gets a node, with no parameters.
    """
    text = cache.read(path) or ""
    params = extract_parameters(text)

    if repository:
        kind = NodeKind.EXTERNAL_TEMPLATE
    elif is_pipeline_root(text):
        kind = NodeKind.PIPELINE_ROOT
    else:
        kind = NodeKind.LOCAL_TEMPLATE

    return GraphNode(
        key=RealKey(path),
        kind=kind,
        label=path.name,
        repository=repository,
        parameter_count=len(params),
        required_parameter_count=sum(1 for p in params if p.required),
    )


def synthetic_node(target: ReferenceTarget) -> GraphNode:
    """Build the placeholder node for a missing or unknown-alias target."""
    if isinstance(target.key, UnknownAliasKey):
        return GraphNode.unknown_alias(target.key.alias, target.key.raw_ref)
    return GraphNode.missing(target.key.path, target.resolved.repository)


class NodeDescriber:
    """Per-query memo of file nodes so repeated visits share one GraphNode."""

    def __init__(self, cache: FileCache):
        self.cache = cache
        self._nodes: Dict[Tuple[Path, Optional[str]], GraphNode] = {}

    def __call__(self, path: Path, repository: Optional[str] = None) -> GraphNode:
        memo_key = (path, repository)
        node = self._nodes.get(memo_key)
        if node is None:
            node = describe_file(path, self.cache, repository)
            self._nodes[memo_key] = node
        return node


def build_upstream_tree(
    target: Path,
    depth: int,
    get_callers: Callable[[Path], Iterable[Path]],
    describe: Callable[[Path], GraphNode],
) -> TreeNode:
    """
    Build the tree of files that transitively reference target.

    Each level lists the direct callers of its parent. The visited set is
    the chain of ancestors on the current branch only, so a file reached
    through two different callers is expanded under both, while a caller
    that already appears above it on the same branch becomes a terminal
    cycle node.

    Args:
        target: The file whose callers are wanted.
        depth: Number of caller levels to expand (already clamped).
        get_callers: Returns the direct callers of a path.
        describe: Builds the GraphNode for a path.

    Returns:
        Tree rooted at target with callers as children.
    """
    root = TreeNode(describe(target))
    _expand_callers(root, target, frozenset({target}), depth, get_callers, describe)
    return root


def _expand_callers(
    tree: TreeNode,
    path: Path,
    ancestors: FrozenSet[Path],
    remaining: int,
    get_callers: Callable[[Path], Iterable[Path]],
    describe: Callable[[Path], GraphNode],
) -> None:
    if remaining <= 0:
        return

    for caller in sorted(get_callers(path)):
        child = TreeNode(describe(caller))
        tree.children.append(child)
        if caller in ancestors:
            child.is_cycle = True
            continue
        _expand_callers(child, caller, ancestors | {caller}, remaining - 1, get_callers, describe)
