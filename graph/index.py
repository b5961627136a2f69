"""Workspace-wide reference index for fast "who calls this file" queries.

The index keeps two maps over the corpus: forward (file -> paths it
references) and reverse (path -> files referencing it). Forward entries hold
every resolved path, including paths whose file does not exist yet, so a file
created later is immediately known to its callers.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from scanner.cache import FileCache
from scanner.config import ScanConfig
from scanner.discovery import is_candidate_file, iter_files
from scanner.resolver import PathResolver

from .model import MissingKey, RealKey, TreeNode
from .traversal import NodeDescriber, build_upstream_tree, clamp_depth, iter_reference_targets


logger = logging.getLogger(__name__)


@dataclass
class IndexSnapshot:
    """One complete build of the index."""

    root: Path
    files: Set[Path] = field(default_factory=set)
    forward: Dict[Path, Set[Path]] = field(default_factory=dict)
    reverse: Dict[Path, Set[Path]] = field(default_factory=dict)


class WorkspaceIndex:
    """
    Forward and reverse reference maps for one workspace.

    Builds run without holding the lock and install their snapshot in one
    step, so readers see either the previous snapshot or the new one. When a
    newer build starts before an older one finishes, the older result is
    discarded. Changes reported while a build is running are replayed on the
    snapshot it installs.
    """

    def __init__(self, cache: FileCache, resolver: PathResolver, config: Optional[ScanConfig] = None):
        self.cache = cache
        self.resolver = resolver
        self.config = config or ScanConfig()
        self._lock = threading.Lock()
        self._snapshot: Optional[IndexSnapshot] = None
        self._generation = 0
        self._active_builds = 0
        self._dirty: Set[Path] = set()
        self._ready = threading.Event()
        self._callbacks: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _targets_of(self, path: Path) -> Set[Path]:
        text = self.cache.read(path)
        if text is None:
            return set()
        return {
            target.key.path
            for target in iter_reference_targets(path, text, self.resolver, self.cache)
            if isinstance(target.key, (RealKey, MissingKey))
        }

    def build(self, root: Path) -> Optional[IndexSnapshot]:
        """
        Scan the corpus under root and install the result.

        Args:
            root: Workspace root directory.

        Returns:
            The installed snapshot, or None if a newer build superseded this one.
        """
        root = Path(root).resolve()
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._active_builds += 1

        try:
            snapshot = IndexSnapshot(root=root)
            for path in iter_files(
                root,
                include_ext=self.config.include_ext,
                exclude_dirs=self.config.exclude_dirs,
                max_depth=self.config.max_scan_depth,
            ):
                targets = self._targets_of(path)
                snapshot.files.add(path)
                snapshot.forward[path] = targets
                for target in targets:
                    snapshot.reverse.setdefault(target, set()).add(path)
        except BaseException:
            with self._lock:
                self._active_builds -= 1
            raise

        # Still counted as active until the snapshot is installed
        with self._lock:
            self._active_builds -= 1
            if generation != self._generation:
                logger.debug("Discarding superseded index build %d (current is %d)", generation, self._generation)
                return None
            self._snapshot = snapshot
            replay = sorted(self._dirty)
            self._dirty.clear()
            callbacks = self._callbacks
            self._callbacks = []

        logger.debug(
            "Index built for %s: %d files, %d referenced paths",
            root,
            len(snapshot.files),
            len(snapshot.reverse),
        )

        for path in replay:
            self._replay(path)

        self._ready.set()
        for callback in callbacks:
            callback()
        return snapshot

    def start_build(self, root: Path) -> threading.Thread:
        """Run build() on a background daemon thread and return the thread."""
        thread = threading.Thread(
            target=self.build,
            args=(root,),
            name="template-index-build",
            daemon=True,
        )
        thread.start()
        return thread

    def _replay(self, path: Path) -> None:
        snapshot = self._snapshot
        if snapshot is None:
            return
        candidate = is_candidate_file(path, snapshot.root, self.config.include_ext, self.config.exclude_dirs)
        if candidate and self.cache.exists(path):
            self.update_file(path)
        else:
            self.remove_file(path)

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def is_ready(self) -> bool:
        """True once a snapshot has been installed."""
        return self._ready.is_set()

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the index is ready; returns False on timeout."""
        return self._ready.wait(timeout)

    def on_ready(self, callback: Callable[[], None]) -> None:
        """Call callback once the index is ready (immediately if it already is)."""
        with self._lock:
            if not self._ready.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def reset(self) -> None:
        """Drop the snapshot; any build in flight is discarded when it finishes."""
        with self._lock:
            self._generation += 1
            self._snapshot = None
            self._dirty.clear()
            self._ready.clear()

    # ------------------------------------------------------------------
    # Incremental maintenance
    # ------------------------------------------------------------------

    def update_file(self, path: Path) -> None:
        """
        Re-read one changed or created file and apply the edge diff.

        Only reverse entries for targets that were added or removed are
        touched.
        """
        targets = self._targets_of(path)
        with self._lock:
            if self._active_builds:
                self._dirty.add(path)
            snapshot = self._snapshot
            if snapshot is None:
                return

            old_targets = snapshot.forward.get(path, set())
            for target in old_targets - targets:
                self._unlink(snapshot, path, target)
            for target in targets - old_targets:
                snapshot.reverse.setdefault(target, set()).add(path)

            snapshot.forward[path] = targets
            snapshot.files.add(path)

        logger.debug(
            "Index updated %s: +%d -%d references",
            path,
            len(targets - old_targets),
            len(old_targets - targets),
        )

    def remove_file(self, path: Path) -> None:
        """
        Forget a deleted file's own references and corpus membership.

        The reverse entry for the file itself is kept: its callers still
        reference the path, which now resolves to a missing file.
        """
        with self._lock:
            if self._active_builds:
                self._dirty.add(path)
            snapshot = self._snapshot
            if snapshot is None:
                return

            for target in snapshot.forward.pop(path, set()):
                self._unlink(snapshot, path, target)
            snapshot.files.discard(path)

        logger.debug("Index removed %s", path)

    @staticmethod
    def _unlink(snapshot: IndexSnapshot, source: Path, target: Path) -> None:
        callers = snapshot.reverse.get(target)
        if callers is None:
            return
        callers.discard(source)
        if not callers:
            del snapshot.reverse[target]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_callers(self, path: Path) -> Set[Path]:
        """Files that directly reference path."""
        with self._lock:
            if self._snapshot is None:
                return set()
            return set(self._snapshot.reverse.get(path, ()))

    def get_callees(self, path: Path) -> Set[Path]:
        """Paths that path directly references (existing or not)."""
        with self._lock:
            if self._snapshot is None:
                return set()
            return set(self._snapshot.forward.get(path, ()))

    def all_files(self) -> List[Path]:
        """The indexed corpus in sorted order."""
        with self._lock:
            if self._snapshot is None:
                return []
            return sorted(self._snapshot.files)

    def transitive_callers(self, path: Path, depth: Optional[int] = None) -> Set[Path]:
        """
        All files that reach path through one or more references.

        Args:
            path: Target file.
            depth: Maximum number of caller levels; None means unbounded.

        Returns:
            Set of caller paths, excluding path itself unless it is on a cycle.
        """
        found: Set[Path] = set()
        queue = deque([(path, 0)])
        while queue:
            current, level = queue.popleft()
            if depth is not None and level >= depth:
                continue
            for caller in self.get_callers(current):
                if caller not in found:
                    found.add(caller)
                    queue.append((caller, level + 1))
        return found

    def upstream_tree(self, target: Path, depth: Optional[int] = None) -> TreeNode:
        """Build the caller tree of target from the reverse map."""
        depth = clamp_depth(depth, self.config.default_depth)
        return build_upstream_tree(Path(target).resolve(), depth, self.get_callers, NodeDescriber(self.cache))

    def __repr__(self) -> str:
        snapshot = self._snapshot
        files = len(snapshot.files) if snapshot is not None else 0
        return f"WorkspaceIndex(ready={self.is_ready()}, files={files})"
