"""Workspace context wiring the cache, resolver, index and graph builder."""

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from diagnostics import Diagnostic, check_file, check_workspace
from scanner.cache import FileCache
from scanner.config import ScanConfig, load_config
from scanner.discovery import is_candidate_file
from scanner.parser import ParameterDeclaration, extract_repository_aliases
from scanner.resolver import PathResolver, ResolvedReference

from .builder import GraphBuilder
from .index import WorkspaceIndex


logger = logging.getLogger(__name__)


class FileChange(Enum):
    CHANGED = "changed"
    CREATED = "created"
    DELETED = "deleted"


class Workspace:
    """
    One open workspace and the components that serve queries about it.

    Every component is created here and shared by reference, so closing the
    workspace releases all cached state at once.

    Args:
        root: Workspace root directory.
        config: Scan options; loaded from ``.templatemap.yml`` when omitted.
    """

    def __init__(self, root: Path, config: Optional[ScanConfig] = None):
        self.root = Path(root).resolve()
        self.config = config if config is not None else load_config(self.root)
        self.cache = FileCache()
        self.resolver = PathResolver()
        self.index = WorkspaceIndex(self.cache, self.resolver, self.config)
        self.builder = GraphBuilder(self.root, self.cache, self.resolver, self.index, self.config)

    def open(self, background: bool = False) -> Optional[threading.Thread]:
        """
        Build the index.

        Args:
            background: Build on a daemon thread and return it; queries fall
                back to direct scans until the build completes.
        """
        logger.debug("Opening workspace %s", self.root)
        if background:
            return self.index.start_build(self.root)
        self.index.build(self.root)
        return None

    def close(self) -> None:
        """Drop the index and every cached file and repository root."""
        self.index.reset()
        self.cache.invalidate_all()
        self.resolver.clear()

    def reset(self, background: bool = False) -> Optional[threading.Thread]:
        """Close and reopen, e.g. after the set of checked-out repositories changed."""
        self.close()
        return self.open(background=background)

    def notify(self, change: FileChange, path: Path) -> bool:
        """
        Apply one file-change notification.

        Returns:
            False when the path is not a template file of this workspace.
        """
        path = Path(path).resolve()
        if not is_candidate_file(path, self.root, self.config.include_ext, self.config.exclude_dirs):
            return False

        logger.debug("%s: %s", change.value, path)
        self.cache.invalidate(path)
        if change is FileChange.DELETED:
            self.index.remove_file(path)
        else:
            self.index.update_file(path)
        return True

    def parameters(self, path: Path) -> List[ParameterDeclaration]:
        return self.builder.parameters(Path(path).resolve())

    def resolve(self, raw_ref: str, source_file: Path) -> Optional[ResolvedReference]:
        """Resolve a reference as written in source_file, using its own alias table."""
        source_file = Path(source_file).resolve()
        text = self.cache.read(source_file) or ""
        return self.resolver.resolve(raw_ref, source_file, extract_repository_aliases(text))

    def diagnostics(self, path: Path) -> List[Diagnostic]:
        return check_file(Path(path).resolve(), self.resolver, self.cache)

    def all_diagnostics(self) -> Dict[Path, List[Diagnostic]]:
        return check_workspace(self.root, self.resolver, self.cache, self.config)

    def __enter__(self) -> "Workspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Workspace(root={self.root}, index={self.index!r}, cache={self.cache!r})"
