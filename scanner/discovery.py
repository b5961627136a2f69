"""File discovery utilities for scanning pipeline repositories."""

from pathlib import Path
from typing import Iterator, Set, Optional


DEFAULT_EXTENSIONS = {".yaml", ".yml"}
DEFAULT_EXCLUDE_DIRS = {
    ".git", ".hg", ".svn",
    "node_modules", "__pycache__", ".tox", ".nox",
    "venv", ".venv",
    ".idea", ".vscode",
    "build", "dist", "out", ".eggs", "*.egg-info",
}

# Directory whose presence marks the root of a repository checkout
REPO_ROOT_MARKER = ".git"


def iter_files(
    root: Path,
    include_ext: Optional[Set[str]] = None,
    exclude_dirs: Optional[Set[str]] = None,
    max_depth: Optional[int] = None,
) -> Iterator[Path]:
    """
    Iterate over pipeline YAML files in a directory tree.

    Args:
        root: Root directory to scan.
        include_ext: Set of file extensions to include (e.g., {'.yml'}).
                    If None, uses DEFAULT_EXTENSIONS.
        exclude_dirs: Set of directory names to skip.
                     If None, uses DEFAULT_EXCLUDE_DIRS.
        max_depth: Maximum depth to descend. None means unlimited.

    Yields:
        Absolute Path objects for matching files, in sorted order.
    """
    if include_ext is None:
        include_ext = DEFAULT_EXTENSIONS
    if exclude_dirs is None:
        exclude_dirs = DEFAULT_EXCLUDE_DIRS

    root = root.resolve()

    def _walk(current: Path, depth: int) -> Iterator[Path]:
        if max_depth is not None and depth > max_depth:
            return

        try:
            entries = sorted(current.iterdir())
        except OSError:
            return

        for entry in entries:
            if entry.is_dir():
                if is_excluded_dir(entry.name, exclude_dirs):
                    continue
                yield from _walk(entry, depth + 1)
            elif entry.is_file():
                if entry.suffix.lower() in include_ext:
                    yield entry

    yield from _walk(root, 0)


def is_excluded_dir(name: str, exclude_dirs: Set[str]) -> bool:
    """Check a directory name against exact names and ``*suffix`` patterns."""
    if name in exclude_dirs:
        return True
    return any(name.endswith(pat.lstrip("*")) for pat in exclude_dirs if pat.startswith("*"))


def is_candidate_file(
    path: Path,
    root: Path,
    include_ext: Optional[Set[str]] = None,
    exclude_dirs: Optional[Set[str]] = None,
) -> bool:
    """
    Check whether a single path would be yielded by iter_files() for root.

    Used to filter change notifications without walking the tree.
    """
    if include_ext is None:
        include_ext = DEFAULT_EXTENSIONS
    if exclude_dirs is None:
        exclude_dirs = DEFAULT_EXCLUDE_DIRS

    if path.suffix.lower() not in include_ext:
        return False
    try:
        rel_path = path.relative_to(root)
    except ValueError:
        return False
    return not any(is_excluded_dir(part, exclude_dirs) for part in rel_path.parts[:-1])


def find_repo_root(start_dir: Path, marker: str = REPO_ROOT_MARKER) -> Path:
    """
    Walk up from start_dir to the nearest directory containing marker.

    Args:
        start_dir: Directory to start from (usually the referencing file's).
        marker: Name of the version-control metadata directory.

    Returns:
        The repository root, or start_dir itself when no marker is found
        before reaching the filesystem root.
    """
    current = start_dir
    while True:
        if (current / marker).exists():
            return current
        parent = current.parent
        if parent == current:
            return start_dir
        current = parent
