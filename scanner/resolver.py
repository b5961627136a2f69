"""Path resolution for template references.

Azure Pipelines addresses templates three ways:

1. ``path/to/file.yml``          relative to the referencing file's directory.
2. ``/path/to/file.yml``         relative to the repository root.
3. ``path/to/file.yml@alias``    inside the repository bound to ``alias`` in
                                 ``resources.repositories``; that repository is
                                 expected to be checked out next to this one.

The resolver never checks whether the target exists; callers decide what a
missing target means.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from .discovery import REPO_ROOT_MARKER, find_repo_root


SELF_ALIAS = "self"


@dataclass(frozen=True)
class ResolvedReference:
    """
    Outcome of resolving one raw reference.

    Exactly one of ``path`` and ``unresolved_alias`` is set. ``repository``
    is the sibling repository's short name, or None for local references.
    """

    raw_ref: str
    path: Optional[Path] = None
    repository: Optional[str] = None
    alias: Optional[str] = None
    unresolved_alias: Optional[str] = None

    @property
    def is_unresolved_alias(self) -> bool:
        return self.unresolved_alias is not None

    @property
    def is_cross_repository(self) -> bool:
        return self.repository is not None


def split_reference(raw_ref: str) -> Tuple[str, Optional[str]]:
    """
    Split a reference on its last ``@`` into path part and alias.

    Returns:
        (path_part, alias) where alias is None when there is no ``@``.
        An empty alias (``file.yml@``) is returned as ``""``.
    """
    if "@" not in raw_ref:
        return raw_ref, None
    path_part, _, alias = raw_ref.rpartition("@")
    return path_part, alias.strip()


def _normalize(path: Path) -> Path:
    return Path(os.path.normpath(str(path)))


class PathResolver:
    """
    Resolve raw template references to absolute paths.

    Repository-root lookups are memoized per directory because every
    reference in a corpus walks the same few ancestors.
    """

    def __init__(self, marker: str = REPO_ROOT_MARKER):
        self.marker = marker
        self._roots: Dict[Path, Path] = {}

    def repo_root(self, directory: Path) -> Path:
        """Return the repository root for directory (memoized)."""
        root = self._roots.get(directory)
        if root is None:
            root = find_repo_root(directory, self.marker)
            self._roots[directory] = root
        return root

    def clear(self) -> None:
        """Forget memoized repository roots."""
        self._roots.clear()

    def resolve(
        self,
        raw_ref: str,
        source_file: Path,
        aliases: Optional[Mapping[str, str]] = None,
    ) -> Optional[ResolvedReference]:
        """
        Resolve a reference written in source_file.

        Args:
            raw_ref: The value after ``template:``.
            source_file: Absolute path of the referencing file.
            aliases: Alias table of the referencing file; None means empty.

        Returns:
            None for an empty reference, a ResolvedReference with
            ``unresolved_alias`` set when the alias has no table entry,
            otherwise a ResolvedReference carrying the absolute path.
        """
        ref = raw_ref.strip()
        if not ref:
            return None

        source_dir = Path(source_file).parent
        path_part, alias = split_reference(ref)
        path_part = path_part.strip().replace("\\", "/")

        if alias is None or alias == SELF_ALIAS:
            if path_part.startswith("/"):
                target = self.repo_root(source_dir) / path_part.lstrip("/")
            else:
                target = source_dir / path_part
            return ResolvedReference(raw_ref=ref, path=_normalize(target), alias=alias)

        short_name = (aliases or {}).get(alias)
        if short_name is None:
            return ResolvedReference(raw_ref=ref, unresolved_alias=alias)

        sibling_root = self.repo_root(source_dir).parent / short_name
        target = sibling_root / path_part.lstrip("/")
        return ResolvedReference(
            raw_ref=ref,
            path=_normalize(target),
            repository=short_name,
            alias=alias,
        )
