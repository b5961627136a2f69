"""Whole-file and whole-workspace diagnostic passes."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from scanner.cache import FileCache
from scanner.config import ScanConfig
from scanner.discovery import iter_files
from scanner.parser import (
    extract_repository_aliases,
    extract_template_references,
    is_runtime_expression,
    split_lines,
)
from scanner.resolver import PathResolver

from .call_site import check_call_site
from .model import Diagnostic
from .unused import check_unused_parameters


logger = logging.getLogger(__name__)


def check_file(path: Path, resolver: PathResolver, cache: FileCache) -> List[Diagnostic]:
    """
    Run every check on one file.

    Call sites built from runtime expressions are skipped. An unreadable
    file yields no diagnostics.
    """
    text = cache.read(path)
    if text is None:
        return []

    lines = split_lines(text)
    aliases = extract_repository_aliases(text)
    diagnostics: List[Diagnostic] = []

    for ref in extract_template_references(text):
        if is_runtime_expression(ref.raw_ref):
            continue
        diagnostics.extend(check_call_site(lines, ref.line, ref.raw_ref, path, aliases, resolver, cache))

    diagnostics.extend(check_unused_parameters(text, path))
    return diagnostics


def check_workspace(
    root: Path,
    resolver: PathResolver,
    cache: FileCache,
    config: Optional[ScanConfig] = None,
) -> Dict[Path, List[Diagnostic]]:
    """
    Check every template under root.

    Returns:
        Mapping of path to its diagnostics, for files with at least one.
    """
    config = config or ScanConfig()
    results: Dict[Path, List[Diagnostic]] = {}
    for path in iter_files(
        root,
        include_ext=config.include_ext,
        exclude_dirs=config.exclude_dirs,
        max_depth=config.max_scan_depth,
    ):
        diagnostics = check_file(path, resolver, cache)
        if diagnostics:
            results[path] = diagnostics

    logger.debug("Checked %s: %d files with findings", root, len(results))
    return results
