"""Scan configuration and the optional ``.templatemap.yml`` file."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set

import yaml

from .discovery import DEFAULT_EXTENSIONS, DEFAULT_EXCLUDE_DIRS


logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".templatemap.yml"
_KNOWN_KEYS = {"include_ext", "exclude_dirs", "max_scan_depth", "default_depth", "debounce_seconds"}

# Hard ceiling for traversal depth, whatever the caller asks for
MAX_DEPTH = 10
DEFAULT_DEPTH = 5


@dataclass
class ScanConfig:
    """Options shared by discovery, the index and the graph builder."""

    include_ext: Set[str] = field(default_factory=lambda: set(DEFAULT_EXTENSIONS))
    exclude_dirs: Set[str] = field(default_factory=lambda: set(DEFAULT_EXCLUDE_DIRS))
    max_scan_depth: Optional[int] = None
    default_depth: int = DEFAULT_DEPTH
    debounce_seconds: float = 0.5


def normalize_extensions(extensions: Iterable[str]) -> Set[str]:
    """Lower-case extensions and make sure each starts with a dot."""
    result: Set[str] = set()
    for ext in extensions:
        ext = str(ext).strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        result.add(ext)
    return result


def load_config(root: Path) -> ScanConfig:
    """
    Load ``.templatemap.yml`` from the workspace root.

    Example file::

        include_ext: [.yml, .yaml]
        exclude_dirs: [generated]
        default_depth: 4
        debounce_seconds: 1.0

    Extra ``exclude_dirs`` are added to the defaults. A missing file gives
    the defaults; an unreadable or malformed file logs a warning and also
    gives the defaults.
    """
    config = ScanConfig()
    config_path = root / CONFIG_FILENAME
    if not config_path.is_file():
        return config

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Ignoring %s: %s", config_path, exc)
        return config

    if data is None:
        return config
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a mapping at the top level", config_path)
        return config

    return _apply(config, data, config_path)


def _apply(config: ScanConfig, data: Dict[str, Any], source: Path) -> ScanConfig:
    include_ext = data.get("include_ext")
    if isinstance(include_ext, list) and include_ext:
        config.include_ext = normalize_extensions(include_ext)

    exclude_dirs = data.get("exclude_dirs")
    if isinstance(exclude_dirs, list):
        config.exclude_dirs = set(DEFAULT_EXCLUDE_DIRS) | {str(d) for d in exclude_dirs}

    max_scan_depth = data.get("max_scan_depth")
    if isinstance(max_scan_depth, int) and max_scan_depth >= 0:
        config.max_scan_depth = max_scan_depth

    default_depth = data.get("default_depth")
    if isinstance(default_depth, int) and not isinstance(default_depth, bool):
        config.default_depth = max(1, min(default_depth, MAX_DEPTH))

    debounce = data.get("debounce_seconds")
    if isinstance(debounce, (int, float)) and not isinstance(debounce, bool) and debounce >= 0:
        config.debounce_seconds = float(debounce)

    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        logger.warning("Unknown keys in %s: %s", source, ", ".join(unknown))

    return config
