"""Modification-time validated cache of file contents.

A tree rebuild, a parameter lookup and a diagnostics pass typically touch the
same files within milliseconds of each other. The cache absorbs those repeated
reads: an entry is served as long as the file's modification time and size on
disk still match what was recorded when it was read.
"""

import logging
import os
import stat
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class CacheEntry:
    text: str
    mtime_ns: int
    size: int


class FileCache:
    """
    Content cache keyed by absolute path.

    ``hits`` counts reads served from memory, ``misses`` counts reads that
    went to disk.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self.hits = 0
        self.misses = 0
        self._entries: Dict[Path, CacheEntry] = {}
        self._lock = threading.Lock()

    def read(self, path: PathLike) -> Optional[str]:
        """
        Return the text of path, reading from disk only when it changed.

        Args:
            path: Absolute path of the file.

        Returns:
            File text, or None if the file cannot be stat'ed, read or decoded.
        """
        key = Path(path)
        with self._lock:
            try:
                st = os.stat(key)
            except OSError:
                self._entries.pop(key, None)
                return None

            entry = self._entries.get(key)
            if entry is not None and entry.mtime_ns == st.st_mtime_ns and entry.size == st.st_size:
                self.hits += 1
                return entry.text

            try:
                text = key.read_text(encoding=self.encoding)
            except (OSError, UnicodeDecodeError) as exc:
                logger.debug("Cannot read %s: %s", key, exc)
                self._entries.pop(key, None)
                return None

            self.misses += 1
            self._entries[key] = CacheEntry(text=text, mtime_ns=st.st_mtime_ns, size=st.st_size)
            return text

    def exists(self, path: PathLike) -> bool:
        """Check that path is a regular file on disk right now."""
        try:
            return stat.S_ISREG(os.stat(path).st_mode)
        except OSError:
            return False

    def invalidate(self, path: PathLike) -> None:
        """Drop the entry for one path."""
        with self._lock:
            self._entries.pop(Path(path), None)

    def invalidate_all(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: PathLike) -> bool:
        return Path(path) in self._entries

    def __repr__(self) -> str:
        return f"FileCache(entries={len(self._entries)}, hits={self.hits}, misses={self.misses})"
