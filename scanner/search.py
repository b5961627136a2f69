"""Typo-tolerant fuzzy search over the template files of a workspace.

Each query is scored against an entry's file name first and its workspace
relative path second. Two signals are combined:

- subsequence matching, where every query character must appear in order,
  with bonuses for consecutive runs, word starts and camelCase humps;
- an edit-distance bonus per query word against the best-matching path
  segment, so "templete" still finds "template".
"""

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .config import ScanConfig
from .discovery import iter_files


logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 20

# Scores taken from a relative-path match count for less than a file-name match
PATH_MATCH_WEIGHT = 0.7
PATH_SEGMENT_WEIGHT = 0.5

_BOUNDARY_CHARS = "/-_. \t"
_SEGMENT_SPLIT_RE = re.compile(r"[/\-_.\s]+")


@dataclass(frozen=True)
class SearchEntry:
    """One searchable file."""

    path: Path
    filename: str
    relative_path: str
    directory: str

    @classmethod
    def from_path(cls, path: Path, root: Path) -> "SearchEntry":
        try:
            relative = path.relative_to(root).as_posix()
        except ValueError:
            relative = path.as_posix()
        directory = relative.rsplit("/", 1)[0] if "/" in relative else "."
        return cls(path=path, filename=path.name, relative_path=relative, directory=directory)


@dataclass(frozen=True)
class SearchResult:
    entry: SearchEntry
    score: float


def levenshtein(a: str, b: str, max_dist: int = 4) -> float:
    """
    Edit distance between a and b, bounded by max_dist.

    Returns:
        The distance, or ``math.inf`` as soon as it is known to exceed max_dist.
    """
    if a == b:
        return 0
    if abs(len(a) - len(b)) > max_dist:
        return math.inf

    previous = list(range(len(b) + 1))
    for i in range(1, len(a) + 1):
        current = [i] + [0] * len(b)
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            current[j] = min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
        if min(current) > max_dist:
            return math.inf
        previous = current

    return previous[-1] if previous[-1] <= max_dist else math.inf


def subsequence_score(query: str, target: str, original: Optional[str] = None) -> float:
    """
    Score query as an in-order subsequence of target.

    Both strings are expected lower-cased; original is the target in its
    original case, used for the camelCase bonus. Longer targets score
    slightly lower.

    Returns:
        The score, or ``-math.inf`` when query is not a subsequence.
    """
    if original is None or len(original) != len(target):
        original = target

    score = 0.0
    qi = 0
    last_match = -1
    run_bonus = 0

    for ti, char in enumerate(target):
        if qi >= len(query):
            break
        if char != query[qi]:
            run_bonus = 0
            continue

        score += 1
        if ti == last_match + 1:
            run_bonus += 2
            score += run_bonus
        else:
            run_bonus = 0

        if ti == 0 or target[ti - 1] in _BOUNDARY_CHARS:
            score += 5
        if ti > 0 and original[ti].isupper() and original[ti - 1].islower():
            score += 3

        last_match = ti
        qi += 1

    if qi < len(query):
        return -math.inf
    return score - len(target) * 0.05


def segment_fuzzy_score(word: str, target: str) -> float:
    """
    Bonus for the path segment of target closest to word by edit distance.

    An exact segment is worth 8, each edit costs 3, and segments further
    than 40% of the word's length away are worth nothing.
    """
    max_dist = max(1, int(len(word) * 0.4))
    best = math.inf
    for segment in _SEGMENT_SPLIT_RE.split(target):
        if segment:
            best = min(best, levenshtein(word, segment, max_dist))

    if math.isinf(best):
        return 0
    return max(0, 8 - best * 3)


class FuzzySearch:
    """Ranked fuzzy lookup over a fixed set of entries."""

    def __init__(self, entries: Optional[Iterable[SearchEntry]] = None):
        self._entries: List[SearchEntry] = list(entries or [])

    def build_index(self, entries: Iterable[SearchEntry]) -> None:
        """Replace the indexed entries."""
        self._entries = list(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def search(self, query: str, max_results: int = DEFAULT_MAX_RESULTS) -> List[SearchResult]:
        """
        Find the entries matching query.

        Args:
            query: Free text; whitespace separates words for typo matching.
            max_results: Maximum number of results to return.

        Returns:
            Results with a positive score, best first. Equal scores keep
            index order. A blank query returns nothing.
        """
        query = query.strip().lower()
        if not query:
            return []
        words = query.split()

        results: List[SearchResult] = []
        for entry in self._entries:
            filename = entry.filename.lower()
            relative = entry.relative_path.lower()

            score = subsequence_score(query, filename, entry.filename)
            if score <= 0:
                path_score = subsequence_score(query, relative, entry.relative_path)
                # No subsequence match leaves the segment bonus to rank typos
                score = path_score * PATH_MATCH_WEIGHT if path_score > 0 else 0.0

            bonus = 0.0
            for word in words:
                bonus += segment_fuzzy_score(word, filename)
                bonus += segment_fuzzy_score(word, relative) * PATH_SEGMENT_WEIGHT

            total = score + bonus
            if total > 0:
                results.append(SearchResult(entry=entry, score=total))

        results.sort(key=lambda result: result.score, reverse=True)
        logger.debug("Search %r: %d of %d entries matched", query, len(results), len(self._entries))
        return results[:max_results]


def build_search_index(root: Path, config: Optional[ScanConfig] = None) -> FuzzySearch:
    """Index every template file under root for fuzzy search."""
    config = config or ScanConfig()
    root = Path(root).resolve()
    entries = [
        SearchEntry.from_path(path, root)
        for path in iter_files(
            root,
            include_ext=config.include_ext,
            exclude_dirs=config.exclude_dirs,
            max_depth=config.max_scan_depth,
        )
    ]
    return FuzzySearch(entries)
