"""Scanner module for file discovery, template parsing and reference resolution."""

from .discovery import iter_files, find_repo_root, is_candidate_file
from .parser import (
    ParameterDeclaration,
    PassedParameter,
    TemplateReference,
    extract_parameters,
    extract_repository_aliases,
    extract_passed_parameters,
    extract_template_references,
    is_runtime_expression,
    is_pipeline_root,
)
from .resolver import PathResolver, ResolvedReference
from .cache import FileCache
from .config import ScanConfig, load_config
from .search import FuzzySearch, SearchEntry, SearchResult, build_search_index

__all__ = [
    "iter_files",
    "find_repo_root",
    "is_candidate_file",
    "ParameterDeclaration",
    "PassedParameter",
    "TemplateReference",
    "extract_parameters",
    "extract_repository_aliases",
    "extract_passed_parameters",
    "extract_template_references",
    "is_runtime_expression",
    "is_pipeline_root",
    "PathResolver",
    "ResolvedReference",
    "FileCache",
    "ScanConfig",
    "load_config",
    "FuzzySearch",
    "SearchEntry",
    "SearchResult",
    "build_search_index",
]
