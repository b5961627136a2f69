"""Exporters for converting template graphs and trees to various output formats."""

from .mermaid_exporter import to_mermaid
from .ascii_exporter import to_ascii, tree_to_ascii
from .json_exporter import to_json, tree_to_json

__all__ = ["to_mermaid", "to_ascii", "tree_to_ascii", "to_json", "tree_to_json"]
