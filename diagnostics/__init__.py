"""Diagnostics computed from parsed templates and call sites."""

from .model import Diagnostic, Severity
from .call_site import COMPATIBLE_TYPES, check_call_site, infer_value_type
from .unused import check_unused_parameters
from .checks import check_file, check_workspace

__all__ = [
    "Diagnostic",
    "Severity",
    "COMPATIBLE_TYPES",
    "check_call_site",
    "infer_value_type",
    "check_unused_parameters",
    "check_file",
    "check_workspace",
]
