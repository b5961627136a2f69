"""Detection of declared parameters that a template never uses."""

from pathlib import Path
from typing import List

from scanner.parser import collect_parameter_references, extract_parameters

from .model import Diagnostic, Severity


def check_unused_parameters(text: str, path: Path) -> List[Diagnostic]:
    """
    Flag parameters declared in text but never referenced in its body.

    Args:
        text: Template contents.
        path: Path reported on each diagnostic.

    Returns:
        One ``unused-param`` warning per unreferenced declaration.
    """
    declared = extract_parameters(text)
    if not declared:
        return []

    used = collect_parameter_references(text)
    return [
        Diagnostic(
            path=path,
            line=param.line,
            code="unused-param",
            severity=Severity.WARNING,
            message=f"Parameter '{param.name}' is declared but never referenced in the template body",
        )
        for param in declared
        if param.name not in used
    ]
