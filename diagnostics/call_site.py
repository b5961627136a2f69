"""Validation of the parameters passed at a template call site."""

import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from scanner.cache import FileCache
from scanner.parser import extract_parameters, extract_passed_parameters
from scanner.resolver import PathResolver

from .model import Diagnostic, Severity


_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_BOOLEAN_RE = re.compile(r"^(true|false|yes|no|on|off)$", re.IGNORECASE)

# Declared type -> inferred value types accepted for it
COMPATIBLE_TYPES: Dict[str, List[str]] = {
    "string": ["string"],
    "number": ["number", "string"],
    "boolean": ["boolean"],
    "object": ["object", "string"],
    "step": ["object", "string"],
    "steplist": ["object", "string"],
    "job": ["object", "string"],
    "joblist": ["object", "string"],
    "deployment": ["object", "string"],
    "deploymentlist": ["object", "string"],
    "stage": ["object", "string"],
    "stagelist": ["object", "string"],
}


def infer_value_type(value: str) -> str:
    """
    Guess the type of a passed value from its literal text.

    Returns:
        One of ``string``, ``number``, ``boolean`` or ``object``. Quoted
        values and expressions are strings; block values (``[``/``{``) are
        objects.
    """
    if value == "":
        return "string"
    if value.startswith("[") or value.startswith("{"):
        return "object"
    if _BOOLEAN_RE.match(value):
        return "boolean"
    if _NUMBER_RE.match(value):
        return "number"
    return "string"


def check_call_site(
    lines: Sequence[str],
    template_line: int,
    raw_ref: str,
    source_file: Path,
    aliases: Optional[Mapping[str, str]],
    resolver: PathResolver,
    cache: FileCache,
) -> List[Diagnostic]:
    """
    Compare the parameters passed at one call site with the declarations.

    Nothing is reported when the reference cannot be resolved, the target
    cannot be read, or the target declares no parameters.

    Args:
        lines: Lines of the calling document.
        template_line: 0-based index of the ``template:`` line.
        raw_ref: The reference as written.
        source_file: Path of the calling document.
        aliases: Repository alias table of the calling document.
        resolver: Resolver for the reference.
        cache: Cache used to read the target.

    Returns:
        ``missing-required-param`` errors, then ``unknown-param`` and
        ``type-mismatch`` warnings.
    """
    resolved = resolver.resolve(raw_ref, source_file, aliases)
    if resolved is None or resolved.path is None:
        return []

    text = cache.read(resolved.path)
    if text is None:
        return []
    declared = extract_parameters(text)
    if not declared:
        return []

    declared_by_name = {param.name: param for param in declared}
    passed = extract_passed_parameters(lines, template_line)
    ref = raw_ref.strip()
    diagnostics: List[Diagnostic] = []

    for param in declared:
        if param.required and param.name not in passed:
            diagnostics.append(Diagnostic(
                path=source_file,
                line=template_line,
                code="missing-required-param",
                severity=Severity.ERROR,
                message=f"Missing required parameter '{param.name}' (type: {param.type}) for template '{ref}'",
            ))

    for name, info in passed.items():
        if name not in declared_by_name:
            diagnostics.append(Diagnostic(
                path=source_file,
                line=info.line,
                code="unknown-param",
                severity=Severity.WARNING,
                message=f"Unknown parameter '{name}': not declared in template '{ref}'",
            ))

    for name, info in passed.items():
        param = declared_by_name.get(name)
        if param is None or info.value == "" or info.value.startswith("$"):
            continue
        compatible = COMPATIBLE_TYPES.get(param.type.lower())
        if compatible is None:
            continue
        inferred = infer_value_type(info.value)
        if inferred not in compatible:
            diagnostics.append(Diagnostic(
                path=source_file,
                line=info.line,
                code="type-mismatch",
                severity=Severity.WARNING,
                message=(
                    f"Type mismatch for parameter '{name}': template expects '{param.type}', "
                    f"got value '{info.value}' (inferred as '{inferred}')"
                ),
            ))

    return diagnostics
