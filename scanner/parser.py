"""Line-oriented structural parser for Azure Pipelines template files.

Only the constructs that matter for navigation are recognised: the top-level
``parameters:`` block, the ``resources.repositories`` block, call-site
``parameters:`` blocks and ``template:`` reference lines. Anything that does
not fit this subset yields empty results rather than an error.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple


# Whole-line comment, or a trailing comment preceded by whitespace
_COMMENT_RE = re.compile(r"(^\s*#.*|\s#.*)$")

# "template: x", "- template: x", "  - template: x"
_TEMPLATE_RE = re.compile(r"(?:^|\s)-?\s*template\s*:\s*(.+)$")
_TEMPLATE_KEY_RE = re.compile(r"template\s*:")

_PARAMETERS_KEY_RE = re.compile(r"^parameters\s*:")
_PARAM_ENTRY_RE = re.compile(r"^(\s*)-(\s+)name\s*:\s*(.*)$")
_KEY_VALUE_RE = re.compile(r"^(\s*)([A-Za-z_][\w.-]*)\s*:(?:\s+(.*))?$")
_LIST_KEY_VALUE_RE = re.compile(r"^(\s*)-(\s+)([A-Za-z_][\w.-]*)\s*:(?:\s+(.*))?$")

# Top-level keys that only appear in pipeline entry points
PIPELINE_ONLY_KEYS = ("trigger", "pr", "schedules")
# Top-level keys shared by pipelines and the templates they include
PIPELINE_BODY_KEYS = ("stages", "jobs", "steps")
_PIPELINE_ONLY_RE = re.compile(r"^(?:%s)\s*:" % "|".join(PIPELINE_ONLY_KEYS), re.MULTILINE)
_PIPELINE_BODY_RE = re.compile(r"^(?:%s)\s*:" % "|".join(PIPELINE_BODY_KEYS), re.MULTILINE)

_PARAMETER_USAGE_RE = re.compile(
    r"\$\{\{[^}]*parameters\.(\w+)[^}]*\}\}"
    r"|\$\{\{[^}]*parameters\[['\"](\w+)['\"]\][^}]*\}\}"
    r"|(?<!\w)parameters\.(\w+)"
)


@dataclass(frozen=True)
class ParameterDeclaration:
    """One entry of a template's top-level ``parameters:`` block."""

    name: str
    type: str = "string"
    default: Optional[str] = None
    line: int = 0

    @property
    def required(self) -> bool:
        """A parameter is required exactly when it declares no default."""
        return self.default is None


@dataclass(frozen=True)
class PassedParameter:
    """A ``key: value`` pair passed under a call site's ``parameters:``."""

    name: str
    value: str
    line: int


@dataclass(frozen=True)
class TemplateReference:
    """An unresolved ``template:`` value exactly as written."""

    raw_ref: str
    line: int


def normalize_newlines(text: str) -> str:
    """Convert CRLF and lone CR line endings to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_lines(text: str) -> List[str]:
    """Split text into LF-normalized lines."""
    return normalize_newlines(text).split("\n")


def strip_comment(line: str) -> str:
    """
    Remove a YAML line comment.

    A ``#`` only starts a comment at the beginning of the line or after
    whitespace, so values such as ``'#fff'`` survive.
    """
    return _COMMENT_RE.sub("", line.rstrip("\r\n"))


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _clean(line: str) -> str:
    return strip_comment(line).rstrip()


def _find_top_level_key(lines: Sequence[str], key: str) -> Optional[int]:
    pattern = re.compile(r"^%s\s*:" % re.escape(key))
    for i, line in enumerate(lines):
        if pattern.match(line):
            return i
    return None


def _top_level_block_end(lines: Sequence[str], start: int) -> int:
    """
    Find the line index where the top-level block opened at start ends.

    A block ends at the first non-blank, non-comment line at column 0 that is
    not a sequence entry (sequences may sit at column 0 under their key).
    """
    for i in range(start + 1, len(lines)):
        line = _clean(lines[i])
        if not line.strip():
            continue
        if _indent(line) == 0 and not line.startswith("-"):
            return i
    return len(lines)


# ---------------------------------------------------------------------------
# Parameter declarations
# ---------------------------------------------------------------------------

def extract_parameters(text: str) -> List[ParameterDeclaration]:
    """
    Extract the parameter declarations of a template.

    Args:
        text: Raw file contents (LF or CRLF).

    Returns:
        Declarations in file order; empty when there is no top-level
        ``parameters:`` block or it holds no ``- name:`` entries.
    """
    lines = split_lines(text)
    params: List[ParameterDeclaration] = []

    start = _find_top_level_key(lines, "parameters")
    if start is None:
        return params
    end = _top_level_block_end(lines, start)

    base_indent: Optional[int] = None
    for i in range(start + 1, end):
        match = _PARAM_ENTRY_RE.match(_clean(lines[i]))
        if not match:
            continue

        indent = len(match.group(1))
        if base_indent is None:
            base_indent = indent
        # Only direct entries of the block, not nested "- name:" lists
        if indent != base_indent:
            continue

        name = _unquote(match.group(3).strip())
        if not name:
            continue

        property_column = indent + 1 + len(match.group(2))
        param_type, default = _read_parameter_keys(lines, i + 1, end, indent, property_column)
        params.append(ParameterDeclaration(name=name, type=param_type, default=default, line=i))

    return params


def _read_parameter_keys(
    lines: Sequence[str],
    start: int,
    end: int,
    entry_indent: int,
    property_column: int,
) -> Tuple[str, Optional[str]]:
    param_type = "string"
    default: Optional[str] = None

    for j in range(start, end):
        line = _clean(lines[j])
        if not line.strip():
            continue
        indent = _indent(line)
        if indent <= entry_indent:
            break
        if indent != property_column:
            continue

        match = _KEY_VALUE_RE.match(line)
        if not match:
            continue
        key, value = match.group(2), (match.group(3) or "").strip()
        if key == "type":
            param_type = _unquote(value) or "string"
        elif key == "default":
            default = value

    return param_type, default


# ---------------------------------------------------------------------------
# Repository aliases
# ---------------------------------------------------------------------------

def extract_repository_aliases(text: str) -> Dict[str, str]:
    """
    Extract ``resources.repositories`` aliases.

    Args:
        text: Raw file contents.

    Returns:
        Mapping of alias (``repository:``) to the repository short name,
        i.e. the last ``/`` segment of ``name:``.
    """
    lines = split_lines(text)
    aliases: Dict[str, str] = {}

    start = _find_top_level_key(lines, "resources")
    if start is None:
        return aliases
    end = _top_level_block_end(lines, start)

    repos_indent: Optional[int] = None
    entry_indent: Optional[int] = None
    property_column: Optional[int] = None
    entry: Dict[str, str] = {}

    for i in range(start + 1, end):
        line = _clean(lines[i])
        if not line.strip():
            continue
        indent = _indent(line)

        if repos_indent is None:
            if re.match(r"^\s+repositories\s*:", line):
                repos_indent = indent
            continue

        # Sequence entries may sit at the same column as "repositories:"
        if indent < repos_indent or (indent == repos_indent and not line.lstrip().startswith("-")):
            break

        item = _LIST_KEY_VALUE_RE.match(line)
        if item:
            if entry_indent is None:
                entry_indent = len(item.group(1))
            if len(item.group(1)) == entry_indent:
                _add_alias(entry, aliases)
                property_column = entry_indent + 1 + len(item.group(2))
                entry = {item.group(3): (item.group(4) or "").strip()}
                continue

        pair = _KEY_VALUE_RE.match(line)
        if pair and indent == property_column:
            entry.setdefault(pair.group(2), (pair.group(3) or "").strip())

    _add_alias(entry, aliases)
    return aliases


def _add_alias(entry: Dict[str, str], aliases: Dict[str, str]) -> None:
    alias = _unquote(entry.get("repository", ""))
    name = _unquote(entry.get("name", "")).rstrip("/")
    short_name = name.split("/")[-1]
    if alias and short_name:
        aliases[alias] = short_name


# ---------------------------------------------------------------------------
# Call sites
# ---------------------------------------------------------------------------

def _template_key_column(line: str) -> Optional[int]:
    cleaned = _clean(line)
    if not _TEMPLATE_RE.search(cleaned):
        return None
    match = _TEMPLATE_KEY_RE.search(cleaned)
    return match.start() if match else None


def extract_passed_parameters(lines: Sequence[str], template_line: int) -> Dict[str, PassedParameter]:
    """
    Extract the parameters passed at one template call site.

    Sibling keys of ``template:`` sit at the ``template`` key's own column;
    the call site ends as soon as indentation drops below it, which also
    covers the start of the next sequence entry.

    Args:
        lines: Document lines (CRLF remnants are tolerated).
        template_line: 0-based index of the ``template:`` line.

    Returns:
        Mapping of parameter name to PassedParameter.
    """
    passed: Dict[str, PassedParameter] = {}
    if not 0 <= template_line < len(lines):
        return passed

    key_column = _template_key_column(lines[template_line])
    if key_column is None:
        return passed

    params_indent: Optional[int] = None
    entry_indent: Optional[int] = None

    for j in range(template_line + 1, len(lines)):
        line = _clean(lines[j])
        if not line.strip():
            continue
        indent = _indent(line)
        if indent < key_column:
            break

        if params_indent is None:
            if indent == key_column and _PARAMETERS_KEY_RE.match(line.lstrip()):
                params_indent = indent
            continue

        if indent <= params_indent:
            break
        if entry_indent is None:
            entry_indent = indent
        if indent != entry_indent:
            continue

        match = _KEY_VALUE_RE.match(line)
        if match:
            name = match.group(2)
            passed[name] = PassedParameter(name=name, value=(match.group(3) or "").strip(), line=j)

    return passed


def find_owning_template_line(lines: Sequence[str], cursor_line: int) -> int:
    """
    Find the call site whose ``parameters:`` block contains cursor_line.

    Returns:
        The 0-based index of the ``template:`` line, or -1.
    """
    if not 0 <= cursor_line < len(lines):
        return -1

    cursor_indent = _indent(_clean(lines[cursor_line]))

    for i in range(cursor_line - 1, -1, -1):
        line = _clean(lines[i])
        if not line.strip():
            continue
        indent = _indent(line)
        if indent >= cursor_indent:
            continue
        if _template_key_column(line) is not None:
            return i if _parameters_block_contains(lines, i, cursor_line) else -1
        if indent == 0:
            break

    return -1


def _parameters_block_contains(lines: Sequence[str], template_line: int, cursor_line: int) -> bool:
    key_column = _template_key_column(lines[template_line])
    if key_column is None:
        return False

    params_line: Optional[int] = None
    params_indent = 0
    for j in range(template_line + 1, cursor_line + 1):
        line = _clean(lines[j])
        if not line.strip():
            continue
        indent = _indent(line)
        if indent < key_column:
            return False
        if params_line is None:
            if indent == key_column and _PARAMETERS_KEY_RE.match(line.lstrip()):
                params_line, params_indent = j, indent
            continue
        if indent <= params_indent:
            return False

    return params_line is not None and params_line < cursor_line


# ---------------------------------------------------------------------------
# Template references
# ---------------------------------------------------------------------------

def extract_template_references(text: str) -> List[TemplateReference]:
    """
    Extract every ``template:`` reference in a file.

    Comments are stripped first so prose such as
    ``# Step template: build the project`` is not mistaken for a reference.

    Args:
        text: Raw file contents.

    Returns:
        References in file order with 0-based line numbers.
    """
    refs: List[TemplateReference] = []
    for i, line in enumerate(split_lines(text)):
        match = _TEMPLATE_RE.search(strip_comment(line))
        if not match:
            continue
        raw_ref = _unquote(match.group(1).strip())
        if raw_ref:
            refs.append(TemplateReference(raw_ref=raw_ref, line=i))
    return refs


def has_template_references(text: str) -> bool:
    """Check whether a file contains at least one ``template:`` reference."""
    return any(_TEMPLATE_RE.search(strip_comment(line)) for line in split_lines(text))


def is_runtime_expression(raw_ref: str) -> bool:
    """References built from ``${{ }}`` or ``$( )`` cannot be resolved statically."""
    return "${" in raw_ref or "$(" in raw_ref


def is_pipeline_root(text: str) -> bool:
    """
    Check whether a file looks like a pipeline entry point.

    ``trigger``, ``pr`` and ``schedules`` only occur in pipelines. A
    top-level ``stages``, ``jobs`` or ``steps`` body also counts, unless the
    file declares top-level ``parameters``, which marks it as a template.
    """
    text = normalize_newlines(text)
    if _PIPELINE_ONLY_RE.search(text):
        return True
    if not _PIPELINE_BODY_RE.search(text):
        return False
    return _find_top_level_key(text.split("\n"), "parameters") is None


def collect_parameter_references(text: str) -> Set[str]:
    """
    Collect parameter names used in a template body.

    Matches ``${{ parameters.name }}``, ``${{ parameters['name'] }}`` and
    bare ``parameters.name`` inside condition expressions.
    """
    refs: Set[str] = set()
    for match in _PARAMETER_USAGE_RE.finditer(text):
        name = match.group(1) or match.group(2) or match.group(3)
        if name:
            refs.add(name)
    return refs
