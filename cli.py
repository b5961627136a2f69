#!/usr/bin/env python3
"""
Pipeline Template Mapper CLI

A tool for navigating Azure Pipelines YAML templates: workspace graphs,
per-file reference trees, parameter listings, reference resolution and
call-site checks.
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from diagnostics import Severity
from exporters import to_ascii, to_json, to_mermaid, tree_to_ascii, tree_to_json
from graph.model import EdgeDirection
from graph.workspace import Workspace
from scanner.config import MAX_DEPTH, ScanConfig, load_config, normalize_extensions
from scanner.search import DEFAULT_MAX_RESULTS, build_search_index


logger = logging.getLogger(__name__)


def _add_scan_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--include-ext",
        nargs="+",
        default=None,
        help="File extensions to include (default: .yml .yaml)",
    )
    parser.add_argument(
        "--exclude-dir",
        nargs="+",
        default=None,
        help="Additional directory names to exclude",
    )
    parser.add_argument(
        "--max-scan-depth",
        type=int,
        default=None,
        help="Maximum directory depth to scan",
    )


def _add_output_options(parser: argparse.ArgumentParser, formats, default: str) -> None:
    parser.add_argument(
        "-f", "--format",
        choices=formats,
        default=default,
        help=f"Output format (default: {default})",
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        help="Output file (default: stdout)",
    )


def parse_args(args=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="tplmap",
        description="Navigate Azure Pipelines YAML templates across local and sibling repositories.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tplmap graph .                                  # Workspace graph, ASCII output
  tplmap graph . -f mermaid --group-by-repo       # Mermaid, one subgraph per repository
  tplmap tree pipelines/azure-pipelines.yml       # Templates used by a pipeline
  tplmap tree templates/build.yml --direction up  # Who calls this template
  tplmap params templates/build.yml               # Declared parameters
  tplmap search bld                               # Find template files by fuzzy name
  tplmap resolve 'stages/build.yml@templates' --from pipelines/azure-pipelines.yml
  tplmap check .                                  # Call-site and unused-parameter checks
  tplmap watch .                                  # Keep the index current while editing
        """,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging on stderr",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    # graph
    graph_parser = subparsers.add_parser("graph", help="Graph of every template in the workspace")
    graph_parser.add_argument("root", nargs="?", default=".", help="Workspace root (default: current directory)")
    graph_parser.add_argument("--sub-path", default=None, help="Only scan this directory, relative to the root")
    _add_output_options(graph_parser, ["ascii", "mermaid", "json"], "ascii")
    graph_parser.add_argument(
        "--orientation",
        choices=["LR", "TD", "TB", "RL", "BT"],
        default="LR",
        help="Mermaid flowchart orientation (default: LR)",
    )
    graph_parser.add_argument(
        "--group-by-repo",
        action="store_true",
        help="Group nodes by repository in Mermaid output",
    )
    graph_parser.add_argument(
        "--ascii-style",
        choices=["tree", "ascii"],
        default="tree",
        help="ASCII output style: 'tree' (Unicode) or 'ascii' (pure ASCII)",
    )
    graph_parser.add_argument(
        "--show-all",
        action="store_true",
        help="Include templates that have no connections",
    )
    graph_parser.add_argument(
        "--show-params",
        action="store_true",
        help="Show parameter counts next to each template",
    )
    _add_scan_options(graph_parser)

    # tree
    tree_parser = subparsers.add_parser("tree", help="Reference tree of one file")
    tree_parser.add_argument("file", help="Pipeline or template file")
    tree_parser.add_argument("--root", default=".", help="Workspace root (default: current directory)")
    tree_parser.add_argument(
        "--direction",
        choices=["down", "up", "both"],
        default="down",
        help="down: templates used by the file; up: files using it; both: merged graph",
    )
    tree_parser.add_argument(
        "--depth",
        type=int,
        default=None,
        help=f"Levels to expand, 1-{MAX_DEPTH} (default: from config, else 5)",
    )
    _add_output_options(tree_parser, ["ascii", "mermaid", "json"], "ascii")
    tree_parser.add_argument(
        "--ascii-style",
        choices=["tree", "ascii"],
        default="tree",
        help="ASCII output style: 'tree' (Unicode) or 'ascii' (pure ASCII)",
    )
    _add_scan_options(tree_parser)

    # params
    params_parser = subparsers.add_parser("params", help="Parameters declared by a template")
    params_parser.add_argument("file", help="Template file")
    params_parser.add_argument("--root", default=".", help="Workspace root (default: current directory)")
    _add_output_options(params_parser, ["text", "json"], "text")

    # search
    search_parser = subparsers.add_parser("search", help="Find template files by fuzzy name or path")
    search_parser.add_argument("query", help="Search text; typos are tolerated")
    search_parser.add_argument("--root", default=".", help="Workspace root (default: current directory)")
    search_parser.add_argument(
        "-n", "--max-results",
        type=int,
        default=DEFAULT_MAX_RESULTS,
        help=f"Maximum number of results (default: {DEFAULT_MAX_RESULTS})",
    )
    _add_output_options(search_parser, ["text", "json"], "text")
    _add_scan_options(search_parser)

    # resolve
    resolve_parser = subparsers.add_parser("resolve", help="Resolve a template reference to a file")
    resolve_parser.add_argument("ref", help="Reference as written after 'template:'")
    resolve_parser.add_argument("--from", dest="source", required=True, help="File containing the reference")
    resolve_parser.add_argument("--root", default=".", help="Workspace root (default: current directory)")

    # check
    check_parser = subparsers.add_parser("check", help="Check call sites and unused parameters")
    check_parser.add_argument("root", nargs="?", default=".", help="Workspace root (default: current directory)")
    check_parser.add_argument("--file", default=None, help="Only check this file")
    _add_output_options(check_parser, ["text", "json"], "text")
    _add_scan_options(check_parser)

    # watch
    watch_parser = subparsers.add_parser("watch", help="Watch the workspace and keep the index current")
    watch_parser.add_argument("root", nargs="?", default=".", help="Workspace root (default: current directory)")
    watch_parser.add_argument(
        "--debounce",
        type=float,
        default=None,
        help="Seconds to wait for more changes before applying them",
    )
    _add_scan_options(watch_parser)

    return parser.parse_args(args)


def setup_logging(verbose: bool, default_level: int = logging.WARNING) -> None:
    """Send log records to stderr; -v switches to DEBUG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else default_level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_config(root: Path, parsed) -> ScanConfig:
    """Load ``.templatemap.yml`` and apply command line overrides."""
    config = load_config(root)
    if getattr(parsed, "include_ext", None):
        config.include_ext = normalize_extensions(parsed.include_ext)
    if getattr(parsed, "exclude_dir", None):
        config.exclude_dirs = config.exclude_dirs | set(parsed.exclude_dir)
    if getattr(parsed, "max_scan_depth", None) is not None:
        config.max_scan_depth = parsed.max_scan_depth
    if getattr(parsed, "debounce", None) is not None:
        config.debounce_seconds = max(0.0, parsed.debounce)
    return config


def _existing_file(value: str) -> Optional[Path]:
    path = Path(value).resolve()
    if not path.is_file():
        print(f"Error: '{value}' is not a file", file=sys.stderr)
        return None
    return path


def write_output(output: str, destination: Optional[str]) -> int:
    """Print output or write it to a file; returns the exit code."""
    if destination:
        try:
            output_path = Path(destination)
            output_path.write_text(output, encoding="utf-8")
            print(f"Output written to: {output_path}", file=sys.stderr)
        except OSError as e:
            print(f"Error writing output: {e}", file=sys.stderr)
            return 1
    else:
        print(output)
    return 0


def cmd_graph(workspace: Workspace, parsed) -> int:
    graph = workspace.builder.build_workspace_graph(parsed.sub_path)

    if parsed.format == "mermaid":
        output = to_mermaid(
            graph=graph,
            root=workspace.root,
            orientation=parsed.orientation,
            group_by_repository=parsed.group_by_repo,
            show_params=parsed.show_params,
        )
    elif parsed.format == "json":
        output = to_json(graph=graph, root=workspace.root)
    else:  # ascii (default)
        output = to_ascii(
            graph=graph,
            root=workspace.root,
            style=parsed.ascii_style,
            show_all=parsed.show_all,
            show_params=parsed.show_params,
        )
    return write_output(output, parsed.output)


def cmd_tree(workspace: Workspace, parsed) -> int:
    focal = _existing_file(parsed.file)
    if focal is None:
        return 1

    if parsed.direction != "down":
        workspace.open()

    if parsed.direction == "both":
        graph = workspace.builder.file_graph(focal, parsed.depth)
        if parsed.format == "mermaid":
            output = to_mermaid(graph=graph, root=workspace.root, show_params=True)
        elif parsed.format == "json":
            output = to_json(graph=graph, root=workspace.root)
        else:
            output = to_ascii(graph=graph, root=workspace.root, style=parsed.ascii_style, show_params=True)
        return write_output(output, parsed.output)

    if parsed.direction == "up":
        tree = workspace.builder.upstream_tree(focal, parsed.depth)
        direction = EdgeDirection.UPSTREAM
    else:
        tree = workspace.builder.downstream_tree(focal, parsed.depth)
        direction = EdgeDirection.DOWNSTREAM

    if parsed.format == "mermaid":
        output = to_mermaid(graph=tree.to_graph(direction), root=workspace.root, show_params=True)
    elif parsed.format == "json":
        output = tree_to_json(tree, workspace.root)
    else:
        output = tree_to_ascii(tree, workspace.root, style=parsed.ascii_style)
    return write_output(output, parsed.output)


def cmd_params(workspace: Workspace, parsed) -> int:
    path = _existing_file(parsed.file)
    if path is None:
        return 1

    params = workspace.parameters(path)
    if parsed.format == "json":
        output = json.dumps(
            [
                {
                    "name": p.name,
                    "type": p.type,
                    "default": p.default,
                    "required": p.required,
                    "line": p.line + 1,
                }
                for p in params
            ],
            indent=2,
        )
    elif not params:
        output = "No parameters declared."
    else:
        width = max(len(p.name) for p in params)
        rows = []
        for p in params:
            detail = "required" if p.required else f"default: {p.default}"
            rows.append(f"{p.name.ljust(width)}  {p.type:<10}  {detail}")
        output = "\n".join(rows)
    return write_output(output, parsed.output)


def cmd_search(workspace: Workspace, parsed) -> int:
    engine = build_search_index(workspace.root, workspace.config)
    results = engine.search(parsed.query, max(1, parsed.max_results))

    if parsed.format == "json":
        output = json.dumps(
            [
                {
                    "path": str(r.entry.path),
                    "relativePath": r.entry.relative_path,
                    "directory": r.entry.directory,
                    "score": round(r.score, 2),
                }
                for r in results
            ],
            indent=2,
        )
    elif not results:
        output = "No matching templates."
    else:
        output = "\n".join(f"{r.score:6.1f}  {r.entry.relative_path}" for r in results)
    return write_output(output, parsed.output)


def cmd_resolve(workspace: Workspace, parsed) -> int:
    source = _existing_file(parsed.source)
    if source is None:
        return 1

    resolved = workspace.resolve(parsed.ref, source)
    if resolved is None:
        print("Error: empty template reference", file=sys.stderr)
        return 1
    if resolved.is_unresolved_alias:
        print(
            f"Error: repository alias '{resolved.unresolved_alias}' is not declared in {source.name}",
            file=sys.stderr,
        )
        return 1

    exists = workspace.cache.exists(resolved.path)
    suffix = "" if exists else " [MISSING]"
    repository = f" (repository: {resolved.repository})" if resolved.repository else ""
    print(f"{resolved.path}{repository}{suffix}")
    return 0 if exists else 1


def cmd_check(workspace: Workspace, parsed) -> int:
    if parsed.file:
        path = _existing_file(parsed.file)
        if path is None:
            return 1
        diagnostics = workspace.diagnostics(path)
        results = {path: diagnostics} if diagnostics else {}
    else:
        results = workspace.all_diagnostics()

    if parsed.format == "json":
        output = json.dumps(
            [
                {
                    "path": str(d.path),
                    "line": d.line + 1,
                    "code": d.code,
                    "severity": d.severity.value,
                    "message": d.message,
                }
                for path in sorted(results)
                for d in results[path]
            ],
            indent=2,
        )
    else:
        lines = [d.format(workspace.root) for path in sorted(results) for d in results[path]]
        output = "\n".join(lines) if lines else "No problems found."

    status = write_output(output, parsed.output)
    has_errors = any(d.severity is Severity.ERROR for found in results.values() for d in found)
    return 1 if has_errors else status


def cmd_watch(workspace: Workspace, parsed) -> int:
    from graph.watcher import watch

    workspace.open()
    observer = watch(workspace)
    print(f"Watching {workspace.root} for template changes (Ctrl+C to stop)", file=sys.stderr)
    try:
        while observer.is_alive():
            observer.join(1)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()
        workspace.close()
    return 0


COMMANDS = {
    "graph": cmd_graph,
    "tree": cmd_tree,
    "params": cmd_params,
    "search": cmd_search,
    "resolve": cmd_resolve,
    "check": cmd_check,
    "watch": cmd_watch,
}


def main(args=None):
    """Main entry point."""
    parsed = parse_args(args)
    setup_logging(parsed.verbose, logging.INFO if parsed.command == "watch" else logging.WARNING)

    # Resolve paths
    root = Path(parsed.root).resolve()
    if not root.is_dir():
        print(f"Error: '{parsed.root}' is not a directory", file=sys.stderr)
        return 1

    config = build_config(root, parsed)
    workspace = Workspace(root, config)
    started = time.perf_counter()
    try:
        return COMMANDS[parsed.command](workspace, parsed)
    finally:
        logger.debug("%s finished in %.3fs: %r", parsed.command, time.perf_counter() - started, workspace)


if __name__ == "__main__":
    sys.exit(main())
