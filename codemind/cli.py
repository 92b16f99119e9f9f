# codemind/cli.py

import asyncio
import json
from pathlib import Path
from typing import Optional, List

import typer
from loguru import logger

# --- Setup logging early ---
from .services.logging import setup_logging
# Logging setup is deferred until callback

from .config.loader import get_config
from .config.schema import AppConfig
from .core.errors import CodeMindError
from .core.explorer import Explorer
from .core.models import TreeNode, ViewMode
from .core.payloads import edge_to_payload, prompt_item_from_payload
from .core.prompt_engine import PromptEngine
from .core.session_codec import LOCAL_SOURCE, compute_project_signature, parse_snapshot
from .core.fs_scanner import LocalPathScanner
from .services.analysis import HttpAnalysisService
from . import __version__

# --- Typer App ---
app = typer.Typer(help="CodeMind CLI - Explore a codebase as a dependency graph.")

RepoArgument = typer.Argument(..., help="Path to the project root.", exists=True, file_okay=False,
                              dir_okay=True, readable=True, resolve_path=True)


def version_callback(value: bool):
    if value:
        print(f"CodeMind CLI Version: {__version__}")
        raise typer.Exit()


@app.callback()
def main_options(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    version: Optional[bool] = typer.Option(None, "--version", callback=version_callback, is_eager=True, help="Show version and exit."),
):
    """ Main callback to set up logging """
    log_level = "DEBUG" if verbose else "INFO"
    # Configure logging here, after flags are parsed
    setup_logging(level=log_level, verbose=verbose)
    logger.debug(f"Log level set to: {log_level}")
    ctx.ensure_object(dict)
    ctx.obj["VERBOSE"] = verbose


def _offline_explorer(config: AppConfig) -> Explorer:
    """Explorer for read-only commands: no session store, so nothing is auto-restored."""
    analysis = HttpAnalysisService(config.ai_base_url, timeout=config.ai_timeout_s)
    return Explorer(analysis, config=config)


def _fail(message: str) -> typer.Exit:
    logger.error(message)
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


async def _load_with_links(repo: Path, config: AppConfig) -> Explorer:
    explorer = _offline_explorer(config)
    await explorer.load_local(repo)
    await explorer.load_all_contents()
    return explorer


async def _expand_all(explorer: Explorer, max_depth: Optional[int] = None) -> None:
    pending = [(explorer.store.root, 0)]
    while pending:
        node, depth = pending.pop()
        if node is None or not node.is_dir or (max_depth is not None and depth >= max_depth):
            continue
        await explorer.expand(node.path)
        for child in node.children or []:
            pending.append((child, depth + 1))


def _render_tree(node: TreeNode, depth: int, lines: List[str]) -> None:
    indent = "  " * depth
    if node.is_dir:
        suffix = "/" if node.path else ""
        lines.append(f"{indent}{node.name}{suffix} ({node.descendant_count})")
    else:
        lines.append(f"{indent}{node.name}")
    for child in node.children or []:
        _render_tree(child, depth + 1, lines)


@app.command()
def tree(
    repo: Path = RepoArgument,
    depth: Optional[int] = typer.Option(None, "--depth", "-d", min=1, help="Expand at most this many levels."),
):
    """
    Prints the project tree with descendant counts.
    """
    config = get_config()

    async def run() -> TreeNode:
        explorer = _offline_explorer(config)
        await explorer.load_local(repo)
        await _expand_all(explorer, depth)
        return explorer.store.root

    try:
        root = asyncio.run(run())
    except (CodeMindError, ValueError) as e:
        raise _fail(str(e))

    lines: List[str] = []
    _render_tree(root, 0, lines)
    typer.echo("\n".join(lines))


@app.command()
def deps(
    repo: Path = RepoArgument,
    as_json: bool = typer.Option(False, "--json", help="Print edges as JSON."),
):
    """
    Resolves import and call edges of every file (no AI analysis) and prints them.
    """
    config = get_config()
    try:
        explorer = asyncio.run(_load_with_links(repo, config))
    except (CodeMindError, ValueError) as e:
        raise _fail(str(e))

    edges = explorer.store.semantic_edges()
    if as_json:
        payload = [edge_to_payload(edge).model_dump(mode="json", by_alias=True) for edge in edges]
        typer.echo(json.dumps(payload, indent=2))
        return
    for edge in edges:
        typer.echo(f"{edge.source} -[{edge.kind.value}]-> {edge.target}")
    logger.info(f"{len(edges)} edges")


@app.command()
def path(
    repo: Path = RepoArgument,
    source: str = typer.Argument(..., help="Source node id (file path or path#symbol)."),
    target: str = typer.Argument(..., help="Target node id."),
    view: ViewMode = typer.Option(ViewMode.SEMANTIC, "--view", case_sensitive=False, help="Graph view to search."),
):
    """
    Prints the shortest path between two nodes.
    """
    config = get_config()

    async def run() -> Explorer:
        explorer = await _load_with_links(repo, config)
        if view is ViewMode.STRUCTURAL:
            await _expand_all(explorer)
        return explorer

    try:
        explorer = asyncio.run(run())
    except (CodeMindError, ValueError) as e:
        raise _fail(str(e))

    flow = explorer.query(source, target, view)
    if flow is None:
        typer.echo("No path")
        raise typer.Exit(code=1)
    if flow.is_trivial:
        typer.echo("Same node")
        return
    typer.echo(" -> ".join(flow.node_ids))
    for link_id in flow.link_ids:
        typer.echo(f"  {link_id}")


@app.command()
def signature(
    repo: Path = RepoArgument,
    source: str = typer.Option(LOCAL_SOURCE, "--source", help="Source identifier, e.g. 'github:owner/repo'."),
):
    """
    Prints the project signature used to match saved sessions.
    """
    config = get_config()
    scanner = LocalPathScanner(repo, config.ignore_patterns)
    try:
        paths = scanner.scan_paths()
    except ValueError as e:
        raise _fail(str(e))
    typer.echo(compute_project_signature(paths, source))


@app.command()
def prompt(
    session_file: Path = typer.Argument(..., help="Saved session JSON file.", exists=True, dir_okay=False,
                                        readable=True, resolve_path=True),
    xml: bool = typer.Option(False, "--xml", help="Render as XML instead of plain text."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the prompt to this file.",
                                          writable=True, resolve_path=True),
):
    """
    Renders the prompt basket of a saved session.
    """
    config = get_config()
    try:
        snapshot = parse_snapshot(session_file.read_text(encoding="utf-8"))
    except OSError as e:
        raise _fail(f"Could not read {session_file}: {e}")
    except CodeMindError as e:
        raise _fail(str(e))

    items = [prompt_item_from_payload(item) for item in snapshot.prompts]
    engine = PromptEngine(max_tokens=config.max_prompt_tokens, encoding_name=config.token_encoding)
    text = engine.build_prompt_xml(items) if xml else engine.build_prompt(items)

    if output is None:
        typer.echo(text)
    else:
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(text, encoding="utf-8")
        except OSError as e:
            raise _fail(f"Error writing output file: {e}")
        logger.success(f"Prompt successfully written to: {output}")
    typer.echo(f"Token count: {engine.token_report(items)}", err=True)


if __name__ == "__main__":
    app()
