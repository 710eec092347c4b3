"""The callscope CLI - bounded caller/callee trees for Python projects."""
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from callscope import output
from callscope.analyzer.graph_builder import DependencyGraphBuilder
from callscope.analyzer.index import SymbolIndex
from callscope.analyzer.loader import ProgramLoader
from callscope.analyzer.program import Program
from callscope.callgraph.references import (
    count_non_call_references,
    count_references,
    iter_non_call_references,
    iter_references,
)
from callscope.callgraph.impact import analyze_impact
from callscope.callgraph.scope import Scope, ScopeFilter
from callscope.callgraph.tree import build_tree
from callscope.config import SCOPES, __version__, get_config, reset_config
from callscope.errors import CallscopeError
from callscope.utils.logger import setup_logging
from callscope.utils.safe_console import SafeConsole

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="callscope",
    help="Bounded caller and callee trees for Python projects",
    add_completion=False
)
# Use SafeConsole so trees degrade to ASCII on legacy terminals
console = SafeConsole()


class State:
    """Options shared by every command, filled in by the callback."""

    def __init__(self):
        self.root = Path(".").resolve()
        self.json = False
        self.plain = False


state = State()


def _fail(error: CallscopeError):
    if state.json:
        typer.echo(output.to_json(error.to_dict()))
    else:
        console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    raise typer.Exit(1)


def _check_scope(scope: str) -> str:
    scope = scope.strip().lower()
    if scope not in SCOPES:
        raise typer.BadParameter(f"must be one of {', '.join(SCOPES)}")
    return scope


def load_program() -> Program:
    """Load the project under ``state.root``, showing a spinner unless output is JSON or plain."""
    config = get_config(state.root)
    loader = ProgramLoader(state.root, exclude_dirs=config.exclude_dirs)

    if state.json or state.plain:
        return loader.load()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Loading project...", total=None)

        def on_file(path: Path):
            progress.update(task, description=f"Parsing {escape(path.name)}")

        program = loader.load(on_file=on_file)
        progress.update(task, description="Done")
    return program


def _run_tree(symbol: str, up: int, down: int, scope: str, command: str):
    try:
        program = load_program()
        sym = SymbolIndex(program).resolve(symbol)
        result = build_tree(program, sym, up=up, down=down, scope=Scope(scope), command=command)
    except CallscopeError as e:
        _fail(e)
    except KeyboardInterrupt:
        console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(130)

    if state.json:
        typer.echo(output.to_json(result.to_dict()))
    elif state.plain:
        typer.echo(output.render_tree_result_text(result, ascii_only=console.ascii_only))
    else:
        output.print_tree_result(console, result)


@app.command()
def tree(
    symbol: str = typer.Argument(..., help="Function or method, e.g. billing.Invoice.total"),
    up: Optional[int] = typer.Option(None, "--up", "-u", min=0, help="Caller depth (default: CALLSCOPE_UP_DEPTH or 2)"),
    down: Optional[int] = typer.Option(None, "--down", "-d", min=0, help="Callee depth (default: CALLSCOPE_DOWN_DEPTH or 2)"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Traversal scope: all, project or package"),
):
    """Show who calls SYMBOL and what SYMBOL calls."""
    config = get_config(state.root)
    _run_tree(
        symbol,
        config.up_depth if up is None else up,
        config.down_depth if down is None else down,
        _check_scope(scope or config.scope),
        "tree",
    )


@app.command()
def callers(
    symbol: str = typer.Argument(..., help="Function or method to find callers of"),
    depth: Optional[int] = typer.Option(None, "--depth", min=0, help="Caller levels (default: CALLSCOPE_UP_DEPTH or 2)"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Traversal scope: all, project or package"),
):
    """Show the callers tree of SYMBOL, outermost caller first."""
    config = get_config(state.root)
    up = config.up_depth if depth is None else depth
    _run_tree(symbol, up, 0, _check_scope(scope or config.scope), "callers")


@app.command()
def callees(
    symbol: str = typer.Argument(..., help="Function or method to expand"),
    depth: Optional[int] = typer.Option(None, "--depth", min=0, help="Callee levels (default: CALLSCOPE_DOWN_DEPTH or 2)"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Traversal scope: all, project or package"),
):
    """Show everything SYMBOL calls, down to DEPTH levels."""
    config = get_config(state.root)
    down = config.down_depth if depth is None else depth
    _run_tree(symbol, 0, down, _check_scope(scope or config.scope), "callees")


@app.command()
def refs(
    symbol: str = typer.Argument(..., help="Symbol to find references to"),
    non_call: bool = typer.Option(False, "--non-call", help="Only references that are not direct calls"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Packages to search: all, project or package"),
):
    """List every reference to SYMBOL, marking which ones are calls."""
    config = get_config(state.root)
    scope = _check_scope(scope or config.scope)
    try:
        program = load_program()
        sym = SymbolIndex(program).resolve(symbol)
        packages = ScopeFilter(program, scope, sym.package).packages()
        if non_call:
            found = list(iter_non_call_references(program, sym, packages))
            counts = count_non_call_references(program, sym, packages)
        else:
            found = list(iter_references(program, sym, packages))
            counts = count_references(program, sym, packages)
    except CallscopeError as e:
        _fail(e)
    except KeyboardInterrupt:
        console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(130)

    if state.json:
        typer.echo(output.to_json(output.references_to_dict(sym.display_name, found, counts)))
    else:
        output.print_references(console, sym.display_name, found, counts)


@app.command()
def impact(
    symbol: str = typer.Argument(..., help="Symbol whose change impact to analyze"),
    depth: int = typer.Option(3, "--depth", min=0, help="Levels of transitive callers to follow"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Traversal scope: all, project or package"),
):
    """Show everything affected by changing SYMBOL: transitive callers plus other references."""
    config = get_config(state.root)
    scope = _check_scope(scope or config.scope)
    try:
        program = load_program()
        sym = SymbolIndex(program).resolve(symbol)
        report = analyze_impact(program, sym, depth=depth, scope=scope)
    except CallscopeError as e:
        _fail(e)
    except KeyboardInterrupt:
        console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(130)

    if state.json:
        typer.echo(output.to_json(report.to_dict()))
    else:
        output.print_impact(console, report)


@app.command()
def deps(
    package: str = typer.Argument(..., help="Dotted module path, e.g. billing.invoice"),
    exclude_stdlib: bool = typer.Option(False, "--exclude-stdlib", help="Hide standard library imports"),
):
    """Show what PACKAGE imports and which project modules import it."""
    try:
        program = load_program()
        pkg = SymbolIndex(program).resolve_package(package)
    except CallscopeError as e:
        _fail(e)

    graph = DependencyGraphBuilder(program)
    result = graph.dependencies(pkg, exclude_stdlib=exclude_stdlib)

    if state.json:
        data = result.to_dict()
        data['cycles'] = [c for c in graph.import_cycles() if pkg.path in c]
        typer.echo(output.to_json(data))
        return

    output.print_deps(console, result)
    for cycle in graph.import_cycles():
        if pkg.path in cycle:
            console.print(f"[bold yellow]Import cycle:[/bold yellow] {escape(' -> '.join(cycle))}")


def _version_callback(value: bool):
    if value:
        console.print(f"callscope {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    root: Path = typer.Option(Path("."), "--root", "-r", help="Project root to analyze"),
    json_output: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
    plain: bool = typer.Option(False, "--plain", help="Print trees as plain text (ASCII on non-UTF-8 terminals)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show the version and exit"),
):
    """callscope - who calls a function, and what it calls."""
    state.root = root.resolve()
    state.json = json_output
    state.plain = plain

    reset_config()
    try:
        config = get_config(state.root)
    except CallscopeError as e:
        setup_logging(verbose=verbose)
        _fail(e)
    setup_logging(config.log_level, verbose=verbose)
    logger.debug("Analyzing %s", state.root)


if __name__ == "__main__":
    app()
