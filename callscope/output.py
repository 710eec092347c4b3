"""Rendering of results as JSON, plain-text trees and rich console output."""
import json
from typing import Any, Iterable, List, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from callscope.analyzer.graph_builder import PackageDeps
from callscope.callgraph.impact import ImpactReport
from callscope.callgraph.nodes import CallNode, TraversalSummary
from callscope.callgraph.references import RefCounts, Reference
from callscope.callgraph.tree import TreeResult

UNICODE_GUIDES = ("├── ", "└── ", "│   ", "    ")
ASCII_GUIDES = ("+-- ", "`-- ", "|   ", "    ")


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2)


def node_label(node: CallNode) -> str:
    """Text for one node: name, call site and any stop marker."""
    label = node.symbol
    if node.callsite:
        label += f" ({node.callsite})"
    if node.unresolved is not None:
        label += f" [unresolved: {node.unresolved.value}]"
    if node.interface:
        label += " [interface]"
    if node.cycle:
        label += " [cycle]"
    if node.truncated:
        label += " [depth limit]"
    return label


def render_call_text(roots: Sequence[CallNode], ascii_only: bool = False) -> str:
    """Render top-level nodes and their children as an indented text tree."""
    branch, last, pipe, blank = ASCII_GUIDES if ascii_only else UNICODE_GUIDES
    lines: List[str] = []

    def write(node: CallNode, prefix: str):
        for i, child in enumerate(node.children):
            is_last = i == len(node.children) - 1
            lines.append(f"{prefix}{last if is_last else branch}{node_label(child)}")
            write(child, prefix + (blank if is_last else pipe))

    for root in roots:
        lines.append(node_label(root))
        write(root, "")
    return "\n".join(lines)


def render_tree_result_text(result: TreeResult, ascii_only: bool = False) -> str:
    """Plain-text form of a tree query, for pipes and non-UTF-8 terminals."""
    lines = [f"{result.query.command}: {result.target}", f"  {result.signature}", f"  {result.definition}"]
    if result.query.up > 0:
        lines += ["", "Callers:"]
        lines.append(render_call_text(result.callers, ascii_only) if result.callers else "(none in scope)")
    if result.query.down > 0:
        lines += ["", "Calls:"]
        lines.append(render_call_text(result.callees, ascii_only) if result.callees else "(none)")

    summary = result.summary
    lines += ["", f"callers: {summary.callers}  callees: {summary.callees}  "
                  f"unresolved: {summary.unresolved_callees}"]
    if summary.up_truncated or summary.down_truncated:
        lines.append("depth limit reached; a deeper query may find more")
    lines.extend(f"warning: {warning}" for warning in result.warnings)
    return "\n".join(lines)


def _styled_label(node: CallNode) -> str:
    label = escape(node.symbol)
    if node.unresolved is not None:
        label = f"[yellow]{label}[/yellow] [dim]unresolved: {node.unresolved.value}[/dim]"
    elif node.interface:
        label = f"[magenta]{label}[/magenta] [dim]interface[/dim]"
    else:
        label = f"[bold]{label}[/bold]"
    if node.callsite:
        label += f" [dim]({escape(node.callsite)})[/dim]"
    if node.cycle:
        label += " [cyan]cycle[/cyan]"
    if node.truncated:
        label += " [red]depth limit[/red]"
    return label


def build_rich_tree(title: str, roots: Iterable[CallNode]) -> Tree:
    tree = Tree(title)

    def add(parent: Tree, node: CallNode):
        branch = parent.add(_styled_label(node))
        for child in node.children:
            add(branch, child)

    for root in roots:
        add(tree, root)
    return tree


def summary_table(summary: TraversalSummary) -> Table:
    table = Table(title="Summary", show_header=True, header_style="bold magenta", box=None)
    table.add_column("Direction")
    table.add_column("Found", justify="right")
    table.add_column("Unresolved", justify="right")
    table.add_column("Max depth", justify="right")
    table.add_column("Depth truncated")
    table.add_column("Cycles cut", justify="right")
    table.add_row("callers", str(summary.callers), "-", str(summary.max_up_depth),
                  "yes" if summary.up_truncated else "no", str(summary.up_cycles))
    table.add_row("callees", str(summary.callees), str(summary.unresolved_callees),
                  str(summary.max_down_depth), "yes" if summary.down_truncated else "no",
                  str(summary.down_cycles))
    return table


def print_tree_result(console: Console, result: TreeResult):
    """Print a tree query the way the CLI shows it."""
    console.print(Panel(
        f"[bold]{escape(result.target)}[/bold]\n"
        f"[dim]{escape(result.signature)}[/dim]\n"
        f"{escape(result.definition)}",
        title=f"{result.query.command}: {escape(result.query.target)}",
        expand=False,
    ))

    if result.query.up > 0:
        if result.callers:
            console.print(build_rich_tree("[bold blue]Callers[/bold blue]", result.callers))
        else:
            console.print("[dim]No callers found in scope.[/dim]")
    if result.query.down > 0:
        if result.callees:
            console.print(build_rich_tree("[bold blue]Calls[/bold blue]", result.callees))
        else:
            console.print("[dim]No calls found.[/dim]")

    for pkg in result.definitions:
        table = Table(title=f"Definitions: {escape(pkg.package)}", show_header=True, header_style="bold cyan")
        table.add_column("Symbol", style="bold")
        table.add_column("Signature")
        table.add_column("Definition", style="dim")
        for entry in pkg.symbols:
            table.add_row(escape(entry.symbol), escape(entry.signature), escape(entry.definition))
        console.print(table)

    console.print(summary_table(result.summary))
    for warning in result.warnings:
        console.print(f"[bold yellow]Warning:[/bold yellow] {escape(warning)}")


def references_to_dict(target: str, refs: Sequence[Reference], counts: RefCounts) -> dict:
    return {
        'target': target,
        'references': [ref.to_dict() for ref in refs],
        'counts': {
            'internal': counts.internal,
            'external': counts.external,
            'total': counts.total,
            'packages': counts.packages,
        },
    }


def print_references(console: Console, target: str, refs: Sequence[Reference], counts: RefCounts):
    if not refs:
        console.print(f"[dim]No references to {escape(target)} found.[/dim]")
        return
    table = Table(title=f"References to {escape(target)}", show_header=True, header_style="bold magenta")
    table.add_column("Kind")
    table.add_column("In")
    table.add_column("Location", style="dim")
    for ref in refs:
        kind = "[green]call[/green]" if ref.is_call else "[yellow]non-call[/yellow]"
        table.add_row(kind, escape(ref.containing), escape(ref.location))
    console.print(table)
    console.print(f"  Internal: {counts.internal}  External: {counts.external} "
                  f"({counts.package_count} packages)  Total: {counts.total}")


def print_deps(console: Console, deps: PackageDeps):
    table = Table(title=f"{escape(deps.package)} imports", show_header=True, header_style="bold magenta")
    table.add_column("Module")
    table.add_column("Kind")
    table.add_column("Line", justify="right", style="dim")
    for dep in deps.imports:
        table.add_row(escape(dep.module), dep.kind, str(dep.line))
    console.print(table)
    if deps.imported_by:
        console.print("[bold blue]Imported by:[/bold blue]")
        for importer in deps.imported_by:
            console.print(f"  {escape(importer)}")
    else:
        console.print("[dim]Not imported by any loaded package.[/dim]")


def print_impact(console: Console, report: ImpactReport):
    console.print(Panel(
        f"[bold]{escape(report.target)}[/bold] [dim]({escape(report.kind)})[/dim]\n"
        f"{escape(report.definition)}",
        title=f"impact: {escape(report.target)}",
        expand=False,
    ))
    if report.callers:
        table = Table(title="Transitive callers", show_header=True, header_style="bold magenta")
        table.add_column("Depth", justify="right")
        table.add_column("Caller", style="bold")
        table.add_column("Call site", style="dim")
        for caller in report.callers:
            name = escape(caller.symbol)
            if caller.truncated:
                name += " [red]depth limit[/red]"
            table.add_row(str(caller.depth), name, escape(caller.callsite))
        console.print(table)
    else:
        console.print("[dim]No callers found in scope.[/dim]")

    if report.references:
        table = Table(title="Other references", show_header=True, header_style="bold magenta")
        table.add_column("Kind")
        table.add_column("In")
        table.add_column("Location", style="dim")
        for ref in report.references:
            table.add_row(ref.kind, escape(ref.containing), escape(ref.location))
        console.print(table)

    console.print(f"  Callers: {len(report.callers)}  References: {len(report.references)}  "
                  f"Declarations affected: {len(report.affected)}  Files: {len(report.files)}")
    if report.truncated:
        console.print("[yellow]Depth limit reached; a deeper query may find more callers.[/yellow]")
