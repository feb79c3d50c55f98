"""Rich terminal display for diskpulse."""

import json
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.tree import Tree

from diskpulse.categories import CategoryRule
from diskpulse.models import (
    CleanCategory,
    CleanPlan,
    CleanResult,
    DeepScanResult,
    DirectoryNode,
    FileEntry,
    ScanFailure,
    ScanResult,
    TypeStat,
    format_size,
)

console = Console()

CATEGORY_COLORS = {
    CleanCategory.CACHE: "cyan",
    CleanCategory.LOGS: "blue",
    CleanCategory.TEMP: "magenta",
    CleanCategory.TRASH: "red",
    CleanCategory.RESIDUAL: "yellow",
    CleanCategory.DOWNLOADS: "green",
}


def category_label(category: CleanCategory) -> str:
    """Get styled label for a category."""
    color = CATEGORY_COLORS.get(category, "white")
    return f"[{color}]{category.value}[/{color}]"


def format_time(timestamp: int) -> str:
    """Format a Unix timestamp as a local date and time."""
    if timestamp <= 0:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


def print_json(data: BaseModel | list[BaseModel]) -> None:
    """Print a result model (or a list of them) as JSON."""
    if isinstance(data, list):
        text = json.dumps([m.model_dump(mode="json") for m in data], indent=2)
    else:
        text = data.model_dump_json(indent=2)
    # soft_wrap keeps long paths on one line so the output stays valid JSON
    console.print(text, markup=False, highlight=False, soft_wrap=True)


def show_partial_notice(complete: bool, failures: list[ScanFailure]) -> None:
    """Warn about cancelled scans and unreadable paths."""
    if not complete:
        console.print("[yellow]Scan was cancelled; results are partial.[/yellow]")
    if failures:
        console.print(f"[dim]{len(failures)} path(s) could not be read (use --verbose for details)[/dim]")


def show_scan_result(result: ScanResult) -> None:
    """Display a one-level directory listing."""
    table = Table(title=result.path, show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Modified")

    for item in sorted(result.items, key=lambda x: x.size_bytes, reverse=True):
        table.add_row(
            "[blue]D[/blue]" if item.is_directory else "",
            f"[bold]{item.name}/[/bold]" if item.is_directory else item.name,
            format_size(item.size_bytes),
            format_time(item.modified_at),
        )

    console.print(table)
    console.print(f"[bold]Total: {result.size_human}[/bold] in {len(result.items)} items")
    show_partial_notice(result.complete, result.failures)


def _add_nodes(branch: Tree, nodes: list[DirectoryNode], total: int) -> None:
    for node in nodes:
        share = node.size_bytes / total * 100 if total else 0.0
        child = branch.add(
            f"[bold]{node.name}[/bold]  {format_size(node.size_bytes)}  "
            f"[dim]{share:.1f}% · {node.file_count} files[/dim]"
        )
        _add_nodes(child, node.children, total)


def show_tree(result: DeepScanResult) -> None:
    """Display the size tree of a deep scan."""
    tree = Tree(f"[bold blue]{result.path}[/bold blue]  {result.size_human}")
    _add_nodes(tree, result.tree, result.total_size_bytes)
    console.print(tree)


def show_large_files(files: list[FileEntry], title: str = "Largest Files") -> None:
    """Display large files, largest first."""
    if not files:
        console.print("[dim]No files found.[/dim]")
        return

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    table.add_column("Path")

    for entry in files:
        table.add_row(format_size(entry.size_bytes), format_time(entry.modified_at), entry.path)

    console.print(table)


def show_type_stats(stats: list[TypeStat]) -> None:
    """Display per-extension totals."""
    if not stats:
        return

    table = Table(title="File Types", show_header=True, header_style="bold")
    table.add_column("Extension")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")

    for stat in stats:
        table.add_row(stat.extension, str(stat.count), format_size(stat.total_size_bytes))

    console.print(table)


def show_deep_scan(result: DeepScanResult) -> None:
    """Display full deep scan results."""
    show_tree(result)
    console.print()
    show_large_files(result.large_files)
    console.print()
    show_type_stats(result.type_stats)
    console.print()
    console.print(
        Panel(
            f"[bold]Total:[/bold] {result.size_human}\n"
            f"  Files: {result.file_count}\n"
            f"  Directories: {result.dir_count}",
            title="Summary",
            border_style="blue",
        )
    )
    show_partial_notice(result.complete, result.failures)


def show_children(path: str, nodes: list[DirectoryNode]) -> None:
    """Display the subdirectories of path with their totals."""
    table = Table(title=path, show_header=True, header_style="bold")
    table.add_column("Directory")
    table.add_column("Size", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Dirs", justify="right")

    for node in nodes:
        table.add_row(node.name, node.size_human, str(node.file_count), str(node.dir_count))

    console.print(table)


def show_clean_plan(plan: CleanPlan, dry_run: bool = False) -> None:
    """Display a clean plan grouped by category."""
    if dry_run:
        console.print("[yellow]DRY RUN - No files will be deleted[/yellow]\n")

    if not plan.items:
        console.print("[green]Nothing to clean.[/green]")
        show_partial_notice(plan.complete, plan.failures)
        return

    table = Table(title="Clean Plan", show_header=True, header_style="bold")
    table.add_column("Category")
    table.add_column("Size", justify="right")
    table.add_column("Item")

    for category, items in plan.by_category().items():
        for item in items:
            table.add_row(category_label(category), item.size_human, item.description or item.path)

    console.print(table)
    console.print(f"\n[bold]Total to clean: {plan.size_human}[/bold] in {plan.total_items} items")
    show_partial_notice(plan.complete, plan.failures)


def show_clean_result(result: CleanResult) -> None:
    """Display the outcome of a clean."""
    console.print()
    if result.dry_run:
        console.print("[bold yellow]Dry run complete[/bold yellow]")
    elif result.success:
        console.print("[bold green]Cleanup Complete![/bold green]")
    else:
        console.print("[bold yellow]Cleanup finished with errors[/bold yellow]")
    console.print()

    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Would free" if result.dry_run else "Space freed", result.size_human)
    table.add_row("Items cleaned", str(result.deleted_items))
    if result.failed_items:
        table.add_row("[red]Failed[/red]", str(len(result.failed_items)))

    console.print(table)

    for failure in result.failures:
        console.print(f"  [red]✗[/red] {failure.path}: {failure.message or failure.kind.value}")


def show_categories(rules: list[CategoryRule]) -> None:
    """List cleanup categories with their locations."""
    console.print("[bold]Available Categories[/bold]\n")
    for rule in rules:
        console.print(f"  • [bold]{category_label(rule.id)}[/bold] - {rule.name}")
        console.print(f"    [dim]{rule.description}[/dim]")
        for location in rule.locations:
            console.print(f"    [dim]{location.path}[/dim]")
    console.print()
    console.print("[dim]Run [bold]diskpulse plan <category>...[/bold] to preview reclaimable space[/dim]")


def show_protections(paths: list[str]) -> None:
    """Display the user's protected paths."""
    if not paths:
        console.print("[dim]No protected paths.[/dim]")
        return
    console.print("[bold]Protected Paths[/bold]")
    for path in paths:
        console.print(f"  • {path}")


def show_scanning_progress(description: Optional[str] = None) -> Progress:
    """Create a spinner for scans of unknown length."""
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    if description:
        progress.add_task(description, total=None)
    return progress


def confirm_action(message: str) -> bool:
    """Ask for confirmation."""
    from rich.prompt import Confirm

    return Confirm.ask(message)
