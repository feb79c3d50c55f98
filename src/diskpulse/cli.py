"""CLI interface for diskpulse."""

import logging
from contextlib import nullcontext
from typing import Any, Callable, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from diskpulse import __version__
from diskpulse.categories import get_all_rules
from diskpulse.cleaner import empty_trash as run_empty_trash
from diskpulse.cleaner import execute_clean, preview_clean_plan
from diskpulse.config import add_protection, load_settings, remove_protection
from diskpulse.display import (
    confirm_action,
    console,
    print_json,
    show_categories,
    show_children,
    show_clean_plan,
    show_clean_result,
    show_deep_scan,
    show_large_files,
    show_partial_notice,
    show_protections,
    show_scan_result,
    show_scanning_progress,
)
from diskpulse.errors import DiskPulseError
from diskpulse.jobs import ScanJob
from diskpulse.scanner import (
    DEFAULT_LARGE_FILES_LIMIT,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MIN_LARGE_FILE_SIZE,
    DEFAULT_TOP_FILES_LIMIT,
    find_large_files,
    get_directory_children,
    get_home_directory,
    scan_directory,
    scan_directory_deep,
)

app = typer.Typer(
    name="diskpulse",
    help="Disk usage scanner and safe cleanup CLI",
    add_completion=False,
)

MIB = 1024 * 1024

JSON_OPTION = typer.Option(False, "--json", help="Print the result as JSON.")


def setup_logging(verbose: bool) -> None:
    """Route library logging through rich, on stderr."""
    level = logging.DEBUG if verbose else getattr(logging, load_settings().log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"diskpulse version {__version__}")
        raise typer.Exit()


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


def run_scan(description: str, quiet: bool, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Run a scan in the background, cancelling it on Ctrl+C.

    A cancelled scan still returns its partial result.
    """
    job = ScanJob.start(fn, *args, **kwargs)
    progress = nullcontext() if quiet else show_scanning_progress(description)
    try:
        with progress:
            try:
                return job.result()
            except KeyboardInterrupt:
                job.cancel()
                console.print("[yellow]Cancelling...[/yellow]")
                return job.result()
    except DiskPulseError as e:
        fail(str(e))


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """diskpulse - see where disk space goes and reclaim it safely."""
    setup_logging(verbose)


@app.command()
def scan(
    path: Optional[str] = typer.Argument(None, help="Directory to list (default: home)"),
    as_json: bool = JSON_OPTION,
) -> None:
    """List a directory with recursive sizes for its subdirectories."""
    path = path or get_home_directory()
    result = run_scan(f"Scanning {path}...", as_json, scan_directory, path)
    if as_json:
        print_json(result)
    else:
        show_scan_result(result)


@app.command()
def deep(
    path: Optional[str] = typer.Argument(None, help="Directory to scan (default: home)"),
    max_depth: int = typer.Option(DEFAULT_MAX_DEPTH, "--max-depth", "-d", min=0, help="Tree depth to show"),
    top: int = typer.Option(DEFAULT_TOP_FILES_LIMIT, "--top", "-n", min=0, help="Number of largest files"),
    types: Optional[int] = typer.Option(20, "--types", min=0, help="Number of file types to show"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Scan a directory tree with largest files and file type totals."""
    path = path or get_home_directory()
    result = run_scan(
        f"Scanning {path}...",
        as_json,
        scan_directory_deep,
        path,
        max_depth=max_depth,
        top_files_limit=top,
        type_stats_limit=types,
    )
    if as_json:
        print_json(result)
    else:
        show_deep_scan(result)


@app.command()
def large(
    path: Optional[str] = typer.Argument(None, help="Directory to search (default: home)"),
    min_size_mb: float = typer.Option(
        DEFAULT_MIN_LARGE_FILE_SIZE / MIB, "--min-size", "-m", min=0, help="Minimum size in MiB"
    ),
    limit: int = typer.Option(DEFAULT_LARGE_FILES_LIMIT, "--limit", "-n", min=0, help="Maximum files listed"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Find the largest files under a directory."""
    path = path or get_home_directory()
    result = run_scan(
        f"Searching {path}...",
        as_json,
        find_large_files,
        path,
        min_size=int(min_size_mb * MIB),
        limit=limit,
    )
    if as_json:
        print_json(result)
    else:
        show_large_files(result.files, title=f"Files over {min_size_mb:g} MiB")
        show_partial_notice(result.complete, result.failures)


@app.command()
def children(
    path: str = typer.Argument(..., help="Directory to expand"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Show the subdirectories of a directory with their totals."""
    nodes = run_scan(f"Scanning {path}...", as_json, get_directory_children, path)
    if as_json:
        print_json(nodes)
    else:
        show_children(path, nodes)


@app.command()
def plan(
    categories: list[str] = typer.Argument(..., help="Categories to preview (see 'diskpulse list')"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Preview what a cleanup would remove."""
    result = run_scan("Looking for reclaimable space...", as_json, preview_clean_plan, categories)
    if as_json:
        print_json(result)
    else:
        show_clean_plan(result)


@app.command()
def clean(
    categories: Optional[list[str]] = typer.Argument(None, help="Categories to clean"),
    paths: Optional[list[str]] = typer.Option(
        None, "--path", "-p", help="Delete these paths instead of a category plan"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Simulate without deleting"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation prompts"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Preview a cleanup, confirm it, then delete the planned items."""
    if not categories and not paths:
        console.print("[red]Error: Specify categories or --path[/red]")
        console.print("  diskpulse clean cache logs      # Clean categories")
        console.print("  diskpulse clean --path <path>   # Delete previewed paths")
        raise typer.Exit(1)

    if paths:
        targets = list(paths)
    else:
        result = run_scan("Looking for reclaimable space...", as_json, preview_clean_plan, categories)
        if not as_json:
            show_clean_plan(result, dry_run=dry_run)
        if not result.items:
            if as_json:
                print_json(result)
            raise typer.Exit(0)
        targets = [item.path for item in result.items]

    if not yes and not dry_run:
        console.print()
        if not confirm_action(f"Delete {len(targets)} item(s)?"):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    outcome = execute_clean(targets, dry_run=dry_run)
    if as_json:
        print_json(outcome)
    else:
        show_clean_result(outcome)
    if not outcome.success:
        raise typer.Exit(1)


@app.command(name="empty-trash")
def empty_trash(
    dry_run: bool = typer.Option(False, "--dry-run", help="Simulate without deleting"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation prompts"),
    as_json: bool = JSON_OPTION,
) -> None:
    """Permanently delete everything in the trash."""
    if not yes and not dry_run:
        if not confirm_action("Permanently delete everything in the trash?"):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    outcome = run_empty_trash(dry_run=dry_run)
    if as_json:
        print_json(outcome)
    else:
        show_clean_result(outcome)
    if not outcome.success:
        raise typer.Exit(1)


@app.command(name="list")
def list_categories() -> None:
    """List all cleanup categories."""
    show_categories(get_all_rules())


@app.command()
def protect(path: str = typer.Argument(..., help="Path to protect")) -> None:
    """Never plan or delete a path (or anything inside it)."""
    try:
        add_protection(path)
    except OSError as e:
        fail(str(e))
    console.print(f"[green]Protected:[/green] {path}")


@app.command()
def unprotect(path: str = typer.Argument(..., help="Path to stop protecting")) -> None:
    """Remove a path from the protection list."""
    try:
        remove_protection(path)
    except OSError as e:
        fail(str(e))
    console.print(f"[green]Unprotected:[/green] {path}")


@app.command()
def protections(as_json: bool = JSON_OPTION) -> None:
    """Show protected paths."""
    settings = load_settings()
    if as_json:
        print_json(settings)
    else:
        show_protections(settings.protected_paths)


if __name__ == "__main__":
    app()
