"""
CLI utility helpers: output formatting.
"""

from __future__ import annotations

import os

from rich.console import Console
from rich.table import Table

from capexec.cli.run import RunSummary

console = Console()
err_console = Console(stderr=True)


def _display(path: object) -> str:
    """Path relative to the working directory when it lies below it."""
    text = str(path)
    try:
        rel = os.path.relpath(text)
    except ValueError:
        return text
    return text if rel.startswith("..") else rel


def render_summary(summary: RunSummary, *, verbose: bool = False) -> None:
    """Print one line per executed CapExec, then a totals line."""
    for invalid in summary.invalid_specs:
        err_console.print(f"[yellow]Skipped root[/yellow] ({invalid.kind}): {invalid.reason}")

    for executed in summary.executed:
        if executed.dry_run:
            target = "[dim](dry-run, nothing written)[/dim]"
        else:
            target = ", ".join(_display(p) for p in executed.written) or "[dim]no files[/dim]"
        console.print(f"[green]✓[/green] {executed.name} → {target} [dim]{executed.elapsed_ms:.0f} ms[/dim]")
        if executed.dropped_records:
            console.print(f"  [yellow]{executed.dropped_records} malformed record(s) dropped[/yellow]")

    if verbose and summary.executed:
        _print_table(summary)

    console.print(
        f"[bold]{len(summary.executed)}[/bold] CapExec(s) executed, "
        f"[bold]{summary.files_written}[/bold] file(s) written"
    )

    if summary.error is not None:
        err = summary.error
        err_console.print(f"[bold red]Error[/bold red] ({type(err).__name__}): {err.message}")


def _print_table(summary: RunSummary) -> None:
    table = Table(title="CapExecs", show_lines=False, pad_edge=False)
    table.add_column("sink", overflow="fold")
    table.add_column("files", justify="right")
    table.add_column("ms", justify="right")
    for executed in summary.executed:
        table.add_row(_display(executed.sink), str(len(executed.written)), f"{executed.elapsed_ms:.1f}")
    console.print(table)
