"""
Root Typer application for the capexec CLI.

Commands share one set of discovery options:

    capexec build    --root pages --include "**/*.ts" --search-dir bin
    capexec dry-run  --root pages
    capexec watch    --root pages --interval 0.5
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from capexec.cli.run import RunOptions, RunSummary, run_once, watch_loop
from capexec.cli.utils import console, err_console, render_summary
from capexec.core.settings import CapExecSettings, get_settings
from capexec.engine.protocol import ON_ERROR_POLICIES, PrepareMode
from capexec.framework.logging import configure_logging

app = typer.Typer(
    name="capexec",
    help="capexec: discover CapExec sinks and run their process pipelines.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("capexec")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"capexec {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """capexec CLI: build, dry-run and watch CapExec pipelines."""


# ── Shared options ───────────────────────────────────────────────────────

ROOT_OPT = typer.Option(None, "--root", "-r", help="Root directory to walk (repeatable, default: .)")
INCLUDE_OPT = typer.Option(None, "--include", "-I", help="Include glob (repeatable)")
EXCLUDE_OPT = typer.Option(None, "--exclude", "-X", help="Exclude glob (repeatable)")
SEARCH_DIR_OPT = typer.Option(None, "--search-dir", "-s", help="Extra stage search directory (repeatable)")
ON_ERROR_OPT = typer.Option(None, "--on-error", help="abort | skip (default from CAPEXEC_ON_ERROR)")
LOG_LEVEL_OPT = typer.Option(None, "--log-level", help="DEBUG | INFO | WARNING | ERROR")
JSON_LOGS_OPT = typer.Option(False, "--json-logs", help="Emit logs as JSON lines")
VERBOSE_OPT = typer.Option(False, "--verbose", "-v", help="Print a table of executed sinks")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _prepare(
    mode: PrepareMode,
    root: list[Path] | None,
    include: list[str] | None,
    exclude: list[str] | None,
    search_dir: list[Path] | None,
    on_error: str | None,
    log_level: str | None,
    json_logs: bool,
) -> tuple[RunOptions, CapExecSettings]:
    settings = get_settings()
    level = (log_level or settings.log_level).upper()
    if level not in LOG_LEVELS:
        err_console.print(f"[bold red]Invalid --log-level:[/bold red] {log_level} (expected {' | '.join(LOG_LEVELS)})")
        raise typer.Exit(code=2)
    configure_logging(
        level=level,
        format="json" if json_logs else settings.log_format,
        force=True,
    )

    policy = on_error or settings.on_error
    if policy not in ON_ERROR_POLICIES:
        err_console.print(f"[bold red]Invalid --on-error:[/bold red] {policy} (expected abort or skip)")
        raise typer.Exit(code=2)

    opts = RunOptions(
        roots=tuple(root) if root else (Path("."),),
        include=tuple(include or ()),
        exclude=tuple(exclude or ()),
        search_dirs=tuple(search_dir or ()),
        on_error=policy,
        mode=mode,
    )
    return opts, settings


def _finish(summary: RunSummary) -> None:
    if not summary.ok:
        raise typer.Exit(code=1)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("build")
def build(
    root: list[Path] | None = ROOT_OPT,
    include: list[str] | None = INCLUDE_OPT,
    exclude: list[str] | None = EXCLUDE_OPT,
    search_dir: list[Path] | None = SEARCH_DIR_OPT,
    on_error: str | None = ON_ERROR_OPT,
    log_level: str | None = LOG_LEVEL_OPT,
    json_logs: bool = JSON_LOGS_OPT,
    verbose: bool = VERBOSE_OPT,
) -> None:
    """Discover every CapExec and materialize its output."""
    opts, settings = _prepare("build", root, include, exclude, search_dir, on_error, log_level, json_logs)
    summary = asyncio.run(run_once(opts, settings))
    render_summary(summary, verbose=verbose)
    _finish(summary)


@app.command("dry-run")
def dry_run(
    root: list[Path] | None = ROOT_OPT,
    include: list[str] | None = INCLUDE_OPT,
    exclude: list[str] | None = EXCLUDE_OPT,
    search_dir: list[Path] | None = SEARCH_DIR_OPT,
    on_error: str | None = ON_ERROR_OPT,
    log_level: str | None = LOG_LEVEL_OPT,
    json_logs: bool = JSON_LOGS_OPT,
    verbose: bool = VERBOSE_OPT,
) -> None:
    """Run every pipeline and drain its output without writing files."""
    opts, settings = _prepare("dry-run", root, include, exclude, search_dir, on_error, log_level, json_logs)
    summary = asyncio.run(run_once(opts, settings))
    render_summary(summary, verbose=verbose)
    _finish(summary)


@app.command("watch")
def watch(
    root: list[Path] | None = ROOT_OPT,
    include: list[str] | None = INCLUDE_OPT,
    exclude: list[str] | None = EXCLUDE_OPT,
    search_dir: list[Path] | None = SEARCH_DIR_OPT,
    on_error: str | None = ON_ERROR_OPT,
    log_level: str | None = LOG_LEVEL_OPT,
    json_logs: bool = JSON_LOGS_OPT,
    verbose: bool = VERBOSE_OPT,
    interval: float | None = typer.Option(None, "--interval", help="Polling interval in seconds"),
    max_rebuilds: int | None = typer.Option(None, "--max-rebuilds", hidden=True),
) -> None:
    """Build, then rebuild whenever a sink changes. Ctrl-C stops."""
    opts, settings = _prepare("watch", root, include, exclude, search_dir, on_error, log_level, json_logs)
    seconds = interval if interval is not None else settings.watch_interval_seconds
    if seconds <= 0:
        err_console.print("[bold red]--interval must be positive[/bold red]")
        raise typer.Exit(code=2)

    console.print(f"[dim]Watching {', '.join(str(r) for r in opts.roots)} every {seconds:g}s[/dim]")
    try:
        asyncio.run(
            watch_loop(
                opts,
                settings,
                interval=seconds,
                on_summary=lambda s: render_summary(s, verbose=verbose),
                max_rebuilds=max_rebuilds,
            )
        )
    except KeyboardInterrupt:
        console.print("[dim]Stopped watching.[/dim]")
