"""
Command execution for the CLI: one build pass, sink snapshots, the watch loop.

Kept free of Typer so the logic can be driven directly from tests.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from capexec.core.errors import CapExecError
from capexec.core.settings import CapExecSettings
from capexec.engine.discovery import walk_capexecs
from capexec.engine.protocol import OnError, PrepareMode
from capexec.fs.adapter import FsAdapterOptions, default_project_env, prepare_capexecs_fs, skip_generated_outputs
from capexec.framework.logging import get_logger
from capexec.framework.sources.file import FileSystemWalkerAdapter, FsWalkSpec
from capexec.framework.sources.protocol import InvalidSpec, maybe_await

log = get_logger(__name__)


@dataclass(frozen=True)
class RunOptions:
    """Everything a CLI command needs to describe one run."""

    roots: tuple[Path, ...] = (Path("."),)
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    search_dirs: tuple[Path, ...] = ()
    on_error: OnError = "abort"
    mode: PrepareMode = "build"

    def specs(self) -> list[FsWalkSpec]:
        return [FsWalkSpec(root=root, base_dir=os.getcwd(), include=self.include, exclude=self.exclude) for root in self.roots]

    def context(self) -> dict[str, Any]:
        """Run context handed to hooks and exported as ``CAPEXEC_CONTEXT_JSON``."""
        return {
            "mode": self.mode,
            "roots": [str(r) for r in self.roots],
            "include": list(self.include),
            "exclude": list(self.exclude),
            "search_dirs": [str(d) for d in self.search_dirs],
            "on_error": self.on_error,
        }


@dataclass(frozen=True)
class ExecutedCapExec:
    name: str
    sink: str
    written: tuple[Path, ...]
    dry_run: bool
    dropped_records: int
    elapsed_ms: float


@dataclass
class RunSummary:
    """Outcome of one pass over every root."""

    executed: list[ExecutedCapExec] = field(default_factory=list)
    invalid_specs: list[InvalidSpec] = field(default_factory=list)
    error: CapExecError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def files_written(self) -> int:
        return sum(len(e.written) for e in self.executed)


def project_context_env(*, found: Any, ctx: Any = None, mode: PrepareMode | None = None) -> dict[str, str]:
    """Default projection plus the run context as ``CAPEXEC_CONTEXT_JSON``."""
    env = default_project_env(found=found, ctx=ctx, mode=mode)
    env["CAPEXEC_CONTEXT_JSON"] = json.dumps(ctx if ctx is not None else {}, default=str, sort_keys=True)
    return env


def adapter_options(opts: RunOptions, settings: CapExecSettings) -> FsAdapterOptions:
    return FsAdapterOptions.from_settings(
        settings,
        stage_search_dirs=(*opts.search_dirs, *settings.stage_search_dirs),
        project_env=project_context_env,
    )


async def run_once(opts: RunOptions, settings: CapExecSettings) -> RunSummary:
    """
    Discover, prepare and execute every CapExec below the roots once.

    Under ``on_error="abort"`` the first ``CapExecError`` ends the pass and
    is stored on the summary instead of propagating.
    """
    summary = RunSummary()
    events = prepare_capexecs_fs(
        opts.specs(),
        options=adapter_options(opts, settings),
        context=opts.context(),
        mode=opts.mode,
        on_error=opts.on_error,
        filter=skip_generated_outputs,
        on_invalid_spec=summary.invalid_specs.append,
    )
    try:
        async for event in events:
            if event.phase != "executed":
                continue
            result = event.result
            summary.executed.append(
                ExecutedCapExec(
                    name=event.prepared.source.name,
                    sink=event.prepared.source.key,
                    written=tuple(getattr(result, "written", ())),
                    dry_run=getattr(result, "dry_run", False),
                    dropped_records=getattr(result, "dropped_records", 0),
                    elapsed_ms=event.elapsed_ms,
                )
            )
    except CapExecError as e:
        summary.error = e
    return summary


async def sink_snapshot(opts: RunOptions) -> dict[str, int]:
    """Modification times of every sink below the roots, keyed by path."""
    snapshot: dict[str, int] = {}
    async for found in walk_capexecs(
        FileSystemWalkerAdapter(),
        opts.specs(),
        lambda enc: enc.item.name,
        filter=skip_generated_outputs,
    ):
        try:
            snapshot[found.key] = os.stat(found.key).st_mtime_ns
        except FileNotFoundError:
            continue
    return snapshot


async def watch_loop(
    opts: RunOptions,
    settings: CapExecSettings,
    *,
    interval: float,
    on_summary: Callable[[RunSummary], Awaitable[None] | None],
    max_rebuilds: int | None = None,
) -> int:
    """
    Build once, then rebuild whenever the set of sinks or their mtimes change.

    Generated outputs are not sinks, so writing them never retriggers a
    build. Runs until cancelled, or until ``max_rebuilds`` rebuilds happened.

    Returns:
        Number of rebuilds performed after the initial build
    """
    previous = await sink_snapshot(opts)
    await maybe_await(on_summary(await run_once(opts, settings)))

    rebuilds = 0
    while max_rebuilds is None or rebuilds < max_rebuilds:
        await asyncio.sleep(interval)
        current = await sink_snapshot(opts)
        if current == previous:
            continue

        changed = sorted(k for k in current.keys() | previous.keys() if current.get(k) != previous.get(k))
        log.info("watch.changed", paths=changed)
        previous = current
        rebuilds += 1
        await maybe_await(on_summary(await run_once(opts, settings)))
    return rebuilds


__all__ = [
    "ExecutedCapExec",
    "RunOptions",
    "RunSummary",
    "adapter_options",
    "project_context_env",
    "run_once",
    "sink_snapshot",
    "watch_loop",
]
