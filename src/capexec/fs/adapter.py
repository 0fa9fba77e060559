"""
File system output adapter.

Manifesto:
    Sinks are files, stages are processes, outputs are files. The adapter
    keeps every decision overridable (resolution, environment, payloads,
    materialization) while the defaults cover the common case with no
    configuration at all.

Architecture:
    ::

        prepare(found)                       execute(prepared)
        ──────────────                       ─────────────────
        pre tokens ─▶ resolve_stage  ┐       empty ─▶ pre ─▶ sink ─▶ post
        sink path  ─▶ resolve_sink   ├─▶ plan                          │
        post tokens ─▶ resolve_stage ┘                 is_multi? ──────┤
                                               single: <basename>.auto.<nature>
                                               multi:  NDJSON ─▶ files under sink dir

Every spawned process receives the projected environment::

    CAPEXEC_MODE      build | watch | dry-run
    CAPEXEC_SINK      absolute sink path
    CAPEXEC_DIR       sink directory
    CAPEXEC_BASENAME  parsed basename
    CAPEXEC_NATURE    nature, with a trailing "+" for multi-output sinks

Usage:
    from capexec.fs import prepare_capexecs_fs
    from capexec.framework.sources import FsWalkSpec

    async for event in prepare_capexecs_fs([FsWalkSpec(root="pages")]):
        if event.phase == "executed":
            print(event.prepared.source.name, event.result.written)

Tags:
    capexec, adapter, filesystem, subprocess, streaming

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from capexec.core.settings import CapExecSettings, get_settings
from capexec.engine.discovery import CapExecFound, ItemFilter, walk_capexecs
from capexec.engine.protocol import (
    CapExecEvent,
    CapExecPlan,
    ContentContext,
    OnError,
    PreparedCapExec,
    PrepareMode,
)
from capexec.engine.runner import prepare_capexecs
from capexec.fs.materialize import materialize_multi, materialize_single
from capexec.fs.process import FsPipeline, aclose_stream, empty_stream, run_process
from capexec.fs.resolve import (
    DEFAULT_DOMAIN_LAUNCHERS,
    DEFAULT_STRATEGIES,
    DomainLauncher,
    FsStage,
    ResolutionStrategy,
    resolve_sink_path,
    resolve_stage_token,
)
from capexec.framework.logging import get_logger, log_step
from capexec.framework.sources.file import FileSystemWalkerAdapter
from capexec.framework.sources.protocol import InvalidSpecHook, Supplier, maybe_await

log = get_logger(__name__)

# Hook signatures (each may be sync or async):
#   resolve_stage(token, *, found, ctx, mode, search_dirs, domain_launchers) -> FsStage
#   resolve_sink(*, found, ctx, mode, domain_launchers) -> FsStage
#   project_env(*, found, ctx, mode) -> Mapping[str, str]
#   create_pre_payload / create_post_payload(*, found, ctx) -> Any
#   materialize_single(*, output, found, ctx, mode, suggested_path) -> result
#   materialize_multi(*, output, found, ctx, mode, base_dir) -> result
Hook = Callable[..., Any]


@dataclass
class FsAdapterOptions:
    """Configuration of ``FsOutputAdapter``; every hook defaults to the built-in behavior."""

    stage_search_dirs: Sequence[str | Path] = ()
    domain_launchers: Mapping[str, DomainLauncher] = field(default_factory=lambda: dict(DEFAULT_DOMAIN_LAUNCHERS))
    resolution_strategies: Sequence[ResolutionStrategy] = DEFAULT_STRATEGIES
    inherit_env: bool = True

    resolve_stage: Hook | None = None
    resolve_sink: Hook | None = None
    project_env: Hook | None = None
    create_pre_payload: Hook | None = None
    create_post_payload: Hook | None = None
    materialize_single: Hook | None = None
    materialize_multi: Hook | None = None

    @classmethod
    def from_settings(cls, settings: CapExecSettings | None = None, **overrides: Any) -> FsAdapterOptions:
        """Options seeded from ``CapExecSettings`` (search dirs, env inheritance)."""
        settings = settings or get_settings()
        values: dict[str, Any] = {
            "stage_search_dirs": tuple(settings.stage_search_dirs),
            "inherit_env": settings.inherit_env,
        }
        values.update(overrides)
        return cls(**values)


def sink_path_of(found: CapExecFound) -> Path:
    """Absolute sink path: the item's ``path`` when it has one, else the key."""
    path = getattr(found.item, "path", None)
    return Path(path if path is not None else found.key)


def default_project_env(*, found: CapExecFound, ctx: Any = None, mode: PrepareMode | None = None) -> dict[str, str]:
    """The ``CAPEXEC_*`` variables every process of a discovery receives."""
    sink = sink_path_of(found)
    parsed = found.parsed
    return {
        "CAPEXEC_MODE": mode or "build",
        "CAPEXEC_SINK": str(sink),
        "CAPEXEC_DIR": str(sink.parent),
        "CAPEXEC_BASENAME": parsed.basename,
        "CAPEXEC_NATURE": parsed.nature_token,
    }


class FsOutputAdapter:
    """
    ``CapExecOutputAdapter`` that runs sinks and stages as local processes
    and materializes results as files next to the sink.
    """

    kind = "filesystem"

    def __init__(self, options: FsAdapterOptions | None = None):
        self.options = options or FsAdapterOptions()

    # ------------------------------------------------------------------
    # Default hooks
    # ------------------------------------------------------------------

    async def _resolve_stage(self, token: str, found: CapExecFound, ctx: Any, mode: PrepareMode | None) -> FsStage:
        opts = self.options
        if opts.resolve_stage is not None:
            return await maybe_await(
                opts.resolve_stage(
                    token,
                    found=found,
                    ctx=ctx,
                    mode=mode,
                    search_dirs=tuple(opts.stage_search_dirs),
                    domain_launchers=opts.domain_launchers,
                )
            )
        return await resolve_stage_token(
            token,
            sink_path=sink_path_of(found),
            search_dirs=opts.stage_search_dirs,
            domain_launchers=opts.domain_launchers,
            strategies=opts.resolution_strategies,
        )

    async def _resolve_sink(self, found: CapExecFound, ctx: Any, mode: PrepareMode | None) -> FsStage:
        opts = self.options
        if opts.resolve_sink is not None:
            return await maybe_await(
                opts.resolve_sink(found=found, ctx=ctx, mode=mode, domain_launchers=opts.domain_launchers)
            )
        return await resolve_sink_path(
            sink_path_of(found),
            domain_launchers=opts.domain_launchers,
            strategies=opts.resolution_strategies,
        )

    async def _payload(self, hook: Hook | None, found: CapExecFound, ctx: Any) -> Any:
        if hook is None:
            return None
        return await maybe_await(hook(found=found, ctx=ctx))

    # ------------------------------------------------------------------
    # Adapter contract
    # ------------------------------------------------------------------

    async def prepare(
        self,
        found: CapExecFound,
        *,
        context: Any = None,
        mode: PrepareMode = "build",
    ) -> PreparedCapExec[FsStage]:
        """Resolve pre stages, the sink and post stages. Starts no process."""
        parsed = found.parsed
        pre_stages = [await self._resolve_stage(t, found, context, mode) for t in parsed.pre_stages]
        sink = await self._resolve_sink(found, context, mode)
        post_stages = [await self._resolve_stage(t, found, context, mode) for t in parsed.post_stages]

        pre = FsPipeline(
            stages=tuple(pre_stages),
            payload=await self._payload(self.options.create_pre_payload, found, context),
            inherit_env=self.options.inherit_env,
        )
        post = FsPipeline(
            stages=tuple(post_stages),
            payload=await self._payload(self.options.create_post_payload, found, context),
            inherit_env=self.options.inherit_env,
        )

        return PreparedCapExec(
            source=found,
            plan=CapExecPlan(pre=pre, sink=sink, post=post),
            context=context,
            mode=mode,
        )

    async def execute(self, prepared: PreparedCapExec[FsStage]) -> Any:
        """Run empty -> pre -> sink -> post and materialize the output."""
        source, plan = prepared.source, prepared.plan
        ctx, mode = prepared.context, prepared.mode
        opts = self.options

        project_env = opts.project_env or default_project_env
        overlay = await maybe_await(project_env(found=source, ctx=ctx, mode=mode))

        sink_path = sink_path_of(source)
        sink_dir = sink_path.parent
        parsed = source.parsed

        with log_step("fs.execute", level="debug", error_level="debug", capexec=source.name, multi=parsed.is_multi):
            pre_out = await plan.pre.execute(
                empty_stream(),
                mode=mode,
                context=ContentContext(ctx=ctx, payload=plan.pre.payload),
                env=overlay,
            )
            sink_out = await run_process(pre_out, plan.sink, env_overlay=overlay, inherit_env=opts.inherit_env)
            post_out = await plan.post.execute(
                sink_out,
                mode=mode,
                context=ContentContext(ctx=ctx, payload=plan.post.payload),
                env=overlay,
            )

            try:
                if parsed.is_multi:
                    if opts.materialize_multi is not None:
                        return await maybe_await(
                            opts.materialize_multi(output=post_out, found=source, ctx=ctx, mode=mode, base_dir=sink_dir)
                        )
                    return await materialize_multi(post_out, sink_dir, mode=mode)

                suggested = sink_dir / parsed.output_name
                if opts.materialize_single is not None:
                    return await maybe_await(
                        opts.materialize_single(
                            output=post_out, found=source, ctx=ctx, mode=mode, suggested_path=suggested
                        )
                    )
                return await materialize_single(post_out, suggested, mode=mode)
            finally:
                await aclose_stream(post_out)


def is_generated_output(name: str) -> bool:
    """True for ``<basename>.auto.<nature>`` names written by single-output sinks."""
    parts = name.split(".")
    return len(parts) == 3 and parts[1] == "auto"


def skip_generated_outputs(enc: Any) -> bool:
    """Walk filter that keeps single-output targets from being rediscovered as sinks."""
    name = _select_file_name(enc)
    return name is None or not is_generated_output(name)


def _select_file_name(enc: Any) -> str | None:
    item = enc.item
    name = getattr(item, "name", None)
    if name is None:
        path = getattr(item, "path", None)
        name = Path(path).name if path is not None else None
    return name


async def prepare_capexecs_fs(
    specs: Supplier,
    *,
    options: FsAdapterOptions | None = None,
    context: Any = None,
    mode: PrepareMode = "build",
    run: bool = True,
    on_error: OnError = "abort",
    logger: Any = None,
    walker: FileSystemWalkerAdapter | None = None,
    filter: ItemFilter | None = None,
    on_invalid_spec: InvalidSpecHook | None = None,
) -> AsyncIterator[CapExecEvent]:
    """
    Walk the file system for CapExec sinks, prepare and (optionally) execute them.

    The candidate name of each file is its final path segment.

    Args:
        specs: Supplier of ``FsWalkSpec``
        options: Adapter options (defaults to ``FsAdapterOptions()``)
        context: Caller context handed to every hook
        mode: build / watch / dry-run
        run: Execute after preparing
        on_error: "abort" or "skip"
        logger: structlog-compatible logger for orchestrator events
        walker: File system walker (defaults to ``FileSystemWalkerAdapter()``)
        filter: Optional predicate applied before name parsing
        on_invalid_spec: Hook for roots that do not exist or are not directories
    """
    walker = walker or FileSystemWalkerAdapter()
    adapter = FsOutputAdapter(options)

    found = walk_capexecs(
        walker,
        specs,
        _select_file_name,
        filter=filter,
        on_invalid_spec=on_invalid_spec,
    )
    async for event in prepare_capexecs(
        found,
        adapter=adapter,
        context=context,
        mode=mode,
        run=run,
        on_error=on_error,
        logger=logger,
    ):
        yield event


__all__ = [
    "FsAdapterOptions",
    "FsOutputAdapter",
    "default_project_env",
    "is_generated_output",
    "prepare_capexecs_fs",
    "sink_path_of",
    "skip_generated_outputs",
]
