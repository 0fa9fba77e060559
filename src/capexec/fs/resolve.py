"""
Stage and sink resolution.

A stage token (``fmt`` in ``page.sql.[fmt].ts``) or a sink path is turned
into an ``FsStage`` by trying an ordered list of resolution strategies
against candidate files:

    candidates:  <sink dir>/<token>, then <search dir>/<token> for each dir
    strategies:  direct_executable   exec bit set, or ``#!`` in the first 64 bytes
                 domain_launcher     launcher keyed by lowercase extension

The first strategy returning a stage wins. When nothing matches, a stage
token falls back to a bare command name (resolved on PATH at spawn time)
and a sink falls back to ``argv=[sink path]``. Resolution never raises for
a miss; an unrunnable command surfaces later as ``SpawnError``.
"""

from __future__ import annotations

import os
import stat
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from capexec.core.errors import InvalidStageError
from capexec.framework.logging import get_logger
from capexec.framework.sources.protocol import maybe_await

log = get_logger(__name__)

SHEBANG_PROBE_BYTES = 64


@dataclass(frozen=True)
class FsStage:
    """
    One runnable process: ``argv[0]`` is the executable.

    ``env`` entries override the projected environment for this process only.
    """

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "argv", tuple(str(a) for a in self.argv))
        if not self.argv:
            raise InvalidStageError("Stage argv must not be empty")


DomainLauncher = Callable[[str], Sequence[str]]


def _launcher(*prefix: str) -> DomainLauncher:
    def launch(file: str) -> tuple[str, ...]:
        return (*prefix, file)

    return launch


DEFAULT_DOMAIN_LAUNCHERS: Mapping[str, DomainLauncher] = MappingProxyType(
    {
        "ts": _launcher("deno", "run", "-A"),
        "py": _launcher("python"),
        "sh": _launcher("bash"),
        "rb": _launcher("ruby"),
        "js": _launcher("node"),
    }
)


@dataclass(frozen=True)
class ResolveContext:
    """What a strategy knows besides the candidate path."""

    cwd: Path
    domain_launchers: Mapping[str, DomainLauncher] = field(default_factory=lambda: DEFAULT_DOMAIN_LAUNCHERS)


ResolutionStrategy = Callable[[Path, ResolveContext], "FsStage | None | Awaitable[FsStage | None]"]


def has_exec_bit(path: Path) -> bool:
    mode = path.stat().st_mode
    return bool(mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))


def has_shebang(path: Path) -> bool:
    """True when the file starts with ``#!``."""
    try:
        with open(path, "rb") as fh:
            head = fh.read(SHEBANG_PROBE_BYTES)
    except OSError:
        return False
    return head.startswith(b"#!")


def direct_executable(path: Path, rc: ResolveContext) -> FsStage | None:
    """Run the file itself when it is executable or carries a shebang."""
    if path.is_file() and (has_exec_bit(path) or has_shebang(path)):
        return FsStage(argv=(str(path),), cwd=str(rc.cwd))
    return None


def domain_launcher(path: Path, rc: ResolveContext) -> FsStage | None:
    """Run the file through the launcher registered for its extension."""
    if not path.is_file():
        return None
    launcher = rc.domain_launchers.get(path.suffix.lower().lstrip("."))
    if launcher is None:
        return None
    return FsStage(argv=tuple(launcher(str(path))), cwd=str(rc.cwd))


DEFAULT_STRATEGIES: tuple[ResolutionStrategy, ...] = (direct_executable, domain_launcher)


async def resolve_path(
    path: Path,
    rc: ResolveContext,
    strategies: Sequence[ResolutionStrategy] = DEFAULT_STRATEGIES,
) -> FsStage | None:
    """Apply ``strategies`` to one candidate file; None when none applies."""
    for strategy in strategies:
        try:
            stage = await maybe_await(strategy(path, rc))
        except OSError as e:
            log.debug("resolve.probe_failed", path=str(path), error=str(e))
            return None
        if stage is not None:
            return stage
    return None


async def resolve_stage_token(
    token: str,
    *,
    sink_path: Path,
    search_dirs: Sequence[str | Path] = (),
    domain_launchers: Mapping[str, DomainLauncher] = DEFAULT_DOMAIN_LAUNCHERS,
    strategies: Sequence[ResolutionStrategy] = DEFAULT_STRATEGIES,
) -> FsStage:
    """
    Resolve a pre/post stage token.

    Probes ``<sink dir>/<token>`` and then ``<dir>/<token>`` for each search
    directory; falls back to ``argv=[token]`` run from the sink directory.
    Relative search directories are taken from the current working directory,
    since the stage itself runs from the sink directory.
    """
    sink_dir = Path(os.path.abspath(sink_path.parent))
    rc = ResolveContext(cwd=sink_dir, domain_launchers=domain_launchers)
    candidates = [sink_dir / token, *(Path(os.path.abspath(d)) / token for d in search_dirs)]

    for candidate in candidates:
        stage = await resolve_path(candidate, rc, strategies)
        if stage is not None:
            log.debug("resolve.stage", token=token, argv=list(stage.argv))
            return stage

    log.debug("resolve.stage_fallback", token=token)
    return FsStage(argv=(token,), cwd=str(sink_dir))


async def resolve_sink_path(
    sink_path: Path,
    *,
    domain_launchers: Mapping[str, DomainLauncher] = DEFAULT_DOMAIN_LAUNCHERS,
    strategies: Sequence[ResolutionStrategy] = DEFAULT_STRATEGIES,
) -> FsStage:
    """Resolve the sink file itself; falls back to ``argv=[sink path]``."""
    sink_path = Path(os.path.abspath(sink_path))
    rc = ResolveContext(cwd=sink_path.parent, domain_launchers=domain_launchers)
    stage = await resolve_path(sink_path, rc, strategies)
    if stage is None:
        stage = FsStage(argv=(str(sink_path),), cwd=str(sink_path.parent))
    return stage


__all__ = [
    "DEFAULT_DOMAIN_LAUNCHERS",
    "DEFAULT_STRATEGIES",
    "DomainLauncher",
    "FsStage",
    "ResolutionStrategy",
    "ResolveContext",
    "direct_executable",
    "domain_launcher",
    "has_exec_bit",
    "has_shebang",
    "resolve_path",
    "resolve_sink_path",
    "resolve_stage_token",
]
