"""
Streaming process chains.

Every stage runs as its own OS process (``asyncio.create_subprocess_exec``)
with stdin and stdout piped and stderr inherited. A pump task copies the
upstream byte stream into the child's stdin while the caller drains its
stdout, so writing never waits on reading and a slow consumer applies
back-pressure through the pipe buffers.

Lifecycle of one ``ProcessStream``:

    spawn ──▶ pump task: upstream ─▶ stdin (closed at upstream EOF)
          └─▶ caller:    stdout ─▶ chunks
                         at EOF: wait for exit, join pump,
                                 non-zero status ─▶ StageExitError

A child that closes its stdin early (``head``-style) is not an error: the
pump stops and closes the upstream stream. ``aclose()`` cancels the pump and
kills a still-running child, so abandoned chains never leak processes.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from capexec.core.errors import SpawnError, StageExitError
from capexec.engine.protocol import ByteStream, ContentContext, PrepareMode
from capexec.fs.resolve import FsStage
from capexec.framework.logging import get_logger

log = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


async def empty_stream() -> AsyncIterator[bytes]:
    """A byte stream with no chunks."""
    return
    yield  # pragma: no cover


async def bytes_stream(data: bytes) -> AsyncIterator[bytes]:
    """A byte stream holding ``data`` as a single chunk."""
    if data:
        yield data


async def aclose_stream(stream: Any) -> None:
    """Close a byte stream if it supports ``aclose``."""
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


def build_env(
    overlay: Mapping[str, str] | None,
    stage_env: Mapping[str, str] | None,
    inherit_env: bool = True,
) -> dict[str, str]:
    """
    Child environment: parent env (when inherited), then the projected
    overlay, then the stage's own entries. Later layers win.
    """
    env: dict[str, str] = dict(os.environ) if inherit_env else {}
    if overlay:
        env.update(overlay)
    if stage_env:
        env.update(stage_env)
    return env


class ProcessStream:
    """Stdout of a running stage process, iterated as ``bytes`` chunks."""

    def __init__(self, proc: asyncio.subprocess.Process, pump: asyncio.Task, argv: tuple[str, ...]):
        self._proc = proc
        self._pump = pump
        self.argv = argv
        self._finished = False

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    def __aiter__(self) -> ProcessStream:
        return self

    async def __anext__(self) -> bytes:
        if self._finished:
            raise StopAsyncIteration

        chunk = await self._proc.stdout.read(CHUNK_SIZE)
        if chunk:
            return chunk

        self._finished = True
        await self._finish()
        raise StopAsyncIteration

    async def _finish(self) -> None:
        returncode = await self._proc.wait()
        # Re-raises failures of upstream stages.
        await self._pump
        log.debug("process.exit", argv0=self.argv[0], returncode=returncode)
        if returncode != 0:
            raise StageExitError(list(self.argv), returncode)

    async def aclose(self) -> None:
        """Stop feeding the child and kill it if it is still running."""
        self._finished = True
        if not self._pump.done():
            self._pump.cancel()
        await asyncio.gather(self._pump, return_exceptions=True)
        if self._proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._proc.kill()
            await self._proc.wait()


async def _pump_stdin(proc: asyncio.subprocess.Process, upstream: ByteStream, argv0: str) -> None:
    stdin = proc.stdin
    try:
        async for chunk in upstream:
            stdin.write(chunk)
            await stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        log.debug("process.stdin_closed", argv0=argv0)
    finally:
        stdin.close()
        with contextlib.suppress(BrokenPipeError, ConnectionResetError):
            await stdin.wait_closed()
        await aclose_stream(upstream)


async def run_process(
    input: ByteStream,
    stage: FsStage,
    *,
    env_overlay: Mapping[str, str] | None = None,
    inherit_env: bool = True,
) -> ProcessStream:
    """
    Spawn ``stage`` with ``input`` piped to its stdin.

    Returns the child's stdout stream. The process is running when this
    returns; its exit status is checked when the stream is exhausted.

    Raises:
        SpawnError: If the executable cannot be started (``input`` is closed first)
    """
    argv = stage.argv
    env = build_env(env_overlay, stage.env, inherit_env)
    log.debug("process.spawn", argv=list(argv), cwd=stage.cwd)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            cwd=stage.cwd,
            env=env,
        )
    except FileNotFoundError as e:
        await aclose_stream(input)
        raise SpawnError(f"Command not found: {argv[0]}", cause=e).with_context(argv=list(argv), path=stage.cwd) from e
    except PermissionError as e:
        await aclose_stream(input)
        raise SpawnError(f"Permission denied: {argv[0]}", cause=e).with_context(argv=list(argv), path=stage.cwd) from e
    except OSError as e:
        await aclose_stream(input)
        raise SpawnError(f"Failed to start {argv[0]}: {e}", cause=e).with_context(argv=list(argv), path=stage.cwd) from e

    pump = asyncio.create_task(_pump_stdin(proc, input, argv[0]))
    return ProcessStream(proc, pump, argv)


async def chain_processes(
    input: ByteStream,
    stages: Sequence[FsStage],
    *,
    env_overlay: Mapping[str, str] | None = None,
    inherit_env: bool = True,
) -> ByteStream:
    """Thread ``input`` through ``stages`` in order; no stages returns ``input``."""
    current = input
    for stage in stages:
        current = await run_process(current, stage, env_overlay=env_overlay, inherit_env=inherit_env)
    return current


@dataclass(frozen=True)
class FsPipeline:
    """``Pipeline`` of OS processes."""

    stages: tuple[FsStage, ...] = ()
    payload: Any = None
    inherit_env: bool = field(default=True, compare=False)

    async def execute(
        self,
        input: ByteStream,
        *,
        mode: PrepareMode | None = None,
        context: ContentContext | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ByteStream:
        return await chain_processes(input, self.stages, env_overlay=env, inherit_env=self.inherit_env)


__all__ = [
    "CHUNK_SIZE",
    "FsPipeline",
    "ProcessStream",
    "aclose_stream",
    "build_env",
    "bytes_stream",
    "chain_processes",
    "empty_stream",
    "run_process",
]
