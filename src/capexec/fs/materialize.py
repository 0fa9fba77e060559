"""
Materialization of a CapExec's final byte stream.

Two protocols, chosen by the ``+`` multi-output marker on the nature:

- **single**: the whole stream becomes ``<sink dir>/<basename>.auto.<nature>``.
- **multi**: the stream is newline-delimited JSON, one record per file::

      {"path": "sub/a.sql", "content": "select 1;"}
      {"path": "logo.png", "content": "iVBORw0...", "encoding": "base64"}

  Lines that are not JSON objects matching ``MultiOutputRecord`` are
  dropped (counted in ``dropped_records``, logged at DEBUG), never raised.

Every write is atomic: bytes go to a uniquely named temporary sibling which
is then renamed onto the target, so readers never see partial content. In
dry-run mode the stream is drained and nothing is written.
"""

from __future__ import annotations

import base64
import binascii
import codecs
import contextlib
import json
import os
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from capexec.core.errors import MaterializeError
from capexec.engine.protocol import ByteStream, PrepareMode
from capexec.fs.process import aclose_stream, bytes_stream
from capexec.framework.logging import get_logger

log = get_logger(__name__)

TMP_PREFIX = ".capexec-tmp-"


@dataclass(frozen=True)
class FsExecutionResult:
    """
    Outcome of one executed plan.

    Attributes:
        kind: "single" or "multi"
        written: Files written, in write order (empty in dry-run)
        bytes_written: Total bytes written
        dry_run: True when the run was a dry-run and nothing was written
        dropped_records: Multi-output lines that were not valid records
    """

    kind: Literal["single", "multi"]
    written: tuple[Path, ...] = ()
    bytes_written: int = 0
    dry_run: bool = False
    dropped_records: int = 0

    @property
    def ok(self) -> bool:
        return True


class MultiOutputRecord(BaseModel):
    """One line of a multi-output stream."""

    model_config = ConfigDict(extra="ignore")

    path: str
    content: str
    encoding: str | None = None

    def decode(self) -> bytes:
        """Content bytes: base64-decoded when ``encoding == "base64"``, else UTF-8."""
        if self.encoding == "base64":
            try:
                return base64.b64decode(self.content)
            except (binascii.Error, ValueError) as e:
                raise MaterializeError(f"Invalid base64 content for {self.path}", cause=e).with_context(
                    path=self.path
                ) from e
        return self.content.encode("utf-8")


async def drain(stream: ByteStream) -> int:
    """Consume ``stream`` completely; returns the number of bytes read."""
    total = 0
    try:
        async for chunk in stream:
            total += len(chunk)
    finally:
        await aclose_stream(stream)
    return total


async def atomic_write(target: Path, stream: ByteStream) -> int:
    """
    Stream ``stream`` into ``target`` through a temporary sibling and rename.

    Parent directories are created as needed. On any failure the temporary
    file is removed. OS errors and invalid paths (an embedded NUL byte) are
    raised as ``MaterializeError``; errors from the stream itself (e.g.
    ``StageExitError``) propagate unchanged.

    Returns:
        Number of bytes written
    """
    target = Path(target)
    tmp = target.parent / f"{TMP_PREFIX}{uuid.uuid4().hex}"
    written = 0
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "wb") as fh:
            async for chunk in stream:
                fh.write(chunk)
                written += len(chunk)
        os.replace(tmp, target)
    except BaseException as e:
        with contextlib.suppress(OSError, ValueError):
            tmp.unlink(missing_ok=True)
        if isinstance(e, (OSError, ValueError)):
            raise MaterializeError(f"Failed to write {target}: {e}", cause=e).with_context(path=str(target)) from e
        raise
    finally:
        await aclose_stream(stream)

    log.debug("materialize.written", path=str(target), bytes=written)
    return written


async def iter_lines(stream: ByteStream) -> AsyncIterator[str]:
    """
    Decode ``stream`` as UTF-8 and yield lines without their terminator.

    Multi-byte sequences split across chunks are handled; a trailing line
    without a newline is still yielded.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in stream:
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            yield line
    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer


def parse_record(line: str) -> MultiOutputRecord | None:
    """Parse one NDJSON line; None when it is not a valid record."""
    try:
        return MultiOutputRecord.model_validate(json.loads(line))
    except (json.JSONDecodeError, ValidationError):
        return None


def multi_target(base_dir: Path, record_path: str) -> Path:
    """Target of a record: its path joined under ``base_dir``."""
    return Path(base_dir) / record_path.lstrip("/\\")


async def materialize_single(
    output: ByteStream,
    target: Path,
    *,
    mode: PrepareMode | None = "build",
) -> FsExecutionResult:
    """Write the whole stream to ``target`` (drain only in dry-run)."""
    if mode == "dry-run":
        await drain(output)
        return FsExecutionResult(kind="single", dry_run=True)

    written = await atomic_write(target, output)
    return FsExecutionResult(kind="single", written=(Path(target),), bytes_written=written)


async def materialize_multi(
    output: ByteStream,
    base_dir: Path,
    *,
    mode: PrepareMode | None = "build",
) -> FsExecutionResult:
    """Write one file per NDJSON record under ``base_dir`` (drain only in dry-run)."""
    if mode == "dry-run":
        await drain(output)
        return FsExecutionResult(kind="multi", dry_run=True)

    written: list[Path] = []
    total = dropped = 0
    lines = iter_lines(output)
    try:
        lineno = 0
        async for line in lines:
            lineno += 1
            text = line.strip()
            if not text:
                continue

            record = parse_record(text)
            if record is None:
                dropped += 1
                log.debug("materialize.record_dropped", line=lineno)
                continue

            target = multi_target(base_dir, record.path)
            total += await atomic_write(target, bytes_stream(record.decode()))
            written.append(target)
    finally:
        await lines.aclose()
        await aclose_stream(output)

    return FsExecutionResult(kind="multi", written=tuple(written), bytes_written=total, dropped_records=dropped)


__all__ = [
    "FsExecutionResult",
    "MultiOutputRecord",
    "TMP_PREFIX",
    "atomic_write",
    "drain",
    "iter_lines",
    "materialize_multi",
    "materialize_single",
    "multi_target",
    "parse_record",
]
