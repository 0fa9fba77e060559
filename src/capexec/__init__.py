"""
capexec - discover CapExec sinks and run them as streaming process pipelines.

A CapExec is any item whose name parses as
``<basename>.[<pre>].<nature>[+].[<post>].<domain>``. The engine walks a
source for such names, prepares a plan (pre stages -> sink -> post stages)
through an output adapter and executes it, materializing one file or, for
``+`` natures, one file per NDJSON record.

Usage:
    import asyncio
    from capexec import FsWalkSpec, prepare_capexecs_fs

    async def main():
        async for event in prepare_capexecs_fs([FsWalkSpec(root="pages")]):
            print(event.phase, event.prepared.source.name)

    asyncio.run(main())
"""

from capexec.core.errors import (
    CapExecError,
    InvalidSpecError,
    MaterializeError,
    SpawnError,
    StageExitError,
)
from capexec.engine import (
    CapExecFound,
    CapExecName,
    ExecutedEvent,
    PreparedCapExec,
    PreparedEvent,
    parse_capexec_name,
    prepare_capexecs,
    walk_capexecs,
)
from capexec.framework.sources import FileSystemWalkerAdapter, FsWalkSpec, walk
from capexec.fs import (
    FsAdapterOptions,
    FsExecutionResult,
    FsOutputAdapter,
    FsStage,
    prepare_capexecs_fs,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Grammar & discovery
    "CapExecName",
    "parse_capexec_name",
    "CapExecFound",
    "walk_capexecs",
    "walk",
    "FileSystemWalkerAdapter",
    "FsWalkSpec",
    # Orchestration
    "PreparedCapExec",
    "PreparedEvent",
    "ExecutedEvent",
    "prepare_capexecs",
    # File system adapter
    "FsAdapterOptions",
    "FsExecutionResult",
    "FsOutputAdapter",
    "FsStage",
    "prepare_capexecs_fs",
    # Errors
    "CapExecError",
    "InvalidSpecError",
    "MaterializeError",
    "SpawnError",
    "StageExitError",
]
