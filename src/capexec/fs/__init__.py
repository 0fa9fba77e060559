"""
capexec.fs - file system output adapter.

Resolves stage tokens and sinks to local processes, streams bytes through
them and materializes the result as files.
"""

from capexec.fs.adapter import (
    FsAdapterOptions,
    FsOutputAdapter,
    default_project_env,
    is_generated_output,
    prepare_capexecs_fs,
    sink_path_of,
    skip_generated_outputs,
)
from capexec.fs.materialize import (
    FsExecutionResult,
    MultiOutputRecord,
    atomic_write,
    drain,
    iter_lines,
    materialize_multi,
    materialize_single,
)
from capexec.fs.process import (
    FsPipeline,
    ProcessStream,
    build_env,
    bytes_stream,
    chain_processes,
    empty_stream,
    run_process,
)
from capexec.fs.resolve import (
    DEFAULT_DOMAIN_LAUNCHERS,
    DEFAULT_STRATEGIES,
    FsStage,
    ResolveContext,
    direct_executable,
    domain_launcher,
    resolve_sink_path,
    resolve_stage_token,
)

__all__ = [
    # Adapter
    "FsAdapterOptions",
    "FsOutputAdapter",
    "default_project_env",
    "is_generated_output",
    "prepare_capexecs_fs",
    "sink_path_of",
    "skip_generated_outputs",
    # Resolution
    "DEFAULT_DOMAIN_LAUNCHERS",
    "DEFAULT_STRATEGIES",
    "FsStage",
    "ResolveContext",
    "direct_executable",
    "domain_launcher",
    "resolve_sink_path",
    "resolve_stage_token",
    # Processes
    "FsPipeline",
    "ProcessStream",
    "build_env",
    "bytes_stream",
    "chain_processes",
    "empty_stream",
    "run_process",
    # Materialization
    "FsExecutionResult",
    "MultiOutputRecord",
    "atomic_write",
    "drain",
    "iter_lines",
    "materialize_multi",
    "materialize_single",
]
