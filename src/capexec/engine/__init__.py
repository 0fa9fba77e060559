"""
capexec engine - grammar, discovery, adapter contract and orchestrator.

The engine is transport-agnostic: it knows nothing about files or processes.
``capexec.fs`` provides the file system / subprocess implementation.
"""

from capexec.engine.discovery import CapExecFound, walk_capexecs
from capexec.engine.grammar import CapExecName, parse_capexec_name, split_stages
from capexec.engine.protocol import (
    ByteStream,
    CapExecEvent,
    CapExecOutputAdapter,
    CapExecPlan,
    ContentContext,
    ExecutedEvent,
    Pipeline,
    PreparedCapExec,
    PreparedEvent,
    PrepareMode,
)
from capexec.engine.runner import prepare_capexecs

__all__ = [
    # Grammar
    "CapExecName",
    "parse_capexec_name",
    "split_stages",
    # Discovery
    "CapExecFound",
    "walk_capexecs",
    # Contract
    "ByteStream",
    "CapExecEvent",
    "CapExecOutputAdapter",
    "CapExecPlan",
    "ContentContext",
    "ExecutedEvent",
    "Pipeline",
    "PreparedCapExec",
    "PreparedEvent",
    "PrepareMode",
    # Orchestrator
    "prepare_capexecs",
]
