"""
Output adapter contract.

An output adapter turns a discovered CapExec into an immutable plan and then
runs it:

    PREPARE: resolve pre stages, the sink and post stages into a
             ``PreparedCapExec`` holding two ``Pipeline`` objects. No
             processes are started and nothing is written.
    EXECUTE: stream bytes  empty -> pre -> sink -> post  and materialize the
             result. The only operation with durable side effects.

Byte streams are async iterators of ``bytes`` chunks. Every type here is
generic over the adapter's stage / sink descriptors, pipeline payloads and
result shape.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, Protocol, TypeVar, runtime_checkable

from capexec.engine.discovery import CapExecFound

PrepareMode = Literal["build", "watch", "dry-run"]
PREPARE_MODES: tuple[str, ...] = ("build", "watch", "dry-run")

OnError = Literal["abort", "skip"]
ON_ERROR_POLICIES: tuple[str, ...] = ("abort", "skip")

ByteStream = AsyncIterator[bytes]

StageT = TypeVar("StageT")
SinkT = TypeVar("SinkT")
PayloadT = TypeVar("PayloadT")
ResultT = TypeVar("ResultT")


@dataclass(frozen=True)
class ContentContext:
    """What a pipeline sees of the run: the caller's context and its own payload."""

    ctx: Any = None
    payload: Any = None


@runtime_checkable
class Pipeline(Protocol):
    """
    An ordered chain of stages transforming one byte stream into another.

    Zero stages is the identity transform. ``execute`` starts the stages in
    order and returns their combined output stream; bytes flow only as the
    caller iterates it.
    """

    stages: Sequence[Any]
    payload: Any

    async def execute(
        self,
        input: ByteStream,
        *,
        mode: PrepareMode | None = None,
        context: ContentContext | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ByteStream: ...


@dataclass(frozen=True)
class CapExecPlan(Generic[SinkT]):
    """pre -> sink -> post."""

    pre: Pipeline
    sink: SinkT
    post: Pipeline


@dataclass(frozen=True)
class PreparedCapExec(Generic[SinkT]):
    """
    The immutable execution plan for one discovery.

    Attributes:
        source: The discovery the plan was prepared from
        plan: Resolved pre pipeline, sink descriptor and post pipeline
        context: Caller context snapshot (read-only by convention)
        mode: build / watch / dry-run
    """

    source: CapExecFound
    plan: CapExecPlan[SinkT]
    context: Any = None
    mode: PrepareMode = "build"


@runtime_checkable
class CapExecOutputAdapter(Protocol):
    """Two-phase execution environment: ``prepare`` then ``execute``."""

    kind: str

    async def prepare(
        self,
        found: CapExecFound,
        *,
        context: Any = None,
        mode: PrepareMode = "build",
    ) -> PreparedCapExec: ...

    async def execute(self, prepared: PreparedCapExec) -> Any: ...


@dataclass(frozen=True)
class PreparedEvent:
    """Yielded once a discovery has been prepared."""

    prepared: PreparedCapExec
    phase: Literal["prepared"] = field(default="prepared", init=False)


@dataclass(frozen=True)
class ExecutedEvent(Generic[ResultT]):
    """Yielded once a prepared plan has been executed."""

    prepared: PreparedCapExec
    result: ResultT
    elapsed_ms: float = 0.0
    phase: Literal["executed"] = field(default="executed", init=False)


CapExecEvent = PreparedEvent | ExecutedEvent


__all__ = [
    "ByteStream",
    "CapExecEvent",
    "CapExecOutputAdapter",
    "CapExecPlan",
    "ContentContext",
    "ExecutedEvent",
    "ON_ERROR_POLICIES",
    "OnError",
    "PREPARE_MODES",
    "Pipeline",
    "PrepareMode",
    "PreparedCapExec",
    "PreparedEvent",
]
