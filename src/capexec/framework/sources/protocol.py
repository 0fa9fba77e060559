"""
Walker protocol for item enumeration.

Provides a common interface for every place CapExec sinks can come from:
- File trees (FileSystemWalkerAdapter)
- Database rows, API listings, in-memory fixtures (caller-supplied adapters)

Design Principles:
- Protocol over Inheritance: adapters satisfy ``WalkerAdapter`` structurally
- Explicit over Implicit: invalid root specs are reported, never silently skipped
- Idempotency: each key is yielded at most once per walk, across all specs

Usage:
    from capexec.framework.sources import FileSystemWalkerAdapter, FsWalkSpec, walk

    adapter = FileSystemWalkerAdapter()
    async for enc in walk([FsWalkSpec(root="pages")], adapter, on_invalid_spec=print):
        print(enc.key, enc.payload.rel_path)
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from capexec.core.errors import CapExecError
from capexec.framework.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")
ItemT = TypeVar("ItemT")
SpecT = TypeVar("SpecT")
PayloadT = TypeVar("PayloadT")

#: Anything a walk or an orchestrator run can be fed from: an iterable, an
#: async iterable, an awaitable of either, or a zero-argument callable
#: returning any of those.
Supplier = Any


@dataclass(frozen=True)
class Encountered(Generic[ItemT, SpecT, PayloadT]):
    """
    One item yielded by a walk.

    Attributes:
        key: Unique identifier across the whole walk (absolute path, URL, ...)
        spec: The adapter's normalized spec the item came from
        item: The adapter's raw item
        payload: Optional adapter-specific payload (None when the adapter has none)
    """

    key: str
    spec: SpecT
    item: ItemT
    payload: PayloadT | None = None


@dataclass(frozen=True)
class InvalidSpec:
    """Report passed to ``on_invalid_spec`` for a root spec the adapter rejected."""

    kind: str
    reason: str


InvalidSpecHook = Callable[[InvalidSpec], "Awaitable[None] | None"]


@runtime_checkable
class WalkerAdapter(Protocol):
    """
    Contract implemented once per source type.

    ``normalize`` raises (typically ``InvalidSpecError``) for a spec it cannot
    enumerate; ``list`` yields each item at most once for a given spec;
    ``key_of`` derives the de-duplication key. Adapters may additionally define
    ``payload(spec, item)`` (sync or async) to attach a payload to every item.
    """

    kind: str

    async def normalize(self, spec: Any) -> Any: ...

    def list(self, spec: Any) -> AsyncIterator[Any]: ...

    def key_of(self, spec: Any, item: Any) -> str: ...


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Return ``value``, awaiting it first when it is awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


async def aiter_supplier(supplier: Supplier) -> AsyncIterator[Any]:
    """
    Normalize a supplier into an async iterator.

    Accepts sync iterables, async iterables, awaitables resolving to either,
    and zero-argument callables returning any of the above.
    """
    source = supplier() if callable(supplier) and not _is_iterable(supplier) else supplier
    source = await maybe_await(source)

    if isinstance(source, AsyncIterable):
        async for value in source:
            yield value
    elif isinstance(source, Iterable):
        for value in source:
            yield value
    else:
        raise TypeError(f"Unsupported supplier type: {type(source).__name__}")


def _is_iterable(value: Any) -> bool:
    return isinstance(value, (AsyncIterable, Iterable))


def _reason_of(error: BaseException) -> str:
    if isinstance(error, CapExecError):
        return error.message
    return str(error) or type(error).__name__


async def walk(
    specs: Supplier,
    adapter: WalkerAdapter,
    *,
    on_invalid_spec: InvalidSpecHook | None = None,
) -> AsyncIterator[Encountered]:
    """
    Walk every spec through ``adapter`` and yield ``Encountered`` records.

    Specs that fail ``normalize`` are reported through ``on_invalid_spec``
    (and logged as ``walk.invalid_spec``); the remaining specs are still
    enumerated. Keys already yielded earlier in the walk are skipped.

    Args:
        specs: Supplier of user-facing specs
        adapter: Source adapter
        on_invalid_spec: Optional sync or async hook receiving ``InvalidSpec``
    """
    seen: set[str] = set()
    payload_fn = getattr(adapter, "payload", None)

    async for spec in aiter_supplier(specs):
        try:
            norm = await adapter.normalize(spec)
        except Exception as e:
            report = InvalidSpec(kind=adapter.kind, reason=_reason_of(e))
            log.warning("walk.invalid_spec", kind=report.kind, reason=report.reason)
            if on_invalid_spec is not None:
                await maybe_await(on_invalid_spec(report))
            continue

        async for item in adapter.list(norm):
            key = adapter.key_of(norm, item)
            if key in seen:
                continue
            seen.add(key)

            payload = None
            if payload_fn is not None:
                payload = await maybe_await(payload_fn(norm, item))

            yield Encountered(key=key, spec=norm, item=item, payload=payload)


__all__ = [
    "Encountered",
    "InvalidSpec",
    "InvalidSpecHook",
    "Supplier",
    "WalkerAdapter",
    "aiter_supplier",
    "maybe_await",
    "walk",
]
