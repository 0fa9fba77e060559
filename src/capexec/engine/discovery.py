"""
Discovery walker: turn enumerated items into CapExec sinks.

Wraps any ``WalkerAdapter``:

1. optionally filters each encountered item (``filter``)
2. extracts a candidate name (``select_name``; None skips the item)
3. parses the name with the CapExec grammar (non-matching names are skipped)
4. yields a ``CapExecFound`` in the adapter's enumeration order

Grammar mismatches are expected noise: they are neither raised nor logged.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from capexec.engine.grammar import CapExecName, parse_capexec_name
from capexec.framework.logging import get_logger
from capexec.framework.sources.protocol import (
    Encountered,
    InvalidSpecHook,
    Supplier,
    WalkerAdapter,
    maybe_await,
    walk,
)

log = get_logger(__name__)

ItemT = TypeVar("ItemT")
SpecT = TypeVar("SpecT")
PayloadT = TypeVar("PayloadT")

SelectName = Callable[[Encountered], "str | None"]
ItemFilter = Callable[[Encountered], "bool | Awaitable[bool]"]


@dataclass(frozen=True)
class CapExecFound(Generic[SpecT, ItemT, PayloadT]):
    """
    An enumerated item whose name parses as a CapExec sink.

    Attributes:
        key: Adapter-global unique key (e.g. absolute path)
        spec: Normalized spec from the walker adapter
        item: The adapter's raw item
        name: The string returned by ``select_name``
        parsed: Parsed grammar components
        payload: Optional walker payload
    """

    key: str
    spec: SpecT
    item: ItemT
    name: str
    parsed: CapExecName
    payload: PayloadT | None = None


async def walk_capexecs(
    adapter: WalkerAdapter,
    specs: Supplier,
    select_name: SelectName,
    *,
    filter: ItemFilter | None = None,
    on_invalid_spec: InvalidSpecHook | None = None,
) -> AsyncIterator[CapExecFound[Any, Any, Any]]:
    """
    Walk ``specs`` through ``adapter`` and yield every CapExec sink found.

    Args:
        adapter: Enumeration adapter (file system, database, ...)
        specs: Supplier of the adapter's user-facing specs
        select_name: Candidate name for an item (``None`` skips it)
        filter: Optional sync or async predicate applied before name selection
        on_invalid_spec: Forwarded to ``walk`` for rejected root specs
    """
    async for enc in walk(specs, adapter, on_invalid_spec=on_invalid_spec):
        if filter is not None and not await maybe_await(filter(enc)):
            continue

        name = select_name(enc)
        if not name:
            continue

        parsed = parse_capexec_name(name)
        if parsed is None:
            continue

        log.debug("discovery.found", key=enc.key, name=name)
        yield CapExecFound(
            key=enc.key,
            spec=enc.spec,
            item=enc.item,
            name=name,
            parsed=parsed,
            payload=enc.payload,
        )


__all__ = ["CapExecFound", "ItemFilter", "SelectName", "walk_capexecs"]
