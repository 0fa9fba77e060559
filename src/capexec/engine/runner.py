"""Prepare / execute orchestrator.

Manifesto:
    The orchestrator drives any output adapter with the same lifecycle
    (prepare -> yield plan -> execute -> yield result) so adapters never
    manage their own timing, error policy or progress reporting.

One discovery is processed at a time, in supplier order. Errors from
``prepare`` or ``execute`` are logged as ``capexec.error``; under
``on_error="abort"`` the original exception is re-raised and the run ends,
under ``"skip"`` the run continues with the next discovery.

Tags:
    capexec, engine, orchestrator, lifecycle

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from capexec.core.errors import InvalidOptionError
from capexec.engine.protocol import (
    ON_ERROR_POLICIES,
    PREPARE_MODES,
    CapExecEvent,
    CapExecOutputAdapter,
    ExecutedEvent,
    OnError,
    PreparedEvent,
    PrepareMode,
)
from capexec.framework.logging import get_logger, new_run_id, push_context, timed_block
from capexec.framework.sources.protocol import Supplier, aiter_supplier

log = get_logger(__name__)


async def prepare_capexecs(
    supplier: Supplier,
    *,
    adapter: CapExecOutputAdapter,
    context: Any = None,
    mode: PrepareMode = "build",
    run: bool = True,
    on_error: OnError = "abort",
    logger: Any = None,
) -> AsyncIterator[CapExecEvent]:
    """
    Prepare (and optionally execute) every discovery from ``supplier``.

    Args:
        supplier: Discoveries as an iterable, async iterable, awaitable of
            either, or a zero-argument callable returning any of those
        adapter: Output adapter implementing ``prepare`` / ``execute``
        context: Caller context handed to ``prepare``
        mode: build / watch / dry-run
        run: Execute each plan after preparing it
        on_error: "abort" re-raises the first failure, "skip" logs and continues
        logger: structlog-compatible logger (defaults to this module's)

    Yields:
        ``PreparedEvent`` per discovery, followed by an ``ExecutedEvent`` when
        ``run`` is true and execution succeeded.

    Raises:
        InvalidOptionError: If ``mode`` or ``on_error`` is not recognised
    """
    if on_error not in ON_ERROR_POLICIES:
        raise InvalidOptionError("on_error", on_error, ON_ERROR_POLICIES)
    if mode not in PREPARE_MODES:
        raise InvalidOptionError("mode", mode, PREPARE_MODES)

    out = logger or log
    run_id = new_run_id()
    processed = failed = 0

    async for found in aiter_supplier(supplier):
        name = getattr(found, "name", None)
        token = push_context(run_id=run_id, mode=mode, capexec=name, phase="prepare")
        try:
            prepared = await adapter.prepare(found, context=context, mode=mode)
        except Exception as e:
            failed += 1
            _report_error(out, adapter, name, e)
            if on_error == "abort":
                raise
            continue
        finally:
            token.restore()

        out.debug("capexec.prepared", kind=adapter.kind, name=name, mode=mode)
        yield PreparedEvent(prepared=prepared)

        if not run:
            processed += 1
            continue

        token = push_context(run_id=run_id, mode=mode, capexec=name, phase="execute")
        try:
            with timed_block("capexec.execute") as timer:
                result = await adapter.execute(prepared)
        except Exception as e:
            failed += 1
            _report_error(out, adapter, name, e)
            if on_error == "abort":
                raise
            continue
        finally:
            token.restore()

        processed += 1
        elapsed_ms = round(timer.duration_ms, 2)
        out.info("capexec.executed", kind=adapter.kind, name=name, elapsed_ms=elapsed_ms)
        yield ExecutedEvent(prepared=prepared, result=result, elapsed_ms=elapsed_ms)

    log.debug("capexec.run_complete", run_id=run_id, processed=processed, failed=failed)


def _report_error(out: Any, adapter: CapExecOutputAdapter, name: str | None, error: Exception) -> None:
    out.error(
        "capexec.error",
        kind=adapter.kind,
        name=name,
        error=str(error),
        error_type=type(error).__name__,
    )


__all__ = ["prepare_capexecs"]
