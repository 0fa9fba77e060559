"""
Logging context management using contextvars.

This module provides execution-aware context that automatically attaches
to all log entries. Context is propagated through the call stack without
explicit parameter passing, and asyncio tasks (stdin pumps, process
readers) inherit the context of the task that created them.
"""

import uuid
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from typing import Any

import structlog


def _generate_span_id() -> str:
    """Generate a short span ID (8 hex chars)."""
    return uuid.uuid4().hex[:8]


def new_run_id() -> str:
    """Generate an identifier for one orchestrator run."""
    return uuid.uuid4().hex[:12]


@dataclass
class LogContext:
    """
    Execution context attached to all log entries.

    Run identifiers:
        run_id: One orchestrator pass over a supplier
        mode: Prepare mode (build / watch / dry-run)

    Tracing (for nested timing blocks):
        span_id: Current span identifier
        parent_span_id: Parent span for nested operations

    CapExec context:
        capexec: Name of the CapExec being processed
        phase: prepare / execute
        stage: Stage token (or "sink") whose process is running
    """

    run_id: str | None = None
    mode: str | None = None

    span_id: str | None = None
    parent_span_id: str | None = None

    capexec: str | None = None
    phase: str | None = None
    stage: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "LogContext":
        """Create new context with merged values."""
        current = asdict(self)
        current.update({k: v for k, v in kwargs.items() if v is not None and k in current})
        return LogContext(**current)


_log_context: ContextVar[LogContext] = ContextVar("capexec_log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def set_context(
    run_id: str | None = None,
    mode: str | None = None,
    capexec: str | None = None,
    phase: str | None = None,
    stage: str | None = None,
    span_id: str | None = None,
    parent_span_id: str | None = None,
) -> LogContext:
    """
    Set the current log context.

    This replaces the current context. Use bind_context() to add to existing.
    """
    ctx = LogContext(
        run_id=run_id,
        mode=mode,
        capexec=capexec,
        phase=phase,
        stage=stage,
        span_id=span_id,
        parent_span_id=parent_span_id,
    )
    _log_context.set(ctx)
    return ctx


def bind_context(**kwargs) -> LogContext:
    """Merge values into the current context rather than replacing it."""
    updated = get_context().merge(**kwargs)
    _log_context.set(updated)
    return updated


def clear_context() -> None:
    """Clear the current context (reset to empty)."""
    _log_context.set(LogContext())


class _ContextToken:
    """Token for restoring context after a scoped operation."""

    def __init__(self, token):
        self._token = token

    def restore(self):
        """Restore the previous context."""
        _log_context.reset(self._token)


def push_context(**kwargs) -> _ContextToken:
    """
    Push new context values, returning a token to restore later.

    Usage:
        token = push_context(capexec=found.name, phase="execute")
        try:
            await adapter.execute(prepared)
        finally:
            token.restore()
    """
    updated = get_context().merge(**kwargs)
    token = _log_context.set(updated)
    return _ContextToken(token)


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor that adds execution context to every log entry.

    Explicit keys on the log call win over context values.
    """
    for key, value in get_context().to_dict().items():
        if key not in event_dict:
            event_dict[key] = value
    return event_dict


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)
