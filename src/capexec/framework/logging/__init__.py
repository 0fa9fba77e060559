"""
capexec logging - structured, execution-aware logging.

This module provides:
- Structured logging with structlog
- Execution context propagation via contextvars
- Timing utilities for performance tracking
- Environment-based configuration

Usage:
    from capexec.framework.logging import get_logger, configure_logging, log_step

    configure_logging()
    log = get_logger(__name__)

    with log_step("fs.materialize", capexec="page.sql.ts"):
        await materialize(...)
"""

from capexec.framework.logging.config import configure_logging, is_configured, is_debug_enabled
from capexec.framework.logging.context import (
    LogContext,
    bind_context,
    clear_context,
    get_context,
    get_logger,
    new_run_id,
    push_context,
    set_context,
)
from capexec.framework.logging.timing import TimingResult, log_step, timed_block

__all__ = [
    # Configuration
    "configure_logging",
    "is_configured",
    "is_debug_enabled",
    # Context
    "get_logger",
    "set_context",
    "clear_context",
    "get_context",
    "bind_context",
    "push_context",
    "new_run_id",
    "LogContext",
    # Timing
    "TimingResult",
    "log_step",
    "timed_block",
]
