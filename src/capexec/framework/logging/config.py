"""
Logging configuration.

Provides a single entry point for configuring structured logging.
Configuration is read from arguments first, then environment variables:

- CAPEXEC_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- CAPEXEC_LOG_FORMAT: json | console (default: console)
- CAPEXEC_LOG_DEBUG_NAMES: comma-separated CapExec names always logged at DEBUG

Usage:
    from capexec.framework.logging import configure_logging
    configure_logging()

    # Or with explicit settings
    configure_logging(level="DEBUG", format="json")
"""

import logging
import os
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

from capexec.framework.logging.context import add_context_processor

_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    capexec_debug: list[str] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Should be called once at startup (CLI entry, embedding application).
    Subsequent calls are no-ops unless force=True.

    Args:
        level: Log level (overrides CAPEXEC_LOG_LEVEL)
        format: Output format (overrides CAPEXEC_LOG_FORMAT)
        capexec_debug: CapExec names whose events are always emitted, even below level
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("CAPEXEC_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("CAPEXEC_LOG_FORMAT", "console")).lower()

    debug_names = capexec_debug
    if debug_names is None:
        env_names = os.environ.get("CAPEXEC_LOG_DEBUG_NAMES", "")
        debug_names = [n.strip() for n in env_names.split(",") if n.strip()]

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_context_processor,
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if debug_names:
        # Runs after the context processor so the bound capexec name is visible.
        processors.insert(4, _make_capexec_filter(debug_names, log_level))
    else:
        processors.insert(0, structlog.stdlib.filter_by_level)

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # With a debug filter the stdlib level must let DEBUG through; the
    # filter processor enforces the configured level for everything else.
    stdlib_level = logging.DEBUG if debug_names else getattr(logging, log_level)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=stdlib_level,
        force=True,
    )
    logging.getLogger("capexec").setLevel(stdlib_level)

    _configured = True


def _make_capexec_filter(debug_names: list[str], default_level: str):
    """
    Create a processor that enables DEBUG for specific CapExecs.

    Events bound to a listed CapExec always pass; others use the default level.
    """
    default_level_num = getattr(logging, default_level)

    def capexec_debug_filter(
        logger: Any,
        method_name: str,
        event_dict: dict,
    ) -> dict:
        name = event_dict.get("capexec") or event_dict.get("name")
        if name and any(n in str(name) for n in debug_names):
            return event_dict

        level = event_dict.get("level", method_name)
        level_num = getattr(logging, str(level).upper(), logging.DEBUG)
        if level_num < default_level_num:
            raise structlog.DropEvent

        return event_dict

    return capexec_debug_filter


def is_debug_enabled() -> bool:
    """Check if DEBUG level logging is enabled."""
    return logging.getLogger("capexec").isEnabledFor(logging.DEBUG)


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured
