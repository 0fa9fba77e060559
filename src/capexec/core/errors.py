"""
Structured error types for capexec.

Every failure the engine surfaces is a ``CapExecError`` carrying a category,
structured context and the chained underlying exception. Expected noise is
*not* represented here: a name that does not match the CapExec
grammar and a malformed multi-output record are skipped, never raised.

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different domains
    - **Rich Context:** Errors carry metadata (capexec name, argv, path) for logging
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        CapExecError                           │
        │              (category, context, cause)                       │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  SourceError        ConfigError          ProcessError         │
        │  (SOURCE)           (CONFIG)             (PROCESS)            │
        │       │                  │                    │               │
        │  InvalidSpecError   InvalidStageError    SpawnError           │
        │                     InvalidOptionError   StageExitError       │
        │                                                               │
        │  MaterializeError                                             │
        │  (STORAGE)                                                    │
        └──────────────────────────────────────────────────────────────┘

Error taxonomy:
    - **Invalid root spec:** ``InvalidSpecError`` raised by a walker adapter's
      ``normalize``; reported through ``on_invalid_spec``, never propagated.
    - **Spawn failure:** ``SpawnError`` (missing executable, permission denied).
    - **Runtime failure:** ``StageExitError`` (non-zero exit status).
    - **Write failure:** ``MaterializeError`` (disk full, rename failure, bad base64).

Usage:
    from capexec.core.errors import SpawnError

    try:
        proc = await asyncio.create_subprocess_exec(*argv)
    except FileNotFoundError as e:
        raise SpawnError(f"Command not found: {argv[0]}", cause=e).with_context(argv=argv)

Tags:
    error-handling, exception-hierarchy, error-context, capexec

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Attributes:
        SOURCE: Enumeration source errors (missing root, bad spec)
        PARSE: Data parsing, format errors
        CONFIG: Invalid options, empty argv
        PROCESS: Spawn failures, non-zero exits
        STORAGE: File system write / rename errors
        PIPELINE: Plan preparation / execution failures
        INTERNAL: Bugs, unexpected state
    """

    SOURCE = "SOURCE"
    PARSE = "PARSE"
    CONFIG = "CONFIG"
    PROCESS = "PROCESS"
    STORAGE = "STORAGE"
    PIPELINE = "PIPELINE"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields cover the metadata the engine knows about; anything else
    lands in ``metadata``. ``to_dict()`` serializes non-None fields only.

    Attributes:
        capexec: Name of the CapExec (sink file name) being processed
        stage: Stage token or sink marker ("sink")
        mode: Prepare mode (build / watch / dry-run)
        path: File system path involved
        argv: Process argv involved
        metadata: Additional key-value pairs
    """

    capexec: str | None = None
    stage: str | None = None
    mode: str | None = None
    path: str | None = None
    argv: list[str] | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["capexec", "stage", "mode", "path", "argv"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CapExecError(Exception):
    """
    Base exception for all capexec errors.

    Subclasses set ``default_category`` to classify their domain. The
    ``cause`` is chained onto ``__cause__`` so tracebacks keep the root
    error.

    Examples:
        >>> error = CapExecError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error = CapExecError("Spawn failed").with_context(capexec="a.sql.ts")
        >>> error.context.capexec
        'a.sql.ts'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CapExecError:
        """
        Add context to this error (fluent API).

        Usage:
            raise MaterializeError("Rename failed").with_context(path=str(target))
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# SOURCE ERRORS
# =============================================================================


class SourceError(CapExecError):
    """Error from an enumeration source."""

    default_category = ErrorCategory.SOURCE


class InvalidSpecError(SourceError):
    """A root spec the walker adapter cannot enumerate (e.g. missing directory)."""

    pass


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(CapExecError):
    """Configuration error. The caller must fix its options."""

    default_category = ErrorCategory.CONFIG


class InvalidStageError(ConfigError):
    """A stage or sink descriptor that cannot be spawned (empty argv)."""

    pass


class InvalidOptionError(ConfigError):
    """An orchestrator option outside its allowed values."""

    def __init__(self, option: str, value: Any, allowed: tuple[str, ...], **kwargs: Any):
        super().__init__(
            f"Invalid value for {option}: {value!r} (expected one of {', '.join(allowed)})",
            **kwargs,
        )
        self.option = option
        self.value = value
        self.allowed = allowed


# =============================================================================
# PROCESS ERRORS
# =============================================================================


class ProcessError(CapExecError):
    """Failure of an external stage or sink process."""

    default_category = ErrorCategory.PROCESS


class SpawnError(ProcessError):
    """The process could not be started."""

    pass


class StageExitError(ProcessError):
    """The process ran but exited with a non-zero status."""

    def __init__(self, argv: list[str], returncode: int, **kwargs: Any):
        super().__init__(f"Process {argv[0]!r} exited with status {returncode}", **kwargs)
        self.argv = argv
        self.returncode = returncode
        self.context.argv = argv

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["returncode"] = self.returncode
        return result


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class MaterializeError(CapExecError):
    """Writing materialized output failed."""

    default_category = ErrorCategory.STORAGE


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CapExecError",
    "SourceError",
    "InvalidSpecError",
    "ConfigError",
    "InvalidStageError",
    "InvalidOptionError",
    "ProcessError",
    "SpawnError",
    "StageExitError",
    "MaterializeError",
]
