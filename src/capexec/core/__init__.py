"""
capexec core - error taxonomy and configuration shared by every layer.
"""

from capexec.core.errors import (
    CapExecError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidOptionError,
    InvalidSpecError,
    InvalidStageError,
    MaterializeError,
    ProcessError,
    SourceError,
    SpawnError,
    StageExitError,
)
from capexec.core.settings import CapExecSettings, clear_settings_cache, get_settings

__all__ = [
    # Errors
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
    # Settings
    "CapExecSettings",
    "get_settings",
    "clear_settings_cache",
]
