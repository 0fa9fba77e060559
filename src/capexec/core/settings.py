"""
Centralized settings for capexec.

Manifesto:
    One validated, cached settings object replaces ad-hoc ``os.environ``
    reads scattered through the CLI and adapters.

All fields can be set via ``CAPEXEC_*`` environment variables (e.g.
``CAPEXEC_LOG_LEVEL=DEBUG``) or a ``.env`` file. Field names never collide
with the variables the filesystem adapter injects into child processes
(``CAPEXEC_MODE``, ``CAPEXEC_SINK``, ``CAPEXEC_DIR``, ``CAPEXEC_BASENAME``,
``CAPEXEC_NATURE``), so a capexec run nested inside a stage reads the same
settings as its parent.

Tags:
    capexec, configuration, settings, pydantic, caching

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CapExecSettings(BaseSettings):
    """capexec configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CAPEXEC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")

    # ── Resolution ───────────────────────────────────────────────
    stage_search_dirs: list[Path] = Field(
        default_factory=list,
        description="Extra directories probed (in order) for stage tokens",
    )

    # ── Execution ────────────────────────────────────────────────
    on_error: Literal["abort", "skip"] = Field(default="abort")
    inherit_env: bool = Field(
        default=True,
        description="Children inherit the parent environment beneath the projected overlay",
    )

    # ── Watch ────────────────────────────────────────────────────
    watch_interval_seconds: float = Field(default=1.0, gt=0)

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"unknown log level: {value}")
        return level


# ── Settings factory with caching ────────────────────────────────────────

_settings: CapExecSettings | None = None


def get_settings(*, _force_reload: bool = False) -> CapExecSettings:
    """Load, validate, and cache a :class:`CapExecSettings` instance."""
    global _settings
    if _settings is None or _force_reload:
        _settings = CapExecSettings()
    return _settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, long-lived processes after env changes)."""
    global _settings
    _settings = None
