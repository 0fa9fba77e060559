"""
Shared pytest fixtures and configuration for capexec tests.

This module provides:
- Settings / log-context cleanup for test isolation
- Temporary working directories free of CAPEXEC_* variables
- A temporary project directory for file system runs

Child processes are always started through ``sys.executable`` so the tests
do not depend on shell utilities being installed.
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

import pytest

# Ensure capexec package and the _support helpers are importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from capexec.core.settings import clear_settings_cache
from capexec.framework.logging import clear_context

# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        # Tests under fs/ and cli/ spawn real processes
        if test_path.parts[0] in ("fs", "cli"):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings() -> Generator[None, None, None]:
    """Drop cached settings before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def clean_log_context() -> Generator[None, None, None]:
    """Reset the logging context so bound values never leak between tests."""
    clear_context()
    yield
    clear_context()


# =============================================================================
# Project Fixtures
# =============================================================================


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty project directory holding CapExec sinks."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the test from ``tmp_path`` with no CAPEXEC_* variables set."""
    for key in list(os.environ):
        if key.startswith("CAPEXEC_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
