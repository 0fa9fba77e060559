"""Tests for capexec.core.errors: categories, context and chaining."""

from __future__ import annotations

import pytest

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


class TestCategories:
    @pytest.mark.parametrize(
        ("cls", "category"),
        [
            (CapExecError, ErrorCategory.INTERNAL),
            (SourceError, ErrorCategory.SOURCE),
            (InvalidSpecError, ErrorCategory.SOURCE),
            (ConfigError, ErrorCategory.CONFIG),
            (InvalidStageError, ErrorCategory.CONFIG),
            (ProcessError, ErrorCategory.PROCESS),
            (SpawnError, ErrorCategory.PROCESS),
            (MaterializeError, ErrorCategory.STORAGE),
        ],
    )
    def test_default_category(self, cls, category):
        assert cls("boom").category == category

    def test_explicit_category_wins(self):
        err = CapExecError("boom", category=ErrorCategory.PIPELINE)
        assert err.category == ErrorCategory.PIPELINE

    def test_hierarchy(self):
        assert issubclass(SpawnError, ProcessError)
        assert issubclass(StageExitError, CapExecError)
        assert issubclass(InvalidSpecError, SourceError)


class TestContext:
    def test_with_context_sets_typed_fields(self):
        err = SpawnError("nope").with_context(capexec="a.sql.ts", argv=["x"], stage="fmt")
        assert err.context.capexec == "a.sql.ts"
        assert err.context.argv == ["x"]
        assert err.context.stage == "fmt"

    def test_unknown_keys_go_to_metadata(self):
        err = MaterializeError("disk").with_context(attempt=2)
        assert err.context.metadata == {"attempt": 2}

    def test_with_context_is_fluent(self):
        err = MaterializeError("disk")
        assert err.with_context(path="/tmp/x") is err

    def test_context_to_dict_skips_none(self):
        ctx = ErrorContext(path="/tmp/out", metadata={"k": 1})
        assert ctx.to_dict() == {"path": "/tmp/out", "k": 1}


class TestSerialization:
    def test_to_dict(self):
        cause = OSError("disk full")
        err = MaterializeError("write failed", cause=cause).with_context(path="/x")
        d = err.to_dict()
        assert d["error_type"] == "MaterializeError"
        assert d["category"] == "STORAGE"
        assert d["context"] == {"path": "/x"}
        assert d["cause"] == "disk full"

    def test_cause_is_chained(self):
        cause = FileNotFoundError("missing")
        err = SpawnError("spawn", cause=cause)
        assert err.__cause__ is cause

    def test_repr(self):
        assert repr(SpawnError("x")) == "SpawnError('x', category=PROCESS)"


class TestStageExitError:
    def test_fields(self):
        err = StageExitError(["/bin/fmt", "-q"], 3)
        assert err.returncode == 3
        assert err.argv == ["/bin/fmt", "-q"]
        assert err.context.argv == ["/bin/fmt", "-q"]
        assert "exited with status 3" in str(err)

    def test_to_dict_includes_returncode(self):
        assert StageExitError(["x"], 1).to_dict()["returncode"] == 1


class TestInvalidOptionError:
    def test_message_lists_allowed(self):
        err = InvalidOptionError("on_error", "explode", ("abort", "skip"))
        assert err.option == "on_error"
        assert err.value == "explode"
        assert "abort, skip" in err.message
        assert err.category == ErrorCategory.CONFIG
