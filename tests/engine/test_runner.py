"""
Tests for the prepare / execute orchestrator.

Uses a fake output adapter that records calls and can be told to fail on
specific names, plus a recording logger standing in for structlog.
"""

from __future__ import annotations

from typing import Any

import pytest

from capexec.core.errors import InvalidOptionError, StageExitError
from capexec.engine.discovery import CapExecFound
from capexec.engine.grammar import parse_capexec_name
from capexec.engine.protocol import (
    CapExecPlan,
    ExecutedEvent,
    PreparedCapExec,
    PreparedEvent,
)
from capexec.engine.runner import prepare_capexecs
from capexec.framework.logging import get_context


def found(name: str) -> CapExecFound:
    return CapExecFound(key=f"/x/{name}", spec=None, item=name, name=name, parsed=parse_capexec_name(name))


class RecordingLogger:
    def __init__(self):
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def _log(self, level):
        def emit(event, **kw):
            self.records.append((level, event, kw))

        return emit

    def __getattr__(self, level):
        return self._log(level)

    def events(self, level: str | None = None) -> list[str]:
        return [e for lvl, e, _ in self.records if level is None or lvl == level]


class FakeAdapter:
    kind = "fake"

    def __init__(self, fail_prepare=(), fail_execute=()):
        self.fail_prepare = set(fail_prepare)
        self.fail_execute = set(fail_execute)
        self.calls: list[tuple[str, str]] = []
        self.contexts: list[Any] = []

    async def prepare(self, found, *, context=None, mode="build"):
        self.calls.append(("prepare", found.name))
        self.contexts.append(get_context())
        if found.name in self.fail_prepare:
            raise ValueError(f"cannot prepare {found.name}")
        return PreparedCapExec(
            source=found,
            plan=CapExecPlan(pre=None, sink=found.name, post=None),
            context=context,
            mode=mode,
        )

    async def execute(self, prepared):
        name = prepared.source.name
        self.calls.append(("execute", name))
        self.contexts.append(get_context())
        if name in self.fail_execute:
            raise StageExitError(["sink"], 2)
        return f"ran {name}"


async def collect(aiter):
    return [x async for x in aiter]


NAMES = ["a.sql.ts", "b.sql.ts", "c.sql.ts"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_prepare_then_execute_in_order(self):
        adapter = FakeAdapter()
        events = await collect(prepare_capexecs([found(n) for n in NAMES], adapter=adapter, context={"k": 1}))
        assert [e.phase for e in events] == ["prepared", "executed"] * 3
        assert adapter.calls == [(step, n) for n in NAMES for step in ("prepare", "execute")]
        executed = events[1]
        assert isinstance(executed, ExecutedEvent)
        assert executed.result == "ran a.sql.ts"
        assert executed.elapsed_ms >= 0
        assert executed.prepared.context == {"k": 1}

    @pytest.mark.asyncio
    async def test_run_false_only_prepares(self):
        adapter = FakeAdapter()
        events = await collect(prepare_capexecs([found("a.sql.ts")], adapter=adapter, run=False))
        assert len(events) == 1
        assert isinstance(events[0], PreparedEvent)
        assert adapter.calls == [("prepare", "a.sql.ts")]

    @pytest.mark.asyncio
    async def test_mode_passed_to_prepare(self):
        events = await collect(prepare_capexecs([found("a.sql.ts")], adapter=FakeAdapter(), mode="dry-run"))
        assert events[0].prepared.mode == "dry-run"

    @pytest.mark.asyncio
    async def test_empty_supplier(self):
        assert await collect(prepare_capexecs([], adapter=FakeAdapter())) == []

    @pytest.mark.asyncio
    async def test_async_supplier(self):
        async def gen():
            yield found("a.sql.ts")

        events = await collect(prepare_capexecs(gen(), adapter=FakeAdapter()))
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_consumer_can_stop_early(self):
        adapter = FakeAdapter()
        stream = prepare_capexecs([found(n) for n in NAMES], adapter=adapter)
        first = await stream.__anext__()
        await stream.aclose()
        assert first.phase == "prepared"
        assert adapter.calls == [("prepare", "a.sql.ts")]


class TestLogging:
    @pytest.mark.asyncio
    async def test_executed_logged(self):
        logger = RecordingLogger()
        await collect(prepare_capexecs([found("a.sql.ts")], adapter=FakeAdapter(), logger=logger))
        assert logger.events("debug") == ["capexec.prepared"]
        (_, event, fields) = [r for r in logger.records if r[0] == "info"][0]
        assert event == "capexec.executed"
        assert fields["kind"] == "fake"
        assert fields["name"] == "a.sql.ts"
        assert "elapsed_ms" in fields

    @pytest.mark.asyncio
    async def test_context_bound_during_calls_and_restored(self):
        adapter = FakeAdapter()
        await collect(prepare_capexecs([found("a.sql.ts")], adapter=adapter, mode="watch"))
        prep_ctx, exec_ctx = adapter.contexts
        assert prep_ctx.capexec == "a.sql.ts"
        assert prep_ctx.phase == "prepare"
        assert prep_ctx.mode == "watch"
        assert exec_ctx.phase == "execute"
        assert exec_ctx.run_id == prep_ctx.run_id
        assert get_context().capexec is None


class TestErrorPolicy:
    @pytest.mark.asyncio
    async def test_abort_reraises_original(self):
        logger = RecordingLogger()
        adapter = FakeAdapter(fail_execute={"b.sql.ts"})
        events = []
        with pytest.raises(StageExitError):
            async for ev in prepare_capexecs([found(n) for n in NAMES], adapter=adapter, logger=logger):
                events.append(ev)
        assert len(events) == 3
        assert ("prepare", "c.sql.ts") not in adapter.calls
        (_, event, fields) = [r for r in logger.records if r[0] == "error"][0]
        assert event == "capexec.error"
        assert fields["name"] == "b.sql.ts"
        assert fields["error_type"] == "StageExitError"

    @pytest.mark.asyncio
    async def test_skip_continues_after_prepare_failure(self):
        logger = RecordingLogger()
        adapter = FakeAdapter(fail_prepare={"a.sql.ts"})
        events = await collect(
            prepare_capexecs([found(n) for n in NAMES], adapter=adapter, on_error="skip", logger=logger)
        )
        assert [e.prepared.source.name for e in events if e.phase == "executed"] == ["b.sql.ts", "c.sql.ts"]
        assert logger.events("error") == ["capexec.error"]

    @pytest.mark.asyncio
    async def test_skip_continues_after_execute_failure(self):
        adapter = FakeAdapter(fail_execute={"a.sql.ts"})
        events = await collect(prepare_capexecs([found(n) for n in NAMES], adapter=adapter, on_error="skip"))
        phases = [(e.phase, e.prepared.source.name) for e in events]
        assert ("prepared", "a.sql.ts") in phases
        assert ("executed", "a.sql.ts") not in phases
        assert ("executed", "c.sql.ts") in phases

    @pytest.mark.asyncio
    async def test_invalid_on_error(self):
        with pytest.raises(InvalidOptionError):
            await collect(prepare_capexecs([], adapter=FakeAdapter(), on_error="explode"))

    @pytest.mark.asyncio
    async def test_invalid_mode(self):
        with pytest.raises(InvalidOptionError):
            await collect(prepare_capexecs([], adapter=FakeAdapter(), mode="deploy"))
