"""
Tests for the capexec CLI.

Typer commands are driven through ``CliRunner``; the watch loop and the
single-pass runner are also exercised directly. Sinks are executable
scripts so no domain launcher has to be installed.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import pytest
from _support import ENV_DUMP_SCRIPT, UPPER_SCRIPT, emit_script, fail_script, write_script
from typer.testing import CliRunner

from capexec.cli import app
from capexec.cli.run import RunOptions, RunSummary, run_once, sink_snapshot, watch_loop
from capexec.core.errors import StageExitError
from capexec.core.settings import CapExecSettings
from capexec.framework.logging import configure_logging

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_logging():
    """CliRunner swaps stderr; rebind logging to the real stream afterwards."""
    yield
    configure_logging(level="WARNING", force=True)


@pytest.fixture
def workdir(isolated_cwd: Path) -> Path:
    root = isolated_cwd / "project"
    root.mkdir()
    return root


def invoke(*args: str):
    return runner.invoke(app, list(args))


# ── Commands ─────────────────────────────────────────────────


class TestVersion:
    def test_version(self):
        result = invoke("--version")
        assert result.exit_code == 0
        assert "capexec" in result.output


class TestBuild:
    def test_build_writes_output(self, workdir):
        write_script(workdir / "page.sql.py", emit_script("select 1;"))

        result = invoke("build", "--root", "project", "--log-level", "ERROR")

        assert result.exit_code == 0, result.output
        assert (workdir / "page.auto.sql").read_text() == "select 1;"
        assert "page.sql.py" in result.output
        assert "1 CapExec(s) executed" in result.output

    def test_rebuild_ignores_generated_outputs(self, workdir):
        write_script(workdir / "page.sql.py", emit_script("select 1;"))
        invoke("build", "-r", "project", "--log-level", "ERROR")

        result = invoke("build", "-r", "project", "--log-level", "ERROR")

        assert result.exit_code == 0, result.output
        assert "1 CapExec(s) executed" in result.output

    def test_search_dir(self, workdir, isolated_cwd):
        write_script(isolated_cwd / "bin" / "upper", UPPER_SCRIPT)
        write_script(workdir / "page.txt.[upper].py", emit_script("loud"))

        result = invoke("build", "-r", "project", "-s", "bin", "--log-level", "ERROR")

        assert result.exit_code == 0, result.output
        assert (workdir / "page.auto.txt").read_text() == "LOUD"

    def test_include_filter(self, workdir):
        write_script(workdir / "a.txt.py", emit_script("a"))
        write_script(workdir / "b.txt.py", emit_script("b"))

        result = invoke("build", "-r", "project", "-I", "a.*", "--log-level", "ERROR")

        assert result.exit_code == 0, result.output
        assert (workdir / "a.auto.txt").exists()
        assert not (workdir / "b.auto.txt").exists()

    def test_context_json_exported(self, workdir):
        write_script(workdir / "env.json.py", ENV_DUMP_SCRIPT)

        invoke("build", "-r", "project", "--log-level", "ERROR")

        env = json.loads((workdir / "env.auto.json").read_text())
        context = json.loads(env["CAPEXEC_CONTEXT_JSON"])
        assert context["mode"] == "build"
        assert context["roots"] == ["project"]
        assert context["on_error"] == "abort"
        assert env["CAPEXEC_MODE"] == "build"

    def test_unwritable_record_path_exits_1(self, workdir):
        write_script(workdir / "bundle.gen+.py", emit_script('{"path": "a\\u0000b", "content": "x"}\n'))

        result = invoke("build", "-r", "project", "--log-level", "ERROR")

        assert result.exit_code == 1
        assert "Error (MaterializeError)" in result.output

    def test_failure_exits_1(self, workdir):
        write_script(workdir / "bad.txt.py", fail_script(3))

        result = invoke("build", "-r", "project", "--log-level", "ERROR")

        assert result.exit_code == 1
        assert "Error (StageExitError)" in result.output

    def test_skip_keeps_going(self, workdir):
        write_script(workdir / "a.txt.py", fail_script(3))
        write_script(workdir / "b.txt.py", emit_script("ok"))

        result = invoke("build", "-r", "project", "--on-error", "skip", "--log-level", "ERROR")

        assert result.exit_code == 0, result.output
        assert (workdir / "b.auto.txt").read_text() == "ok"

    def test_invalid_on_error(self, workdir):
        result = invoke("build", "-r", "project", "--on-error", "explode")
        assert result.exit_code == 2

    def test_invalid_log_level(self, workdir):
        result = invoke("build", "-r", "project", "--log-level", "chatty")
        assert result.exit_code == 2

    def test_missing_root_reported(self, workdir):
        result = invoke("build", "-r", "nowhere", "--log-level", "ERROR")
        assert result.exit_code == 0
        assert "Skipped root" in result.output

    def test_verbose_table(self, workdir):
        write_script(workdir / "page.sql.py", emit_script("x"))
        result = invoke("build", "-r", "project", "-v", "--log-level", "ERROR")
        assert result.exit_code == 0, result.output
        assert "CapExecs" in result.output


class TestDryRun:
    def test_nothing_written(self, workdir):
        write_script(workdir / "page.sql.py", emit_script("select 1;"))

        result = invoke("dry-run", "-r", "project", "--log-level", "ERROR")

        assert result.exit_code == 0, result.output
        assert "dry-run" in result.output
        assert not (workdir / "page.auto.sql").exists()


class TestWatchCommand:
    def test_initial_build_only(self, workdir):
        write_script(workdir / "page.sql.py", emit_script("select 1;"))

        result = invoke("watch", "-r", "project", "--interval", "0.05", "--max-rebuilds", "0", "--log-level", "ERROR")

        assert result.exit_code == 0, result.output
        assert "Watching" in result.output
        assert (workdir / "page.auto.sql").exists()

    def test_non_positive_interval(self, workdir):
        result = invoke("watch", "-r", "project", "--interval", "0")
        assert result.exit_code == 2


# ── Runner functions ─────────────────────────────────────────


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_abort_error_kept_on_summary(self, workdir):
        write_script(workdir / "a.txt.py", fail_script(2))
        write_script(workdir / "b.txt.py", emit_script("b"))

        summary = await run_once(RunOptions(roots=(workdir,)), CapExecSettings())

        assert not summary.ok
        assert isinstance(summary.error, StageExitError)
        assert summary.executed == []

    @pytest.mark.asyncio
    async def test_summary_counts(self, workdir):
        write_script(workdir / "a.txt.py", emit_script("a"))
        write_script(workdir / "b.txt.py", emit_script("b"))

        summary = await run_once(RunOptions(roots=(workdir,)), CapExecSettings())

        assert summary.ok
        assert [e.name for e in summary.executed] == ["a.txt.py", "b.txt.py"]
        assert summary.files_written == 2

    @pytest.mark.asyncio
    async def test_snapshot_skips_outputs(self, workdir):
        sink = write_script(workdir / "a.txt.py", emit_script("a"))
        (workdir / "a.auto.txt").write_text("old")
        (workdir / "README.md").write_text("")

        snapshot = await sink_snapshot(RunOptions(roots=(workdir,)))

        assert list(snapshot) == [str(sink)]


class TestWatchLoop:
    @pytest.mark.asyncio
    async def test_rebuilds_on_change(self, workdir):
        sink = write_script(workdir / "page.txt.py", emit_script("v1"))
        summaries: list[RunSummary] = []

        async def touch_after_first_build():
            while not summaries:
                await asyncio.sleep(0.01)
            write_script(sink, emit_script("v2"))
            stamp = os.stat(sink).st_mtime_ns + 5_000_000_000
            os.utime(sink, ns=(stamp, stamp))

        toucher = asyncio.create_task(touch_after_first_build())
        rebuilds = await asyncio.wait_for(
            watch_loop(
                RunOptions(roots=(workdir,), mode="watch"),
                CapExecSettings(),
                interval=0.05,
                on_summary=summaries.append,
                max_rebuilds=1,
            ),
            timeout=30,
        )
        await toucher

        assert rebuilds == 1
        assert len(summaries) == 2
        assert (workdir / "page.auto.txt").read_text() == "v2"

    @pytest.mark.asyncio
    async def test_outputs_do_not_retrigger(self, workdir):
        write_script(workdir / "page.txt.py", emit_script("v1"))
        summaries: list[RunSummary] = []

        async def loop():
            await watch_loop(
                RunOptions(roots=(workdir,), mode="watch"),
                CapExecSettings(),
                interval=0.02,
                on_summary=summaries.append,
            )

        task = asyncio.create_task(loop())
        while not summaries:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.3)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(summaries) == 1
