"""Tests for the build runner and retry policy."""

from pathlib import Path

import pytest

from rtd_build.builder import (
    MAX_ERROR_OUTPUT,
    MSBUILD_ARGS,
    TRUNCATION_NOTE,
    build_project,
    build_succeeded,
    next_retry_batch,
    run_builds,
    truncate_output,
)
from rtd_build.config import ProjectTarget
from rtd_build.exceptions import CommandTimeoutError, ToolNotFoundError

MSBUILD = "C:/MSBuild/MSBuild.exe"

SUCCESS_OUTPUT = """
Build succeeded.
    0 Warning(s)
    0 Error(s)

Time Elapsed 00:00:03.21
"""

FAILURE_OUTPUT = """
Program.cs(12,5): error CS1002: ; expected [C:\\src\\A\\A.csproj]

Build FAILED.

    0 Warning(s)
    1 Error(s)
"""


def project(name, *deps):
    return ProjectTarget(Path(f"/src/{name}/{name}.csproj"), name, tuple(deps))


def script_build(runner, name, *outputs):
    """Register one MSBuild output per attempt for a project."""
    for output in outputs:
        runner.on(MSBUILD, f"/src/{name}/{name}.csproj", stdout=output, returncode=0 if "succeeded" in output else 1)


class TestBuildSucceeded:
    def test_success_marker(self):
        assert build_succeeded(SUCCESS_OUTPUT)

    def test_zero_errors_summary(self):
        assert build_succeeded("    0 Warning(s)\n    0 Error(s)\n")

    def test_failure_output(self):
        assert not build_succeeded(FAILURE_OUTPUT)

    def test_error_count_is_not_mistaken_for_zero(self):
        assert not build_succeeded("    10 Error(s)\n")

    def test_empty_output(self):
        assert not build_succeeded("")


class TestTruncateOutput:
    def test_short_text_unchanged(self):
        assert truncate_output("abc") == "abc"

    def test_long_text_truncated(self):
        text = "x" * (MAX_ERROR_OUTPUT + 50)

        truncated = truncate_output(text)

        assert truncated == "x" * MAX_ERROR_OUTPUT + TRUNCATION_NOTE


class TestBuildProject:
    @pytest.mark.asyncio
    async def test_command_and_working_directory(self, runner):
        script_build(runner, "A", SUCCESS_OUTPUT)

        await build_project(project("A"), MSBUILD, runner=runner)

        args, cwd = runner.calls[0]
        assert args == (MSBUILD, str(Path("/src/A/A.csproj")), *MSBUILD_ARGS)
        assert cwd == Path("/src/A")

    @pytest.mark.asyncio
    async def test_success(self, runner):
        script_build(runner, "A", SUCCESS_OUTPUT)

        outcome = await build_project(project("A"), MSBUILD, runner=runner)

        assert outcome.success
        assert outcome.name == "A"
        assert outcome.error is None
        assert outcome.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_failure_keeps_tool_output(self, runner):
        script_build(runner, "A", FAILURE_OUTPUT)

        outcome = await build_project(project("A"), MSBUILD, runner=runner)

        assert not outcome.success
        assert "error CS1002" in outcome.error
        assert "1 Error(s)" in outcome.error

    @pytest.mark.asyncio
    async def test_zero_exit_without_marker_is_failure(self, runner):
        runner.on(MSBUILD, stdout="MSBuild version 17.8.3\n", returncode=0)

        outcome = await build_project(project("A"), MSBUILD, runner=runner)

        assert not outcome.success

    @pytest.mark.asyncio
    async def test_long_output_truncated(self, runner):
        runner.on(MSBUILD, stdout="error CS0246\n" * 1000, returncode=1)

        outcome = await build_project(project("A"), MSBUILD, runner=runner)

        assert outcome.error.endswith(TRUNCATION_NOTE)
        assert len(outcome.error) == MAX_ERROR_OUTPUT + len(TRUNCATION_NOTE)

    @pytest.mark.asyncio
    async def test_timeout(self, runner):
        runner.on(MSBUILD, raises=CommandTimeoutError([MSBUILD], 30))

        outcome = await build_project(project("A"), MSBUILD, timeout=30, runner=runner)

        assert not outcome.success
        assert outcome.error == "Build timeout after 30s"

    @pytest.mark.asyncio
    async def test_missing_msbuild(self, runner):
        runner.on(MSBUILD, raises=ToolNotFoundError(MSBUILD))

        outcome = await build_project(project("A"), MSBUILD, runner=runner)

        assert not outcome.success
        assert "Required tool not found" in outcome.error

    @pytest.mark.asyncio
    async def test_unnamed_project_uses_file_name(self, runner):
        target = ProjectTarget(Path("/src/Legacy/Legacy.sln"))

        outcome = await build_project(target, MSBUILD, runner=runner)

        assert outcome.name == "Legacy.sln"


class TestNextRetryBatch:
    def test_stops_when_nothing_failed(self):
        assert next_retry_batch(1, 3, 4, []) is None

    def test_retries_when_failures_decreased(self):
        assert next_retry_batch(1, 3, 4, ["A"]) == ["A"]

    def test_stops_when_failures_did_not_decrease(self):
        assert next_retry_batch(2, 5, 2, ["A", "B"]) is None

    def test_stops_when_everything_failed_first_pass(self):
        assert next_retry_batch(1, 3, 2, ["A", "B"]) is None

    def test_stops_at_max_passes(self):
        assert next_retry_batch(3, 3, 4, ["A"]) is None

    def test_no_retries_configured(self):
        assert next_retry_batch(1, 1, 4, ["A"]) is None


class TestRunBuilds:
    @pytest.mark.asyncio
    async def test_single_pass_in_given_order(self, runner):
        script_build(runner, "B", SUCCESS_OUTPUT)
        script_build(runner, "A", SUCCESS_OUTPUT)

        run = await run_builds([project("B"), project("A", "B")], MSBUILD, runner=runner)

        assert [o.name for o in run.outcomes] == ["B", "A"]
        assert run.all_passed
        assert len(run.passes) == 1

    @pytest.mark.asyncio
    async def test_retries_only_failing_projects(self, runner):
        script_build(runner, "A", SUCCESS_OUTPUT)
        script_build(runner, "B", FAILURE_OUTPUT, SUCCESS_OUTPUT)
        script_build(runner, "C", SUCCESS_OUTPUT)

        run = await run_builds(
            [project("A"), project("B"), project("C")], MSBUILD, max_retries=2, runner=runner
        )

        assert [len(p) for p in run.passes] == [3, 1]
        assert [o.name for o in run.passes[1]] == ["B"]
        assert run.all_passed
        assert [o.attempt for o in run.outcomes] == [1, 2, 1]
        assert len(runner.commands(MSBUILD)) == 4

    @pytest.mark.asyncio
    async def test_no_retry_without_max_retries(self, runner):
        script_build(runner, "A", SUCCESS_OUTPUT)
        script_build(runner, "B", FAILURE_OUTPUT, SUCCESS_OUTPUT)

        run = await run_builds([project("A"), project("B")], MSBUILD, runner=runner)

        assert len(run.passes) == 1
        assert [o.name for o in run.failed] == ["B"]

    @pytest.mark.asyncio
    async def test_stops_when_failures_stop_decreasing(self, runner):
        script_build(runner, "A", FAILURE_OUTPUT)
        script_build(runner, "B", FAILURE_OUTPUT)
        script_build(runner, "C", SUCCESS_OUTPUT)

        run = await run_builds(
            [project("A"), project("B"), project("C")], MSBUILD, max_retries=5, runner=runner
        )

        assert [len(p) for p in run.passes] == [3, 2]
        assert [o.name for o in run.failed] == ["A", "B"]
        assert [o.attempt for o in run.failed] == [2, 2]

    @pytest.mark.asyncio
    async def test_all_failed_is_not_retried(self, runner):
        script_build(runner, "A", FAILURE_OUTPUT)

        run = await run_builds([project("A")], MSBUILD, max_retries=3, runner=runner)

        assert len(run.passes) == 1
        assert not run.all_passed

    @pytest.mark.asyncio
    async def test_outcomes_always_carry_duration(self, runner):
        script_build(runner, "A", FAILURE_OUTPUT)
        script_build(runner, "B", SUCCESS_OUTPUT)

        run = await run_builds([project("A"), project("B")], MSBUILD, runner=runner)

        assert all(o.duration_seconds >= 0 for o in run.outcomes)
