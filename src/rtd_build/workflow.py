"""Batch build pipeline: config, VCS update, ordering, build, report.

``run_build`` is the single entry point used by the MCP server and the CLI.
It never raises; every run ends as a persisted report.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from rtd_build.builder import BuildRun, run_builds
from rtd_build.config import (
    BuildConfiguration,
    BuildRequest,
    ProjectTarget,
    Settings,
    resolve_config,
)
from rtd_build.exceptions import ConfigError
from rtd_build.ordering import order_projects
from rtd_build.report import (
    Report,
    render_build_section,
    render_failure,
    render_header,
    render_summary,
    render_vcs_section,
    write_report,
)
from rtd_build.tools import CommandRunner, resolve_msbuild, run_command
from rtd_build.vcs import SyncOutcome, sync_targets

logger = logging.getLogger(__name__)


@dataclass
class BuildRunResult:
    """Everything a run produced, including the rendered report."""

    text: str
    report_path: Optional[Path] = None
    configuration: Optional[BuildConfiguration] = None
    sync_outcomes: list[SyncOutcome] = field(default_factory=list)
    build_run: Optional[BuildRun] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.build_run is not None and self.build_run.all_passed


def _finish(report: Report, logs_dir: Path) -> tuple[str, Optional[Path]]:
    """Persist the report and return the text shown to the caller."""
    try:
        path = write_report(report, logs_dir)
    except OSError as e:
        logger.error("Could not write report to %s: %s", logs_dir, e)
        return f"{report.body}\n⚠️ **Report could not be saved**: {e}\n", None
    return f"{report.body}\n🗂️ **Log file**: {path}\n", path


async def run_build(
    request: BuildRequest,
    settings: Settings,
    runner: CommandRunner = run_command,
    started_at: Optional[datetime] = None,
) -> BuildRunResult:
    """Run the whole batch build.

    Args:
        request: Caller-supplied fields merged over the config profile
        settings: Config and logs locations
        runner: Command runner used for git, tf and MSBuild
        started_at: Run start time (defaults to now)

    Returns:
        BuildRunResult with the report text and the path it was written to
    """
    started = started_at or datetime.now()
    report = Report(started).with_section(render_header(started, settings.working_dir))
    result = BuildRunResult(text="")

    try:
        config = resolve_config(request, settings.config_dir)
        result.configuration = config
        msbuild = resolve_msbuild(config.msbuild_path)
        logger.info(
            "Build run: %d VCS target(s), %d project(s), msbuild=%s",
            len(config.version_control),
            len(config.projects),
            msbuild,
        )

        result.sync_outcomes = await sync_targets(config.version_control, runner)
        report = report.with_section(render_vcs_section(result.sync_outcomes))

        ordered = order_projects(config.projects)
        result.build_run = await run_builds(
            ordered,
            msbuild,
            timeout=config.build_timeout,
            max_retries=config.max_retries,
            runner=runner,
        )
        report = report.with_section(
            render_build_section(result.build_run, msbuild, len(config.projects), len(ordered))
        )
        report = report.with_section(render_summary(result.build_run))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        result.error = str(e)
    except Exception as e:
        logger.exception("Build run failed")
        result.error = f"Unexpected error: {e}"

    if result.error:
        report = report.with_section(render_failure(result.error))

    result.text, result.report_path = _finish(report, settings.logs_dir)
    return result


def plan_build(request: BuildRequest, settings: Settings) -> list[ProjectTarget]:
    """Resolve the configuration and return the build order without building.

    Raises:
        ConfigError: If the configuration cannot be resolved
    """
    config = resolve_config(request, settings.config_dir)
    return order_projects(config.projects)
