"""MSBuild invocation and the bounded retry policy.

Build success is read from MSBuild's console summary, not from the exit
status. The markers below match the English summary printed with
``/clp:ErrorsOnly;Summary``; a localized MSBuild prints different text and
every build would be reported as failed.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence
import logging
import re
import time

from rtd_build.config import DEFAULT_BUILD_TIMEOUT, ProjectTarget
from rtd_build.exceptions import CommandTimeoutError, RtdBuildError
from rtd_build.tools import CommandRunner, run_command

logger = logging.getLogger(__name__)

MAX_ERROR_OUTPUT = 4000
TRUNCATION_NOTE = "\n... (output truncated)"

SUCCESS_MARKER = "Build succeeded"
_ZERO_ERRORS = re.compile(r"^[ \t]*0 Error\(s\)", re.MULTILINE)

MSBUILD_ARGS = [
    "/t:Build",
    "/p:Configuration=Debug",
    "/p:Platform=AnyCPU",
    "/m",
    "/nologo",
    "/clp:ErrorsOnly;Summary",
    "/v:m",
]


@dataclass(frozen=True)
class BuildOutcome:
    """Result of one build attempt of one project."""

    name: str
    success: bool
    duration_seconds: float
    error: Optional[str] = None
    attempt: int = 1


@dataclass
class BuildRun:
    """All build passes of a run.

    ``outcomes`` holds the last outcome of every project, in build order.
    ``passes`` holds the outcomes of each pass as they were produced.
    """

    outcomes: list[BuildOutcome] = field(default_factory=list)
    passes: list[list[BuildOutcome]] = field(default_factory=list)

    @property
    def failed(self) -> list[BuildOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def succeeded(self) -> list[BuildOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def all_passed(self) -> bool:
        return not self.failed


def build_command(msbuild: str, project: ProjectTarget) -> list[str]:
    return [msbuild, str(project.path), *MSBUILD_ARGS]


def build_succeeded(output: str) -> bool:
    """Check MSBuild output for a success summary."""
    return SUCCESS_MARKER in output or bool(_ZERO_ERRORS.search(output))


def truncate_output(text: str, limit: int = MAX_ERROR_OUTPUT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_NOTE


async def build_project(
    project: ProjectTarget,
    msbuild: str,
    timeout: float = DEFAULT_BUILD_TIMEOUT,
    runner: CommandRunner = run_command,
    attempt: int = 1,
) -> BuildOutcome:
    """Build one project and report the outcome.

    Never raises for a build failure, a timeout or a missing MSBuild.
    """
    name = project.display_name
    started = time.monotonic()

    try:
        result = await runner(
            build_command(msbuild, project),
            cwd=project.path.parent,
            timeout=timeout,
            check=False,
        )
    except CommandTimeoutError:
        duration = round(time.monotonic() - started, 1)
        logger.error("%s: build timeout after %gs", name, timeout)
        return BuildOutcome(name, False, duration, f"Build timeout after {timeout:g}s", attempt)
    except (RtdBuildError, OSError) as e:
        duration = round(time.monotonic() - started, 1)
        logger.error("%s: build could not start: %s", name, e)
        return BuildOutcome(name, False, duration, truncate_output(str(e)), attempt)

    duration = round(time.monotonic() - started, 1)
    output = result.output

    if build_succeeded(output):
        if not result.ok:
            logger.warning("%s: exit code %d but MSBuild reported success", name, result.returncode)
        logger.info("%s: build succeeded in %.1fs", name, duration)
        return BuildOutcome(name, True, duration, attempt=attempt)

    logger.info("%s: build failed in %.1fs (exit %d)", name, duration, result.returncode)
    error = output.strip() or f"MSBuild exited with code {result.returncode} and no output"
    return BuildOutcome(name, False, duration, truncate_output(error), attempt)


def next_retry_batch(
    passes_done: int,
    max_passes: int,
    previous_failures: int,
    current_failures: Sequence[str],
) -> Optional[list[str]]:
    """Decide whether to run another build pass.

    Args:
        passes_done: Number of passes already run
        max_passes: Upper bound on passes, including the first
        previous_failures: Failure count of the pass before; for the first
            pass, the number of projects attempted
        current_failures: Names that failed in the latest pass

    Returns:
        The names to build again, or None to stop
    """
    if not current_failures:
        return None
    if passes_done >= max_passes:
        return None
    if len(current_failures) >= previous_failures:
        return None
    return list(current_failures)


async def run_builds(
    projects: Sequence[ProjectTarget],
    msbuild: str,
    timeout: float = DEFAULT_BUILD_TIMEOUT,
    max_retries: int = 0,
    runner: CommandRunner = run_command,
) -> BuildRun:
    """Build projects in the given order, retrying the failing subset.

    Args:
        projects: Projects in build order
        msbuild: MSBuild executable
        timeout: Seconds allowed per project build
        max_retries: Extra passes allowed over the failing projects
        runner: Command runner

    Returns:
        BuildRun with the last outcome per project and every pass
    """
    run = BuildRun()
    latest: dict[int, BuildOutcome] = {}
    batch = list(range(len(projects)))
    previous_failures = len(batch)
    max_passes = 1 + max(0, max_retries)

    while batch:
        attempt = len(run.passes) + 1
        if attempt > 1:
            logger.info("Retry pass %d for %d project(s)", attempt, len(batch))

        pass_outcomes = []
        for index in batch:
            outcome = await build_project(projects[index], msbuild, timeout, runner, attempt)
            latest[index] = outcome
            pass_outcomes.append(outcome)
        run.passes.append(pass_outcomes)

        failing = [i for i in batch if not latest[i].success]
        retry = next_retry_batch(
            len(run.passes),
            max_passes,
            previous_failures,
            [latest[i].name for i in failing],
        )
        previous_failures = len(failing)
        batch = failing if retry is not None else []

    run.outcomes = [latest[i] for i in sorted(latest)]
    return run
