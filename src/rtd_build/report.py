"""Markdown build reports.

A Report is an immutable value: each stage's output is rendered to a section
and appended with ``with_section``. Rendering depends only on its inputs, so
the same stage outputs always give the same body apart from the header
timestamp.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence
import logging

from rtd_build.builder import BuildOutcome, BuildRun
from rtd_build.config import VcsKind
from rtd_build.vcs import SyncOutcome, conflicts_of

logger = logging.getLogger(__name__)

REPORT_TITLE = "🏗️ Batch Build (build_all_projects)"

_VCS_HEADINGS = {
    VcsKind.GIT: "🔁 Git Update",
    VcsKind.TFS: "🔁 TFS Get Latest",
}


@dataclass(frozen=True)
class Report:
    """Ordered markdown sections of one run."""

    started_at: datetime
    sections: tuple[str, ...] = ()

    def with_section(self, text: str) -> "Report":
        return replace(self, sections=self.sections + (text,))

    @property
    def body(self) -> str:
        return "\n\n".join(self.sections) + "\n"


def _fenced(output: str) -> str:
    return (
        "<details><summary>Error output</summary>\n\n"
        f"```\n{output}\n```\n"
        "</details>"
    )


def render_header(started_at: datetime, working_dir: Path) -> str:
    return "\n".join([
        f"# {REPORT_TITLE}",
        "",
        f"- Started: **{started_at:%Y-%m-%d %H:%M:%S}**",
        f"- Working directory: `{working_dir}`",
    ])


def render_vcs_section(outcomes: Sequence[SyncOutcome]) -> str:
    lines = ["## 1) Version Control Update", ""]

    if not outcomes:
        lines.append("- No version control paths configured, skipped.")
        return "\n".join(lines)

    for outcome in outcomes:
        heading = _VCS_HEADINGS[outcome.target.kind]
        lines.append(f"### {heading}: `{outcome.target.path}`")
        lines.extend(f"- {line}" for line in outcome.lines)
        lines.append("")

    conflicts = conflicts_of(outcomes)
    if conflicts:
        lines.append("### 🔧 Manual Intervention Required (VCS)")
        lines.append("")
        for c in conflicts:
            lines.append(f"- **{c.kind.value.upper()}**: `{c.path}`: {c.message}")

    return "\n".join(lines).rstrip()


def _outcome_lines(outcome: BuildOutcome) -> list[str]:
    icon = "✅" if outcome.success else "❌"
    lines = [f"- {icon} {outcome.name} ({outcome.duration_seconds:.1f}s)"]
    if not outcome.success and outcome.error:
        lines.append("")
        lines.append(_fenced(outcome.error))
        lines.append("")
    return lines


def render_build_section(
    run: BuildRun,
    msbuild: str,
    total_projects: int,
    ordered_projects: Optional[int] = None,
) -> str:
    ordered = total_projects if ordered_projects is None else ordered_projects
    lines = [
        "## 2) Build",
        "",
        f"Total projects: **{total_projects}** (ordered: **{ordered}**)",
        "",
        f"MSBuild: `{msbuild}`",
        "",
    ]

    for number, outcomes in enumerate(run.passes, start=1):
        if number > 1:
            lines.append(f"### Retry pass {number} ({len(outcomes)} project(s))")
            lines.append("")
        for outcome in outcomes:
            lines.extend(_outcome_lines(outcome))

    return "\n".join(lines).rstrip()


def success_rate(run: BuildRun) -> float:
    if not run.outcomes:
        return 0.0
    return 100.0 * len(run.succeeded) / len(run.outcomes)


def render_summary(run: BuildRun) -> str:
    failed = run.failed
    lines = [
        "## 3) Summary",
        "",
        f"- ✅ Succeeded: **{len(run.succeeded)}**",
        f"- ❌ Failed: **{len(failed)}**",
        f"- Success rate: **{success_rate(run):.1f}%**",
    ]
    if failed:
        lines.append("")
        lines.append("### Manual Intervention Required (Build Errors)")
        lines.append("")
        lines.extend(f"- {o.name}" for o in failed)
    return "\n".join(lines)


def render_failure(message: str) -> str:
    return f"## ❌ Run failed\n\n- {message}"


def report_filename(started_at: datetime, suffix: int = 0) -> str:
    stamp = started_at.strftime("%Y-%m-%dT%H-%M-%S-%f")
    extra = f"-{suffix}" if suffix else ""
    return f"build-{stamp}{extra}.md"


def write_report(report: Report, logs_dir: Path) -> Path:
    """Write the report to a new file under ``logs_dir``.

    Existing files are never overwritten; a name collision gets a numeric
    suffix.

    Returns:
        Path of the written file
    """
    logs_dir.mkdir(parents=True, exist_ok=True)

    suffix = 0
    while True:
        path = logs_dir / report_filename(report.started_at, suffix)
        try:
            with path.open("x", encoding="utf-8") as f:
                f.write(report.body)
        except FileExistsError:
            suffix += 1
            continue
        logger.info("Report written to %s", path)
        return path
