"""Safe working-copy updates for Git and TFS.

Each target is updated only when it has no local modifications, and a
failed update is rolled back (merge aborted, pending changes undone) before
it is reported as a conflict. Nothing here raises for an expected failure;
every target ends as a SyncOutcome.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence
import logging

from rtd_build.config import VcsKind, VersionControlTarget
from rtd_build.exceptions import CommandError, RtdBuildError
from rtd_build.tools import CommandResult, CommandRunner, resolve_tf, run_command

logger = logging.getLogger(__name__)

TFS_NO_PENDING = "there are no pending changes"
TFS_CONFLICT_MARKER = "conflict"


class SyncStatus(Enum):
    """How an update attempt ended."""

    UPDATED = "updated"
    UP_TO_DATE = "up_to_date"
    SKIPPED = "skipped"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass(frozen=True)
class Conflict:
    """An update that needs a human to finish it."""

    kind: VcsKind
    path: Path
    message: str


@dataclass(frozen=True)
class SyncOutcome:
    """Result of updating one working copy."""

    target: VersionControlTarget
    status: SyncStatus
    lines: tuple[str, ...] = ()
    conflict: Optional[Conflict] = None


class Git:
    """Wrapper for the git operations used by the updater."""

    def __init__(self, path: Path, runner: CommandRunner = run_command):
        self.path = path
        self._run = runner

    async def _git(self, *args: str, check: bool = True) -> CommandResult:
        return await self._run(["git", *args], cwd=self.path, check=check)

    async def has_local_changes(self) -> bool:
        result = await self._git("status", "--porcelain")
        return bool(result.stdout.strip())

    async def head(self) -> str:
        result = await self._git("rev-parse", "--short", "HEAD")
        return result.stdout.strip()

    async def fetch(self) -> None:
        await self._git("fetch", "--all", "--prune")

    async def pull_ff_only(self) -> None:
        await self._git("pull", "--ff-only")

    async def is_merging(self) -> bool:
        result = await self._git("rev-parse", "-q", "--verify", "MERGE_HEAD", check=False)
        return result.ok

    async def merge_abort(self) -> None:
        await self._git("merge", "--abort")


class Tfs:
    """Wrapper for the tf operations used by the updater."""

    def __init__(self, path: Path, tf_path: str = "tf", runner: CommandRunner = run_command):
        self.path = path
        self.tf_path = tf_path
        self._run = runner

    async def _tf(self, *args: str, check: bool = True) -> CommandResult:
        return await self._run([self.tf_path, *args], cwd=self.path, check=check)

    async def has_pending_changes(self) -> bool:
        result = await self._tf("status", "/recursive", "/format:brief")
        text = result.output.strip()
        return bool(text) and not text.lower().startswith(TFS_NO_PENDING)

    async def get_latest(self) -> CommandResult:
        # tf exits nonzero on partial success, the output decides
        return await self._tf("get", "/recursive", "/noprompt", check=False)

    async def undo_all(self) -> None:
        await self._tf("undo", "/recursive", "/noprompt")


async def update_git(target: VersionControlTarget, runner: CommandRunner = run_command) -> SyncOutcome:
    """Fast-forward a Git working copy to its upstream.

    A dirty working copy is left untouched. When the fast-forward fails, any
    merge in progress is aborted and the target is reported as a conflict.
    """
    git = Git(target.path, runner)

    if await git.has_local_changes():
        logger.info("git %s: local changes, skipping update", target.path)
        return SyncOutcome(target, SyncStatus.SKIPPED, ("Local changes present, update skipped.",))

    before = await git.head()
    await git.fetch()

    try:
        await git.pull_ff_only()
    except CommandError as e:
        logger.warning("git %s: fast-forward failed: %s", target.path, e)
        lines = ["Fast-forward not possible or pull conflicted, manual rebase/pull required."]
        try:
            if await git.is_merging():
                await git.merge_abort()
                lines.append("In-progress merge aborted, working copy restored.")
        except RtdBuildError as abort_error:
            logger.error("git %s: merge --abort failed: %s", target.path, abort_error)
            lines.append(f"Merge abort failed: {abort_error}")
        conflict = Conflict(VcsKind.GIT, target.path, "Not a fast-forward or merge conflict")
        return SyncOutcome(target, SyncStatus.CONFLICT, tuple(lines), conflict)

    after = await git.head()
    if before != after:
        logger.info("git %s: %s -> %s", target.path, before, after)
        return SyncOutcome(target, SyncStatus.UPDATED, (f"Updated ({before} → {after})",))
    return SyncOutcome(target, SyncStatus.UP_TO_DATE, ("Already up to date",))


async def update_tfs(
    target: VersionControlTarget,
    tf_path: str = "tf",
    runner: CommandRunner = run_command,
) -> SyncOutcome:
    """Get latest for a TFS workspace.

    A workspace with pending changes is left untouched. A conflict reported
    by ``tf get`` is undone and the target is reported as a conflict.
    """
    tfs = Tfs(target.path, tf_path, runner)

    if await tfs.has_pending_changes():
        logger.info("tfs %s: pending changes, skipping get", target.path)
        return SyncOutcome(target, SyncStatus.SKIPPED, ("Pending changes detected, update skipped.",))

    result = await tfs.get_latest()
    if TFS_CONFLICT_MARKER in result.output.lower():
        logger.warning("tfs %s: conflict during get", target.path)
        lines = ["Conflict during get, pending changes undone. Resolve manually."]
        try:
            await tfs.undo_all()
        except RtdBuildError as undo_error:
            logger.error("tfs %s: undo failed: %s", target.path, undo_error)
            lines.append(f"Undo failed: {undo_error}")
        conflict = Conflict(VcsKind.TFS, target.path, "TFS get conflict")
        return SyncOutcome(target, SyncStatus.CONFLICT, tuple(lines), conflict)

    if not result.ok:
        raise CommandError(result)

    return SyncOutcome(target, SyncStatus.UPDATED, ("Updated",))


async def sync_target(
    target: VersionControlTarget,
    tf_path: str = "tf",
    runner: CommandRunner = run_command,
) -> SyncOutcome:
    """Update one target, turning tool failures into an error outcome."""
    try:
        if target.kind is VcsKind.GIT:
            return await update_git(target, runner)
        return await update_tfs(target, tf_path, runner)
    except (RtdBuildError, OSError) as e:
        logger.error("%s %s: update failed: %s", target.kind.value, target.path, e)
        return SyncOutcome(target, SyncStatus.ERROR, (f"Error: {e}",))


async def sync_targets(
    targets: Sequence[VersionControlTarget],
    runner: CommandRunner = run_command,
    tf_path: Optional[str] = None,
) -> list[SyncOutcome]:
    """Update every target in the order given."""
    if tf_path is None and any(t.kind is VcsKind.TFS for t in targets):
        tf_path = resolve_tf()

    outcomes = []
    for target in targets:
        outcomes.append(await sync_target(target, tf_path or "tf", runner))
    return outcomes


def conflicts_of(outcomes: Sequence[SyncOutcome]) -> list[Conflict]:
    """Collect the conflicts that need manual intervention."""
    return [o.conflict for o in outcomes if o.conflict is not None]
