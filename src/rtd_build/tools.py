"""External tool discovery and execution for rtd-build.

Locates git, the Team Foundation command-line client (tf) and MSBuild, and
runs them as asyncio subprocesses. Commands are always awaited one at a time.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence
import asyncio
import logging
import shutil
import sys

from rtd_build.exceptions import (
    CommandError,
    CommandTimeoutError,
    RtdBuildError,
    ToolNotFoundError,
)

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

_VS_ROOTS = [
    r"C:\Program Files\Microsoft Visual Studio\2022\Community",
    r"C:\Program Files\Microsoft Visual Studio\2022\Professional",
    r"C:\Program Files\Microsoft Visual Studio\2022\Enterprise",
]

MSBUILD_CANDIDATES = [rf"{root}\MSBuild\Current\Bin\MSBuild.exe" for root in _VS_ROOTS] + [
    r"C:\Program Files (x86)\Microsoft Visual Studio\2019\BuildTools\MSBuild\Current\Bin\MSBuild.exe",
]

_TEAM_EXPLORER = r"Common7\IDE\CommonExtensions\Microsoft\TeamFoundation\Team Explorer\TF.exe"

TF_CANDIDATES = [rf"{root}\{_TEAM_EXPLORER}" for root in _VS_ROOTS] + [
    rf"C:\Program Files (x86)\Microsoft Visual Studio\2019\Community\{_TEAM_EXPLORER}",
]

INSTALL_HINTS = {
    "git": "https://git-scm.com/downloads",
    "tf": "Visual Studio Team Explorer (TF.exe)",
    "msbuild": "Visual Studio Build Tools (MSBuild.exe)",
}


@dataclass(frozen=True)
class CommandResult:
    """Completed external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        """Combined stdout and stderr, in that order."""
        return self.stdout + self.stderr

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[..., Awaitable[CommandResult]]


def _find_binary(names: Sequence[str], candidates: Sequence[str] = ()) -> Optional[str]:
    """Find a binary on PATH first, then in well-known install locations.

    Args:
        names: Binary names to look up on PATH, in order
        candidates: Absolute paths to try when PATH has no match

    Returns:
        Path to the binary if found, None otherwise
    """
    for name in names:
        found = shutil.which(name)
        if found:
            return found

    for candidate in candidates:
        if Path(candidate).is_file():
            return candidate

    return None


def resolve_msbuild(requested: Optional[str] = None) -> str:
    """Resolve the MSBuild executable to use.

    A requested path wins when it exists. Otherwise the Visual Studio install
    locations are tried before PATH, and the bare ``MSBuild.exe`` name is the
    last resort so a missing tool surfaces as a per-project build error.
    """
    if requested and Path(requested).is_file():
        return requested

    for candidate in MSBUILD_CANDIDATES:
        if Path(candidate).is_file():
            return candidate

    found = _find_binary(["MSBuild.exe", "msbuild"])
    if found:
        return found

    if requested:
        logger.warning("MSBuild not found at %s, falling back to MSBuild.exe", requested)
    return "MSBuild.exe"


def resolve_tf() -> str:
    """Resolve the TFS command-line client."""
    if not IS_WINDOWS:
        return "tf"
    return _find_binary([], TF_CANDIDATES) or "tf"


def _tool_key(program: str) -> str:
    stem = Path(program).stem.lower()
    return stem if stem in INSTALL_HINTS else program


async def run_command(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
    check: bool = True,
) -> CommandResult:
    """Run an external command and wait for it to finish.

    Args:
        args: Program and arguments
        cwd: Working directory (defaults to current)
        timeout: Seconds before the process is killed
        check: Raise CommandError on a nonzero exit status

    Returns:
        CommandResult with decoded output

    Raises:
        ToolNotFoundError: If the program cannot be executed
        CommandTimeoutError: If the timeout expires
        CommandError: If check is set and the command fails
    """
    argv = [str(a) for a in args]
    logger.debug("run: %s (cwd=%s)", " ".join(argv), cwd)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        if cwd and not Path(cwd).is_dir():
            raise RtdBuildError(f"Working directory not found: {cwd}") from e
        key = _tool_key(argv[0])
        raise ToolNotFoundError(argv[0], INSTALL_HINTS.get(key, "")) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise CommandTimeoutError(argv, timeout or 0) from e

    result = CommandResult(
        args=tuple(argv),
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )

    if check and not result.ok:
        raise CommandError(result)
    return result
