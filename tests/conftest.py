"""Pytest configuration and fixtures for rtd-build tests."""

import json
from pathlib import Path
from typing import Any, Optional, Sequence

import pytest

from rtd_build.config import Settings
from rtd_build.exceptions import CommandError
from rtd_build.tools import CommandResult


class FakeRunner:
    """Scripted stand-in for ``run_command``.

    Responses are registered per argument prefix; the longest matching
    prefix wins. Several responses for one prefix are returned in order,
    the last one repeating. Unscripted commands succeed with no output.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[tuple[str, ...], Optional[Path]]] = []
        self._rules: dict[tuple[str, ...], list[Any]] = {}

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        raises: Optional[BaseException] = None,
    ) -> "FakeRunner":
        response = raises if raises is not None else (stdout, stderr, returncode)
        self._rules.setdefault(tuple(prefix), []).append(response)
        return self

    def _match(self, args: tuple[str, ...]) -> Optional[tuple[str, ...]]:
        best = None
        for prefix in self._rules:
            if args[: len(prefix)] == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        return best

    async def __call__(
        self,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> CommandResult:
        argv = tuple(str(a) for a in args)
        self.calls.append((argv, cwd))

        prefix = self._match(argv)
        response: Any = ("", "", 0)
        if prefix is not None:
            queue = self._rules[prefix]
            response = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(response, BaseException):
            raise response

        stdout, stderr, returncode = response
        result = CommandResult(argv, returncode, stdout, stderr)
        if check and returncode != 0:
            raise CommandError(result)
        return result

    def ran(self, *prefix: str) -> bool:
        return any(args[: len(prefix)] == prefix for args, _ in self.calls)

    def commands(self, program: str) -> list[tuple[str, ...]]:
        return [args for args, _ in self.calls if args[0] == program]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def msbuild(tmp_path: Path) -> str:
    """An existing file that resolve_msbuild accepts as MSBuild."""
    path = tmp_path / "tools" / "MSBuild.exe"
    path.parent.mkdir()
    path.write_text("")
    return str(path)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    path = tmp_path / "config"
    path.mkdir()
    return path


@pytest.fixture
def write_config(config_dir: Path):
    """Write a build-config profile and return its path."""

    def _write(data: Any, name: Optional[str] = None) -> Path:
        filename = f"build-config-{name}.json" if name else "build-config.json"
        path = config_dir / filename
        path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def settings(tmp_path: Path, config_dir: Path) -> Settings:
    return Settings(config_dir=config_dir, logs_dir=tmp_path / "logs", working_dir=tmp_path)


@pytest.fixture
def sample_config(tmp_path: Path, msbuild: str) -> dict[str, Any]:
    """Two projects, A depends on B, and one Git working copy."""
    return {
        "versionControlPaths": [{"path": str(tmp_path / "repo"), "type": "git"}],
        "projects": [
            {"path": str(tmp_path / "src" / "A" / "A.csproj"), "name": "A", "dependencies": ["B"]},
            {"path": str(tmp_path / "src" / "B" / "B.csproj"), "name": "B"},
        ],
        "msbuildPath": msbuild,
    }
