"""Custom exceptions for rtd-build."""

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from rtd_build.tools import CommandResult


class RtdBuildError(Exception):
    """Base exception for rtd-build errors."""

    pass


class ConfigError(RtdBuildError):
    """Raised when the build configuration cannot be resolved."""

    pass


class ToolNotFoundError(RtdBuildError):
    """Raised when an external tool binary cannot be executed."""

    def __init__(self, tool_name: str, install_hint: str = ""):
        self.tool_name = tool_name
        self.install_hint = install_hint
        message = f"Required tool not found: {tool_name}"
        if install_hint:
            message += f"\n  Install with: {install_hint}"
        super().__init__(message)


class CommandError(RtdBuildError):
    """Raised when an external command exits with a nonzero status."""

    def __init__(self, result: "CommandResult"):
        self.result = result
        message = f"Command failed ({result.returncode}): {' '.join(result.args)}"
        detail = result.output.strip()
        if detail:
            message += f"\n{detail}"
        super().__init__(message)

    @property
    def output(self) -> str:
        return self.result.output


class CommandTimeoutError(RtdBuildError):
    """Raised when an external command runs past its timeout."""

    def __init__(self, args: Sequence[str], timeout: float):
        self.args_list = list(args)
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout:g}s: {' '.join(args)}")
