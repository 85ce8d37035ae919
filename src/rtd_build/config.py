"""Configuration management for rtd-build.

Handles the build configuration profiles (``build-config*.json``), the merge
of caller-supplied fields over a loaded profile, and the runtime settings
that locate the config and logs directories.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional
import json
import logging
import os
import re

from rtd_build.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "build-config.json"
DEFAULT_BUILD_TIMEOUT = 1800.0

# Profile names become part of a file name
_PROFILE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

_PROFILE_FILE_PATTERN = re.compile(r"^build-config(?:-(?P<name>.+))?\.json$")


class VcsKind(Enum):
    """Version control system of a working copy."""

    GIT = "git"
    TFS = "tfs"


@dataclass(frozen=True)
class VersionControlTarget:
    """A working copy to update before building."""

    path: Path
    kind: VcsKind

    @classmethod
    def from_dict(cls, data: Any, index: int) -> "VersionControlTarget":
        where = f"versionControlPaths[{index}]"
        if not isinstance(data, Mapping):
            raise ConfigError(f"{where} must be an object with 'path' and 'type'")
        path = data.get("path")
        if not path or not isinstance(path, str):
            raise ConfigError(f"{where}.path is missing")
        raw_kind = str(data.get("type", "")).lower()
        try:
            kind = VcsKind(raw_kind)
        except ValueError:
            raise ConfigError(
                f"{where}.type must be 'git' or 'tfs' (got {data.get('type')!r})"
            ) from None
        return cls(path=Path(path), kind=kind)


@dataclass(frozen=True)
class ProjectTarget:
    """A project or solution file to build."""

    path: Path
    name: Optional[str] = None
    dependencies: tuple[str, ...] = ()

    @property
    def display_name(self) -> str:
        """Name used in reports, derived from the file name when unset."""
        return self.name or self.path.name

    @classmethod
    def from_dict(cls, data: Any, index: int) -> "ProjectTarget":
        where = f"projects[{index}]"
        if not isinstance(data, Mapping):
            raise ConfigError(f"{where} must be an object with a 'path'")
        path = data.get("path")
        if not path or not isinstance(path, str):
            raise ConfigError(f"{where}.path is missing")
        name = data.get("name")
        if name is not None and not isinstance(name, str):
            raise ConfigError(f"{where}.name must be a string (got {name!r})")
        deps = data.get("dependencies") or []
        if not isinstance(deps, list):
            raise ConfigError(f"{where}.dependencies must be a list of project names")
        return cls(
            path=Path(path),
            name=name or None,
            dependencies=tuple(str(d) for d in deps),
        )


@dataclass
class BuildRequest:
    """Caller-supplied fields for one build run.

    Every field except ``use_config`` is optional; a field left as None falls
    back to the loaded configuration file.
    """

    use_config: bool = True
    config_name: Optional[str] = None
    version_control_paths: Optional[list[dict[str, Any]]] = None
    projects: Optional[list[dict[str, Any]]] = None
    msbuild_path: Optional[str] = None
    max_retries: Optional[int] = None
    build_timeout: Optional[float] = None

    _KEYS = {
        "useConfig": "use_config",
        "configName": "config_name",
        "versionControlPaths": "version_control_paths",
        "msbuildPath": "msbuild_path",
        "maxRetries": "max_retries",
        "buildTimeoutSeconds": "build_timeout",
    }

    @classmethod
    def from_arguments(cls, arguments: Optional[Mapping[str, Any]]) -> "BuildRequest":
        """Build a request from tool arguments.

        Accepts the camelCase keys of the JSON surface as well as the
        snake_case field names. Unknown keys are ignored.
        """
        if not arguments:
            return cls()

        values: dict[str, Any] = {}
        for key, value in arguments.items():
            attr = cls._KEYS.get(key, key)
            if attr in cls.__dataclass_fields__:
                values[attr] = value

        if values.get("use_config") is None:
            values.pop("use_config", None)
        return cls(**values)


@dataclass(frozen=True)
class BuildConfiguration:
    """Resolved inputs for a single build run."""

    projects: tuple[ProjectTarget, ...]
    version_control: tuple[VersionControlTarget, ...] = ()
    msbuild_path: Optional[str] = None
    max_retries: int = 0
    build_timeout: float = DEFAULT_BUILD_TIMEOUT
    source: Optional[Path] = None


@dataclass
class Settings:
    """Runtime locations for rtd-build.

    Configuration precedence (highest to lowest):
    1. CLI flags (--config-dir, --logs-dir)
    2. Environment variables (RTD_BUILD_CONFIG_DIR, RTD_BUILD_LOGS_DIR)
    3. ``config/`` and ``logs/`` under the working directory
    """

    config_dir: Path
    logs_dir: Path
    working_dir: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_env_and_cwd(
        cls,
        config_dir: Optional[str] = None,
        logs_dir: Optional[str] = None,
    ) -> "Settings":
        cwd = Path.cwd().resolve()

        if config_dir:
            resolved_config = Path(config_dir).resolve()
        elif os.environ.get("RTD_BUILD_CONFIG_DIR"):
            resolved_config = Path(os.environ["RTD_BUILD_CONFIG_DIR"]).resolve()
        else:
            resolved_config = cwd / "config"

        if logs_dir:
            resolved_logs = Path(logs_dir).resolve()
        elif os.environ.get("RTD_BUILD_LOGS_DIR"):
            resolved_logs = Path(os.environ["RTD_BUILD_LOGS_DIR"]).resolve()
        else:
            resolved_logs = cwd / "logs"

        return cls(config_dir=resolved_config, logs_dir=resolved_logs, working_dir=cwd)


def profile_path(config_dir: Path, config_name: Optional[str] = None) -> Path:
    """Map a profile name to its configuration file.

    Raises:
        ConfigError: If the name cannot be used in a file name
    """
    if not config_name:
        return config_dir / DEFAULT_CONFIG_FILE
    if not _PROFILE_NAME_PATTERN.match(config_name) or ".." in config_name:
        raise ConfigError(f"Invalid config name: {config_name!r}")
    return config_dir / f"build-config-{config_name}.json"


def list_profiles(config_dir: Path) -> list[dict[str, str]]:
    """List the configuration profiles available in a directory."""
    if not config_dir.is_dir():
        return []

    profiles = []
    for path in sorted(config_dir.glob("build-config*.json")):
        match = _PROFILE_FILE_PATTERN.match(path.name)
        if match:
            profiles.append({"name": match.group("name") or "default", "path": str(path)})
    return profiles


def load_config_file(path: Path, config_name: Optional[str] = None) -> dict[str, Any]:
    """Read and parse a configuration file.

    Raises:
        ConfigError: If the file is missing or is not a JSON object
    """
    if not path.is_file():
        hint = f" (configName={config_name!r})" if config_name else ""
        raise ConfigError(f"Config not found: {path}{hint}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config JSON parse error: {path} ({e})") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a JSON object: {path}")
    return data


def _pick(request_value: Any, loaded: Mapping[str, Any], key: str) -> Any:
    """Caller value wins when present, whole field at a time."""
    if request_value is not None:
        return request_value
    return loaded.get(key)


def _parse_max_retries(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"maxRetries must be a non-negative integer (got {value!r})")
    return value


def _parse_timeout(value: Any) -> float:
    if value is None:
        return DEFAULT_BUILD_TIMEOUT
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"buildTimeoutSeconds must be a positive number (got {value!r})")
    return float(value)


def resolve_config(request: BuildRequest, config_dir: Path) -> BuildConfiguration:
    """Resolve the configuration for one run.

    Loads the selected profile unless ``request.use_config`` is false, then
    lets every field the caller supplied replace the loaded one. List fields
    are replaced wholesale, never concatenated.

    Raises:
        ConfigError: If the file is missing or invalid, or no projects remain
    """
    loaded: dict[str, Any] = {}
    source = None
    if request.use_config:
        source = profile_path(config_dir, request.config_name)
        loaded = load_config_file(source, request.config_name)
        logger.debug("Loaded build config from %s", source)

    raw_vcs = _pick(request.version_control_paths, loaded, "versionControlPaths") or []
    raw_projects = _pick(request.projects, loaded, "projects") or []

    if not isinstance(raw_vcs, list):
        raise ConfigError("versionControlPaths must be a list")
    if not isinstance(raw_projects, list):
        raise ConfigError("projects must be a list")

    projects = tuple(ProjectTarget.from_dict(p, i) for i, p in enumerate(raw_projects))
    if not projects:
        where = f" in {source}" if source else ""
        raise ConfigError(
            f"`projects` is empty{where}. "
            f"Add projects to {DEFAULT_CONFIG_FILE} or pass them explicitly."
        )

    return BuildConfiguration(
        projects=projects,
        version_control=tuple(
            VersionControlTarget.from_dict(v, i) for i, v in enumerate(raw_vcs)
        ),
        msbuild_path=_pick(request.msbuild_path, loaded, "msbuildPath") or None,
        max_retries=_parse_max_retries(_pick(request.max_retries, loaded, "maxRetries")),
        build_timeout=_parse_timeout(
            _pick(request.build_timeout, loaded, "buildTimeoutSeconds")
        ),
        source=source,
    )
