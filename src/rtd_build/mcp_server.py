"""MCP Server for rtd-build - Exposes the batch build as MCP tools.

Usage:
    rtdb mcp serve

Claude Code settings.json:
    {
        "mcpServers": {
            "rtd-build": {
                "command": "rtdb",
                "args": ["--config-dir", "C:/work/build/config", "mcp", "serve"]
            }
        }
    }
"""

import json
import logging
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from .config import BuildRequest, Settings, list_profiles
from .exceptions import ConfigError
from .workflow import plan_build, run_build

logger = logging.getLogger(__name__)

# Initialize the MCP server
mcp = FastMCP("RTD Build")

# Resolved once by the CLI before serving
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or resolve the runtime settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env_and_cwd()
    return _settings


def set_settings(settings: Optional[Settings]) -> None:
    global _settings
    _settings = settings


# =============================================================================
# BUILD TOOLS (WRITE)
# =============================================================================


@mcp.tool()
async def build_all_projects(
    useConfig: bool = True,
    configName: str = "",
    versionControlPaths: Optional[list[dict[str, Any]]] = None,
    projects: Optional[list[dict[str, Any]]] = None,
    msbuildPath: str = "",
    maxRetries: Optional[int] = None,
) -> str:
    """Update working copies from Git/TFS, then build every C# project in dependency order.

    With no arguments, everything comes from config/build-config.json.
    Working copies with local changes are skipped, never forced.

    Args:
        useConfig: Load the configuration file (default true)
        configName: Profile name, e.g. "prod" selects build-config-prod.json
        versionControlPaths: Replaces the configured list; items are {"path", "type": "git"|"tfs"}
        projects: Replaces the configured list; items are {"path", "name"?, "dependencies"?}
        msbuildPath: MSBuild.exe to use instead of the discovered one
        maxRetries: Extra passes over the projects that failed

    Returns:
        Markdown build report, including the path of the saved log file
    """
    # Argument names are the camelCase keys of the config file
    request = BuildRequest.from_arguments({
        "useConfig": useConfig,
        "configName": configName or None,
        "versionControlPaths": versionControlPaths,
        "projects": projects,
        "msbuildPath": msbuildPath or None,
        "maxRetries": maxRetries,
    })
    result = await run_build(request, get_settings())
    return result.text


# =============================================================================
# CONFIG TOOLS (READ)
# =============================================================================


@mcp.tool()
def build_order(configName: str = "") -> str:
    """Show the order projects would be built in, without building.

    Args:
        configName: Profile name (default profile if empty)

    Returns:
        JSON string with the ordered projects
    """
    try:
        ordered = plan_build(BuildRequest(config_name=configName or None), get_settings())
    except ConfigError as e:
        return json.dumps({"error": str(e)})

    return json.dumps({
        "config_name": configName or "default",
        "projects": [
            {
                "name": p.display_name,
                "path": str(p.path),
                "dependencies": list(p.dependencies),
            }
            for p in ordered
        ],
    }, indent=2)


@mcp.tool()
def list_build_configs() -> str:
    """List the build configuration profiles.

    Returns:
        JSON string with profile names and files
    """
    settings = get_settings()
    return json.dumps({
        "config_dir": str(settings.config_dir),
        "profiles": list_profiles(settings.config_dir),
    }, indent=2)


# =============================================================================
# SERVER ENTRY POINT
# =============================================================================


def run_server(settings: Optional[Settings] = None) -> None:
    """Run the MCP server with stdio transport."""
    if settings is not None:
        set_settings(settings)
    logger.info("RTD Build MCP server starting (config: %s)", get_settings().config_dir)
    mcp.run()


if __name__ == "__main__":
    from .log import configure_logging

    configure_logging()
    run_server()
