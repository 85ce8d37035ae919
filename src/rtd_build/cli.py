"""Command-line entry point for rtd-build.

Provides the `rtdb` command: batch builds, build-order preview, profile
listing and the MCP server.
"""

import asyncio
import json
from typing import Optional

import click

from rtd_build import __version__
from rtd_build.config import BuildRequest, Settings, list_profiles
from rtd_build.exceptions import ConfigError
from rtd_build.log import configure_logging
from rtd_build.ui import (
    console,
    create_table,
    error,
    info,
    print_build_order,
    print_build_summary,
    print_markdown,
    success,
    warning,
)
from rtd_build.workflow import plan_build, run_build


@click.group()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON for scripting")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--config-dir",
    envvar="RTD_BUILD_CONFIG_DIR",
    type=click.Path(file_okay=False),
    help="Directory holding build-config*.json (default: ./config)",
)
@click.option(
    "--logs-dir",
    envvar="RTD_BUILD_LOGS_DIR",
    type=click.Path(file_okay=False),
    help="Directory for build reports (default: ./logs)",
)
@click.version_option(__version__, prog_name="rtd-build")
@click.pass_context
def main(
    ctx: click.Context,
    output_json: bool,
    verbose: bool,
    config_dir: Optional[str],
    logs_dir: Optional[str],
) -> None:
    """Batch update and build of C# projects.

    \b
    Examples:
        rtdb build                       # Update VCS, build everything
        rtdb build --config-name prod    # Use config/build-config-prod.json
        rtdb build --dry-run             # Show the build order only
        rtdb mcp serve                   # Run as an MCP server
    """
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["output_json"] = output_json
    ctx.obj["settings"] = Settings.from_env_and_cwd(config_dir=config_dir, logs_dir=logs_dir)


@main.command()
@click.option("--config-name", "-c", help="Profile name (build-config-<name>.json)")
@click.option("--no-config", is_flag=True, help="Do not load a configuration file")
@click.option("--msbuild", "msbuild_path", help="Path to MSBuild.exe")
@click.option("--max-retries", type=click.IntRange(min=0), help="Extra passes over failed projects")
@click.option("--dry-run", is_flag=True, help="Show the build order without running anything")
@click.pass_context
def build(
    ctx: click.Context,
    config_name: Optional[str],
    no_config: bool,
    msbuild_path: Optional[str],
    max_retries: Optional[int],
    dry_run: bool,
) -> None:
    """Update working copies, then build all projects in dependency order.

    Runs: VCS update → dependency order → MSBuild → report

    \b
    Examples:
        rtdb build
        rtdb build --max-retries 2
        rtdb build --config-name nightly --msbuild "C:/BuildTools/MSBuild.exe"
    """
    output_json = ctx.obj.get("output_json", False)
    settings: Settings = ctx.obj["settings"]
    request = BuildRequest(
        use_config=not no_config,
        config_name=config_name,
        msbuild_path=msbuild_path,
        max_retries=max_retries,
    )

    if dry_run:
        _print_order(request, settings, output_json, dry_run=True)
        return

    if not output_json:
        console.print("\n[bold green]🏗️ Batch Build[/bold green]\n")

    result = asyncio.run(run_build(request, settings))

    if output_json:
        outcomes = result.build_run.outcomes if result.build_run else []
        click.echo(json.dumps({
            "passed": result.success,
            "error": result.error,
            "report": str(result.report_path) if result.report_path else None,
            "conflicts": [
                {"type": o.conflict.kind.value, "path": str(o.conflict.path), "message": o.conflict.message}
                for o in result.sync_outcomes
                if o.conflict
            ],
            "projects": [
                {
                    "name": o.name,
                    "success": o.success,
                    "duration": o.duration_seconds,
                    "attempt": o.attempt,
                }
                for o in outcomes
            ],
        }, indent=2))
        raise SystemExit(0 if result.success else 1)

    print_markdown(result.text)
    console.print()

    if result.build_run:
        print_build_summary(result.build_run.outcomes)
        console.print()

    if result.error:
        error(result.error)
    elif result.success:
        success("All projects built")
    else:
        failed = [o.name for o in result.build_run.failed]
        error(f"Build failed: {', '.join(failed)}")

    if any(o.conflict for o in result.sync_outcomes):
        warning("Some working copies need manual intervention")
    if result.report_path:
        info(f"Report: {result.report_path}")

    raise SystemExit(0 if result.success else 1)


@main.command()
@click.option("--config-name", "-c", help="Profile name (build-config-<name>.json)")
@click.pass_context
def order(ctx: click.Context, config_name: Optional[str]) -> None:
    """Show the dependency-resolved build order.

    Always safe - nothing is updated or built.
    """
    request = BuildRequest(config_name=config_name)
    _print_order(request, ctx.obj["settings"], ctx.obj.get("output_json", False))


def _print_order(request: BuildRequest, settings: Settings, output_json: bool, dry_run: bool = False) -> None:
    try:
        ordered = plan_build(request, settings)
    except ConfigError as e:
        if output_json:
            click.echo(json.dumps({"error": str(e)}))
        else:
            error(str(e))
        raise SystemExit(1)

    if output_json:
        click.echo(json.dumps({
            "dry_run": dry_run,
            "projects": [
                {"name": p.display_name, "path": str(p.path), "dependencies": list(p.dependencies)}
                for p in ordered
            ],
        }, indent=2))
        return

    if dry_run:
        console.print("[bold yellow]DRY RUN[/bold yellow] - Would build:\n")
    print_build_order(ordered)


@main.command()
@click.pass_context
def configs(ctx: click.Context) -> None:
    """List the build configuration profiles."""
    settings: Settings = ctx.obj["settings"]
    profiles = list_profiles(settings.config_dir)

    if ctx.obj.get("output_json", False):
        click.echo(json.dumps({"config_dir": str(settings.config_dir), "profiles": profiles}, indent=2))
        return

    if not profiles:
        warning(f"No build-config*.json files in {settings.config_dir}")
        return

    table = create_table(title="Build Profiles")
    table.add_column("Profile", style="cyan")
    table.add_column("File", style="dim")
    for profile in profiles:
        table.add_row(profile["name"], profile["path"])
    console.print(table)


@main.group()
def mcp() -> None:
    """MCP server commands."""
    pass


@mcp.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the MCP server over stdio."""
    from rtd_build.mcp_server import run_server

    run_server(ctx.obj["settings"])


if __name__ == "__main__":
    main()
