"""Smoke tests for the rtdb command line.

These invoke the click commands in-process. Nothing here runs git, tf or
MSBuild: builds either stop at configuration or only print the order.
"""

import json

import pytest
from click.testing import CliRunner

from rtd_build import __version__
from rtd_build.cli import main

runner = CliRunner()


@pytest.fixture
def cli_args(config_dir, tmp_path):
    """Global options pointing at the test directories."""
    return ["--config-dir", str(config_dir), "--logs-dir", str(tmp_path / "logs")]


class TestCLISmoke:
    """Smoke tests for CLI commands."""

    def test_help(self):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "build" in result.output
        assert "order" in result.output

    def test_version(self):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    @pytest.mark.parametrize(
        "command",
        [
            ["build", "--help"],
            ["order", "--help"],
            ["configs", "--help"],
            ["mcp", "--help"],
            ["mcp", "serve", "--help"],
        ],
    )
    def test_command_help(self, command):
        result = runner.invoke(main, command)
        assert result.exit_code == 0

    def test_negative_retries_rejected(self, cli_args):
        result = runner.invoke(main, [*cli_args, "build", "--max-retries", "-1"])
        assert result.exit_code == 2


class TestOrderCommand:
    def test_json_order(self, cli_args, write_config, sample_config):
        write_config(sample_config)

        result = runner.invoke(main, ["--json", *cli_args, "order"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [p["name"] for p in data["projects"]] == ["B", "A"]
        assert data["dry_run"] is False

    def test_table_order(self, cli_args, write_config, sample_config):
        write_config(sample_config)

        result = runner.invoke(main, [*cli_args, "order"])

        assert result.exit_code == 0
        assert "Build Order" in result.output

    def test_missing_config(self, cli_args):
        result = runner.invoke(main, ["--json", *cli_args, "order", "-c", "prod"])

        assert result.exit_code == 1
        assert "Config not found" in json.loads(result.output)["error"]


class TestBuildCommand:
    def test_dry_run_builds_nothing(self, cli_args, write_config, sample_config, tmp_path):
        write_config(sample_config)

        result = runner.invoke(main, ["--json", *cli_args, "build", "--dry-run"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["dry_run"] is True
        assert [p["name"] for p in data["projects"]] == ["B", "A"]
        assert not (tmp_path / "logs").exists()

    def test_dry_run_banner(self, cli_args, write_config, sample_config):
        write_config(sample_config)

        result = runner.invoke(main, [*cli_args, "build", "--dry-run"])

        assert result.exit_code == 0
        assert "DRY RUN" in result.output

    def test_missing_config_fails_with_report(self, cli_args, tmp_path):
        result = runner.invoke(main, [*cli_args, "build", "--config-name", "prod"])

        assert result.exit_code == 1
        assert "Config not found" in result.output
        assert len(list((tmp_path / "logs").iterdir())) == 1


class TestConfigsCommand:
    def test_lists_profiles(self, cli_args, write_config, sample_config):
        write_config(sample_config)
        write_config(sample_config, name="nightly")

        result = runner.invoke(main, ["--json", *cli_args, "configs"])

        assert result.exit_code == 0
        names = [p["name"] for p in json.loads(result.output)["profiles"]]
        assert names == ["nightly", "default"]

    def test_no_profiles(self, cli_args):
        result = runner.invoke(main, [*cli_args, "configs"])

        assert result.exit_code == 0
        assert "No build-config" in result.output
