"""Tests for the ToolLink command-line interface."""

import json
import sys
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from toollink import __version__
from toollink.cli.main import cli
from toollink.validation.config import Config

STUB_PROVIDER = Path(__file__).parent / "stub_provider.py"


@pytest.fixture
def runner(tmp_path, monkeypatch):
    """CliRunner with config isolated to a temporary home and project."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.setattr(Config, "GLOBAL_CONFIG_DIR", tmp_path / "home")
    monkeypatch.chdir(project)
    return CliRunner()


def add_stub(runner, name="stub", *flags):
    return runner.invoke(cli, ["servers", "add", name, sys.executable, str(STUB_PROVIDER), *flags])


class TestBasics:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_servers(self, runner):
        result = runner.invoke(cli, ["servers", "list"])

        assert result.exit_code == 0
        assert "No MCP servers configured" in result.output


class TestServers:
    def test_add_connects_and_saves(self, runner, tmp_path):
        result = add_stub(runner)

        assert result.exit_code == 0, result.output
        assert "Saved MCP server 'stub'" in result.output
        assert "4 tools" in result.output

        saved = yaml.safe_load((tmp_path / "project" / ".toollink" / "config.yaml").read_text())
        assert saved["mcp"]["servers"]["stub"]["args"] == [str(STUB_PROVIDER)]

    def test_add_passes_through_provider_flags(self, runner):
        result = add_stub(runner, "prefixed", "--prefix", "p_")

        assert result.exit_code == 0, result.output
        servers = Config.load().get_servers()
        assert servers["prefixed"].args == [str(STUB_PROVIDER), "--prefix", "p_"]

    def test_add_with_env(self, runner):
        result = runner.invoke(
            cli,
            ["servers", "add", "--env", "TOKEN=abc", "stub", sys.executable, str(STUB_PROVIDER)],
        )

        assert result.exit_code == 0, result.output
        assert Config.load().get_servers()["stub"].env == {"TOKEN": "abc"}

    def test_add_bad_env(self, runner):
        result = runner.invoke(cli, ["servers", "add", "--env", "NOEQUALS", "stub", "cmd"])

        assert result.exit_code != 0

    def test_add_keeps_config_when_connection_fails(self, runner):
        result = runner.invoke(cli, ["servers", "add", "broken", "/nonexistent/toollink-provider"])

        assert result.exit_code == 0
        assert "Connection failed" in result.output
        assert "broken" in Config.load().get_servers()

    def test_list(self, runner):
        add_stub(runner)

        result = runner.invoke(cli, ["servers", "list"])

        assert result.exit_code == 0
        assert "stub" in result.output

    def test_remove(self, runner):
        add_stub(runner)

        result = runner.invoke(cli, ["servers", "remove", "stub"])
        assert result.exit_code == 0
        assert "stub" not in Config.load().get_servers()

        result = runner.invoke(cli, ["servers", "remove", "stub"])
        assert result.exit_code == 1


class TestTools:
    def test_lists_tools(self, runner):
        add_stub(runner)
        runner.invoke(cli, ["servers", "add", "broken", "/nonexistent/toollink-provider"])

        result = runner.invoke(cli, ["tools"])

        assert result.exit_code == 0, result.output
        assert "stub (4 tools)" in result.output
        assert "echoes input" in result.output
        assert "broken" in result.output

    def test_json_schemas(self, runner):
        add_stub(runner)

        result = runner.invoke(cli, ["tools", "--json"])

        assert result.exit_code == 0, result.output
        schemas = json.loads(result.output)
        assert schemas[0]["type"] == "function"
        assert schemas[0]["function"]["name"] == "echo"

    def test_no_servers(self, runner):
        result = runner.invoke(cli, ["tools"])

        assert result.exit_code == 0
        assert "No MCP servers configured" in result.output


class TestCall:
    def test_call_tool(self, runner):
        add_stub(runner)

        result = runner.invoke(cli, ["call", "echo", "--args", '{"text": "hi"}'])

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "hi"

    def test_unknown_tool(self, runner):
        add_stub(runner)

        result = runner.invoke(cli, ["call", "missing"])

        assert result.exit_code == 1
        assert "missing" in result.output

    def test_invalid_json_args(self, runner):
        result = runner.invoke(cli, ["call", "echo", "--args", "{not json"])

        assert result.exit_code == 2

    def test_args_must_be_object(self, runner):
        result = runner.invoke(cli, ["call", "echo", "--args", "[1, 2]"])

        assert result.exit_code == 2
