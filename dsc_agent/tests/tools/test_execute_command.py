# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for the shell, python, node, git and package manager tools."""
import shutil
import asyncio
import pytest

from dsc_agent.src.tools import Bash, Git, NodeExecute, Npm, PythonExecute, ToolCollection, toolkits
from dsc_agent.src.tools.execute_command import ProcessOutput


class TestBash:
    @pytest.mark.asyncio
    async def test_runs_in_the_project_directory(self, tmp_path):
        (tmp_path / "marker.txt").write_text("")
        result = await Bash(command="ls").bind(tmp_path).run()
        assert result.success
        assert "marker.txt" in result.output

    @pytest.mark.asyncio
    async def test_stderr_is_labelled(self, tmp_path):
        result = await Bash(command="echo out; echo err 1>&2").bind(tmp_path).run()
        assert result.success
        assert result.output == "out\n\n[stderr] err\n"

    @pytest.mark.asyncio
    async def test_non_zero_exit_fails_with_output(self, tmp_path):
        result = await Bash(command="echo partial; exit 3").bind(tmp_path).run()
        assert not result.success
        assert result.errors == "Command failed (exit code: 3)"
        assert "partial" in result.output

    @pytest.mark.asyncio
    async def test_dangerous_commands_are_refused(self, tmp_path):
        result = await Bash(command="sudo rm -rf / --no-preserve-root").bind(tmp_path).run()
        assert not result.success
        assert result.errors.startswith("Refusing to run a dangerous command")

    @pytest.mark.asyncio
    async def test_timeout_stops_the_process(self, tmp_path):
        result = await Bash(command="sleep 10", timeout=200).bind(tmp_path).run()
        assert not result.success
        assert result.errors == "Command timed out after 200 ms"


class TestProcessCleanup:
    """Children must not outlive an interrupted tool call."""

    SLOW_COMMAND = "sleep 1 && touch finished.txt"

    @pytest.mark.asyncio
    async def test_tool_timeout_stops_the_shell(self, tmp_path):
        tools = ToolCollection(toolkits["coding"], workdir=tmp_path, timeout=0.3)

        result = await tools.resolve("bash", {"command": self.SLOW_COMMAND, "timeout": 60000})

        assert not result.success
        assert "timed out" in result.errors
        await asyncio.sleep(1.5)
        assert not (tmp_path / "finished.txt").exists()

    @pytest.mark.asyncio
    async def test_cancellation_stops_the_shell(self, tmp_path):
        tools = ToolCollection(toolkits["coding"], workdir=tmp_path)
        call = asyncio.create_task(tools.resolve("bash", {"command": self.SLOW_COMMAND}))
        await asyncio.sleep(0.3)

        call.cancel()
        with pytest.raises(asyncio.CancelledError):
            await call

        await asyncio.sleep(1.5)
        assert not (tmp_path / "finished.txt").exists()


class TestPythonExecute:
    @pytest.mark.asyncio
    async def test_prints_are_returned(self, tmp_path):
        result = await PythonExecute(code="print(6 * 7)").bind(tmp_path).run()
        assert result.success
        assert result.output.strip() == "42"

    @pytest.mark.asyncio
    async def test_exceptions_fail(self, tmp_path):
        result = await PythonExecute(code="raise ValueError('bad')").bind(tmp_path).run()
        assert not result.success
        assert "ValueError" in result.errors


class TestGit:
    @pytest.mark.asyncio
    async def test_force_push_is_refused(self, tmp_path):
        result = await Git(command="push --force origin main").bind(tmp_path).run()
        assert not result.success
        assert "push --force" in result.errors


@pytest.mark.skipif(shutil.which("node") is None, reason="node is not installed")
class TestNodeExecute:
    @pytest.mark.asyncio
    async def test_console_output_is_returned(self, tmp_path):
        result = await NodeExecute(code="console.log(6 * 7)").bind(tmp_path).run()
        assert result.success
        assert result.output.strip() == "42"

    @pytest.mark.asyncio
    async def test_thrown_errors_fail(self, tmp_path):
        result = await NodeExecute(code="throw new Error('bad')").bind(tmp_path).run()
        assert not result.success
        assert "bad" in result.errors


class TestNpm:
    def test_pnpm_is_the_default(self):
        assert Npm(command="install").package_manager == "pnpm"
        assert Npm(command="install", use_pnpm=False).package_manager == "npm"

    @pytest.mark.asyncio
    async def test_missing_package_manager_fails(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path))
        result = await Npm(command="install").bind(tmp_path).run()
        assert not result.success
        assert "pnpm" in result.errors

    @pytest.mark.skipif(shutil.which("npm") is None, reason="npm is not installed")
    @pytest.mark.asyncio
    async def test_npm_version(self, tmp_path):
        result = await Npm(command="--version", use_pnpm=False).bind(tmp_path).run()
        assert result.success
        assert result.output.strip()


def test_coding_toolkit_includes_node_and_npm():
    names = {tool.TOOL_NAME for tool in toolkits["coding"]}
    assert {"node_execute", "npm"} <= names


def test_process_output_combined():
    assert ProcessOutput("a", "", 0).combined() == "a"
    assert ProcessOutput("", "b", 1).combined() == "[stderr] b"
    assert ProcessOutput("a", "b", 1).combined(stderr_prefix="") == "a\nb"
