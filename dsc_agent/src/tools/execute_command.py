# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import os
import sys
import signal
import asyncio
import logging

from typing import ClassVar, Optional
from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

DANGEROUS_COMMANDS = [
    "rm -rf /",
    "rm -rf ~",
    "rm -rf *",
    ":(){ :|:& };:",
    "mkfs",
    "dd if=/dev/zero",
    "chmod -R 777 /",
    "> /dev/sda",
]

DANGEROUS_GIT_COMMANDS = ["push --force", "reset --hard HEAD~", "clean -fd"]


class ProcessOutput:
    def __init__(self, stdout: str, stderr: str, returncode: int | None):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode

    def combined(self, stderr_prefix: str = "[stderr] ") -> str:
        output = self.stdout
        if self.stderr:
            output += ("\n" if output else "") + f"{stderr_prefix}{self.stderr}"
        return output


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    # Tools start their processes in a new session, so the pid is also the
    # process group id and shell grandchildren receive the signal too
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        pass
    except PermissionError:
        process.send_signal(sig)


async def stop_process(process: asyncio.subprocess.Process, grace: float = 5.0) -> None:
    """Terminate a running process group, killing it if it outlives the grace period."""
    if process.returncode is not None:
        return
    _signal_group(process, signal.SIGTERM)
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
    except asyncio.TimeoutError:
        _signal_group(process, signal.SIGKILL)  # Force kill if terminate didn't work
        await process.wait()


async def run_process(
    process: asyncio.subprocess.Process, timeout: float
) -> ProcessOutput:
    """Wait for a process, terminating (then killing) it when the wait ends early.

    Besides its own timeout, the wait can be interrupted by an outer tool
    timeout or by cancellation of the task; the process is stopped in every
    case before the interruption propagates.

    Raises:
        asyncio.TimeoutError: once the process has been stopped
    """
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except BaseException:
        await asyncio.shield(stop_process(process))
        raise
    return ProcessOutput(
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
        process.returncode,
    )


class Bash(BaseTool):
    """Tool for executing shell commands that are guaranteed to return."""

    TOOL_NAME: ClassVar[str] = "bash"
    TOOL_DESCRIPTION: ClassVar[
        str
    ] = """
Execute a bash command and return its output.

Use this for compiling, running tests, installing packages or inspecting the system.
Commands must return; long-running services are stopped when the timeout elapses.
Destructive commands such as wiping the file system are refused.
"""

    command: str = Field(..., description="The bash command to run", min_length=1)
    working_directory: Optional[str] = Field(
        None,
        description="The directory in which to run the command (defaults to the project directory)",
    )
    timeout: int = Field(
        60000, description="Timeout in milliseconds (default 60000)", gt=0
    )

    async def run(self) -> ToolResult:
        for dangerous in DANGEROUS_COMMANDS:
            if dangerous in self.command:
                return self.fail(f"Refusing to run a dangerous command: {dangerous}")

        cwd = self.resolve_path(self.working_directory or ".")
        try:
            process = await asyncio.create_subprocess_shell(
                self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
                cwd=cwd,
                env={**os.environ, "FORCE_COLOR": "0"},
            )
            result = await run_process(process, self.timeout / 1000)
        except asyncio.TimeoutError:
            return self.fail(f"Command timed out after {self.timeout} ms")
        except OSError as e:
            return self.fail(f"Error executing command: {str(e)}")

        output = result.combined()
        if result.returncode != 0:
            return self.fail(
                f"Command failed (exit code: {result.returncode})", output=output or None
            )
        return self.ok(output or "Command completed successfully.")


class PythonExecute(BaseTool):
    TOOL_NAME: ClassVar[str] = "python_execute"
    TOOL_DESCRIPTION: ClassVar[str] = """
Execute a snippet of Python code in a fresh interpreter and return what it prints.

Only printed output is visible; return values of the last expression are not echoed.
"""

    code: str = Field(..., description="The Python code to execute", min_length=1)
    timeout: int = Field(
        30000, description="Timeout in milliseconds (default 30000)", gt=0
    )

    async def run(self) -> ToolResult:
        try:
            process = await asyncio.create_subprocess_exec(
                sys.executable,
                "-c",
                self.code,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
                cwd=self.workdir,
            )
            result = await run_process(process, self.timeout / 1000)
        except asyncio.TimeoutError:
            return self.fail(f"Python execution timed out after {self.timeout} ms")
        except OSError as e:
            return self.fail(f"Error executing Python: {str(e)}")

        if result.returncode != 0:
            return self.fail(result.stderr or f"Python exited with code {result.returncode}")
        return self.ok(result.combined() or "Code executed successfully.")


class Git(BaseTool):
    TOOL_NAME: ClassVar[str] = "git"
    TOOL_DESCRIPTION: ClassVar[str] = """
Run a git command, e.g. `status`, `add .` or `commit -m "message"` (without the leading `git`).

History-rewriting commands (force push, hard reset to an earlier commit, clean -fd) are refused
and must be run by a human in a terminal.
"""

    command: str = Field(..., description="The git sub-command and its arguments", min_length=1)
    working_directory: Optional[str] = Field(
        None, description="The repository directory (defaults to the project directory)"
    )

    async def run(self) -> ToolResult:
        for dangerous in DANGEROUS_GIT_COMMANDS:
            if dangerous in self.command:
                return self.fail(
                    f"This command needs care; run it yourself in a terminal: git {dangerous}"
                )

        cwd = self.resolve_path(self.working_directory or ".")
        try:
            process = await asyncio.create_subprocess_shell(
                f"git {self.command}",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
                cwd=cwd,
            )
            result = await run_process(process, 60.0)
        except asyncio.TimeoutError:
            return self.fail("Git command timed out after 60 seconds")
        except OSError as e:
            return self.fail(f"Error executing git: {str(e)}")

        if result.returncode != 0:
            return self.fail(result.stderr or result.stdout or "Git command failed")
        return self.ok(result.combined(stderr_prefix="") or "Git command completed.")


class NodeExecute(BaseTool):
    TOOL_NAME: ClassVar[str] = "node_execute"
    TOOL_DESCRIPTION: ClassVar[str] = """
Execute a snippet of JavaScript with Node.js and return what it prints.

Use console.log for anything you need to see.
"""

    code: str = Field(..., description="The JavaScript code to execute", min_length=1)
    timeout: int = Field(
        30000, description="Timeout in milliseconds (default 30000)", gt=0
    )

    async def run(self) -> ToolResult:
        try:
            process = await asyncio.create_subprocess_exec(
                "node",
                "-e",
                self.code,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
                cwd=self.workdir,
            )
            result = await run_process(process, self.timeout / 1000)
        except asyncio.TimeoutError:
            return self.fail(f"Node.js execution timed out after {self.timeout} ms")
        except OSError as e:
            return self.fail(f"Error executing Node.js: {str(e)}")

        if result.returncode != 0:
            return self.fail(result.stderr or f"Node.js exited with code {result.returncode}")
        return self.ok(result.combined() or "Code executed successfully.")


NPM_TIMEOUT_SECONDS = 300


class Npm(BaseTool):
    TOOL_NAME: ClassVar[str] = "npm"
    TOOL_DESCRIPTION: ClassVar[str] = """
Run a package manager command, e.g. `install`, `run build` or `test` (without the leading `npm`).

pnpm is used by default; set use_pnpm to false to use npm. Commands are stopped after 5 minutes.
"""

    command: str = Field(..., description="The package manager sub-command and its arguments", min_length=1)
    working_directory: Optional[str] = Field(
        None, description="The package directory (defaults to the project directory)"
    )
    use_pnpm: bool = Field(True, description="Use pnpm instead of npm (default true)")

    @property
    def package_manager(self) -> str:
        return "pnpm" if self.use_pnpm else "npm"

    async def run(self) -> ToolResult:
        cwd = self.resolve_path(self.working_directory or ".")
        try:
            process = await asyncio.create_subprocess_shell(
                f"{self.package_manager} {self.command}",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
                cwd=cwd,
                env={**os.environ, "FORCE_COLOR": "0"},
            )
            result = await run_process(process, NPM_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            return self.fail(f"{self.package_manager} timed out after {NPM_TIMEOUT_SECONDS} seconds")
        except OSError as e:
            return self.fail(f"Error executing {self.package_manager}: {str(e)}")

        output = result.combined(stderr_prefix="")
        if result.returncode != 0:
            return self.fail(output or f"{self.package_manager} exited with code {result.returncode}")
        return self.ok(output or "Command completed.")
