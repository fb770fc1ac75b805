# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json
import time
import asyncio
import logging

from pathlib import Path
from typing import ClassVar, Iterable
from pydantic import PrivateAttr, ValidationError

from ..config import settings
from ..types.tool_types import ToolInterface, ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


# Every concrete tool class, keyed by its TOOL_NAME.
tool_registry: dict[str, type[ToolInterface]] = {}


def _describe_validation_error(e: ValidationError) -> str:
    problems = []
    for err in e.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "arguments"
        problems.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(problems)


class BaseTool(ToolInterface):
    """Abstract base class for all tools"""

    # Class variables for tool metadata
    TOOL_NAME: ClassVar[str]
    TOOL_DESCRIPTION: ClassVar[str]

    _workdir: Path = PrivateAttr(default_factory=Path.cwd)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        # Skip registering the BaseTool class itself.
        if cls.__name__ != "BaseTool":
            tool_registry[cls.TOOL_NAME] = cls

    @classmethod
    def to_schema(cls) -> dict:
        """The OpenAI function-calling schema for this tool."""
        parameters = cls.model_json_schema()
        parameters.pop("title", None)
        parameters.pop("description", None)
        return {
            "type": "function",
            "function": {
                "name": cls.TOOL_NAME,
                "description": cls.TOOL_DESCRIPTION.strip(),
                "parameters": parameters,
            },
        }

    @property
    def workdir(self) -> Path:
        return self._workdir

    def bind(self, workdir: Path | str | None) -> "BaseTool":
        if workdir is not None:
            self._workdir = Path(workdir).expanduser()
        return self

    def resolve_path(self, path: str) -> Path:
        """Resolve a possibly-relative path against the tool's working directory."""
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = self._workdir / p
        return p

    def ok(self, output: str | None = None, **kwargs) -> ToolResult:
        return ToolResult(tool_name=self.TOOL_NAME, success=True, output=output, **kwargs)

    def fail(self, errors: str, **kwargs) -> ToolResult:
        return ToolResult(tool_name=self.TOOL_NAME, success=False, errors=errors, **kwargs)


class ToolCollection:
    """
    The set of tools offered to one agent.

    The collection only holds tool classes; every call validates a fresh
    instance, so one collection may be shared by concurrently running loops.
    Resolution never raises: unknown tools, invalid arguments, tool faults and
    timeouts all come back as failed ToolResults.
    """

    def __init__(
        self,
        tools: Iterable[type[BaseTool]] = (),
        workdir: Path | str | None = None,
        timeout: float | None = None,
    ):
        self._tools: dict[str, type[BaseTool]] = {}
        self.workdir = Path(workdir).expanduser() if workdir is not None else None
        self.timeout = timeout
        for tool in tools:
            self.register(tool)

    def register(self, tool: type[BaseTool]) -> "ToolCollection":
        self._tools[tool.TOOL_NAME] = tool
        return self

    def get(self, name: str) -> type[BaseTool] | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def to_schemas(self) -> list[dict]:
        return [tool.to_schema() for tool in self._tools.values()]

    async def resolve(self, name: str, arguments: dict | str | None = None) -> ToolResult:
        """Validate the arguments, run the named tool and time it."""
        tool_cls = self._tools.get(name)
        if tool_cls is None:
            logger.warning(f"Tool not found: {name}")
            return ToolResult(tool_name=name, success=False, errors=f"Tool not found: {name}")

        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                return ToolResult(
                    tool_name=name,
                    success=False,
                    errors=f"Could not parse arguments for {name} as JSON: {e}",
                )
        arguments = arguments or {}
        if not isinstance(arguments, dict):
            return ToolResult(
                tool_name=name,
                success=False,
                errors=f"Arguments for {name} must be a JSON object",
            )

        try:
            tool = tool_cls.model_validate(arguments).bind(self.workdir)
        except ValidationError as e:
            return ToolResult(
                tool_name=name,
                success=False,
                errors=f"Invalid arguments for {name}: {_describe_validation_error(e)}",
            )

        timeout = self.timeout if self.timeout is not None else settings.TOOL_TIMEOUT
        start_time = time.time()
        try:
            async with asyncio.timeout(timeout):
                result = await tool.run()
        except TimeoutError:
            logger.warning(f"Tool {name} timed out after {timeout}s")
            return ToolResult(
                tool_name=name,
                success=False,
                errors=f"Tool {name} timed out after {timeout} seconds",
                duration=time.time() - start_time,
            )
        except Exception as e:
            logger.error(f"Error during tool execution: {str(e)}")
            return ToolResult(
                tool_name=name,
                success=False,
                errors=f"Tool runtime error: {str(e)}",
                duration=time.time() - start_time,
            )

        result.duration = time.time() - start_time
        return result
