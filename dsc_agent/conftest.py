# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import json
import inspect
import pytest

from itertools import count
from typing import Any, Callable, Union

from dsc_agent.src.llm.models import get_default_model
from dsc_agent.src.types.llm_types import LLMResponse, Message, TokenUsage, ToolCall


# Optional: Define custom command-line options for your markers
def pytest_addoption(parser):
    parser.addoption(
        "--run-llm",
        action="store_true",
        default=False,
        help="Run tests marked with 'uses_llm'",
    )
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run tests marked with 'slow'",
    )


# Skip tests based on markers unless the corresponding option is provided
def pytest_collection_modifyitems(config, items):
    if not config.getoption("--run-llm"):
        skip_llm = pytest.mark.skip(reason="need --run-llm option to run")
        for item in items:
            if "uses_llm" in item.keywords:
                item.add_marker(skip_llm)
    if not config.getoption("--run-slow"):
        skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


Scripted = Union[LLMResponse, BaseException, Callable[[list[Message]], LLMResponse]]

_call_ids = count(1)


def make_tool_call(name: str, arguments: Union[dict, str, None] = None, id: str | None = None) -> ToolCall:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments or {})
    return ToolCall.create(id=id or f"call_{next(_call_ids)}", name=name, arguments=arguments)


def make_response(
    content: str | None = None,
    tool_calls: list[ToolCall] | None = None,
    prompt_tokens: int = 10,
    completion_tokens: int = 5,
) -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=tool_calls or [],
        finish_reason="tool_calls" if tool_calls else "stop",
        usage=TokenUsage.from_counts(prompt_tokens, completion_tokens),
    )


class FakeLLM:
    """A scripted stand-in for the model client.

    Each request consumes the next scripted item: a response is returned, an
    exception is raised, and a callable (sync or async) is called with the
    messages. Once the
    script runs out, `default` is returned.
    """

    def __init__(self, *script: Scripted, default: LLMResponse | None = None):
        self.model = get_default_model()
        self.script = list(script)
        self.default = default or make_response("Still working on it.")
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def _next(self, messages: list[Message], **kwargs) -> LLMResponse:
        self.calls.append({"messages": list(messages), **kwargs})
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item = item(messages)
            if inspect.isawaitable(item):
                item = await item
        return item

    async def ask(self, messages, system_messages=None) -> LLMResponse:
        return await self._next(messages)

    async def ask_tool(self, messages, tools, tool_choice=None, system_messages=None) -> LLMResponse:
        return await self._next(messages, tools=tools, tool_choice=tool_choice)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_llm() -> Callable[..., FakeLLM]:
    """Factory for scripted model clients."""
    return FakeLLM


@pytest.fixture
def tool_call() -> Callable[..., ToolCall]:
    return make_tool_call


@pytest.fixture
def response() -> Callable[..., LLMResponse]:
    return make_response


@pytest.fixture
def history_dir(tmp_path, monkeypatch):
    """Point the task history at a temporary directory."""
    from dsc_agent.src.config import settings

    directory = tmp_path / "history"
    monkeypatch.setattr(settings, "HISTORY_DIR", directory)
    return directory
