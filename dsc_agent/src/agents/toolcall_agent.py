# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from __future__ import annotations

import inspect
import logging

from typing import Any, Awaitable, Callable, Optional, Union
from pydantic import Field, PrivateAttr

from .base_agent import BaseAgent
from ..tools import ToolCollection, toolkits
from ..types.errors import ToolProtocolError
from ..types.llm_types import Message, Role, ToolCall, ToolChoice, LLMResponse
from ..types.tool_types import ToolResult, SystemSignal
from ..types.agent_types import StepResult
from ..types.event_types import LogLevel

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

HumanInputHandler = Callable[[str], Union[str, Awaitable[str]]]


class ToolCallAgent(BaseAgent):
    """
    An agent whose steps are native tool-calling completions.

    Each step sends the whole memory and the tool schemas to the model,
    appends the assistant turn, then answers every requested call with exactly
    one tool turn before the next request.
    """

    AGENT_NAME = "toolcall"
    SYSTEM_PROMPT = """You are an agent that completes tasks by calling the tools available to you.

Work step by step, inspecting the results of each tool call before deciding what to do next.
When the task is done, or cannot be done, call the `terminate` tool with your final result."""

    tool_choice: ToolChoice = Field(default=ToolChoice.AUTO)

    _tools: ToolCollection = PrivateAttr(default=None)
    _human_input: Optional[HumanInputHandler] = PrivateAttr(default=None)

    def __init__(
        self,
        tools: ToolCollection | None = None,
        human_input: HumanInputHandler | None = None,
        **data,
    ):
        super().__init__(**data)
        self._tools = tools if tools is not None else ToolCollection(toolkits["control"])
        self._human_input = human_input

    @property
    def tools(self) -> ToolCollection:
        return self._tools

    def _check_tool_protocol(self) -> None:
        """Every call of the latest assistant turn must have been answered."""
        messages = self._memory.all()
        last_assistant = None
        for idx in range(len(messages) - 1, -1, -1):
            if messages[idx].role == Role.ASSISTANT:
                last_assistant = idx
                break
        if last_assistant is None or not messages[last_assistant].tool_calls:
            return

        answered = {
            m.tool_call_id for m in messages[last_assistant + 1 :] if m.role == Role.TOOL
        }
        unanswered = [
            tc.id for tc in messages[last_assistant].tool_calls if tc.id not in answered
        ]
        if unanswered:
            raise ToolProtocolError(unanswered)

    def _update_metrics(self, response: LLMResponse) -> None:
        """Update metrics from a completion."""
        if response.usage is None:
            return
        self._metrics.token_usage += response.usage
        self._metrics.cost += self.model.calculate_cost(response.usage)

    async def think(self) -> LLMResponse:
        self._check_tool_protocol()
        messages = self._memory.all()
        if self.tool_choice == ToolChoice.NONE:
            response = await self.llm.ask(messages)
        else:
            response = await self.llm.ask_tool(
                messages, self._tools.to_schemas(), tool_choice=self.tool_choice
            )
        self._update_metrics(response)
        if response.hit_token_limit:
            self.log(LogLevel.WARNING, "The completion was cut off at the token limit")
        return response

    async def execute_tool(self, call: ToolCall) -> ToolResult:
        self._metrics.tool_calls += 1
        self.log(LogLevel.INFO, f"Activating tool: {call.name}")
        result = await self._tools.resolve(call.name, call.arguments)
        if result.success:
            self.log(LogLevel.DEBUG, f"Tool {call.name} completed in {result.duration:.2f}s")
        else:
            self.log(LogLevel.WARNING, f"Tool {call.name} failed: {result.errors}")
        return result

    async def ask_human(self, question: str) -> str:
        answer = self._human_input(question)
        if inspect.isawaitable(answer):
            answer = await answer
        return str(answer)

    async def step(self) -> StepResult:
        response = await self.think()

        if not response.tool_calls:
            self._memory.append(Message.assistant(response.content))
            if response.content:
                self.log(LogLevel.INFO, f"Thought: {response.content[:200]}")
            if self.tool_choice == ToolChoice.REQUIRED:
                self.log(LogLevel.WARNING, "Tool calls were required but none were made")
            return StepResult()

        self._memory.append(Message.assistant(response.content, response.tool_calls))
        self.log(
            LogLevel.INFO,
            f"Selected {len(response.tool_calls)} tool(s): "
            + ", ".join(tc.name for tc in response.tool_calls),
        )

        stop: ToolResult | None = None
        questions: list[str] = []
        for call in response.tool_calls:
            if stop is not None:
                self._memory.append(
                    Message.tool(
                        f"Skipped: not run because {stop.tool_name} ended the task.",
                        tool_call_id=call.id,
                        name=call.name,
                    )
                )
                continue

            result = await self.execute_tool(call)
            self._memory.append(
                Message.tool(
                    result.to_plain_string(),
                    tool_call_id=call.id,
                    name=call.name,
                    base64_image=result.base64_image,
                )
            )

            if result.is_terminal:
                stop = result
            elif result.system == SystemSignal.AWAITING_HUMAN_INPUT:
                if self._human_input is not None:
                    questions.append(result.output or "")
                else:
                    stop = result

        if stop is not None:
            if stop.system == SystemSignal.AWAITING_HUMAN_INPUT:
                self.log(LogLevel.INFO, f"Waiting for human input: {stop.output}")
                return StepResult(should_finish=True, success=True, message=stop.output)
            success = stop.system == SystemSignal.TASK_COMPLETED
            self.log(
                LogLevel.INFO if success else LogLevel.WARNING,
                f"Task {'completed' if success else 'failed'} via {stop.tool_name}",
            )
            return StepResult(should_finish=True, success=success, message=stop.output)

        for question in questions:
            answer = await self.ask_human(question)
            self._memory.append(Message.user(answer))

        return StepResult()
