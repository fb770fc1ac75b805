# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import logging

from typing import Optional
from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import ToolResult, SystemSignal

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class Terminate(BaseTool):
    """Tool for finishing an agent run with a final result."""

    TOOL_NAME = "terminate"
    TOOL_DESCRIPTION = """Finish the task and return the final result.

You MUST call this tool once all the work is done. The result should be a clear and concise
summary of what was done, or the complete answer to the request. Set success to false if the
task could not be completed.
"""

    result: str = Field(
        ...,
        description="The final result or closing message of the task",
        min_length=1,
    )
    success: bool = Field(True, description="Whether the task was completed successfully")

    async def run(self) -> ToolResult:
        result = self.result.strip()
        if not result:
            return self.fail("The result cannot be empty")

        return self.ok(
            result,
            system=SystemSignal.TASK_COMPLETED if self.success else SystemSignal.TASK_FAILED,
        )


class Planning(BaseTool):
    TOOL_NAME = "planning"
    TOOL_DESCRIPTION = """Lay out a step-by-step plan for a complex task.

Use this before starting, and again to mark progress by setting current_step.
"""

    goal: str = Field(..., description="The overall goal to achieve")
    steps: str = Field(..., description="The plan, one step per line")
    current_step: Optional[int] = Field(
        None, description="The 1-based number of the step in progress", ge=1
    )

    async def run(self) -> ToolResult:
        step_lines = [s.strip() for s in self.steps.split("\n") if s.strip()]
        formatted = []
        for i, step in enumerate(step_lines, start=1):
            prefix = "→" if self.current_step == i else " "
            formatted.append(f"{prefix} {i}. {step}")

        return self.ok(f"Plan\n\nGoal: {self.goal}\n\nSteps:\n" + "\n".join(formatted))


class AskHuman(BaseTool):
    TOOL_NAME = "ask_human"
    TOOL_DESCRIPTION = """Ask the user a question when more information or a confirmation is needed."""

    question: str = Field(..., description="The question to ask the user", min_length=1)

    async def run(self) -> ToolResult:
        return self.ok(self.question, system=SystemSignal.AWAITING_HUMAN_INPUT)


class Think(BaseTool):
    TOOL_NAME = "think"
    TOOL_DESCRIPTION = """Write down your analysis of a problem before deciding what to do next.

This has no side effects; the thought is simply recorded in the conversation.
"""

    thought: str = Field(..., description="The reasoning to record")

    async def run(self) -> ToolResult:
        return self.ok(self.thought)
