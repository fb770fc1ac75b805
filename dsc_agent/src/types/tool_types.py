# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from abc import ABC, abstractmethod
from enum import Enum
from typing import ClassVar
from pydantic import BaseModel


class SystemSignal(str, Enum):
    """Out-of-band signals a tool can raise towards the agent loop."""

    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_FAILED = "TASK_FAILED"
    AWAITING_HUMAN_INPUT = "AWAITING_HUMAN_INPUT"


TERMINAL_SIGNALS = frozenset({SystemSignal.TASK_COMPLETED, SystemSignal.TASK_FAILED})


class ToolResult(BaseModel):
    """
    Outcome of one resolved tool call. Failures are values, never raised:
    `errors` holds the reason and `output` any partial output.
    """

    tool_name: str
    success: bool
    duration: float = 0.0  # seconds; 0 when the call never reached the tool
    output: str | None = None
    warnings: str | None = None
    errors: str | None = None
    base64_image: str | None = None
    system: SystemSignal | None = None

    @property
    def is_terminal(self) -> bool:
        return self.system in TERMINAL_SIGNALS

    def to_plain_string(self) -> str:
        """The text placed in the tool-result turn sent back to the model."""
        if not self.success:
            text = f"Error: {self.errors or 'unknown error'}"
            if self.output:
                text += f"\n{self.output}"
            return text

        text = self.output if self.output is not None else ""
        if self.warnings:
            text += f"\nWarnings: {self.warnings}"
        return text or f"{self.tool_name} completed with no output."

    def __str__(self) -> str:
        status = "ok" if self.success else "failed"
        return f"{self.tool_name} ({status}, {self.duration:.2f}s): {self.to_plain_string()}"


class ToolInterface(BaseModel, ABC):
    """A tool the model can call by name with a JSON object of arguments."""

    TOOL_NAME: ClassVar[str]
    TOOL_DESCRIPTION: ClassVar[str]

    class Config:
        extra = "forbid"

    @abstractmethod
    async def run(self) -> ToolResult:
        """Run the tool with the validated arguments bound to self."""

    @classmethod
    @abstractmethod
    def to_schema(cls) -> dict:
        """Describe the tool as an OpenAI function schema."""
