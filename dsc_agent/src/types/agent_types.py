# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from .llm_types import TokenUsage
from .event_types import LogEvent


class AgentState(str, Enum):
    """Lifecycle of one agent step loop."""

    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"


class TaskStatus(str, Enum):
    """Possible states of a supervised task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepResult(BaseModel):
    """Outcome of a single think/act step."""

    should_finish: bool = False
    success: bool = True
    message: Optional[str] = None


class AgentMetrics(BaseModel):
    """Metrics about the agent execution."""

    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = 0.0
    steps: int = 0
    tool_calls: int = 0

    @property
    def duration_seconds(self) -> Optional[float]:
        """Calculate execution duration if completed."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None


class TaskResult(BaseModel):
    """
    The handle returned to supervisors and pipelines for one finished loop.

    A task always yields a final message and its full log trail, whether it
    succeeded or not.
    """

    success: bool
    result: str = Field(description="The final message of the loop, or the fault")
    usage: TokenUsage = Field(default_factory=TokenUsage)
    logs: list[LogEvent] = Field(default_factory=list)
    model_id: Optional[str] = None
    cost: float = 0.0
    steps: int = 0
    duration_seconds: Optional[float] = None

    class Config:
        protected_namespaces = ()

    def __str__(self) -> str:
        parts = [
            "<TASK_RESULT>",
            f"<STATUS>{'SUCCESS' if self.success else 'FAILURE'}</STATUS>",
            f"<RESULT>\n{self.result}\n</RESULT>",
        ]
        if self.duration_seconds is not None:
            parts.append(
                f"<METRICS>Completed in {self.duration_seconds:.2f}s "
                f"over {self.steps} steps "
                f"using {self.usage.total_tokens} tokens "
                f"(${self.cost:.4f})</METRICS>"
            )
        parts.append("</TASK_RESULT>")
        return "\n".join(parts)
