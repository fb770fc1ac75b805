# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from __future__ import annotations

import asyncio
import logging

from abc import ABC, abstractmethod
from uuid import uuid4
from typing import Any, ClassVar, Optional
from datetime import datetime
from pydantic import BaseModel, Field, PrivateAttr

from .memory import Memory
from .stuck_detector import StuckDetector, STUCK_PROMPT
from ..config import settings
from ..events import LogChannel
from ..llm.api import LLM
from ..llm.models import ModelInfo, ModelSession
from ..types.errors import AgentStateError
from ..types.llm_types import Message, Role, TokenUsage
from ..types.agent_types import AgentState, AgentMetrics, StepResult, TaskResult
from ..types.event_types import LogEvent, LogLevel

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class BaseAgent(BaseModel, ABC):
    """
    Abstract base class for all agents.

    An agent owns one bounded step loop: a state machine over
    idle -> running -> finished | error, a conversation memory and a log
    trail. The model is chosen by an explicit `ModelSession` (or an injected
    client); nothing about the model is read from process-wide state.
    """

    # Required class-level attributes
    AGENT_NAME: ClassVar[str] = "agent"
    SYSTEM_PROMPT: ClassVar[str] = "You are a helpful assistant."

    name: str = Field(default="", description="Display name used in logs")
    description: str = ""
    system_prompt: Optional[str] = Field(
        default=None, description="Overrides the class SYSTEM_PROMPT when set"
    )
    max_steps: int = Field(default_factory=lambda: settings.MAX_STEPS, ge=1)

    # Private agent attributes (not arguments)
    _id: str = PrivateAttr(default_factory=lambda: f"agent_{uuid4().hex[:8]}")
    _state: AgentState = PrivateAttr(default=AgentState.IDLE)
    _step_count: int = PrivateAttr(default=0)
    _memory: Memory = PrivateAttr(default=None)
    _logs: list[LogEvent] = PrivateAttr(default_factory=list)
    _channel: Optional[LogChannel] = PrivateAttr(default=None)
    _session: Optional[ModelSession] = PrivateAttr(default=None)
    _llm: Optional[Any] = PrivateAttr(default=None)
    _stuck_detector: StuckDetector = PrivateAttr(default_factory=StuckDetector)
    _metrics: AgentMetrics = PrivateAttr(default_factory=AgentMetrics)
    _final_success: bool = PrivateAttr(default=True)
    _owns_llm: bool = PrivateAttr(default=False)

    class Config:
        arbitrary_types_allowed = True

    def __init__(
        self,
        session: ModelSession | None = None,
        llm: Any | None = None,
        channel: LogChannel | None = None,
        stuck_detector: StuckDetector | None = None,
        **data,
    ):
        super().__init__(**data)
        if not self.name:
            self.name = self.AGENT_NAME

        self._session = session
        self._llm = llm
        self._channel = channel
        self._memory = Memory(max_messages=settings.MEMORY_MAX_MESSAGES)
        if stuck_detector is not None:
            self._stuck_detector = stuck_detector

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._id

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def step_count(self) -> int:
        return self._step_count

    @property
    def memory(self) -> Memory:
        return self._memory

    @property
    def logs(self) -> list[LogEvent]:
        return list(self._logs)

    @property
    def metrics(self) -> AgentMetrics:
        return self._metrics

    @property
    def usage(self) -> TokenUsage:
        return self._metrics.token_usage

    @property
    def session(self) -> ModelSession:
        if self._session is None:
            self._session = ModelSession.create(settings.MODEL)
        return self._session

    @property
    def model(self) -> ModelInfo:
        if self._llm is not None and getattr(self._llm, "model", None) is not None:
            return self._llm.model
        return self.session.model

    @property
    def llm(self) -> Any:
        """The model client, built from the session on first use.

        Raises:
            LLMConfigError: if the model's API key is not configured
        """
        if self._llm is None:
            self._llm = LLM(self.session)
            self._owns_llm = True
        return self._llm

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def set_channel(self, channel: LogChannel | None) -> None:
        self._channel = channel

    def log(self, level: LogLevel, message: str) -> LogEvent:
        """Record a progress event, mirror it to the module logger and push
        it to the log channel, if any."""
        event = LogEvent(level=level, message=message, source=self._id)
        self._logs.append(event)
        logger.log(level.logging_level, f"[{self.name}] {message}")
        if self._channel is not None:
            self._channel.emit(event)
        return event

    # ------------------------------------------------------------------
    # The step loop
    # ------------------------------------------------------------------

    @abstractmethod
    async def step(self) -> StepResult:
        """Execute a single think/act step."""
        pass

    def handle_stuck_state(self) -> None:
        self.log(LogLevel.WARNING, "Repeated responses detected; asking the model to change strategy")
        # Only the latest nudge is kept
        self._memory.remove(lambda m: m.role == Role.SYSTEM and m.content == STUCK_PROMPT)
        self._memory.append(Message.system(STUCK_PROMPT))

    def budget_exhausted_message(self) -> str:
        return f"Max steps ({self.max_steps}) reached. The task may be incomplete."

    async def run(self, request: str) -> str:
        """
        Drive the loop until a step finishes it, the step budget runs out, or
        a fault occurs.

        Returns:
            The final message, or the budget-exhausted message

        Raises:
            AgentStateError: if the agent is not idle
            Exception: any fault from the model client or the loop itself,
                after moving the agent to the error state
        """
        # No await before this point: a concurrent second call must fail here.
        if self._state != AgentState.IDLE:
            raise AgentStateError(
                f"Agent {self.name} cannot run while in state {self._state.value}"
            )
        self._state = AgentState.RUNNING
        self._metrics = AgentMetrics(start_time=datetime.now())
        self._final_success = True

        try:
            self.log(LogLevel.INFO, f"{self.name} started")
            self._memory.append(Message.system(self.system_prompt or self.SYSTEM_PROMPT))
            self._memory.append(Message.user(request))

            while self._step_count < self.max_steps and self._state == AgentState.RUNNING:
                self._step_count += 1
                self._metrics.steps = self._step_count
                self.log(LogLevel.INFO, f"Step {self._step_count}/{self.max_steps}")

                if self._stuck_detector.is_stuck(self._memory.all()):
                    self.handle_stuck_state()

                result = await self.step()
                if result.should_finish:
                    self._state = AgentState.FINISHED
                    self._final_success = result.success
                    message = result.message or ""
                    self.log(LogLevel.INFO, f"{self.name} finished")
                    return message

            self._state = AgentState.FINISHED
            message = self.budget_exhausted_message()
            self.log(LogLevel.WARNING, message)
            return message

        except asyncio.CancelledError:
            self._state = AgentState.ERROR
            self.log(LogLevel.ERROR, f"{self.name} was cancelled")
            raise
        except Exception as e:
            self._state = AgentState.ERROR
            self.log(LogLevel.ERROR, f"{self.name} failed: {e}")
            raise
        finally:
            self._metrics.end_time = datetime.now()

    async def close(self) -> None:
        """Release the model client if this agent built it."""
        if self._owns_llm and self._llm is not None:
            await self._llm.close()
            self._llm = None
            self._owns_llm = False

    def reset(self) -> None:
        """Return to idle: clears memory, step counter, logs and usage."""
        self._memory.clear()
        self._step_count = 0
        self._state = AgentState.IDLE
        self._logs = []
        self._metrics = AgentMetrics(start_time=datetime.now())
        self._final_success = True

    def clear_memory(self) -> None:
        self.reset()

    def to_task_result(self, result: str, success: bool | None = None) -> TaskResult:
        """Package the outcome of a run as a task handle."""
        return TaskResult(
            success=self._final_success if success is None else success,
            result=result,
            usage=self.usage.model_copy(),
            logs=self.logs,
            model_id=self.model.id,
            cost=self._metrics.cost,
            steps=self._step_count,
            duration_seconds=self._metrics.duration_seconds,
        )
