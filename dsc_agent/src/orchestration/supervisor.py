# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Runs many independent agent loops concurrently, one asyncio task each.

Faults are contained per task: a runner that raises, returns a failed
result, or is cancelled only ever marks its own task failed. Usage and cost
of every settled task are aggregated in the supervisor's own UsageMeter.
"""

import asyncio
import inspect
import logging

from itertools import count
from pathlib import Path
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union
from pydantic import BaseModel, Field, PrivateAttr

from ..events import LogSink
from ..llm.metering import UsageMeter
from ..llm.models import ModelSession
from ..types.llm_types import TokenUsage
from ..types.agent_types import TaskResult, TaskStatus
from ..types.event_types import LogEvent

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

CANCELLED_MESSAGE = "Task was cancelled"

Runner = Callable[..., Awaitable[TaskResult]]
CompletionCallback = Callable[["Task"], Union[None, Awaitable[None]]]


def _default_runner() -> Runner:
    from ..agents.implementations.coder import run_coding_task

    return run_coding_task


class Task(BaseModel):
    """One submitted unit of work, backed by one agent loop."""

    id: str
    prompt: str
    status: TaskStatus = TaskStatus.PENDING
    model_id: str
    project_path: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = 0.0
    result: Optional[str] = None
    logs: list[LogEvent] = Field(default_factory=list)

    _handle: Optional[asyncio.Task] = PrivateAttr(default=None)

    class Config:
        arbitrary_types_allowed = True
        protected_namespaces = ()

    @property
    def done(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @property
    def success(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.completed_at or datetime.now()
        return (end - self.started_at).total_seconds()


class SupervisorSummary(BaseModel):
    """Aggregate outcome of a set of tasks."""

    total: int
    succeeded: int
    failed: int
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = 0.0
    tasks: list[Task] = Field(default_factory=list)

    @property
    def success_ratio(self) -> str:
        return f"{self.succeeded}/{self.total}"

    def __str__(self) -> str:
        return (
            f"{self.success_ratio} succeeded, "
            f"{self.usage.total_tokens} tokens, ${self.cost:.4f}"
        )


class TaskSupervisor:
    """
    Worker pool of agent loops.

    Two modes are supported on the same instance: `run_all` for a batch of
    independent prompts that are awaited together, and `submit` for a
    long-lived interactive queue where earlier tasks keep running while new
    ones are accepted.
    """

    def __init__(
        self,
        session: ModelSession,
        runner: Optional[Runner] = None,
        sink: Optional[LogSink] = None,
        history: Optional[Any] = None,
        max_steps: Optional[int] = None,
    ):
        self.session = session
        self.runner = runner or _default_runner()
        self.sink = sink
        self.history = history
        self.max_steps = max_steps
        self.meter = UsageMeter()

        self._tasks: dict[str, Task] = {}
        self._local_sink: Optional[LogSink] = None
        self._callbacks: list[CompletionCallback] = []
        self._ids = count(1)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        prompt: str,
        project_path: Path | str | None = None,
        session: Optional[ModelSession] = None,
    ) -> Task:
        """Start a fresh loop for `prompt` in its own asyncio task.

        Must be called from within a running event loop.
        """
        session = session or self.session
        task = Task(
            id=f"task_{next(self._ids)}",
            prompt=prompt,
            model_id=session.model_id,
            project_path=str(project_path) if project_path is not None else None,
        )
        self._tasks[task.id] = task
        task._handle = asyncio.create_task(self._execute(task, session), name=task.id)
        logger.info(f"Submitted {task.id}: {prompt[:80]}")
        return task

    def _log_sink(self) -> LogSink:
        """The sink task channels are opened on; a private one when none was given."""
        if self.sink is not None:
            return self.sink
        if self._local_sink is None:
            self._local_sink = LogSink()
        return self._local_sink

    async def _execute(self, task: Task, session: ModelSession) -> None:
        task.status = TaskStatus.RUNNING
        task.started_at = datetime.now()
        sink = self._log_sink()
        channel = sink.open_channel(task.id)

        kwargs: dict[str, Any] = {"session": session, "channel": channel}
        if task.project_path is not None:
            kwargs["project_path"] = task.project_path
        if self.max_steps is not None:
            kwargs["max_steps"] = self.max_steps

        try:
            result = await self.runner(task.prompt, **kwargs)
        except asyncio.CancelledError:
            logger.info(f"{task.id} was cancelled")
            self._settle(task, success=False, message=CANCELLED_MESSAGE)
        except Exception as e:
            logger.error(f"{task.id} failed: {e}")
            self._settle(task, success=False, message=str(e) or type(e).__name__)
        else:
            self._settle(task, success=result.success, message=result.result, result=result)
        finally:
            await sink.close_channel(task.id)

        # A runner that raised or was cancelled returned no logs of its own
        if not task.logs:
            task.logs = sink.get_events(task.id)
        await self._notify(task)

    def _settle(
        self,
        task: Task,
        success: bool,
        message: str,
        result: Optional[TaskResult] = None,
    ) -> None:
        if task.done:
            return
        task.status = TaskStatus.COMPLETED if success else TaskStatus.FAILED
        task.completed_at = datetime.now()
        task.result = message
        if result is not None:
            task.usage = result.usage
            task.cost = result.cost
            task.logs = list(result.logs)
            if result.model_id:
                task.model_id = result.model_id
        self.meter.record(task.model_id, task.usage)

    async def _notify(self, task: Task) -> None:
        if self.history is not None:
            await self.history.append(task)
        for callback in list(self._callbacks):
            try:
                outcome = callback(task)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Error in completion callback {callback}: {e}")

    def on_complete(self, callback: CompletionCallback) -> None:
        """Register a sync or async callback run once for every settled task."""
        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    # Batch mode
    # ------------------------------------------------------------------

    async def run_all(
        self, prompts: list[str], project_path: Path | str | None = None
    ) -> SupervisorSummary:
        """Run independent prompts in parallel and wait for all to settle."""
        tasks = [self.submit(prompt, project_path=project_path) for prompt in prompts]
        await asyncio.gather(*(t._handle for t in tasks), return_exceptions=True)
        return self.summary(tasks)

    def summary(self, tasks: Optional[list[Task]] = None) -> SupervisorSummary:
        tasks = list(self._tasks.values()) if tasks is None else tasks
        usage = TokenUsage()
        cost = 0.0
        succeeded = 0
        failed = 0
        for t in tasks:
            usage += t.usage
            cost += t.cost
            if t.status == TaskStatus.COMPLETED:
                succeeded += 1
            elif t.status == TaskStatus.FAILED:
                failed += 1
        return SupervisorSummary(
            total=len(tasks),
            succeeded=succeeded,
            failed=failed,
            usage=usage,
            cost=cost,
            tasks=tasks,
        )

    # ------------------------------------------------------------------
    # Inspection and control
    # ------------------------------------------------------------------

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def statuses(self) -> list[Task]:
        return list(self._tasks.values())

    def running(self) -> list[Task]:
        return [t for t in self._tasks.values() if not t.done]

    def completed(self) -> list[Task]:
        return [t for t in self._tasks.values() if t.done]

    async def wait_all(self) -> list[Task]:
        handles = [t._handle for t in self._tasks.values() if t._handle is not None]
        await asyncio.gather(*handles, return_exceptions=True)
        return self.statuses()

    async def cancel(self, task_id: str) -> bool:
        """Cancel one task and wait until it is reported failed.

        Returns:
            False if the task is unknown or already finished
        """
        task = self._tasks.get(task_id)
        if task is None or task.done:
            return False

        handle = task._handle
        if handle is not None and not handle.done():
            handle.cancel()
            await asyncio.gather(handle, return_exceptions=True)

        if not task.done:
            # Cancelled before its loop started
            self._settle(task, success=False, message=CANCELLED_MESSAGE)
            await self._notify(task)
        return True

    async def cancel_all(self) -> int:
        """Cancel every unfinished task; returns how many were cancelled."""
        pending = [t.id for t in self.running()]
        results = await asyncio.gather(*(self.cancel(task_id) for task_id in pending))
        return sum(1 for cancelled in results if cancelled)

    def clear_finished(self) -> int:
        """Forget settled tasks; returns how many were removed."""
        finished = [task_id for task_id, t in self._tasks.items() if t.done]
        for task_id in finished:
            del self._tasks[task_id]
        return len(finished)

    @property
    def total_usage(self) -> TokenUsage:
        return self.meter.get_total_usage()

    @property
    def total_cost(self) -> float:
        return self.meter.get_total_cost()
