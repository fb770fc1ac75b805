# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for the concurrent task supervisor."""
import asyncio
import functools
import pytest

from dsc_agent.src.agents.implementations.coder import run_coding_task
from dsc_agent.src.events import LogSink
from dsc_agent.src.llm.base import LLMConnectionError
from dsc_agent.src.llm.models import ModelSession
from dsc_agent.src.orchestration import CANCELLED_MESSAGE, TaskSupervisor
from dsc_agent.src.types.agent_types import TaskResult, TaskStatus
from dsc_agent.src.types.event_types import LogEvent, LogLevel
from dsc_agent.src.types.llm_types import TokenUsage


async def scripted_runner(prompt, session, channel=None, **kwargs) -> TaskResult:
    """Succeeds unless the prompt asks it to fail or to crash."""
    if channel is not None:
        channel.emit(LogEvent(level=LogLevel.INFO, message=f"Step 1/3: {prompt}"))
    await asyncio.sleep(0)
    if prompt == "crash":
        raise LLMConnectionError("connection refused")
    return TaskResult(
        success=prompt != "fail",
        result=f"done: {prompt}",
        usage=TokenUsage.from_counts(100, 20),
        model_id=session.model_id,
        cost=0.01,
    )


def make_supervisor(runner=scripted_runner, **kwargs) -> TaskSupervisor:
    return TaskSupervisor(ModelSession.create(), runner=runner, **kwargs)


class TestBatchMode:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_the_others(self):
        supervisor = make_supervisor()

        summary = await supervisor.run_all(["first", "crash", "third"])

        assert summary.success_ratio == "2/3"
        assert summary.failed == 1
        assert summary.usage.total_tokens == 240
        assert summary.cost == pytest.approx(0.02)

        first, crashed, third = summary.tasks
        assert first.status == TaskStatus.COMPLETED
        assert third.result == "done: third"
        assert crashed.status == TaskStatus.FAILED
        assert crashed.result == "connection refused"

    @pytest.mark.asyncio
    async def test_failed_result_marks_task_failed(self):
        summary = await make_supervisor().run_all(["fail"])

        assert summary.success_ratio == "0/1"
        assert summary.tasks[0].result == "done: fail"
        assert summary.usage.total_tokens == 120

    @pytest.mark.asyncio
    async def test_meter_aggregates_settled_tasks(self):
        supervisor = make_supervisor()
        await supervisor.run_all(["a", "b"])

        assert supervisor.total_usage.total_tokens == 240
        assert supervisor.total_cost > 0

    @pytest.mark.asyncio
    async def test_runner_receives_options(self, tmp_path):
        seen = {}

        async def runner(prompt, **kwargs):
            seen.update(kwargs)
            return TaskResult(success=True, result="ok")

        supervisor = make_supervisor(runner=runner, max_steps=7)
        await supervisor.run_all(["x"], project_path=tmp_path)

        assert seen["max_steps"] == 7
        assert seen["project_path"] == str(tmp_path)
        assert seen["channel"].source == "task_1"
        assert seen["session"].model_id == supervisor.session.model_id

    @pytest.mark.asyncio
    async def test_logs_are_routed_by_task_id(self):
        sink = LogSink()
        supervisor = make_supervisor(sink=sink)

        summary = await supervisor.run_all(["alpha", "beta"])

        for task in summary.tasks:
            messages = [e.message for e in sink.get_events(task.id)]
            assert messages == [f"Step 1/3: {task.prompt}"]


class TestInteractiveMode:
    @pytest.mark.asyncio
    async def test_submit_does_not_wait(self):
        gate = asyncio.Event()

        async def runner(prompt, **kwargs):
            await gate.wait()
            return TaskResult(success=True, result=prompt)

        supervisor = make_supervisor(runner=runner)
        first = supervisor.submit("slow one")
        second = supervisor.submit("slow two")
        await asyncio.sleep(0)

        assert [t.id for t in supervisor.running()] == [first.id, second.id]
        assert first.status == TaskStatus.RUNNING

        gate.set()
        await supervisor.wait_all()
        assert all(t.success for t in supervisor.completed())

    @pytest.mark.asyncio
    async def test_completion_callbacks(self):
        supervisor = make_supervisor()
        seen = []

        async def async_callback(task):
            seen.append(("async", task.id))

        supervisor.on_complete(lambda task: seen.append(("sync", task.id)))
        supervisor.on_complete(async_callback)

        task = supervisor.submit("hello")
        await supervisor.wait_all()

        assert seen == [("sync", task.id), ("async", task.id)]

    @pytest.mark.asyncio
    async def test_broken_callback_is_contained(self):
        supervisor = make_supervisor()

        def broken(task):
            raise RuntimeError("boom")

        supervisor.on_complete(broken)
        task = supervisor.submit("hello")
        await supervisor.wait_all()

        assert task.success

    @pytest.mark.asyncio
    async def test_history_receives_every_settled_task(self):
        appended = []

        class History:
            async def append(self, task):
                appended.append(task.id)

        supervisor = make_supervisor(history=History())
        await supervisor.run_all(["a", "crash"])

        assert sorted(appended) == ["task_1", "task_2"]

    @pytest.mark.asyncio
    async def test_clear_finished(self):
        supervisor = make_supervisor()
        await supervisor.run_all(["a", "b"])

        assert supervisor.clear_finished() == 2
        assert supervisor.statuses() == []


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_running_task(self):
        started = asyncio.Event()

        async def runner(prompt, **kwargs):
            started.set()
            await asyncio.sleep(60)

        supervisor = make_supervisor(runner=runner)
        task = supervisor.submit("forever")
        await started.wait()

        assert await supervisor.cancel(task.id)
        assert task.status == TaskStatus.FAILED
        assert task.result == CANCELLED_MESSAGE
        assert not await supervisor.cancel(task.id)

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        supervisor = make_supervisor()
        task = supervisor.submit("never started")

        assert await supervisor.cancel(task.id)
        assert task.result == CANCELLED_MESSAGE
        assert task.status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_cancel_all_leaves_finished_tasks_alone(self):
        async def runner(prompt, **kwargs):
            if prompt == "quick":
                return TaskResult(success=True, result="quick")
            await asyncio.sleep(60)

        supervisor = make_supervisor(runner=runner)
        quick = supervisor.submit("quick")
        slow = supervisor.submit("slow")
        await asyncio.sleep(0.01)

        assert await supervisor.cancel_all() == 1
        assert quick.success
        assert slow.result == CANCELLED_MESSAGE

    @pytest.mark.asyncio
    async def test_cancel_unknown_task(self):
        assert not await make_supervisor().cancel("task_99")


class TestLogsOfUnfinishedTasks:
    @pytest.mark.asyncio
    async def test_cancelled_loop_keeps_its_logs(self, tmp_path, fake_llm, tool_call, response):
        waiting = asyncio.Event()

        async def never_answers(messages):
            waiting.set()
            await asyncio.sleep(60)

        llm = fake_llm(
            response(tool_calls=[tool_call("think", {"thought": "look around first"})]),
            never_answers,
        )
        supervisor = make_supervisor(runner=functools.partial(run_coding_task, llm=llm))
        task = supervisor.submit("refactor the parser", project_path=tmp_path)
        await waiting.wait()

        assert await supervisor.cancel(task.id)

        assert task.result == CANCELLED_MESSAGE
        messages = [e.message for e in task.logs]
        assert "Step 1/100" in messages
        assert "Step 2/100" in messages
        assert any("cancelled" in m for m in messages)

    @pytest.mark.asyncio
    async def test_raising_runner_keeps_emitted_logs(self):
        async def runner(prompt, channel=None, **kwargs):
            channel.emit(LogEvent(level=LogLevel.INFO, message="Step 1/3"))
            raise RuntimeError("disk full")

        summary = await make_supervisor(runner=runner).run_all(["x"])

        task = summary.tasks[0]
        assert task.result == "disk full"
        assert [e.message for e in task.logs] == ["Step 1/3"]
