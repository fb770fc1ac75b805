# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for the tool-calling step loop."""
import asyncio
import pytest

from dsc_agent.src.agents import ToolCallAgent
from dsc_agent.src.agents.stuck_detector import STUCK_PROMPT
from dsc_agent.src.llm.base import LLMConnectionError
from dsc_agent.src.tools import ToolCollection, toolkits
from dsc_agent.src.types.errors import AgentStateError, ToolProtocolError
from dsc_agent.src.types.llm_types import Message, Role
from dsc_agent.src.types.agent_types import AgentState


def make_agent(llm, **kwargs) -> ToolCallAgent:
    return ToolCallAgent(llm=llm, tools=ToolCollection(toolkits["control"]), **kwargs)


def tool_turns(agent: ToolCallAgent) -> list[Message]:
    return [m for m in agent.memory.all() if m.role == Role.TOOL]


class TestLoopTermination:
    @pytest.mark.asyncio
    async def test_terminate_finishes_the_loop(self, fake_llm, tool_call, response):
        llm = fake_llm(response(tool_calls=[tool_call("terminate", {"result": "All done"})]))
        agent = make_agent(llm)

        result = await agent.run("say hi")

        assert result == "All done"
        assert agent.state == AgentState.FINISHED
        assert agent.step_count == 1
        task_result = agent.to_task_result(result)
        assert task_result.success
        assert task_result.usage.total_tokens == 15

    @pytest.mark.asyncio
    async def test_failed_terminate_is_reported_as_failure(self, fake_llm, tool_call, response):
        llm = fake_llm(
            response(tool_calls=[tool_call("terminate", {"result": "Cannot", "success": False})])
        )
        agent = make_agent(llm)

        result = await agent.run("impossible")

        assert result == "Cannot"
        assert agent.state == AgentState.FINISHED
        assert not agent.to_task_result(result).success

    @pytest.mark.asyncio
    async def test_budget_exhaustion_is_a_soft_result(self, fake_llm, response):
        llm = fake_llm(response("thinking out loud"))
        agent = make_agent(llm, max_steps=1)

        result = await agent.run("never ends")

        assert result == "Max steps (1) reached. The task may be incomplete."
        assert agent.state == AgentState.FINISHED
        assert agent.step_count == 1
        assert len(llm.calls) == 1
        assert agent.to_task_result(result).success

    @pytest.mark.asyncio
    async def test_step_count_never_exceeds_budget(self, fake_llm):
        llm = fake_llm()
        agent = make_agent(llm, max_steps=4)

        await agent.run("keep going")

        assert agent.step_count == 4
        assert len(llm.calls) == 4

    @pytest.mark.asyncio
    async def test_model_fault_moves_to_error_and_propagates(self, fake_llm):
        llm = fake_llm(LLMConnectionError("connection refused"))
        agent = make_agent(llm)

        with pytest.raises(LLMConnectionError):
            await agent.run("anything")

        assert agent.state == AgentState.ERROR
        assert any("connection refused" in e.message for e in agent.logs)


class TestToolTurns:
    @pytest.mark.asyncio
    async def test_every_call_gets_exactly_one_tool_turn(self, fake_llm, tool_call, response):
        calls = [tool_call("think", {"thought": f"idea {i}"}) for i in range(3)]
        llm = fake_llm(
            response(tool_calls=calls),
            response(tool_calls=[tool_call("terminate", {"result": "ok"})]),
        )
        agent = make_agent(llm)

        await agent.run("think three times")

        turns = tool_turns(agent)
        # Three answers to the think calls plus one for terminate
        assert len(turns) == 4
        assert [t.tool_call_id for t in turns[:3]] == [c.id for c in calls]
        assert [t.content for t in turns[:3]] == ["idea 0", "idea 1", "idea 2"]

        # The second request already contained all three answers
        second_request = llm.calls[1]["messages"]
        answered = {m.tool_call_id for m in second_request if m.role == Role.TOOL}
        assert answered == {c.id for c in calls}

    @pytest.mark.asyncio
    async def test_calls_after_terminate_are_skipped(self, fake_llm, tool_call, response):
        terminate = tool_call("terminate", {"result": "finished early"})
        think = tool_call("think", {"thought": "too late"})
        llm = fake_llm(response(tool_calls=[terminate, think]))
        agent = make_agent(llm)

        result = await agent.run("stop")

        assert result == "finished early"
        turns = tool_turns(agent)
        assert len(turns) == 2
        assert turns[1].tool_call_id == think.id
        assert turns[1].content.startswith("Skipped")
        assert agent.metrics.tool_calls == 1

    @pytest.mark.asyncio
    async def test_malformed_arguments_become_a_failed_tool_turn(
        self, fake_llm, tool_call, response
    ):
        llm = fake_llm(
            response(tool_calls=[tool_call("think", "{not json")]),
            response(tool_calls=[tool_call("terminate", {"result": "recovered"})]),
        )
        agent = make_agent(llm)

        result = await agent.run("go")

        assert result == "recovered"
        first = tool_turns(agent)[0]
        assert first.content.startswith("Error: Could not parse arguments")

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_a_failed_tool_turn(self, fake_llm, tool_call, response):
        llm = fake_llm(
            response(tool_calls=[tool_call("does_not_exist", {})]),
            response(tool_calls=[tool_call("terminate", {"result": "ok"})]),
        )
        agent = make_agent(llm)

        await agent.run("go")

        assert tool_turns(agent)[0].content == "Error: Tool not found: does_not_exist"

    @pytest.mark.asyncio
    async def test_unanswered_calls_are_a_protocol_fault(self, fake_llm, tool_call):
        agent = make_agent(fake_llm())
        agent.memory.append(Message.user("hi"))
        agent.memory.append(Message.assistant(None, [tool_call("think", {"thought": "x"})]))

        with pytest.raises(ToolProtocolError):
            await agent.think()


class TestHumanInput:
    @pytest.mark.asyncio
    async def test_answer_is_appended_as_user_turn(self, fake_llm, tool_call, response):
        ask = tool_call("ask_human", {"question": "Which colour?"})
        llm = fake_llm(
            response(tool_calls=[ask]),
            response(tool_calls=[tool_call("terminate", {"result": "blue it is"})]),
        )
        questions = []

        async def human(question: str) -> str:
            questions.append(question)
            return "blue"

        agent = ToolCallAgent(
            llm=llm, tools=ToolCollection(toolkits["control"]), human_input=human
        )
        result = await agent.run("paint it")

        assert result == "blue it is"
        assert questions == ["Which colour?"]
        messages = llm.calls[1]["messages"]
        assert messages[-2].role == Role.TOOL
        assert messages[-2].tool_call_id == ask.id
        assert messages[-1].role == Role.USER
        assert messages[-1].content == "blue"

    @pytest.mark.asyncio
    async def test_without_handler_the_question_ends_the_run(self, fake_llm, tool_call, response):
        llm = fake_llm(response(tool_calls=[tool_call("ask_human", {"question": "Which file?"})]))
        agent = make_agent(llm)

        result = await agent.run("edit the file")

        assert result == "Which file?"
        assert agent.state == AgentState.FINISHED
        assert agent.to_task_result(result).success


class TestRunGuards:
    @pytest.mark.asyncio
    async def test_concurrent_second_run_raises(self, fake_llm, tool_call, response):
        gate = asyncio.Event()
        llm = fake_llm(response(tool_calls=[tool_call("terminate", {"result": "done"})]))
        original = llm.ask_tool

        async def slow_ask_tool(*args, **kwargs):
            await gate.wait()
            return await original(*args, **kwargs)

        llm.ask_tool = slow_ask_tool
        agent = make_agent(llm)

        first = asyncio.create_task(agent.run("first"))
        await asyncio.sleep(0)
        assert agent.state == AgentState.RUNNING

        with pytest.raises(AgentStateError):
            await agent.run("second")

        gate.set()
        assert await first == "done"
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_finished_agent_must_be_reset_before_rerun(self, fake_llm, tool_call, response):
        llm = fake_llm(
            response(tool_calls=[tool_call("terminate", {"result": "one"})]),
            response(tool_calls=[tool_call("terminate", {"result": "two"})]),
        )
        agent = make_agent(llm)
        assert await agent.run("first") == "one"

        with pytest.raises(AgentStateError):
            await agent.run("again")

        agent.reset()
        assert agent.state == AgentState.IDLE
        assert len(agent.memory) == 0
        assert await agent.run("again") == "two"

    @pytest.mark.asyncio
    async def test_repeated_responses_keep_only_the_latest_nudge(self, fake_llm, response):
        llm = fake_llm(default=response("I am stuck"))
        agent = make_agent(llm, max_steps=6)

        await agent.run("loop")

        warnings = [e for e in agent.logs if e.message.startswith("Repeated responses detected")]
        assert len(warnings) >= 2
        turns = agent.memory.all()
        nudges = [i for i, m in enumerate(turns) if m.content == STUCK_PROMPT]
        assert len(nudges) == 1
        assert turns[nudges[0]].role == Role.SYSTEM
        # The nudge follows the assistant turn it reacted to
        assert turns[nudges[0] - 1].role == Role.ASSISTANT

    @pytest.mark.asyncio
    async def test_logs_are_forwarded_to_the_channel(self, fake_llm, tool_call, response):
        from dsc_agent.src.events import LogSink

        sink = LogSink()
        channel = sink.open_channel("task_1")
        llm = fake_llm(response(tool_calls=[tool_call("terminate", {"result": "done"})]))
        agent = ToolCallAgent(
            llm=llm, tools=ToolCollection(toolkits["control"]), channel=channel
        )

        await agent.run("go")
        await sink.close_channel("task_1")

        messages = [e.message for e in sink.get_events("task_1")]
        assert messages == [e.message for e in agent.logs]
        assert any(m.startswith("Step 1/") for m in messages)
