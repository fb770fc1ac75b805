# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""End-to-end coding runs against a scripted model."""
import pytest

from dsc_agent.src.agents.implementations.coder import (
    CodingAgent,
    run_coding_task,
    run_coding_task_with_models,
)
from dsc_agent.src.llm.base import LLMStatusError
from dsc_agent.src.llm.models import ModelSession


class TestRunCodingTask:
    @pytest.mark.asyncio
    async def test_writes_into_the_project(self, tmp_path, fake_llm, tool_call, response):
        llm = fake_llm(
            response(tool_calls=[tool_call("write_file", {"path": "hello.py", "content": "print('hi')\n"})]),
            response(tool_calls=[tool_call("terminate", {"result": "Wrote hello.py"})]),
        )

        result = await run_coding_task(
            "write hello world", session=ModelSession.create(), llm=llm, project_path=tmp_path
        )

        assert result.success
        assert result.result == "Wrote hello.py"
        assert (tmp_path / "hello.py").read_text() == "print('hi')\n"
        assert result.steps == 2
        assert result.usage.total_tokens == 30
        assert result.logs

    @pytest.mark.asyncio
    async def test_model_fault_is_a_failed_result(self, tmp_path, fake_llm):
        llm = fake_llm(LLMStatusError("Insufficient Balance", status_code=402))

        result = await run_coding_task("anything", llm=llm, project_path=tmp_path)

        assert not result.success
        assert "Insufficient Balance" in result.result

    @pytest.mark.asyncio
    async def test_unknown_model_is_a_failed_result(self):
        result = await run_coding_task("anything", model_id="no-such-model")

        assert not result.success
        assert "Unknown model" in result.result
        assert result.logs

    @pytest.mark.asyncio
    async def test_compare_models_keeps_order(self):
        results = await run_coding_task_with_models("anything", ["no-such-model", "also-missing"])

        assert [r.model_id for r in results] == ["no-such-model", "also-missing"]
        assert not any(r.success for r in results)

    def test_system_prompt_mentions_language(self, tmp_path, fake_llm):
        agent = CodingAgent(llm=fake_llm(), project_path=str(tmp_path), language="Rust")
        assert "Rust" in agent.system_prompt
