# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Research runs of the general agent against a scripted model and web."""
import httpx
import pytest

from dsc_agent.src.agents.implementations import GeneralAgent, run_general_task
from dsc_agent.src.tools import web_tools
from dsc_agent.src.types.llm_types import Role


@pytest.fixture
def web(monkeypatch):
    """Serve a fixed page for every URL the web tools fetch."""
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(
            200,
            html="<html><body><h1>Release notes</h1><p>Version 2.0 adds &lt;async&gt; support.</p></body></html>",
        )

    def client(timeout: float = web_tools.DEFAULT_TIMEOUT) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    monkeypatch.setattr(web_tools, "_http_client", client)
    return requested


class TestGeneralAgent:
    def test_toolset(self, tmp_path):
        agent = GeneralAgent(project_path=str(tmp_path))
        names = set(agent.tools.names())
        assert {"web_search", "web_fetch", "http_request", "terminate"} <= names
        assert "bash" not in names
        assert str(tmp_path) in agent.system_prompt

    @pytest.mark.asyncio
    async def test_fetches_a_page_and_saves_a_summary(self, tmp_path, web, fake_llm, tool_call, response):
        llm = fake_llm(
            response(tool_calls=[tool_call("web_fetch", {"url": "https://example.com/notes"})]),
            response(tool_calls=[tool_call("write_file", {"path": "notes.md", "content": "2.0: async\n"})]),
            response(tool_calls=[tool_call("terminate", {"result": "Version 2.0 adds async support"})]),
        )

        result = await run_general_task("what is new?", llm=llm, project_path=tmp_path)

        assert result.success
        assert result.result == "Version 2.0 adds async support"
        assert web == ["https://example.com/notes"]
        assert (tmp_path / "notes.md").read_text() == "2.0: async\n"

        # The page text, not its markup, went back to the model
        tool_turn = next(
            m for m in llm.calls[1]["messages"] if m.role == Role.TOOL and m.name == "web_fetch"
        )
        assert "Version 2.0 adds <async> support." in tool_turn.content
        assert "<p>" not in tool_turn.content

    @pytest.mark.asyncio
    async def test_coding_tools_are_not_offered(self, tmp_path, fake_llm, tool_call, response):
        llm = fake_llm(
            response(tool_calls=[tool_call("bash", {"command": "ls"})]),
            response(tool_calls=[tool_call("terminate", {"result": "done"})]),
        )

        result = await run_general_task("list files", llm=llm, project_path=tmp_path, max_steps=3)

        assert result.success
        schemas = llm.calls[0]["tools"]
        assert "bash" not in {s["function"]["name"] for s in schemas}
        tool_turn = next(m for m in llm.calls[1]["messages"] if m.role == Role.TOOL)
        assert "Tool not found: bash" in tool_turn.content
