# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""General purpose research agent: searches and reads the web, runs small
scripts, and saves what it finds in the working directory."""

import logging

from pathlib import Path
from typing import Any, Optional
from pydantic import Field

from ..toolcall_agent import ToolCallAgent, HumanInputHandler
from .tasks import run_agent_task
from ...events import LogChannel
from ...llm.models import ModelSession
from ...tools import ToolCollection, toolkits
from ...types.agent_types import TaskResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def create_general_toolset(project_path: Path | str | None = None) -> ToolCollection:
    return ToolCollection(toolkits["general"] + toolkits["control"], workdir=project_path)


class GeneralAgent(ToolCallAgent):
    """An agent for questions that need the web rather than a code base."""

    AGENT_NAME = "general_agent"

    project_path: str = Field(default_factory=lambda: str(Path.cwd()))
    max_steps: int = Field(default=20, ge=1)

    def __init__(self, tools: ToolCollection | None = None, **data):
        super().__init__(tools=tools, **data)
        if tools is None:
            self._tools = create_general_toolset(self.project_path)
        if self.system_prompt is None:
            self.system_prompt = f"""You are a versatile assistant that can research and act.

## Tools
- web_search to find sources, web_fetch to read a page, http_request to call an API.
- python_execute for calculations and data wrangling.
- read_file, write_file, list_directory and search_files in {self.project_path}.

## Rules
- Prefer primary sources and fetch a page before quoting it.
- Save long results to a file when the user asks for one.
- Break larger requests down with the planning tool.

When you have the answer, report it with the terminate tool."""


async def run_general_task(
    prompt: str,
    session: ModelSession | None = None,
    model_id: Optional[str] = None,
    project_path: Path | str | None = None,
    max_steps: Optional[int] = None,
    channel: LogChannel | None = None,
    llm: Any | None = None,
    human_input: HumanInputHandler | None = None,
    **agent_options,
) -> TaskResult:
    """Run one request on a fresh GeneralAgent. See `run_agent_task`."""
    return await run_agent_task(
        GeneralAgent,
        prompt,
        session=session,
        model_id=model_id,
        project_path=project_path,
        max_steps=max_steps,
        channel=channel,
        llm=llm,
        human_input=human_input,
        **agent_options,
    )
