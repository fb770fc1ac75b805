# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Software development agent, and the task entry points built on it."""

import asyncio
import logging

from pathlib import Path
from typing import Any, Literal, Optional
from pydantic import Field

from ..toolcall_agent import ToolCallAgent, HumanInputHandler
from .tasks import run_agent_task
from ...events import LogChannel
from ...llm.models import ModelSession
from ...tools import ToolCollection, toolkits
from ...types.agent_types import TaskResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

STYLE_HINTS = {
    "minimal": "Implement only the core functionality with the least code.",
    "verbose": "Use clear variable names and spell out the logic in detail.",
    "documented": "Include comments and documentation with the code.",
}


def create_coding_toolset(project_path: Path | str | None = None) -> ToolCollection:
    """File, shell and control tools, bound to the project directory."""
    return ToolCollection(toolkits["coding"] + toolkits["control"], workdir=project_path)


class CodingAgent(ToolCallAgent):
    """
    An agent specialised for software development in a single project directory.
    """

    AGENT_NAME = "coding_agent"

    project_path: str = Field(default_factory=lambda: str(Path.cwd()))
    language: str = Field(
        default="auto", description="Main language of the project, or auto to detect it"
    )
    style: Literal["minimal", "verbose", "documented"] = "minimal"
    generate_tests: bool = False
    type_check: bool = True
    max_steps: int = Field(default=100, ge=1)

    def __init__(self, tools: ToolCollection | None = None, **data):
        super().__init__(tools=tools, **data)
        if tools is None:
            self._tools = create_coding_toolset(self.project_path)
        if self.system_prompt is None:
            self.system_prompt = self.coding_system_prompt()

    def coding_system_prompt(self) -> str:
        language_hint = (
            f"The project mainly uses {self.language}."
            if self.language != "auto"
            else "Detect the language from the project."
        )
        extras = []
        if self.generate_tests:
            extras.append("- Write tests alongside the code.")
        if self.type_check:
            extras.append("- Pay attention to type safety.")
        extras_str = "\n".join(extras)

        return f"""You are an experienced software developer agent.

## Project
- Working directory: {self.project_path}
- {language_hint}
- Coding style: {STYLE_HINTS[self.style]}
{extras_str}

## Required workflow
1. Explore before changing anything: list_directory on the root and main source folders,
   search_files for the relevant keywords, and read_file every related file.
2. Work out what the request is really asking for (styling, a bug, a new feature) and
   find the files that implement the closest existing behaviour.
3. Only then edit: change existing files with edit_file, create new files with write_file.

## Rules
- Never overwrite an existing file with write_file.
- Never guess file paths; find them first.
- Never edit a file you have not read.

When you are done, report the result with the terminate tool."""


async def run_coding_task(
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
    """Run one coding task on a fresh CodingAgent. See `run_agent_task`."""
    return await run_agent_task(
        CodingAgent,
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


async def run_coding_task_with_models(
    prompt: str, model_ids: list[str], **options
) -> list[TaskResult]:
    """Run the same prompt on several models concurrently, for comparison.

    Every model yields a result in input order; one model's failure never
    affects the others.
    """
    outcomes = await asyncio.gather(
        *(run_coding_task(prompt, model_id=model_id, **options) for model_id in model_ids),
        return_exceptions=True,
    )

    results = []
    for model_id, outcome in zip(model_ids, outcomes):
        if isinstance(outcome, BaseException):
            logger.warning(f"Model {model_id} failed: {outcome}")
            results.append(
                TaskResult(
                    success=False,
                    result=str(outcome) or type(outcome).__name__,
                    model_id=model_id,
                )
            )
        else:
            results.append(outcome)
    return results
