# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Runs one request on a fresh agent and folds the outcome into a TaskResult."""

import asyncio
import logging

from pathlib import Path
from typing import Any, Optional

from ..toolcall_agent import ToolCallAgent, HumanInputHandler
from ...events import LogChannel
from ...llm.models import ModelSession
from ...types.agent_types import TaskResult
from ...types.event_types import LogEvent, LogLevel

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


async def run_agent_task(
    agent_cls: type[ToolCallAgent],
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
    """
    Run one task on a fresh `agent_cls`.

    Loop faults (transport errors, a missing API key, protocol violations) do
    not raise: they come back as a failed TaskResult whose result is the
    error message. Logs and usage are always present. Cancellation propagates.
    """
    options = dict(agent_options)
    if project_path is not None:
        options["project_path"] = str(Path(project_path).expanduser())
    if max_steps is not None:
        options["max_steps"] = max_steps

    try:
        if session is None:
            session = ModelSession.create(model_id)
        agent = agent_cls(
            session=session,
            llm=llm,
            channel=channel,
            human_input=human_input,
            **options,
        )
    except Exception as e:
        logger.error(f"Could not create {agent_cls.__name__}: {e}")
        return TaskResult(
            success=False,
            result=str(e),
            model_id=session.model_id if session is not None else model_id,
            logs=[LogEvent(level=LogLevel.ERROR, message=str(e))],
        )

    try:
        result = await agent.run(prompt)
        return agent.to_task_result(result)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        return agent.to_task_result(str(e) or type(e).__name__, success=False)
    finally:
        await agent.close()
