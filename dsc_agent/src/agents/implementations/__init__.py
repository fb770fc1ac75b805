# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Built-in agents providing core capabilities."""

from .tasks import run_agent_task
from .coder import CodingAgent, run_coding_task, run_coding_task_with_models
from .general import GeneralAgent, run_general_task

__all__ = [
    "run_agent_task",
    "CodingAgent",
    "run_coding_task",
    "run_coding_task_with_models",
    "GeneralAgent",
    "run_general_task",
]
