# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from .supervisor import Task, TaskSupervisor, SupervisorSummary, CANCELLED_MESSAGE
from .pipeline import (
    DEFAULT_STAGES,
    PipelineStage,
    StageResult,
    PipelineResult,
    PipelineOrchestrator,
    override_stages,
)

__all__ = [
    "Task",
    "TaskSupervisor",
    "SupervisorSummary",
    "CANCELLED_MESSAGE",
    "DEFAULT_STAGES",
    "PipelineStage",
    "StageResult",
    "PipelineResult",
    "PipelineOrchestrator",
    "override_stages",
]
