# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
A fixed sequence of agent loops, where each stage's prompt is built from the
original request and the previous stage's result.

The pipeline is fail-fast: the first stage that fails is recorded as failed
and no later stage is started.
"""

import asyncio
import logging

from time import monotonic
from pathlib import Path
from typing import Callable, Optional
from pydantic import BaseModel, Field

from ..events import LogSink
from ..llm.metering import UsageMeter
from ..llm.models import DEFAULT_MODEL_ID, ModelSession
from ..types.llm_types import TokenUsage
from .supervisor import Runner, _default_runner

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

PromptTemplate = Callable[[str, Optional[str]], str]


class PipelineStage(BaseModel):
    """One stage: a role, a step budget, a model and a prompt builder."""

    role: str
    max_steps: int = Field(ge=1)
    model_id: str = DEFAULT_MODEL_ID
    prompt_template: PromptTemplate

    class Config:
        frozen = True
        arbitrary_types_allowed = True
        protected_namespaces = ()

    def build_prompt(self, request: str, previous: Optional[str] = None) -> str:
        return self.prompt_template(request, previous)


def _analysis_prompt(request: str, previous: Optional[str] = None) -> str:
    return f"""Analyse the request. Answer in plain text, without using any tools.

Request: {request}

Keep it short:
1. Core requirements (3 lines at most)
2. Files to implement
3. Order of implementation

Return the analysis with terminate right away."""


def _implementation_prompt(request: str, previous: Optional[str] = None) -> str:
    return f"""Implement the code according to the plan:

[Request] {request}

[Plan]
{previous or ""}

Report completion with terminate as soon as the files are written."""


def _review_prompt(request: str, previous: Optional[str] = None) -> str:
    return f"""Quickly review the code that was written.

[Previous result]
{previous or ""}

Check for:
- obvious bugs only (fix them if any)
- unnecessary code (remove it if any)

If nothing needs changing, terminate right away.
If you made changes, terminate immediately after."""


DEFAULT_STAGES: tuple[PipelineStage, ...] = (
    PipelineStage(role="Analysis/design", max_steps=3, prompt_template=_analysis_prompt),
    PipelineStage(role="Implementation", max_steps=15, prompt_template=_implementation_prompt),
    PipelineStage(role="Review", max_steps=5, prompt_template=_review_prompt),
)


def override_stages(
    stages: tuple[PipelineStage, ...] | list[PipelineStage],
    model_id: Optional[str] = None,
    max_steps: Optional[int] = None,
) -> list[PipelineStage]:
    """Copies of `stages` with the model and/or step budget replaced on every stage."""
    update: dict = {}
    if model_id is not None:
        update["model_id"] = model_id
    if max_steps is not None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        update["max_steps"] = max_steps
    return [stage.model_copy(update=update) for stage in stages]


class StageResult(BaseModel):
    role: str
    success: bool
    result: str
    model_id: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = 0.0
    duration_seconds: float = 0.0

    class Config:
        protected_namespaces = ()


class PipelineResult(BaseModel):
    success: bool
    stages: list[StageResult] = Field(default_factory=list)
    final_result: Optional[str] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = 0.0

    @property
    def failed_stage(self) -> Optional[StageResult]:
        for stage in self.stages:
            if not stage.success:
                return stage
        return None


StageStartCallback = Callable[[int, PipelineStage], None]
StageEndCallback = Callable[[int, StageResult], None]


class PipelineOrchestrator:
    """Runs the stages in order, one fresh agent loop per stage."""

    def __init__(
        self,
        stages: tuple[PipelineStage, ...] | list[PipelineStage] = DEFAULT_STAGES,
        runner: Optional[Runner] = None,
        sink: Optional[LogSink] = None,
        project_path: Path | str | None = None,
        on_stage_start: Optional[StageStartCallback] = None,
        on_stage_end: Optional[StageEndCallback] = None,
    ):
        if not stages:
            raise ValueError("A pipeline needs at least one stage")
        self.stages = list(stages)
        self.runner = runner or _default_runner()
        self.sink = sink
        self.project_path = project_path
        self.on_stage_start = on_stage_start
        self.on_stage_end = on_stage_end

    async def _run_stage(
        self, index: int, stage: PipelineStage, prompt: str
    ) -> StageResult:
        started = monotonic()
        source = f"stage_{index + 1}"
        channel = self.sink.open_channel(source) if self.sink is not None else None

        try:
            session = ModelSession.create(stage.model_id)
            kwargs = {"session": session, "max_steps": stage.max_steps, "channel": channel}
            if self.project_path is not None:
                kwargs["project_path"] = self.project_path
            result = await self.runner(prompt, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Pipeline stage {stage.role} failed: {e}")
            return StageResult(
                role=stage.role,
                success=False,
                result=str(e) or type(e).__name__,
                model_id=stage.model_id,
                duration_seconds=monotonic() - started,
            )
        finally:
            if channel is not None:
                await self.sink.close_channel(source)

        return StageResult(
            role=stage.role,
            success=result.success,
            result=result.result,
            model_id=result.model_id or stage.model_id,
            usage=result.usage,
            cost=result.cost,
            duration_seconds=monotonic() - started,
        )

    async def run(self, request: str) -> PipelineResult:
        meter = UsageMeter()
        results: list[StageResult] = []
        previous: Optional[str] = None

        for index, stage in enumerate(self.stages):
            logger.info(f"Pipeline stage {index + 1}/{len(self.stages)}: {stage.role}")
            if self.on_stage_start is not None:
                self.on_stage_start(index, stage)

            stage_result = await self._run_stage(index, stage, stage.build_prompt(request, previous))
            meter.record(stage_result.model_id, stage_result.usage)
            results.append(stage_result)

            if self.on_stage_end is not None:
                self.on_stage_end(index, stage_result)

            if not stage_result.success:
                logger.warning(f"Pipeline stopped at stage {stage.role}")
                break
            previous = stage_result.result

        success = len(results) == len(self.stages) and all(r.success for r in results)
        return PipelineResult(
            success=success,
            stages=results,
            final_result=previous if success else None,
            usage=meter.get_total_usage(),
            cost=sum(r.cost for r in results),
        )
