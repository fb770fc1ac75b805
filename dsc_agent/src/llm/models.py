# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
The catalog of supported models, and the session value that carries the
selected model into agents and clients.

There is intentionally no module-level "current model": callers create a
`ModelSession` and pass it down explicitly.
"""

import os

from uuid import uuid4
from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from ..types.llm_types import TokenUsage


class Provider(str, Enum):
    DEEPSEEK = "deepseek"
    MINIMAX = "minimax"

    @property
    def api_key_env(self) -> str:
        return {
            Provider.DEEPSEEK: "DEEPSEEK_API_KEY",
            Provider.MINIMAX: "MINIMAX_API_KEY",
        }[self]


class ModelCapabilities(BaseModel):
    vision: bool = False
    function_calling: bool = True
    streaming: bool = True
    json_output: bool = True
    reasoning: bool = False


class ModelInfo(BaseModel):
    """Static description of one model offering."""

    id: str
    name: str
    provider: Provider
    model: str = Field(description="The model name sent to the API")
    description: str = ""
    max_tokens: int = 8192
    context_window: int = 128000
    input_price: float = Field(description="USD per million prompt tokens")
    output_price: float = Field(description="USD per million completion tokens")
    base_url: str
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)
    release_date: Optional[str] = None

    class Config:
        frozen = True

    def calculate_cost(self, usage: TokenUsage) -> float:
        return (
            usage.prompt_tokens / 1_000_000 * self.input_price
            + usage.completion_tokens / 1_000_000 * self.output_price
        )


AVAILABLE_MODELS: list[ModelInfo] = [
    ModelInfo(
        id="deepseek-v3.2",
        name="DeepSeek V3.2",
        provider=Provider.DEEPSEEK,
        model="deepseek-chat",
        description="General purpose flagship model with strong coding and tool use.",
        max_tokens=8192,
        context_window=128000,
        input_price=0.27,
        output_price=1.1,
        base_url="https://api.deepseek.com",
        capabilities=ModelCapabilities(reasoning=True),
        release_date="2025-01-10",
    ),
    ModelInfo(
        id="deepseek-r1",
        name="DeepSeek R1",
        provider=Provider.DEEPSEEK,
        model="deepseek-reasoner",
        description="Reasoning model for hard mathematical and logical problems.",
        max_tokens=8192,
        context_window=64000,
        input_price=0.55,
        output_price=2.19,
        base_url="https://api.deepseek.com",
        capabilities=ModelCapabilities(reasoning=True),
        release_date="2025-01-20",
    ),
    ModelInfo(
        id="deepseek-coder",
        name="DeepSeek Coder",
        provider=Provider.DEEPSEEK,
        model="deepseek-coder",
        description="Code generation, analysis and debugging.",
        max_tokens=8192,
        context_window=128000,
        input_price=0.14,
        output_price=0.28,
        base_url="https://api.deepseek.com",
        release_date="2024-11-11",
    ),
    ModelInfo(
        id="minimax-m2.1",
        name="MiniMax M2.1",
        provider=Provider.MINIMAX,
        model="MiniMax-M2.1",
        description="Coding model served over an Anthropic-compatible API.",
        max_tokens=16384,
        context_window=1_000_000,
        input_price=0.1,
        output_price=0.4,
        base_url="https://api.minimax.io/anthropic",
        capabilities=ModelCapabilities(reasoning=True),
        release_date="2025-01-01",
    ),
]

DEFAULT_MODEL_ID = "deepseek-v3.2"


def get_model(model_id: str) -> ModelInfo | None:
    for model in AVAILABLE_MODELS:
        if model.id == model_id:
            return model
    return None


def get_default_model() -> ModelInfo:
    return get_model(DEFAULT_MODEL_ID)


def get_recommended_models_for_coding() -> list[ModelInfo]:
    return [m for m in AVAILABLE_MODELS if m.id in ("deepseek-coder", "deepseek-v3.2")]


def get_api_key(provider: Provider = Provider.DEEPSEEK) -> str | None:
    return os.getenv(provider.api_key_env) or None


def has_api_key(provider: Provider = Provider.DEEPSEEK) -> bool:
    return get_api_key(provider) is not None


class ModelSession(BaseModel):
    """The explicitly selected model for one run."""

    model: ModelInfo
    id: str = Field(default_factory=lambda: f"session_{uuid4().hex[:8]}")
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def model_id(self) -> str:
        return self.model.id

    @classmethod
    def create(cls, model_id: str | None = None) -> "ModelSession":
        """Create a session for `model_id` (the default model when omitted).

        Raises:
            ValueError: if the model id is not in the catalog
        """
        if model_id is None:
            return cls(model=get_default_model())
        model = get_model(model_id)
        if model is None:
            known = ", ".join(m.id for m in AVAILABLE_MODELS)
            raise ValueError(f"Unknown model '{model_id}'. Available models: {known}")
        return cls(model=model)
