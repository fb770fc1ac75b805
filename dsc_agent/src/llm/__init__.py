# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""LLM integration module for the coding agent.

This module provides a unified interface for DeepSeek (OpenAI-compatible) and
MiniMax (Anthropic-compatible) models.
"""

import logging

from .base import (
    LLMError,
    LLMConfigError,
    LLMStatusError,
    LLMConnectionError,
    LLMTimeoutError,
)
from .api import LLM
from .models import (
    AVAILABLE_MODELS,
    DEFAULT_MODEL_ID,
    ModelInfo,
    ModelSession,
    Provider,
    get_model,
    get_default_model,
    get_recommended_models_for_coding,
    get_api_key,
    has_api_key,
)
from .metering import UsageMeter

# Quieten LLM API call logs to make stdout more useful
logging.getLogger("httpx").setLevel(logging.WARNING)

__all__ = [
    "LLM",
    "LLMError",
    "LLMConfigError",
    "LLMStatusError",
    "LLMConnectionError",
    "LLMTimeoutError",
    "AVAILABLE_MODELS",
    "DEFAULT_MODEL_ID",
    "ModelInfo",
    "ModelSession",
    "Provider",
    "get_model",
    "get_default_model",
    "get_recommended_models_for_coding",
    "get_api_key",
    "has_api_key",
    "UsageMeter",
]
