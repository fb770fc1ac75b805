# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Base provider interface for LLM interactions."""

import logging

from abc import ABC, abstractmethod
from typing import Optional

from ..models import ModelInfo
from ...types.llm_types import Message, Role, TokenUsage, ToolChoice, LLMResponse

logger = logging.getLogger(__name__)

_tokenizer = None


def _get_tokenizer():
    global _tokenizer
    if _tokenizer is None:
        import tiktoken

        _tokenizer = tiktoken.get_encoding("cl100k_base")
    return _tokenizer


def estimate_tokens(text: str) -> int:
    """Approximate token count, for providers that omit usage."""
    if not text:
        return 0
    try:
        return len(_get_tokenizer().encode(text))
    except Exception as e:
        logger.debug(f"Tokenizer unavailable ({e}), falling back to a char estimate")
        return max(1, len(text) // 4)


class BaseProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = "base"

    def __init__(self, api_key: str, model: ModelInfo, timeout: float = 600.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def drop_orphan_tool_turns(self, messages: list[Message]) -> list[Message]:
        """Remove tool-result turns whose assistant turn is no longer in the
        history (e.g. after memory eviction); endpoints reject them."""
        pending: set[str] = set()
        kept = []
        for msg in messages:
            if msg.role == Role.ASSISTANT:
                pending = {tc.id for tc in msg.tool_calls or []}
            elif msg.role == Role.TOOL:
                if msg.tool_call_id not in pending:
                    logger.debug(f"Dropping orphan tool turn {msg.tool_call_id}")
                    continue
                pending.discard(msg.tool_call_id)
            else:
                pending = set()
            kept.append(msg)
        return kept

    def estimate_usage(self, messages: list[Message], completion: Optional[str]) -> TokenUsage:
        prompt_tokens = sum(estimate_tokens(m.content or "") for m in messages)
        return TokenUsage.from_counts(prompt_tokens, estimate_tokens(completion or ""))

    @abstractmethod
    async def create_completion(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Send one completion request.

        Args:
            messages: the ordered conversation turns
            tools: OpenAI function schemas, or None for a plain answer
            tool_choice: tool-choice policy when tools are given
            temperature: sampling temperature
            max_tokens: completion token cap, the model's limit when None

        Raises:
            LLMError: on any transport or protocol failure
        """
        pass

    async def close(self) -> None:
        """Release the underlying HTTP client."""
        pass
