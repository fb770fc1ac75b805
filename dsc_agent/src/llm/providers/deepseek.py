# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""DeepSeek-specific LLM provider implementation."""

import logging

from typing import Any, Optional
from openai import AsyncOpenAI, APIStatusError, APIConnectionError, APITimeoutError

from .base_provider import BaseProvider
from ..base import (
    LLMStatusError,
    LLMConnectionError,
    LLMTimeoutError,
    extract_error_message,
)
from ..models import ModelInfo
from ...types.llm_types import Message, TokenUsage, ToolCall, ToolChoice, LLMResponse

logger = logging.getLogger(__name__)


class DeepSeekProvider(BaseProvider):
    """Provider implementation for DeepSeek's OpenAI-compatible endpoint."""

    name = "deepseek"

    def __init__(
        self,
        api_key: str,
        model: ModelInfo,
        timeout: float = 600.0,
        client: AsyncOpenAI | None = None,
    ):
        super().__init__(api_key, model, timeout)
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=model.base_url,
            timeout=timeout,
            max_retries=2,
        )

    def _create_token_usage(self, response: Any) -> Optional[TokenUsage]:
        usage = getattr(response, "usage", None)
        if not usage:
            logger.warning("Missing usage information from DeepSeek API response")
            return None
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=getattr(usage, "total_tokens", None)
            or prompt_tokens + completion_tokens,
        )

    def _prepare_messages(self, messages: list[Message]) -> list[dict]:
        return [m.to_openai() for m in self.drop_orphan_tool_turns(messages)]

    async def create_completion(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        args: dict[str, Any] = {
            "messages": self._prepare_messages(messages),
            "model": self.model.model,
            "temperature": temperature,
            "max_tokens": max_tokens or self.model.max_tokens,
        }
        if tools:
            args["tools"] = tools
            args["tool_choice"] = tool_choice.value

        try:
            response = await self.client.chat.completions.create(**args)
        except APITimeoutError as e:
            raise LLMTimeoutError(f"DeepSeek request timed out: {e}", provider=self.name) from e
        except APIConnectionError as e:
            raise LLMConnectionError(f"DeepSeek connection error: {e}", provider=self.name) from e
        except APIStatusError as e:
            message = extract_error_message(
                e.body, f"DeepSeek API Error: {e.status_code}"
            )
            raise LLMStatusError(message, status_code=e.status_code, provider=self.name) from e

        if not response.choices:
            raise LLMStatusError("DeepSeek returned no choices", provider=self.name)

        choice = response.choices[0]
        message = choice.message

        tool_calls = [
            ToolCall.create(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            )
            for tc in message.tool_calls or []
        ]

        usage = self._create_token_usage(response)
        if usage is None:
            usage = self.estimate_usage(messages, message.content)

        return LLMResponse(
            content=message.content,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
            usage=usage,
        )

    async def close(self) -> None:
        await self.client.close()
