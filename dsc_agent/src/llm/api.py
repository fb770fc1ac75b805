# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
The model client used by agent loops.

An `LLM` is bound to one model (normally through a `ModelSession`) and
forwards two call styles to the model's provider: a plain answer (`ask`) and
an answer with optional tool calls (`ask_tool`). Transport failures surface as
the typed errors of `llm.base`.
"""

import logging

from typing import Optional

from .base import LLMConfigError
from .models import ModelInfo, ModelSession, Provider, get_api_key
from .providers import BaseProvider, DeepSeekProvider, MiniMaxProvider
from ..config import settings
from ..types.llm_types import Message, TokenUsage, ToolChoice, LLMResponse

logger = logging.getLogger(__name__)

PROVIDERS: dict[Provider, type[BaseProvider]] = {
    Provider.DEEPSEEK: DeepSeekProvider,
    Provider.MINIMAX: MiniMaxProvider,
}


class LLM:
    def __init__(
        self,
        session: ModelSession | ModelInfo,
        api_key: Optional[str] = None,
        provider: Optional[BaseProvider] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.model = session.model if isinstance(session, ModelSession) else session
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.usage = TokenUsage()

        if provider is None:
            api_key = api_key or get_api_key(self.model.provider)
            if not api_key:
                raise LLMConfigError(
                    f"{self.model.provider.api_key_env} is not set",
                    provider=self.model.provider.value,
                )
            provider_cls = PROVIDERS[self.model.provider]
            provider = provider_cls(
                api_key,
                self.model,
                timeout=timeout if timeout is not None else settings.LLM_TIMEOUT,
            )
        self.provider = provider

    @property
    def cost(self) -> float:
        return self.model.calculate_cost(self.usage)

    def _record(self, response: LLMResponse) -> LLMResponse:
        if response.usage is not None:
            self.usage += response.usage
        return response

    async def ask(
        self,
        messages: list[Message],
        system_messages: list[Message] | None = None,
    ) -> LLMResponse:
        """Request a plain answer, without tools."""
        all_messages = list(system_messages or []) + list(messages)
        logger.debug(f"ask: {len(all_messages)} messages to {self.model.id}")
        response = await self.provider.create_completion(
            all_messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return self._record(response)

    async def ask_tool(
        self,
        messages: list[Message],
        tools: list[dict],
        tool_choice: ToolChoice = ToolChoice.AUTO,
        system_messages: list[Message] | None = None,
    ) -> LLMResponse:
        """Request an answer that may carry tool calls."""
        all_messages = list(system_messages or []) + list(messages)
        logger.debug(
            f"ask_tool: {len(all_messages)} messages, {len(tools)} tools to {self.model.id}"
        )
        response = await self.provider.create_completion(
            all_messages,
            tools=tools,
            tool_choice=tool_choice,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return self._record(response)

    async def close(self) -> None:
        await self.provider.close()
