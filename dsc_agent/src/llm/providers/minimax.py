# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""MiniMax provider, served over an Anthropic-compatible messages API."""

import json
import logging

from typing import Any, Optional
from anthropic import AsyncAnthropic, APIStatusError, APIConnectionError, APITimeoutError

from .base_provider import BaseProvider
from ..base import (
    LLMStatusError,
    LLMConnectionError,
    LLMTimeoutError,
    extract_error_message,
)
from ..models import ModelInfo
from ...types.llm_types import (
    Message,
    Role,
    TokenUsage,
    ToolCall,
    ToolChoice,
    LLMResponse,
)

logger = logging.getLogger(__name__)

STOP_REASONS = {
    "tool_use": "tool_calls",
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
}

TOOL_CHOICES = {
    ToolChoice.AUTO: {"type": "auto"},
    ToolChoice.REQUIRED: {"type": "any"},
    ToolChoice.NONE: {"type": "none"},
}


def openai_tool_to_anthropic(tool: dict) -> dict:
    function = tool.get("function", tool)
    return {
        "name": function["name"],
        "description": function.get("description", ""),
        "input_schema": function.get("parameters", {"type": "object", "properties": {}}),
    }


class MiniMaxProvider(BaseProvider):
    """Provider implementation for MiniMax models."""

    name = "minimax"

    def __init__(
        self,
        api_key: str,
        model: ModelInfo,
        timeout: float = 600.0,
        client: AsyncAnthropic | None = None,
    ):
        super().__init__(api_key, model, timeout)
        self.client = client or AsyncAnthropic(
            api_key=api_key,
            base_url=model.base_url,
            timeout=timeout,
            max_retries=2,
        )

    def _prepare_messages(self, messages: list[Message]) -> tuple[str | None, list[dict]]:
        """Split off the leading system prompt and convert the remaining turns
        to Anthropic content blocks, merging consecutive same-role turns."""
        messages = self.drop_orphan_tool_turns(messages)

        system_parts = []
        idx = 0
        while idx < len(messages) and messages[idx].role == Role.SYSTEM:
            if messages[idx].content:
                system_parts.append(messages[idx].content)
            idx += 1

        converted: list[dict] = []

        def add(role: str, blocks: list[dict]):
            if not blocks:
                return
            if converted and converted[-1]["role"] == role:
                converted[-1]["content"].extend(blocks)
            else:
                converted.append({"role": role, "content": blocks})

        for msg in messages[idx:]:
            if msg.role == Role.ASSISTANT:
                blocks = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls or []:
                    try:
                        tool_input = json.loads(tc.arguments) if tc.arguments else {}
                    except json.JSONDecodeError:
                        tool_input = {}
                    blocks.append(
                        {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tool_input}
                    )
                add("assistant", blocks)
            elif msg.role == Role.TOOL:
                add(
                    "user",
                    [
                        {
                            "type": "tool_result",
                            "tool_use_id": msg.tool_call_id,
                            "content": msg.content or "",
                        }
                    ],
                )
            elif msg.role == Role.SYSTEM:
                # Mid-conversation system turns (e.g. corrective nudges)
                add("user", [{"type": "text", "text": f"[system] {msg.content or ''}"}])
            else:
                blocks = [{"type": "text", "text": msg.content or ""}]
                if msg.base64_image:
                    blocks.append(
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/png",
                                "data": msg.base64_image,
                            },
                        }
                    )
                add("user", blocks)

        system = "\n\n".join(system_parts) if system_parts else None
        return system, converted

    async def create_completion(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        system, converted = self._prepare_messages(messages)
        args: dict[str, Any] = {
            "model": self.model.model,
            "messages": converted,
            "max_tokens": max_tokens or self.model.max_tokens,
            "temperature": temperature,
        }
        if system:
            args["system"] = system
        if tools:
            args["tools"] = [openai_tool_to_anthropic(t) for t in tools]
            args["tool_choice"] = TOOL_CHOICES[tool_choice]

        try:
            response = await self.client.messages.create(**args)
        except APITimeoutError as e:
            raise LLMTimeoutError(f"MiniMax request timed out: {e}", provider=self.name) from e
        except APIConnectionError as e:
            raise LLMConnectionError(f"MiniMax connection error: {e}", provider=self.name) from e
        except APIStatusError as e:
            message = extract_error_message(e.body, f"MiniMax API Error: {e.status_code}")
            raise LLMStatusError(message, status_code=e.status_code, provider=self.name) from e

        text_parts = []
        tool_calls = []
        for block in response.content or []:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall.create(
                        id=block.id,
                        name=block.name,
                        arguments=json.dumps(block.input or {}),
                    )
                )
        content = "".join(text_parts) or None

        usage = None
        if getattr(response, "usage", None) is not None:
            usage = TokenUsage.from_counts(
                response.usage.input_tokens or 0, response.usage.output_tokens or 0
            )
        else:
            logger.warning("Missing usage information from MiniMax API response")
            usage = self.estimate_usage(messages, content)

        return LLMResponse(
            content=content,
            tool_calls=tool_calls,
            finish_reason=STOP_REASONS.get(response.stop_reason, response.stop_reason),
            usage=usage,
        )

    async def close(self) -> None:
        await self.client.close()
