# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from enum import Enum
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolChoice(str, Enum):
    """Tool-choice policy sent with a tool-enabled completion request."""

    NONE = "none"
    AUTO = "auto"
    REQUIRED = "required"


class TokenUsage(BaseModel):
    """Token counts reported for one or more completions."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def __iadd__(self, other: "TokenUsage") -> "TokenUsage":
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens
        return self

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int) -> "TokenUsage":
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


class FunctionCall(BaseModel):
    name: str
    arguments: str = Field(default="{}", description="JSON-encoded argument map")


class ToolCall(BaseModel):
    """A model-requested invocation of a named tool."""

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def arguments(self) -> str:
        return self.function.arguments

    @classmethod
    def create(cls, id: str, name: str, arguments: str = "{}") -> "ToolCall":
        return cls(id=id, function=FunctionCall(name=name, arguments=arguments))


class Message(BaseModel):
    """One turn of the conversation exchanged with the model."""

    role: Role
    content: Optional[str] = None
    name: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None
    base64_image: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str, base64_image: str | None = None) -> "Message":
        return cls(role=Role.USER, content=content, base64_image=base64_image)

    @classmethod
    def assistant(
        cls, content: str | None = None, tool_calls: list[ToolCall] | None = None
    ) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool(
        cls,
        content: str,
        tool_call_id: str,
        name: str | None = None,
        base64_image: str | None = None,
    ) -> "Message":
        return cls(
            role=Role.TOOL,
            content=content,
            tool_call_id=tool_call_id,
            name=name,
            base64_image=base64_image,
        )

    def to_openai(self) -> dict[str, Any]:
        """Render in the OpenAI chat-completions wire format."""
        msg: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.model_dump() for tc in self.tool_calls]
        if self.tool_call_id:
            msg["tool_call_id"] = self.tool_call_id
        if self.name:
            msg["name"] = self.name
        if self.base64_image and self.role == Role.USER:
            msg["content"] = [
                {"type": "text", "text": self.content or ""},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/png;base64,{self.base64_image}"},
                },
            ]
        return msg

    def __str__(self) -> str:
        parts = [f"Message from role={self.role.value}"]
        if self.content:
            parts.append(self.content)
        for tc in self.tool_calls or []:
            parts.append(f"Tool call {tc.name} (id: {tc.id}): {tc.arguments}")
        return "\n".join(parts)


class LLMResponse(BaseModel):
    """The parsed answer of one completion request."""

    content: Optional[str] = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None

    @property
    def hit_token_limit(self) -> bool:
        return self.finish_reason == "length"
