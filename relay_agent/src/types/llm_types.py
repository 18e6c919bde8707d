# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class StopReason(str, Enum):
    """Normalised reasons for a model turn to end."""

    COMPLETE = "complete"
    TOOL_USE = "tool_use"
    LENGTH = "length"
    ERROR = "error"


class TokenUsage(BaseModel):
    """Token counts for one or more completions."""

    uncached_prompt_tokens: int = 0
    cache_write_prompt_tokens: int = 0
    cached_prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def input_tokens(self) -> int:
        return (
            self.uncached_prompt_tokens
            + self.cache_write_prompt_tokens
            + self.cached_prompt_tokens
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            uncached_prompt_tokens=self.uncached_prompt_tokens + other.uncached_prompt_tokens,
            cache_write_prompt_tokens=self.cache_write_prompt_tokens + other.cache_write_prompt_tokens,
            cached_prompt_tokens=self.cached_prompt_tokens + other.cached_prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )

    def __str__(self) -> str:
        return (
            f"input={self.input_tokens} (cached: {self.cached_prompt_tokens}, "
            f"written: {self.cache_write_prompt_tokens}) output={self.completion_tokens}"
        )


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str

    def __str__(self) -> str:
        return self.text


class ReasoningContent(BaseModel):
    """Model 'thinking' text. The signature must be echoed back verbatim.

    Redacted thinking has no readable text; its opaque ``redacted_data`` is
    replayed instead.
    """

    type: Literal["reasoning"] = "reasoning"
    text: str
    signature: str | None = None
    redacted_data: str | None = None

    def __str__(self) -> str:
        return f"<reasoning>{self.text}</reasoning>"


class ToolCallContent(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    call_id: str
    tool_name: str
    tool_args: dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        return f"Tool call {self.tool_name} (id: {self.call_id}): {self.tool_args}"


class ToolResultContent(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    call_id: str
    tool_name: str
    content: str
    is_error: bool = False

    def __str__(self) -> str:
        marker = " [error]" if self.is_error else ""
        return f"Tool result {self.tool_name} (id: {self.call_id}){marker}: {self.content}"


ContentTypes = Annotated[
    Union[TextContent, ReasoningContent, ToolCallContent, ToolResultContent],
    Field(discriminator="type"),
]
