# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Base models and shared functionality for LLM interactions."""

from enum import Enum
from typing import Literal, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from ..types.llm_types import (
    TokenUsage,
    StopReason,
    TextContent,
    ReasoningContent,
    ToolCallContent,
    ToolResultContent,
    ContentTypes,
)


class Message(BaseModel):
    """A message in a conversation with an LLM."""

    role: Literal["user", "assistant"]
    content: list[ContentTypes]

    def __str__(self) -> str:
        lines = [f"[{self.role}]"]
        for c in self.content:
            if isinstance(c, TextContent):
                lines.append(c.text)
            elif isinstance(c, ReasoningContent):
                lines.append(f"(reasoning) {c.text}")
            elif isinstance(c, ToolCallContent):
                lines.append(f"-> {c.tool_name}#{c.call_id} {c.tool_args}")
            elif isinstance(c, ToolResultContent):
                flag = " (error)" if c.is_error else ""
                lines.append(f"<- {c.tool_name}#{c.call_id}{flag} {c.content}")
        return "\n".join(lines)


class TimingInfo(BaseModel):
    """When a model call started, produced its first token, and finished."""

    started_at: datetime
    completed_at: datetime
    first_token_at: Optional[datetime] = None
    output_tokens: int = 0

    @property
    def duration(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def time_to_first_token(self) -> Optional[float]:
        if self.first_token_at is None:
            return None
        return (self.first_token_at - self.started_at).total_seconds()

    @property
    def tokens_per_second(self) -> Optional[float]:
        return self.output_tokens / self.duration if self.duration > 0 else None

    def __str__(self) -> str:
        line = f"{self.duration:.2f}s"
        if self.time_to_first_token is not None:
            line += f", first token after {self.time_to_first_token:.2f}s"
        if self.tokens_per_second is not None:
            line += f", {self.tokens_per_second:.1f} tok/s"
        return line


# Completion Types ============================================================

class Completion(BaseModel):
    """A completion response from an LLM."""

    id: str
    content: list[ContentTypes]
    model: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    timing: Optional[TimingInfo] = None
    stop_reason: StopReason = StopReason.COMPLETE

    @property
    def tool_calls(self) -> list[ToolCallContent]:
        return [c for c in self.content if isinstance(c, ToolCallContent)]

    @property
    def text(self) -> str:
        """All text blocks joined, stripped. Empty if the turn had no text."""
        return "\n".join(c.text for c in self.content if isinstance(c, TextContent)).strip()

    @property
    def reasoning(self) -> str:
        return "".join(c.text for c in self.content if isinstance(c, ReasoningContent))

    @property
    def wants_tools(self) -> bool:
        return self.stop_reason == StopReason.TOOL_USE and bool(self.tool_calls)

    def to_message(self) -> Message:
        """The assistant message that echoes this completion back to the model."""
        return Message(role="assistant", content=list(self.content))

    def __str__(self) -> str:
        header = f"{self.model} ({self.stop_reason.value}): {self.usage}"
        if self.timing:
            header += f" in {self.timing}"
        return "\n".join([header, *(str(block) for block in self.content)])


class ChunkType(str, Enum):
    BLOCK_START = "block_start"
    DELTA = "delta"
    BLOCK_STOP = "block_stop"
    COMPLETED = "completed"


class BlockType(str, Enum):
    TEXT = "text"
    REASONING = "reasoning"
    TOOL_CALL = "tool_call"


class CompletionChunk(BaseModel):
    """One event of a streaming completion.

    Text and reasoning arrive as ``BLOCK_START``, ``DELTA``..., ``BLOCK_STOP``.
    The stream always ends with a single ``COMPLETED`` chunk carrying the
    assembled ``Completion``.
    """

    type: ChunkType
    block_type: Optional[BlockType] = None
    delta: str = ""
    completion: Optional[Completion] = None
