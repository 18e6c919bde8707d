# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Base provider interface for LLM interactions."""

import logging

from abc import ABC, abstractmethod
from typing import Any, AsyncGenerator, Optional
from datetime import datetime

from ..base import (
    Message,
    Completion,
    CompletionChunk,
    ChunkType,
    BlockType,
    TimingInfo,
)
from ...types.llm_types import TextContent, ReasoningContent
from ...types.tool_types import ToolInterface

logger = logging.getLogger(__name__)


class BaseProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = "base"

    def _timing(
        self,
        started_at: datetime,
        output_tokens: int,
        first_token_at: datetime | None = None,
    ) -> TimingInfo:
        return TimingInfo(
            started_at=started_at,
            completed_at=datetime.now(),
            first_token_at=first_token_at,
            output_tokens=output_tokens,
        )

    def tool_to_native(self, tool: ToolInterface) -> dict:
        """
        Converts a tool into a schema for native tool calling with this
        provider. SDK tools supply their own declaration.
        """
        native = tool.native_definition()
        if native is not None:
            return native
        return {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.input_schema(),
        }

    async def create_streaming_completion(
        self,
        model: str,
        system_prompt: str,
        tools: list[ToolInterface],
        messages: list[Message],
        max_tokens: int,
        thinking_budget: Optional[int] = None,
    ) -> AsyncGenerator[CompletionChunk, None]:
        """Create a streaming completion.

        Providers without native streaming replay the finished completion as
        one block per reasoning or text segment.
        """
        completion = await self.create_completion(
            model=model,
            system_prompt=system_prompt,
            tools=tools,
            messages=messages,
            max_tokens=max_tokens,
            thinking_budget=thinking_budget,
        )
        for block in completion.content:
            if isinstance(block, ReasoningContent):
                block_type = BlockType.REASONING
            elif isinstance(block, TextContent):
                block_type = BlockType.TEXT
            else:
                continue
            yield CompletionChunk(type=ChunkType.BLOCK_START, block_type=block_type)
            yield CompletionChunk(type=ChunkType.DELTA, block_type=block_type, delta=block.text)
            yield CompletionChunk(type=ChunkType.BLOCK_STOP, block_type=block_type)
        yield CompletionChunk(type=ChunkType.COMPLETED, completion=completion)

    # Abstract methods --------------------------------------------------------

    @abstractmethod
    def _prepare_messages(self, messages: list[Message]) -> Any:
        """Maps our framework-specific message list into provider-specific messages"""
        pass

    @abstractmethod
    async def create_completion(
        self,
        model: str,
        system_prompt: str,
        tools: list[ToolInterface],
        messages: list[Message],
        max_tokens: int,
        thinking_budget: Optional[int] = None,
    ) -> Completion:
        """Create a completion using this provider."""
        pass
