# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Anthropic-specific LLM provider implementation."""

import logging

from typing import Any, AsyncGenerator, Optional
from datetime import datetime

import anthropic

from anthropic import AsyncAnthropic

from ..base import (
    Message,
    Completion,
    CompletionChunk,
    ChunkType,
    BlockType,
)
from .base_provider import BaseProvider
from ...types.errors import ModelCallError
from ...types.llm_types import (
    TokenUsage,
    StopReason,
    TextContent,
    ReasoningContent,
    ToolCallContent,
    ToolResultContent,
)
from ...types.tool_types import ToolInterface

logger = logging.getLogger(__name__)

# Extended thinking needs room for the answer on top of the thinking budget
MIN_ANSWER_TOKENS = 1024


class AnthropicProvider(BaseProvider):
    """Provider implementation for Anthropic's Claude models."""

    name = "anthropic"

    def __init__(self, api_key: str | None = None, client: AsyncAnthropic | None = None):
        self.client = client or AsyncAnthropic(api_key=api_key)

    def map_stop_reason(self, stop_reason: str | None) -> StopReason:
        if stop_reason == "tool_use":
            return StopReason.TOOL_USE
        if stop_reason == "max_tokens":
            return StopReason.LENGTH
        return StopReason.COMPLETE

    def _create_token_usage(self, response: Any) -> TokenUsage:
        usage = getattr(response, "usage", None)
        if not usage:
            logger.warning("Missing usage information from Anthropic response. Setting to 0")
            return TokenUsage()
        return TokenUsage(
            uncached_prompt_tokens=getattr(usage, "input_tokens", 0) or 0,
            cache_write_prompt_tokens=getattr(usage, "cache_creation_input_tokens", 0) or 0,
            cached_prompt_tokens=getattr(usage, "cache_read_input_tokens", 0) or 0,
            completion_tokens=getattr(usage, "output_tokens", 0) or 0,
        )

    def _prepare_messages(self, messages: list[Message]) -> list[dict]:
        api_messages = []
        for msg in messages:
            blocks: list[dict] = []
            for block in msg.content:
                if isinstance(block, TextContent):
                    if block.text:
                        blocks.append({"type": "text", "text": block.text})
                elif isinstance(block, ReasoningContent):
                    # Thinking blocks can only be replayed with their signature
                    if block.redacted_data:
                        blocks.append({"type": "redacted_thinking", "data": block.redacted_data})
                    elif block.signature:
                        blocks.append({
                            "type": "thinking",
                            "thinking": block.text,
                            "signature": block.signature,
                        })
                elif isinstance(block, ToolCallContent):
                    blocks.append({
                        "type": "tool_use",
                        "id": block.call_id,
                        "name": block.tool_name,
                        "input": block.tool_args,
                    })
                elif isinstance(block, ToolResultContent):
                    blocks.append({
                        "type": "tool_result",
                        "tool_use_id": block.call_id,
                        "content": block.content,
                        "is_error": block.is_error,
                    })
            api_messages.append({"role": msg.role, "content": blocks})
        return api_messages

    def _build_args(
        self,
        model: str,
        system_prompt: str,
        tools: list[ToolInterface],
        messages: list[Message],
        max_tokens: int,
        thinking_budget: Optional[int],
    ) -> dict:
        args: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": self._prepare_messages(messages),
        }
        if system_prompt:
            args["system"] = system_prompt
        if tools:
            args["tools"] = [self.tool_to_native(t) for t in tools]
        if thinking_budget:
            args["thinking"] = {"type": "enabled", "budget_tokens": thinking_budget}
            args["max_tokens"] = max(max_tokens, thinking_budget + MIN_ANSWER_TOKENS)
        return args

    def _to_completion(
        self,
        response: Any,
        model: str,
        start_time: datetime,
        first_token_time: datetime | None = None,
    ) -> Completion:
        content = []
        for block in response.content:
            if block.type == "text":
                content.append(TextContent(text=block.text))
            elif block.type == "thinking":
                content.append(ReasoningContent(text=block.thinking, signature=block.signature))
            elif block.type == "redacted_thinking":
                content.append(ReasoningContent(text="", redacted_data=block.data))
            elif block.type == "tool_use":
                content.append(ToolCallContent(
                    call_id=block.id,
                    tool_name=block.name,
                    tool_args=dict(block.input or {}),
                ))
            else:
                logger.debug(f"Skipping unsupported content block type {block.type}")

        usage = self._create_token_usage(response)
        return Completion(
            id=response.id,
            content=content,
            model=model,
            usage=usage,
            timing=self._timing(start_time, usage.completion_tokens, first_token_time),
            stop_reason=self.map_stop_reason(response.stop_reason),
        )

    async def create_completion(
        self,
        model: str,
        system_prompt: str,
        tools: list[ToolInterface],
        messages: list[Message],
        max_tokens: int,
        thinking_budget: Optional[int] = None,
    ) -> Completion:
        start_time = datetime.now()
        args = self._build_args(model, system_prompt, tools, messages, max_tokens, thinking_budget)
        try:
            response = await self.client.messages.create(**args)
        except anthropic.APIError as e:
            raise ModelCallError(model, str(e)) from e
        return self._to_completion(response, model, start_time)

    async def create_streaming_completion(
        self,
        model: str,
        system_prompt: str,
        tools: list[ToolInterface],
        messages: list[Message],
        max_tokens: int,
        thinking_budget: Optional[int] = None,
    ) -> AsyncGenerator[CompletionChunk, None]:
        start_time = datetime.now()
        first_token_time = None
        args = self._build_args(model, system_prompt, tools, messages, max_tokens, thinking_budget)
        block_types: dict[int, BlockType] = {}

        try:
            async with self.client.messages.stream(**args) as stream:
                async for event in stream:
                    if event.type == "content_block_start":
                        block_type = {
                            "text": BlockType.TEXT,
                            "thinking": BlockType.REASONING,
                            "tool_use": BlockType.TOOL_CALL,
                        }.get(event.content_block.type)
                        if block_type is None:
                            continue
                        block_types[event.index] = block_type
                        yield CompletionChunk(type=ChunkType.BLOCK_START, block_type=block_type)

                    elif event.type == "content_block_delta":
                        if event.delta.type == "text_delta":
                            chunk = CompletionChunk(
                                type=ChunkType.DELTA, block_type=BlockType.TEXT, delta=event.delta.text
                            )
                        elif event.delta.type == "thinking_delta":
                            chunk = CompletionChunk(
                                type=ChunkType.DELTA,
                                block_type=BlockType.REASONING,
                                delta=event.delta.thinking,
                            )
                        else:
                            # Tool input JSON and signatures arrive whole in the final message
                            continue
                        if first_token_time is None:
                            first_token_time = datetime.now()
                        yield chunk

                    elif event.type == "content_block_stop":
                        block_type = block_types.pop(event.index, None)
                        if block_type is not None:
                            yield CompletionChunk(type=ChunkType.BLOCK_STOP, block_type=block_type)

                response = await stream.get_final_message()
        except anthropic.APIError as e:
            raise ModelCallError(model, str(e)) from e

        yield CompletionChunk(
            type=ChunkType.COMPLETED,
            completion=self._to_completion(response, model, start_time, first_token_time),
        )
