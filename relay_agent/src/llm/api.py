# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Provider selection and the module-level completion helpers."""

import logging

from typing import AsyncGenerator, Optional

from .base import Message, Completion, CompletionChunk
from .metering import record_call, record_usage
from .providers.base_provider import BaseProvider
from ..config import settings
from ..types.tool_types import ToolInterface

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

_provider: Optional[BaseProvider] = None


def _create_provider(name: str) -> BaseProvider:
    if name == "anthropic":
        from .providers.anthropic import AnthropicProvider

        return AnthropicProvider(api_key=settings.ANTHROPIC_API_KEY)
    if name == "scripted":
        from .providers.mock import ScriptedProvider, text_completion

        return ScriptedProvider(default=lambda messages: text_completion("Scripted provider response"))
    raise ValueError(f"Unknown provider: {name}")


def get_provider() -> BaseProvider:
    """The process-wide provider, created on first use from settings."""
    global _provider
    if _provider is None:
        _provider = _create_provider(settings.PROVIDER)
        logger.info(f"Using {_provider.name} provider")
    return _provider


def set_provider(provider: Optional[BaseProvider]) -> None:
    """Replace the process-wide provider (``None`` resets to the configured one)."""
    global _provider
    _provider = provider


async def create_completion(
    messages: list[Message],
    model: str,
    system_prompt: str = "",
    tools: list[ToolInterface] | None = None,
    max_tokens: int | None = None,
    thinking_budget: int | None = None,
    provider: BaseProvider | None = None,
) -> Completion:
    provider = provider or get_provider()
    record_call(model)
    completion = await provider.create_completion(
        model=model,
        system_prompt=system_prompt,
        tools=tools or [],
        messages=messages,
        max_tokens=max_tokens or settings.MAX_OUTPUT_TOKENS,
        thinking_budget=thinking_budget,
    )
    record_usage(model, completion.usage)
    return completion


async def create_streaming_completion(
    messages: list[Message],
    model: str,
    system_prompt: str = "",
    tools: list[ToolInterface] | None = None,
    max_tokens: int | None = None,
    thinking_budget: int | None = None,
    provider: BaseProvider | None = None,
) -> AsyncGenerator[CompletionChunk, None]:
    provider = provider or get_provider()
    record_call(model)
    async for chunk in provider.create_streaming_completion(
        model=model,
        system_prompt=system_prompt,
        tools=tools or [],
        messages=messages,
        max_tokens=max_tokens or settings.MAX_OUTPUT_TOKENS,
        thinking_budget=thinking_budget,
    ):
        if chunk.completion is not None:
            record_usage(model, chunk.completion.usage)
        yield chunk
