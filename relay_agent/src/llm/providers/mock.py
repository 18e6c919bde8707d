# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Scripted provider that replays prepared completions.

Used by the test-suite and for offline runs (``RELAY_PROVIDER=scripted``).
No API key or network access is needed.
"""

import logging

from uuid import uuid4
from typing import Any, Callable, Optional, Union
from dataclasses import dataclass

from ..base import Message, Completion
from .base_provider import BaseProvider
from ...types.llm_types import (
    TokenUsage,
    StopReason,
    TextContent,
    ReasoningContent,
    ToolCallContent,
)
from ...types.tool_types import ToolInterface

logger = logging.getLogger(__name__)

ScriptStep = Union[Completion, BaseException, Callable[[list[Message]], Completion]]


def text_completion(text: str, reasoning: str | None = None, model: str = "scripted") -> Completion:
    """A final answer turn."""
    content: list[Any] = []
    if reasoning:
        content.append(ReasoningContent(text=reasoning))
    content.append(TextContent(text=text))
    return Completion(
        id=f"scripted-{uuid4().hex[:8]}",
        content=content,
        model=model,
        usage=TokenUsage(uncached_prompt_tokens=10, completion_tokens=len(text.split())),
        stop_reason=StopReason.COMPLETE,
    )


def tool_use_completion(
    *calls: tuple[str, dict[str, Any]],
    text: str | None = None,
    model: str = "scripted",
) -> Completion:
    """A turn asking for one or more tool calls, given as ``(name, args)`` pairs."""
    content: list[Any] = []
    if text:
        content.append(TextContent(text=text))
    for name, args in calls:
        content.append(ToolCallContent(call_id=f"call_{uuid4().hex[:10]}", tool_name=name, tool_args=args))
    return Completion(
        id=f"scripted-{uuid4().hex[:8]}",
        content=content,
        model=model,
        usage=TokenUsage(uncached_prompt_tokens=10, completion_tokens=5),
        stop_reason=StopReason.TOOL_USE,
    )


@dataclass
class RecordedCall:
    model: str
    system_prompt: str
    tool_names: list[str]
    messages: list[Message]
    max_tokens: int
    thinking_budget: Optional[int]


class ScriptedProvider(BaseProvider):
    """Replays ``script`` in order, one step per model call.

    A step is a ``Completion``, an exception to raise, or a function of the
    conversation returning a ``Completion``. Once the script runs out,
    ``default`` (if given) answers every further call.
    """

    name = "scripted"

    def __init__(
        self,
        script: list[ScriptStep] | None = None,
        default: Optional[Callable[[list[Message]], Completion]] = None,
    ):
        self.script: list[ScriptStep] = list(script or [])
        self.default = default
        self.calls: list[RecordedCall] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def _prepare_messages(self, messages: list[Message]) -> list[Message]:
        return [m.model_copy(deep=True) for m in messages]

    async def create_completion(
        self,
        model: str,
        system_prompt: str,
        tools: list[ToolInterface],
        messages: list[Message],
        max_tokens: int,
        thinking_budget: Optional[int] = None,
    ) -> Completion:
        snapshot = self._prepare_messages(messages)
        self.calls.append(RecordedCall(
            model=model,
            system_prompt=system_prompt,
            tool_names=[t.name for t in tools],
            messages=snapshot,
            max_tokens=max_tokens,
            thinking_budget=thinking_budget,
        ))

        if self.script:
            step = self.script.pop(0)
        elif self.default is not None:
            step = self.default
        else:
            raise RuntimeError(f"ScriptedProvider has no response for call {self.call_count}")

        if isinstance(step, BaseException):
            raise step
        if isinstance(step, Completion):
            return step
        return step(snapshot)
