# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Short, human-readable summaries of finished tool calls and nested agents.

Summaries are a side call on the fast model. They are best effort: a failed
call yields a placeholder, and scheduling one never blocks the agent loop.
"""

import re
import json
import asyncio
import logging

from typing import Any, Optional

from ..config import settings
from ..llm.api import create_completion
from ..llm.base import Message
from ..llm.providers.base_provider import BaseProvider
from ..callgraph.node import CallNode, NodeKind
from ..callgraph.tree import CallTree
from ..types.llm_types import TextContent

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

FALLBACK_SUMMARY = "Processing..."
EMPTY_SUMMARY = "Completed"

TOOL_PROMPT = """Describe this tool's result in 5-10 words. No questions. No tool name.
Input: {input}
Output: {output}
Example: "Found 3 character files" or "Listed 5 items in folder\""""

AGENT_PROMPT = """Describe what was done in 5-10 words. No questions. No agent name.
Task: {task}
Result: {result}
Example: "Found 2D Characters folder" or "Searched drive for assets\""""

_QUESTION_STARTERS = re.compile(
    r"^(do you want|would you like|shall i|want me to|should i|can i|may i)\s+", re.IGNORECASE
)


def _as_text(value: Any, limit: int = 2000) -> str:
    if value is None or value == "":
        return "none"
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text[:limit]


def clean_summary(summary: str, name: str) -> str:
    cleaned = summary.strip()

    # Drop a leading "name:" however it was cased or spaced
    variants = {name, name.replace("_", ""), name.replace("_", " ")}
    for variant in sorted(variants, key=len, reverse=True):
        cleaned = re.sub(rf"^{re.escape(variant)}:?\s*", "", cleaned, flags=re.IGNORECASE)

    cleaned = re.sub(r"^[\"'](.*)[\"']$", r"\1", cleaned, flags=re.DOTALL)

    if "?" in cleaned:
        cleaned = cleaned.split("?")[0].strip()

    cleaned = _QUESTION_STARTERS.sub("", cleaned)
    cleaned = re.sub(r"[?!]+$", "", cleaned).strip()

    if cleaned:
        cleaned = cleaned[0].upper() + cleaned[1:]
    return cleaned or EMPTY_SUMMARY


class Summarizer:
    """
    Summarises tool and agent results, with a cache keyed on what was
    summarised. Concurrent requests for the same key share one model call.
    """

    def __init__(self, provider: Optional[BaseProvider] = None, model: Optional[str] = None):
        self.provider = provider
        self.model = model or settings.summary_model
        self._cache: dict[str, str] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()

    async def summarize_tool(self, tool_name: str, input: Any, output: Any) -> str:
        input_text, output_text = _as_text(input), _as_text(output)
        prompt = TOOL_PROMPT.format(input=input_text, output=output_text)
        raw = await self._generate(prompt, f"tool:{tool_name}:{input_text}:{output_text}")
        return clean_summary(raw, tool_name)

    async def summarize_agent(self, agent_name: str, task: str, result: Any = None) -> str:
        result_text = _as_text(result) if result is not None else "pending"
        prompt = AGENT_PROMPT.format(task=task, result=result_text)
        raw = await self._generate(prompt, f"agent:{agent_name}:{task}:{result_text}")
        return clean_summary(raw, agent_name)

    async def summarize_node(self, node: CallNode) -> str:
        if node.kind is NodeKind.AGENT:
            return await self.summarize_agent(node.name, node.task or "unknown task", node.output or node.error)
        return await self.summarize_tool(node.name, node.input, node.output if node.error is None else node.error)

    async def _generate(self, prompt: str, key: str) -> str:
        if key in self._cache:
            return self._cache[key]
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._call_model(prompt))
            self._in_flight[key] = task
            task.add_done_callback(lambda _: self._in_flight.pop(key, None))
        summary = await asyncio.shield(task)
        if summary:
            self._cache[key] = summary
            return summary
        return FALLBACK_SUMMARY

    async def _call_model(self, prompt: str) -> str:
        try:
            completion = await create_completion(
                messages=[Message(role="user", content=[TextContent(text=prompt)])],
                model=self.model,
                max_tokens=64,
                provider=self.provider,
            )
        except Exception as e:
            logger.debug(f"Summary call failed: {e}")
            return ""
        return completion.text.strip()

    def schedule(self, node: CallNode, tree: CallTree) -> asyncio.Task:
        """Summarise ``node`` in the background and attach the result to it."""

        async def run():
            summary = await self.summarize_node(node)
            tree.set_summary(node, summary)

        task = asyncio.ensure_future(run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every scheduled summary to land."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
