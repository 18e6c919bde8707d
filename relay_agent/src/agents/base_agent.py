# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from __future__ import annotations

import json
import asyncio
import logging

from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Union
from datetime import datetime
from dataclasses import replace
from pydantic import BaseModel, ValidationError

from .agent_tool import AgentTool
from .channels import RunChannels
from ..config import settings
from ..llm import Message, Completion, ChunkType, BlockType, create_streaming_completion
from ..llm.providers.base_provider import BaseProvider
from ..callgraph.node import CallNode, NodeKind
from ..callgraph.tree import CallTree
from ..events.delta_stream import DeltaStream
from ..tools.base_tool import BaseTool
from ..types.errors import OutputValidationError, UnknownToolError
from ..types.tool_types import ToolContext, ToolInterface
from ..types.llm_types import TextContent, ToolCallContent, ToolResultContent
from ..types.agent_types import AgentMetrics, AgentStatus, Instructions, resolve_instructions

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

NO_RESPONSE = "No response"

ToolEntry = Union[ToolInterface, type[BaseTool], "Agent", tuple["Agent", str]]


def resolve_tool(entry: ToolEntry) -> ToolInterface:
    """Normalise one entry of an agent's tool list into a ``ToolInterface``."""
    if isinstance(entry, ToolInterface):
        return entry
    if isinstance(entry, Agent):
        return AgentTool(entry)
    if isinstance(entry, tuple) and len(entry) == 2 and isinstance(entry[0], Agent):
        return AgentTool(entry[0], description=entry[1])
    if isinstance(entry, type) and issubclass(entry, BaseTool):
        return entry.as_tool()
    raise TypeError(f"Cannot use {entry!r} as a tool")


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


class Agent:
    """
    A model-bound unit with its own instructions and tool set.

    ``run`` drives the bounded tool-calling loop. Agents are immutable once
    built and may run concurrently for different jobs. Live output of a run
    (``reasoning``, ``output``, ``log`` and ``call``) goes to that run's
    ``RunChannels``, never to the agent itself.
    """

    def __init__(
        self,
        name: str,
        instructions: Instructions,
        tools: Iterable[ToolEntry] = (),
        model: Optional[str] = None,
        description: str = "",
        max_output_tokens: Optional[int] = None,
        reasoning_budget: Optional[int] = None,
        output_schema: Optional[type[BaseModel]] = None,
        max_tool_iterations: Optional[int] = None,
        tool_concurrency: Optional[int] = None,
        provider: Optional[BaseProvider] = None,
    ):
        self.name = name
        self.description = description
        self.instructions = instructions
        self.model = model or settings.MODEL
        self.max_output_tokens = max_output_tokens or settings.MAX_OUTPUT_TOKENS
        self.reasoning_budget = reasoning_budget
        self.output_schema = output_schema
        self.max_tool_iterations = max_tool_iterations or settings.MAX_TOOL_ITERATIONS
        self.tool_concurrency = tool_concurrency or settings.TOOL_CONCURRENCY
        self.provider = provider

        tools_by_name: dict[str, ToolInterface] = {}
        for entry in tools:
            tool = resolve_tool(entry)
            if tool.name in tools_by_name:
                raise ValueError(f"Duplicate tool name {tool.name!r} in agent {name}")
            tools_by_name[tool.name] = tool
        self.tools: Mapping[str, ToolInterface] = MappingProxyType(tools_by_name)

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, model={self.model!r}, tools={list(self.tools)})"

    def construct_system_prompt(self, context: ToolContext) -> str:
        """Instructions for this run, plus the answer format when a schema is set."""
        parts = [resolve_instructions(self.instructions, context)]
        if self.output_schema is not None:
            schema = json.dumps(self.output_schema.model_json_schema(), indent=2)
            parts.append(
                "Reply with a single JSON object matching this schema and nothing else:\n"
                f"{schema}"
            )
        return "\n\n".join(p for p in parts if p)

    def parse_output(self, text: str) -> BaseModel:
        """Validate a final answer against ``output_schema``."""
        if self.output_schema is None:
            raise ValueError(f"{self.name} has no output schema")
        try:
            return self.output_schema.model_validate_json(_strip_code_fence(text))
        except ValidationError as e:
            raise OutputValidationError(self.name, str(e), raw_output=text) from e

    async def run(
        self,
        input: str,
        context: ToolContext,
        node: Optional[CallNode] = None,
        channels: Optional[RunChannels] = None,
    ) -> str:
        """Run the tool-calling loop on ``input`` and return the final answer.

        Args:
            input: The user's (or parent agent's) request
            context: The job context shared with every tool call
            node: The call node this run reports under. Defaults to the
                context's node, or the root of a fresh tree when the context
                carries none.
            channels: Where this run streams its reasoning, output, log lines
                and nested calls. Defaults to the channels of ``node``.

        Returns:
            The final text. When the tool-round limit is hit, the last text the
            model produced (or "No response"), without schema validation.
        """
        if context.tree is None:
            tree = CallTree(context.job_id, self.name, input)
            context = replace(context, tree=tree, node=tree.root)
        tree = context.tree
        node = node or context.node or tree.root

        channels = channels or RunChannels.of_node(node)
        metrics = AgentMetrics(start_time=datetime.now())
        provider = self.provider
        system_prompt = self.construct_system_prompt(context)
        tools = list(self.tools.values())

        if context.progress:
            await context.progress.agent(self.name, "started", input)

        messages = [Message(role="user", content=[TextContent(text=input)])]
        last_text = ""
        iterations = 0

        try:
            while True:
                logger.debug(f"[{context.job_id}] {self.name}: calling model (iteration {iterations})")
                completion = await self._call_model(provider, system_prompt, tools, messages, channels)
                metrics.model_calls += 1
                metrics.token_usage += completion.usage
                if completion.text:
                    last_text = completion.text

                if not completion.wants_tools:
                    metrics.status = AgentStatus.SUCCESS
                    break

                if iterations >= self.max_tool_iterations:
                    logger.warning(
                        f"[{context.job_id}] {self.name} reached {self.max_tool_iterations} tool rounds, stopping"
                    )
                    channels.log.emit(f"Stopped after {self.max_tool_iterations} tool rounds")
                    metrics.status = AgentStatus.INCOMPLETE
                    break

                iterations += 1
                calls = completion.tool_calls
                channels.log.emit(f"Iteration {iterations}: {len(calls)} tool(s)")
                logger.info(
                    f"[{context.job_id}] {self.name} iteration {iterations}: "
                    f"{', '.join(c.tool_name for c in calls)}"
                )
                results = await self._execute_tool_calls(calls, context, node, channels)
                metrics.tool_calls += len(calls)

                messages.append(completion.to_message())
                messages.append(Message(role="user", content=results))

            metrics.iterations = iterations
            answer = last_text or NO_RESPONSE
            if self.output_schema is not None and metrics.status is AgentStatus.SUCCESS:
                answer = self.parse_output(answer).model_dump_json()
        except Exception as e:
            metrics.status = AgentStatus.ERROR
            if context.progress:
                await context.progress.error(e)
            raise
        finally:
            metrics.end_time = datetime.now()
            node.metadata["metrics"] = metrics.model_dump(mode="json")
            logger.info(f"[{context.job_id}] {self.name} finished: {metrics.as_log_line()}")

        if context.progress:
            await context.progress.agent(self.name, "completed", f"{iterations} iterations")
        return answer

    async def _call_model(
        self,
        provider: Optional[BaseProvider],
        system_prompt: str,
        tools: list[ToolInterface],
        messages: list[Message],
        channels: RunChannels,
    ) -> Completion:
        """One streamed model turn; text and reasoning are relayed to the live channels."""
        completion: Optional[Completion] = None
        async for chunk in create_streaming_completion(
            messages=messages,
            model=self.model,
            system_prompt=system_prompt,
            tools=tools,
            max_tokens=self.max_output_tokens,
            thinking_budget=self.reasoning_budget,
            provider=provider,
        ):
            stream = _stream_for(channels, chunk.block_type)
            if chunk.type is ChunkType.BLOCK_START and stream:
                stream.start()
            elif chunk.type is ChunkType.DELTA and stream:
                stream.push(chunk.delta)
            elif chunk.type is ChunkType.BLOCK_STOP and stream:
                stream.end()
            elif chunk.type is ChunkType.COMPLETED:
                completion = chunk.completion

        channels.reasoning.end()
        channels.output.end()
        if completion is None:
            raise RuntimeError(f"{self.name}: model stream ended without a completion")
        return completion

    async def _execute_tool_calls(
        self,
        calls: list[ToolCallContent],
        context: ToolContext,
        parent: CallNode,
        channels: RunChannels,
    ) -> list[ToolResultContent]:
        """Run every requested call concurrently; results come back in request order."""
        semaphore = asyncio.Semaphore(self.tool_concurrency) if self.tool_concurrency else None

        async def run_one(call: ToolCallContent) -> ToolResultContent:
            if semaphore is None:
                return await self._execute_tool_call(call, context, parent, channels)
            async with semaphore:
                return await self._execute_tool_call(call, context, parent, channels)

        finished = await asyncio.gather(*(run_one(call) for call in calls))
        by_id = {result.call_id: result for result in finished}
        return [by_id[call.call_id] for call in calls]

    async def _execute_tool_call(
        self,
        call: ToolCallContent,
        context: ToolContext,
        parent: CallNode,
        channels: RunChannels,
    ) -> ToolResultContent:
        tree = context.tree
        tool = self.tools.get(call.tool_name)

        if tool is None:
            node = tree.add_child(parent, NodeKind.TOOL, call.tool_name, input=call.tool_args)
            channels.call.emit(node)
            error = UnknownToolError(call.tool_name)
            logger.warning(f"[{context.job_id}] {self.name}: {error}")
            tree.fail(node, error)
            return _error_result(call, str(error))

        node = tool.open_node(tree, parent, call.tool_args)
        channels.call.emit(node)
        if context.progress:
            await context.progress.tool(tool.name, "started")

        try:
            result = await tool.execute(call.tool_args, context.for_node(node))
        except asyncio.CancelledError:
            tree.fail(node, "Cancelled")
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"[{context.job_id}] Tool {call.tool_name} raised: {message}")
            tree.fail(node, message)
            if context.progress:
                await context.progress.tool(tool.name, "error", message)
            return _error_result(call, message)

        content = result.to_content()
        if result.success:
            tree.complete(node, result.output if result.output is not None else content)
        else:
            tree.fail(node, result.errors or content)
        if context.progress:
            await context.progress.tool(tool.name, "completed" if result.success else "error", content)

        return ToolResultContent(
            call_id=call.call_id,
            tool_name=call.tool_name,
            content=content,
            is_error=result.errors is not None,
        )


def _stream_for(channels: RunChannels, block_type: Optional[BlockType]) -> Optional[DeltaStream]:
    if block_type is BlockType.TEXT:
        return channels.output
    if block_type is BlockType.REASONING:
        return channels.reasoning
    return None


def _error_result(call: ToolCallContent, message: str) -> ToolResultContent:
    return ToolResultContent(
        call_id=call.call_id,
        tool_name=call.tool_name,
        content=json.dumps({"error": message}),
        is_error=True,
    )
