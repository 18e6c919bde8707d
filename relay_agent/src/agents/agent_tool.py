# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Wrapping an agent so that another agent can call it as a tool."""

from __future__ import annotations

import logging

from dataclasses import replace
from typing import TYPE_CHECKING, Any, Optional
from pydantic import BaseModel, Field, ValidationError

from ..callgraph.node import CallNode, NodeKind
from ..callgraph.tree import CallTree
from .channels import RunChannels
from ..events.delta_stream import SubscriptionGroup
from ..tools.base_tool import format_validation_error
from ..types.tool_types import ToolContext, ToolInterface, ToolKind, ToolResult

if TYPE_CHECKING:
    from .base_agent import Agent

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class AgentToolInput(BaseModel):
    input: str = Field(..., description="The task for the agent, in natural language")


class AgentTool(ToolInterface):
    """A nested agent exposed as a tool taking a single ``input`` string.

    The child agent is shared, not owned: it outlives any one call and may be
    wrapped by several parents.
    """

    kind = ToolKind.AGENT

    def __init__(self, agent: "Agent", description: Optional[str] = None):
        self.agent = agent
        self.name = agent.name
        self.description = description or agent.description or f"Delegate a task to the {agent.name} agent"

    def input_schema(self) -> dict[str, Any]:
        schema = AgentToolInput.model_json_schema()
        schema.pop("title", None)
        return schema

    def open_node(self, tree: CallTree, parent: CallNode, tool_input: dict[str, Any]) -> CallNode:
        task = tool_input.get("input") if isinstance(tool_input, dict) else None
        return tree.add_child(parent, NodeKind.AGENT, self.name, input=task if task is not None else tool_input)

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> ToolResult:
        try:
            args = AgentToolInput.model_validate(tool_input or {})
        except ValidationError as e:
            return ToolResult(
                tool_name=self.name,
                success=False,
                errors=f"Invalid input for {self.name}: {format_validation_error(e)}",
            )

        node = context.node
        if node is None or node.kind is not NodeKind.AGENT:
            # Called outside an agent loop: give the child its own node
            if context.tree is None:
                tree = CallTree(context.job_id, self.name, args.input)
                context = replace(context, tree=tree, node=tree.root)
            else:
                node = self.open_node(context.tree, node or context.tree.root, tool_input)
                context = context.for_node(node)
            node = context.node

        channels = RunChannels.fresh(f"{self.name}:{node.id}")
        with SubscriptionGroup() as group:
            channels.pipe_into(node, group)
            logger.debug(f"[{context.job_id}] {self.name}: proxying {len(group)} channels into {node.id}")
            text = await self.agent.run(args.input, context, node=node, channels=channels)

        return ToolResult(tool_name=self.name, output=text)
