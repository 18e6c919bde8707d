# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
The agents module defines the agents that handle a job. An agent might be
thought of as a function in a program: it can be invoked, invoke other agents
itself, be composed and so forth. Every call is recorded in the job's call
tree.

Individually, an agent bundles a model, instructions and a tool set. Its
``run`` method drives the conversation with the model:

- the first "user" message is the request handed to the agent
- each "assistant" turn either answers, or asks for one or more tool calls
- requested calls run concurrently, and their results come back to the model
  in one "user" message, in the order the model asked for them

Nested agents are just tools: wrapping an agent with ``AgentTool`` (or
listing it in another agent's tools) exposes a single ``input`` parameter,
and the child's live reasoning and output are proxied into its call node.
"""

from .agent_tool import AgentTool
from .base_agent import Agent, resolve_tool
from .channels import RunChannels

__all__ = ["Agent", "AgentTool", "RunChannels", "resolve_tool"]
