# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""The master agent: entry point for every job, delegating to sub-agents."""

import logging

from datetime import datetime
from pydantic import BaseModel, Field, ValidationError

from .math_agent import build_math_agent
from ..base_agent import Agent
from ...config import settings
from ...tools.core import wait, send_file
from ...types.tool_types import ToolContext

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

MASTER_AGENT_SYSTEM_PROMPT = """You are the Master Agent, a general-purpose orchestrator assistant.

Your goal:
- Understand user requests
- Decide which sub-agents or tools to call
- Plan workflows, manage dependencies, and combine results

General principles:
1. For dependent tasks, call sub-agents one after the other, checking each
   result before using it in the next step.
2. For independent tasks, request the calls together so they run in parallel.
3. Delegate work instead of doing it yourself; if a request is ambiguous, say
   what you need to know.
4. Be concise, clear and systematic."""


class ActionTaken(BaseModel):
    tool: str
    action: str
    result: str


class MasterReply(BaseModel):
    response: str = Field(..., description="The reply shown to the user")
    actions_taken: list[ActionTaken] = Field(default_factory=list)


def master_instructions(context: ToolContext) -> str:
    parts = [MASTER_AGENT_SYSTEM_PROMPT, f"Current date: {datetime.now():%Y-%m-%d %H:%M}"]
    if context.user:
        parts.append(f"You are talking to {context.user}.")
    return "\n\n".join(parts)


def build_master_agent(extra_tools=(), structured: bool = True, **overrides) -> Agent:
    """Build the master agent with its default sub-agents and tools."""
    # Sub-agents share the provider so scripted runs stay offline
    math_agent = build_math_agent(**{k: overrides[k] for k in ("provider",) if k in overrides})
    options = dict(
        name="master_agent",
        description="Orchestrates sub-agents to handle a user request",
        instructions=master_instructions,
        tools=[
            (math_agent, "Solve arithmetic problems and evaluate expressions"),
            wait,
            send_file,
            *extra_tools,
        ],
        model=settings.MODEL,
        reasoning_budget=settings.REASONING_BUDGET,
        output_schema=MasterReply if structured else None,
    )
    options.update(overrides)
    return Agent(**options)


def reply_text(agent: Agent, answer: str) -> str:
    """The user-facing text of an answer, unwrapping a ``MasterReply``."""
    if agent.output_schema is not MasterReply:
        return answer
    try:
        return MasterReply.model_validate_json(answer).response
    except ValidationError:
        logger.warning(f"{agent.name} answer is not a MasterReply, showing it verbatim")
        return answer
