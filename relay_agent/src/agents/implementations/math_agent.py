# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""A small arithmetic agent, used as a nested agent by the master agent."""

from ..base_agent import Agent
from ...config import settings
from ...tools.base_tool import define_tool
from ...tools.calculator import Calculator

MATH_AGENT_SYSTEM_PROMPT = """You are a careful arithmetic assistant.

Use the `add_numbers` tool for sums and the `calculate` tool for any other
expression. Never do arithmetic in your head. Reply with the bare result
unless the request asks for an explanation."""


@define_tool(description="Add two numbers and return their sum.")
async def add_numbers(a: float, b: float) -> dict:
    total = a + b
    if isinstance(total, float) and total.is_integer():
        total = int(total)
    return {"sum": total}


def build_math_agent(**overrides) -> Agent:
    options = dict(
        name="math_agent",
        description="Solve arithmetic problems exactly",
        instructions=MATH_AGENT_SYSTEM_PROMPT,
        tools=[add_numbers, Calculator],
        model=settings.FAST_MODEL,
    )
    options.update(overrides)
    return Agent(**options)
