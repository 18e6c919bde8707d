# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for the bounded tool-calling loop."""
import gc
import json
import asyncio
import weakref
import pytest

from pydantic import BaseModel

from src.agents.base_agent import Agent, NO_RESPONSE
from src.agents.channels import RunChannels
from src.callgraph.node import NodeKind, NodeState
from src.callgraph.tree import CallTree
from src.llm.providers.mock import ScriptedProvider, text_completion, tool_use_completion
from src.tools.base_tool import define_tool
from src.types.errors import OutputValidationError
from src.types.llm_types import ToolResultContent
from src.types.tool_types import ToolContext


@define_tool(description="Does nothing")
async def noop() -> dict:
    return {"ok": True}


@define_tool(description="Always rate limited")
async def flaky() -> dict:
    raise RuntimeError("rate limited")


def make_context(agent_name: str = "agent", task: str = "task"):
    tree = CallTree("job", agent_name, task)
    return ToolContext(job_id="job", tree=tree, node=tree.root), tree


def tool_results(provider: ScriptedProvider, call_index: int) -> list[ToolResultContent]:
    """The tool results sent back to the model on the given call."""
    return list(provider.calls[call_index].messages[-1].content)


@pytest.mark.asyncio
async def test_answer_without_tools():
    provider = ScriptedProvider([text_completion("Hello there")])
    agent = Agent("greeter", "Say hello", provider=provider)
    context, tree = make_context("greeter")

    answer = await agent.run("hi", context)

    assert answer == "Hello there"
    assert provider.call_count == 1
    assert tree.root.stream.text == "Hello there"


@pytest.mark.asyncio
async def test_empty_answer_becomes_no_response():
    provider = ScriptedProvider([text_completion("")])
    agent = Agent("quiet", "Say nothing", provider=provider)

    assert await agent.run("hi", ToolContext(job_id="job")) == NO_RESPONSE


@pytest.mark.asyncio
async def test_loop_stops_at_the_iteration_cap():
    provider = ScriptedProvider(default=lambda messages: tool_use_completion(("noop", {})))
    agent = Agent("looper", "Loop", tools=[noop], max_tool_iterations=10, provider=provider)
    context, tree = make_context("looper")

    answer = await agent.run("go", context)

    # One model call per round, plus the call whose tool requests were dropped
    assert provider.call_count == 11
    assert answer == NO_RESPONSE
    assert len(tree.root.children) == 10
    metrics = tree.root.metadata["metrics"]
    assert metrics["status"] == "incomplete"
    assert metrics["iterations"] == 10


@pytest.mark.asyncio
async def test_twelve_requested_rounds_against_a_cap_of_ten():
    script = [tool_use_completion(("noop", {}), text=f"round {i}") for i in range(12)]
    script.append(text_completion("finished"))
    provider = ScriptedProvider(script)
    agent = Agent("looper", "Loop", tools=[noop], max_tool_iterations=10, provider=provider)

    answer = await agent.run("go", ToolContext(job_id="job"))

    assert provider.call_count == 11
    assert answer == "round 10"
    assert len(provider.script) == 2


@pytest.mark.asyncio
async def test_results_keep_request_order_when_tools_finish_out_of_order():
    finished = []

    @define_tool(description="Slow")
    async def slow() -> str:
        await asyncio.sleep(0.05)
        finished.append("slow")
        return "slow done"

    @define_tool(description="Fast")
    async def fast() -> str:
        finished.append("fast")
        return "fast done"

    request = tool_use_completion(("slow", {}), ("fast", {}), ("slow", {}))
    provider = ScriptedProvider([request, text_completion("done")])
    agent = Agent("orderly", "Be orderly", tools=[slow, fast], provider=provider)

    await agent.run("go", ToolContext(job_id="job"))

    results = tool_results(provider, 1)
    assert [r.call_id for r in results] == [c.call_id for c in request.tool_calls]
    assert [r.content for r in results] == ["slow done", "fast done", "slow done"]
    # The calls ran concurrently: the fast one finished first
    assert finished[0] == "fast"


@pytest.mark.asyncio
async def test_tool_concurrency_limit():
    running = 0
    peak = 0

    @define_tool(description="Tracks concurrency")
    async def tracked() -> str:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return "ok"

    request = tool_use_completion(*[("tracked", {})] * 4)
    provider = ScriptedProvider([request, text_completion("done")])
    agent = Agent("limited", "Go", tools=[tracked], tool_concurrency=1, provider=provider)

    await agent.run("go", ToolContext(job_id="job"))

    assert peak == 1
    assert len(tool_results(provider, 1)) == 4


@pytest.mark.asyncio
async def test_throwing_tool_becomes_an_error_result_and_the_loop_continues():
    provider = ScriptedProvider([
        tool_use_completion(("flaky", {})),
        text_completion("Tried, but it was rate limited"),
    ])
    agent = Agent("caller", "Call things", tools=[flaky], provider=provider)
    context, tree = make_context("caller")

    answer = await agent.run("go", context)

    assert answer == "Tried, but it was rate limited"
    [result] = tool_results(provider, 1)
    assert result.is_error is True
    assert json.loads(result.content) == {"error": "rate limited"}
    [node] = tree.root.children
    assert node.state is NodeState.ERROR
    assert node.error == "rate limited"


@pytest.mark.asyncio
async def test_returned_error_dict_is_not_flagged_as_error():
    @define_tool(description="Soft failure")
    async def soft() -> dict:
        return {"error": "not found"}

    provider = ScriptedProvider([tool_use_completion(("soft", {})), text_completion("ok")])
    agent = Agent("caller", "Call", tools=[soft], provider=provider)
    context, tree = make_context("caller")

    await agent.run("go", context)

    [result] = tool_results(provider, 1)
    assert result.is_error is False
    assert json.loads(result.content) == {"error": "not found"}
    assert tree.root.children[0].state is NodeState.ERROR


@pytest.mark.asyncio
async def test_invalid_tool_input_is_flagged_as_error():
    @define_tool(description="Needs a number")
    async def needs_number(n: int) -> int:
        return n

    provider = ScriptedProvider([tool_use_completion(("needs_number", {"n": "x"})), text_completion("ok")])
    agent = Agent("caller", "Call", tools=[needs_number], provider=provider)

    await agent.run("go", ToolContext(job_id="job"))

    [result] = tool_results(provider, 1)
    assert result.is_error is True
    assert "Invalid input for needs_number" in json.loads(result.content)["error"]


@pytest.mark.asyncio
async def test_unknown_tool():
    provider = ScriptedProvider([tool_use_completion(("missing", {"x": 1})), text_completion("sorry")])
    agent = Agent("caller", "Call", tools=[noop], provider=provider)
    context, tree = make_context("caller")

    answer = await agent.run("go", context)

    assert answer == "sorry"
    [result] = tool_results(provider, 1)
    assert result.is_error is True
    assert json.loads(result.content) == {"error": "Unknown tool: missing"}
    [node] = tree.root.children
    assert node.kind is NodeKind.TOOL
    assert node.name == "missing"
    assert node.state is NodeState.ERROR


@pytest.mark.asyncio
async def test_model_failure_propagates():
    provider = ScriptedProvider([RuntimeError("provider down")])
    agent = Agent("caller", "Call", provider=provider)
    context, tree = make_context("caller")

    with pytest.raises(RuntimeError, match="provider down"):
        await agent.run("go", context)

    assert tree.root.metadata["metrics"]["status"] == "error"


class Answer(BaseModel):
    value: int


@pytest.mark.asyncio
async def test_output_schema():
    provider = ScriptedProvider([text_completion('```json\n{"value": 5}\n```')])
    agent = Agent("typed", "Answer", output_schema=Answer, provider=provider)

    answer = await agent.run("go", ToolContext(job_id="job"))

    assert Answer.model_validate_json(answer) == Answer(value=5)
    assert '"value"' in provider.calls[0].system_prompt


@pytest.mark.asyncio
async def test_output_schema_mismatch_is_raised():
    provider = ScriptedProvider([text_completion("five")])
    agent = Agent("typed", "Answer", output_schema=Answer, provider=provider)

    with pytest.raises(OutputValidationError) as exc_info:
        await agent.run("go", ToolContext(job_id="job"))

    assert exc_info.value.raw_output == "five"


def test_duplicate_tool_names_are_rejected():
    with pytest.raises(ValueError):
        Agent("dup", "x", tools=[noop, noop])


def test_instructions_from_context():
    agent = Agent("dynamic", lambda context: f"Job {context.job_id}")
    assert agent.construct_system_prompt(ToolContext(job_id="abc")) == "Job abc"


@pytest.mark.asyncio
async def test_live_channels_stream_reasoning_and_output():
    provider = ScriptedProvider([text_completion("42", reasoning="Let me think")])
    agent = Agent("thinker", "Think", provider=provider)
    channels = RunChannels.fresh("thinker")
    deltas = []
    channels.output.delta.subscribe(deltas.append)
    context, tree = make_context("thinker")

    await agent.run("go", context, channels=channels)

    assert channels.reasoning.text == "Let me think"
    assert deltas == ["42"]
    assert not channels.output.is_open
    # Explicit channels replace the node's own
    assert tree.root.stream.text == ""


@pytest.mark.asyncio
async def test_capped_run_with_output_schema_returns_last_text():
    provider = ScriptedProvider(
        default=lambda messages: tool_use_completion(("noop", {}), text="still working")
    )
    agent = Agent("typed", "Answer", tools=[noop], output_schema=Answer, max_tool_iterations=10, provider=provider)
    context, tree = make_context("typed")

    answer = await agent.run("go", context)

    assert answer == "still working"
    assert provider.call_count == 11
    assert tree.root.metadata["metrics"]["status"] == "incomplete"


def test_agents_are_not_kept_alive_after_use():
    agent = Agent("temporary", "Help", tools=[noop])
    ref = weakref.ref(agent)

    del agent
    gc.collect()

    assert ref() is None
