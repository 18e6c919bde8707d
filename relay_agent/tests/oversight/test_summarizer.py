# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import asyncio
import pytest

from src.callgraph.node import NodeKind
from src.callgraph.tree import CallTree
from src.llm.providers.mock import ScriptedProvider, text_completion
from src.oversight.summarizer import EMPTY_SUMMARY, FALLBACK_SUMMARY, Summarizer, clean_summary


@pytest.mark.parametrize(
    "raw,name,expected",
    [
        ("add_numbers: added 2 and 3", "add_numbers", "Added 2 and 3"),
        ("Add Numbers computed 5", "add_numbers", "Computed 5"),
        ('"Found 3 character files"', "search", "Found 3 character files"),
        ("Do you want the sum", "math_agent", "The sum"),
        ("Listed 5 items!!", "list_files", "Listed 5 items"),
        ("   ", "calculate", EMPTY_SUMMARY),
    ],
)
def test_clean_summary(raw, name, expected):
    assert clean_summary(raw, name) == expected


def summarizer_with(*script, default="Added the numbers"):
    provider = ScriptedProvider(list(script), default=lambda messages: text_completion(default))
    return Summarizer(provider=provider, model="fast-model"), provider


@pytest.mark.asyncio
async def test_tool_summary_prompt():
    summarizer, provider = summarizer_with()

    summary = await summarizer.summarize_tool("add_numbers", {"a": 2, "b": 3}, {"sum": 5})

    assert summary == "Added the numbers"
    [call] = provider.calls
    assert call.model == "fast-model"
    prompt = call.messages[0].content[0].text
    assert 'Input: {"a": 2, "b": 3}' in prompt
    assert 'Output: {"sum": 5}' in prompt


@pytest.mark.asyncio
async def test_agent_summary_prompt():
    summarizer, provider = summarizer_with(default="Solved the sum")

    assert await summarizer.summarize_agent("math_agent", "2 + 3") == "Solved the sum"
    prompt = provider.calls[0].messages[0].content[0].text
    assert "Task: 2 + 3" in prompt
    assert "Result: pending" in prompt


@pytest.mark.asyncio
async def test_failure_falls_back_and_is_not_cached():
    summarizer, provider = summarizer_with(RuntimeError("overloaded"))

    assert await summarizer.summarize_tool("calculate", "2+3", 5) == FALLBACK_SUMMARY
    assert await summarizer.summarize_tool("calculate", "2+3", 5) == "Added the numbers"
    assert provider.call_count == 2


@pytest.mark.asyncio
async def test_results_are_cached():
    summarizer, provider = summarizer_with()

    first = await summarizer.summarize_tool("calculate", "2+3", 5)
    second = await summarizer.summarize_tool("calculate", "2+3", 5)

    assert first == second
    assert provider.call_count == 1


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_call():
    summarizer, provider = summarizer_with()

    results = await asyncio.gather(*(summarizer.summarize_tool("calculate", "2+3", 5) for _ in range(3)))

    assert results == ["Added the numbers"] * 3
    assert provider.call_count == 1


@pytest.mark.asyncio
async def test_schedule_attaches_the_summary():
    summarizer, _ = summarizer_with(default="Checked the weather")
    tree = CallTree("job", "master_agent", "weather?")
    node = tree.add_child(tree.root, NodeKind.TOOL, "forecast", input={"city": "Paris"})
    tree.complete(node, {"temp": 21})
    updates = []
    tree.node_updated.subscribe(updates.append)

    summarizer.schedule(node, tree)
    await summarizer.wait_idle()

    assert node.summary == "Checked the weather"
    assert updates == [node]
