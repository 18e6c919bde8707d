# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""End-to-end job runs against a scripted provider."""
import asyncio
import pytest

from src.agents.base_agent import Agent
from src.agents.implementations.master import build_master_agent
from src.callgraph.node import NodeKind, NodeState
from src.io.chat_output import ChatOutput
from src.jobs.job import ChatBinding, Job
from src.jobs.runner import JobRunner
from src.llm.providers.mock import ScriptedProvider, text_completion, tool_use_completion
from src.storage.job_store import JobStore
from src.tools.base_tool import define_tool


@define_tool(description="Takes its time")
async def sleepy() -> dict:
    await asyncio.sleep(0.2)
    return {"slept": True}


def chat_targets(chat_client):
    return lambda job, link: [ChatOutput(chat_client, "chat", reply_to=1, debounce=0.01, job_link=link)]


@pytest.mark.asyncio
async def test_successful_job(chat_client, tmp_path):
    provider = ScriptedProvider([text_completion("Hello!")])
    agent = Agent("master_agent", "Be helpful", provider=provider)
    store = JobStore(tmp_path / "jobs")
    job = Job("hi", chat=ChatBinding(chat_id="chat", message_id=1, username="ada"))

    await JobRunner(agent, chat_targets(chat_client), store=store).run(job)

    assert job.status == "completed"
    assert job.answer == "Hello!"
    assert job.root.state is NodeState.COMPLETED
    answer = job.root.children[-1]
    assert answer.kind is NodeKind.TEXT
    assert answer.output == "Hello!"

    stored = store.load_job(job.id)
    assert stored.status == "completed"
    assert stored.username == "ada"
    assert stored.blocks[0].children[-1].output == "Hello!"

    assert any("Hello!" in text for text in chat_client.messages.values())


@pytest.mark.asyncio
async def test_structured_master_reply_is_unwrapped(chat_client):
    reply = '{"response": "It is 5", "actions_taken": []}'
    provider = ScriptedProvider([text_completion(reply)])
    job = Job("2 + 3")

    await JobRunner(build_master_agent(provider=provider), chat_targets(chat_client)).run(job)

    assert job.answer == "It is 5"
    assert job.root.output == "It is 5"


@pytest.mark.asyncio
async def test_failed_job(chat_client, tmp_path):
    provider = ScriptedProvider([RuntimeError("boom")])
    agent = Agent("master_agent", "Be helpful", provider=provider)
    store = JobStore(tmp_path / "jobs")
    job = Job("hi")

    await JobRunner(agent, chat_targets(chat_client), store=store).run(job)

    assert job.status == "error"
    assert "boom" in job.error
    assert job.answer is None
    assert job.root.state is NodeState.ERROR
    error_node = job.root.children[-1]
    assert error_node.kind is NodeKind.ERROR
    assert "boom" in error_node.error
    assert store.load_job(job.id).status == "error"


@pytest.mark.asyncio
async def test_timed_out_job_keeps_running_in_the_background(chat_client):
    provider = ScriptedProvider([tool_use_completion(("sleepy", {})), text_completion("late")])
    agent = Agent("master_agent", "Be slow", tools=[sleepy], provider=provider)
    job = Job("hi")

    await JobRunner(agent, chat_targets(chat_client), timeout=0.05).run(job)

    assert job.status == "error"
    assert "timed out" in job.error
    assert job.root.state is NodeState.ERROR

    await asyncio.sleep(0.4)
    assert provider.call_count == 2
    assert job.answer is None
    assert job.status == "error"


@pytest.mark.asyncio
async def test_files_are_recorded_and_sent(chat_client, tmp_path):
    notes = tmp_path / "notes.txt"
    notes.write_text("hello")
    provider = ScriptedProvider([
        tool_use_completion(("send_file", {"path": str(notes)})),
        text_completion("Sent"),
    ])
    agent = build_master_agent(provider=provider, structured=False)
    job = Job("send me a file")

    await JobRunner(agent, chat_targets(chat_client)).run(job)

    assert job.status == "completed"
    file_nodes = [n for n in job.tree.iter_dfs() if n.kind is NodeKind.FILE]
    assert [n.name for n in file_nodes] == ["notes.txt"]
    assert [c[2] for c in chat_client.of("send_document")] == ["notes.txt"]


def answer_by_task(messages):
    """Job "a" waits in a tool first, job "b" answers straight away."""
    task = messages[0].content[0].text
    if task == "a" and len(messages) == 1:
        return tool_use_completion(("sleepy", {}))
    return text_completion(f"done {task}", reasoning=f"reasoning for {task}")


@pytest.mark.asyncio
async def test_concurrent_jobs_on_one_agent_stay_separate(chat_client):
    agent = Agent("master_agent", "Be helpful", tools=[sleepy], provider=ScriptedProvider(default=answer_by_task))
    runner = JobRunner(agent, chat_targets(chat_client))
    job_a, job_b = Job("a"), Job("b")
    seen_by_a: list[str] = []
    job_a.root.reasoning.delta.subscribe(seen_by_a.append)

    await asyncio.gather(runner.run(job_a), runner.run(job_b))

    assert (job_a.answer, job_b.answer) == ("done a", "done b")
    assert seen_by_a == ["reasoning for a"]
    assert job_a.root.reasoning.text == "reasoning for a"
    assert job_b.root.reasoning.text == "reasoning for b"
    assert [n.name for n in job_b.root.children if n.kind is NodeKind.TOOL] == []


@pytest.mark.asyncio
async def test_capped_structured_job_completes_with_last_text(chat_client):
    provider = ScriptedProvider(
        default=lambda messages: tool_use_completion(("missing", {}), text="Still looking")
    )
    agent = build_master_agent(provider=provider, max_tool_iterations=2)
    job = Job("find it")

    await JobRunner(agent, chat_targets(chat_client)).run(job)

    assert job.status == "completed"
    assert job.answer == "Still looking"
    assert provider.call_count == 3
