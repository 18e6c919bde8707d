# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import asyncio
import pytest

from src.callgraph.node import NodeKind
from src.jobs.job import ChatBinding, Job


def test_new_job_owns_its_tree():
    job = Job("2 + 3", agent_name="math_agent")

    assert job.status == "running"
    assert not job.is_done
    assert job.root.kind is NodeKind.AGENT
    assert job.root.name == "math_agent"
    assert job.root.task == "2 + 3"
    assert job.tree.job_id == job.id


def test_complete_only_once():
    job = Job("hello")

    assert job.complete("completed", answer="Hi!")
    assert not job.complete("error", error="late failure")

    assert job.status == "completed"
    assert job.answer == "Hi!"
    assert job.error is None
    assert job.is_done


def test_cannot_complete_as_running():
    with pytest.raises(ValueError):
        Job("hello").complete("running")


@pytest.mark.asyncio
async def test_wait_returns_the_final_status():
    job = Job("hello")
    waiter = asyncio.ensure_future(job.wait())
    await asyncio.sleep(0)
    assert not waiter.done()

    job.complete("error", error="boom")

    assert await waiter == "error"


def test_context_carries_the_chat_binding():
    job = Job("hello", chat=ChatBinding(chat_id="chat-1", message_id=7, username="ada"))

    context = job.to_context()

    assert context.job_id == job.id
    assert context.chat_id == "chat-1"
    assert context.user == "ada"
    assert context.tree is job.tree
    assert context.node is job.root
