# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import pytest

from datetime import datetime

from src.callgraph.node import NodeState
from src.io.job_store_output import JobStoreOutput, to_stored_block
from src.io.types import Block, BlockContent, MessageContent
from src.storage.job_store import JobStore


@pytest.fixture
def store(tmp_path):
    return JobStore(tmp_path / "jobs")


@pytest.mark.asyncio
async def test_block_changes_are_persisted_and_announced(store):
    events = []
    store.set_notifier(lambda job_id, event: events.append((job_id, event)))
    job = store.create_job("2 + 3")
    output = JobStoreOutput(store, job)

    handle = await output.send_message(MessageContent(text="not persisted"))
    agent = handle.create_block(BlockContent(type="agent", name="math_agent", task="2 + 3"))
    tool = agent.add_child(BlockContent(type="tool", name="add_numbers", input={"a": 2, "b": 3}))
    tool.content = BlockContent(type="tool", name="add_numbers", input={"a": 2, "b": 3}, result={"sum": 5})
    tool.state = NodeState.COMPLETED

    stored = store.load_job(job.id)
    [agent_block] = stored.blocks
    assert agent_block.task == "2 + 3"
    assert agent_block.state == "in_progress"
    [tool_block] = agent_block.children
    assert tool_block.output == {"sum": 5}
    assert tool_block.state == "completed"
    assert tool_block.duration is not None

    job_id, event = events[-1]
    assert job_id == job.id
    assert event["type"] == "block_update"
    assert event["blockId"] == tool.id
    assert event["block"]["state"] == "completed"


@pytest.mark.asyncio
async def test_complete_marks_the_stored_job(store):
    events = []
    store.set_notifier(lambda job_id, event: events.append(event))
    job = store.create_job("hello")

    JobStoreOutput(store, job).complete("error")

    assert store.load_job(job.id).status == "error"
    assert events == [{"type": "job_complete", "status": "error"}]


def test_to_stored_block():
    text = Block(id="b1", content=BlockContent(type="text", name="text", text="hi"), state=NodeState.COMPLETED)
    file = Block(id="b2", content=BlockContent(type="file", name="file", filename="plot.png"), state=NodeState.COMPLETED)
    tool = Block(
        id="b3",
        content=BlockContent(type="tool", name="lookup", input={"when": datetime(2025, 1, 1)}),
    )

    assert to_stored_block(text).output == "hi"
    assert to_stored_block(file).name == "plot.png"
    stored = to_stored_block(tool)
    assert stored.input == {"when": "2025-01-01 00:00:00"}
    assert stored.state == "in_progress"
    assert stored.duration is None
