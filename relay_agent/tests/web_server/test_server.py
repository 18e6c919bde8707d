# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import pytest

from fastapi.testclient import TestClient

from src.storage.job_store import JobStore
from src.storage.models import JobMetadata, StoredBlock
from src.web_server.server import JobNotifier, app, set_store


@pytest.fixture
def store(tmp_path):
    store = JobStore(tmp_path / "jobs")
    set_store(store)
    yield store
    set_store(None)


@pytest.fixture
def client(store):
    return TestClient(app)


@pytest.fixture
def finished_job(store):
    job = store.create_job("Add 2 and 3", JobMetadata(username="ada"))
    job.blocks = [
        StoredBlock(
            id="root",
            type="agent",
            name="master_agent",
            state="completed",
            task="Add 2 and 3",
            children=[
                StoredBlock(
                    id="tool",
                    type="tool",
                    name="add_numbers",
                    state="completed",
                    input={"a": 2, "b": 3},
                    output={"sum": 5},
                    summary="Added the numbers",
                ),
                StoredBlock(id="text", type="text", name="text", state="completed", output="The sum is 5"),
            ],
        )
    ]
    store.update_job(job)
    return store.complete_job(job, "completed")


def test_api_lists_jobs(client, finished_job):
    response = client.get("/api/jobs")

    assert response.status_code == 200
    [job] = response.json()
    assert job["id"] == finished_job.id
    assert job["status"] == "completed"


def test_api_job_detail(client, finished_job):
    response = client.get(f"/api/jobs/{finished_job.id}")

    assert response.status_code == 200
    assert response.json()["blocks"][0]["children"][0]["output"] == {"sum": 5}


def test_unknown_job_is_404(client, store):
    assert client.get("/api/jobs/missing").status_code == 404
    assert client.get("/jobs/missing").status_code == 404


def test_jobs_page(client, finished_job):
    response = client.get("/jobs")

    assert response.status_code == 200
    assert "Add 2 and 3" in response.text
    assert f"/jobs/{finished_job.id}" in response.text
    assert "ada" in response.text


def test_job_page_renders_the_block_tree(client, finished_job):
    response = client.get(f"/jobs/{finished_job.id}")

    assert response.status_code == 200
    assert "AddNumbers" in response.text
    assert "Added the numbers" in response.text
    assert "The sum is 5" in response.text
    # Finished jobs do not open a live connection
    assert "WebSocket" not in response.text


def test_running_job_page_subscribes(client, store):
    job = store.create_job("still going")

    response = client.get(f"/jobs/{job.id}")

    assert f"/ws/jobs/{job.id}" in response.text


def test_websocket_for_finished_job(client, finished_job):
    with client.websocket_connect(f"/ws/jobs/{finished_job.id}") as websocket:
        assert websocket.receive_json() == {"type": "job_complete", "status": "completed"}


class FakeSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []
        self.closed = False

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(data)

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_notifier_fans_out_and_drops_broken_sockets():
    notifier = JobNotifier()
    good, broken, other = FakeSocket(), FakeSocket(fail=True), FakeSocket()
    notifier.subscribe("job", good)
    notifier.subscribe("job", broken)
    notifier.subscribe("other", other)

    await notifier.notify("job", {"type": "block_update", "blockId": "b1"})

    assert good.sent == [{"type": "block_update", "blockId": "b1"}]
    assert other.sent == []
    assert notifier.subscribers["job"] == {good}


@pytest.mark.asyncio
async def test_notifier_closes_sockets_on_completion():
    notifier = JobNotifier()
    socket = FakeSocket()
    notifier.subscribe("job", socket)

    await notifier.notify("job", {"type": "job_complete", "status": "completed"})

    assert socket.sent == [{"type": "job_complete", "status": "completed"}]
    assert socket.closed
    assert "job" not in notifier.subscribers
