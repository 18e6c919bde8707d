# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for fan-out over output targets and progress reporting."""
import io
import pytest

from rich.console import Console

from src.callgraph.node import NodeState
from src.io.console_output import ConsoleOutput
from src.io.output import Output
from src.io.progress import ChatProgress, FileProgress, NullProgress, Progress, ProgressTarget, extract_error
from src.io.types import BlockContent, MessageContent, MessageHandle, OutputTarget
from src.types.tool_types import FileOutput


class RecordingHandle(MessageHandle):
    def __init__(self, content: MessageContent):
        super().__init__()
        self.text = content.text
        self.photos: list[str] = []
        self.documents: list[str] = []
        self.block_changes = 0
        self.closed = False

    def append(self, text):
        self.text = f"{self.text}\n{text}" if self.text else text

    def replace_with(self, text):
        self.text = text

    def add_photo(self, file):
        self.photos.append(file.filename)

    def add_file(self, file):
        self.documents.append(file.filename)

    def clear(self):
        self.text = ""

    def on_block_change(self, handle):
        self.block_changes += 1

    async def close(self):
        self.closed = True


class RecordingTarget(OutputTarget):
    def __init__(self):
        self.handles: list[RecordingHandle] = []

    async def send_message(self, content):
        handle = RecordingHandle(content)
        self.handles.append(handle)
        return handle


class TestOutput:
    @pytest.mark.asyncio
    async def test_every_target_gets_every_change(self):
        targets = [RecordingTarget(), RecordingTarget()]
        output = Output(targets)

        message = await output.send_message(MessageContent(text="start"))
        message.append("more")
        block = message.create_block(BlockContent(type="agent", name="math_agent"))
        child = block.add_child(BlockContent(type="tool", name="add_numbers"))
        child.state = NodeState.COMPLETED
        await message.close()

        for target in targets:
            [handle] = target.handles
            assert handle.text == "start\nmore"
            assert handle.closed
            assert handle.blocks[0].children[0].state is NodeState.COMPLETED
            assert handle.block_changes == 3

    @pytest.mark.asyncio
    async def test_block_content_is_copied_per_target(self):
        targets = [RecordingTarget(), RecordingTarget()]
        message = await Output(targets).send_message(MessageContent())

        block = message.create_block(BlockContent(type="tool", name="x"))
        block.content = BlockContent(type="tool", name="x", summary="done")

        first, second = (t.handles[0].blocks[0].content for t in targets)
        assert first is not second
        assert first.summary == second.summary == "done"

    @pytest.mark.asyncio
    async def test_send_files_routes_images_to_photos(self):
        target = RecordingTarget()
        files = [
            FileOutput(filename="plot.png", data=b"", mime_type="image/png"),
            FileOutput(filename="data.csv", data=b"", mime_type="text/csv"),
        ]

        await Output([target]).send_files(files)

        [handle] = target.handles
        assert handle.photos == ["plot.png"]
        assert handle.documents == ["data.csv"]
        assert handle.closed

    @pytest.mark.asyncio
    async def test_failing_close_does_not_stop_the_others(self):
        class BrokenHandle(RecordingHandle):
            async def close(self):
                raise RuntimeError("gone")

        class BrokenTarget(RecordingTarget):
            async def send_message(self, content):
                handle = BrokenHandle(content)
                self.handles.append(handle)
                return handle

        good = RecordingTarget()
        message = await Output([BrokenTarget(), good]).send_message(MessageContent())
        await message.close()

        assert good.handles[0].closed


@pytest.mark.asyncio
async def test_console_output_renders_text_and_blocks():
    console = Console(file=io.StringIO(), width=100, color_system=None)
    handle = await ConsoleOutput(console).send_message(MessageContent(text="Hello"))

    block = handle.create_block(BlockContent(type="agent", name="math_agent", task="2 + 3"))
    block.state = NodeState.COMPLETED
    await handle.close()

    rendered = console.file.getvalue()
    assert "Hello" in rendered
    assert "Math: 2 + 3" in rendered


class TestProgress:
    def test_extract_error(self):
        try:
            raise ValueError("bad value")
        except ValueError as e:
            extracted = extract_error(e)
        assert extracted.message == "bad value"
        assert "ValueError" in extracted.stack

        assert extract_error("plain").message == "plain"
        from_dict = extract_error({"error": "rate limited", "code": 429})
        assert from_dict.message == "rate limited"
        assert from_dict.code == "429"
        assert extract_error(RuntimeError()).message == "RuntimeError"

    @pytest.mark.asyncio
    async def test_file_progress(self, tmp_path):
        path = tmp_path / "logs" / "progress.log"
        progress = Progress([FileProgress(path), NullProgress()])

        await progress.agent("math_agent", "started", "2 + 3")
        await progress.tool("add_numbers", "completed", '{"sum": 5}')
        await progress.error({"error": "rate limited", "code": 429})

        lines = path.read_text().splitlines()
        assert lines[0].endswith("AGENT math_agent STARTED - 2 + 3")
        assert lines[1].endswith('TOOL add_numbers COMPLETED - {"sum": 5}')
        assert lines[2].endswith("ERROR rate limited")
        assert lines[3] == "  Code: 429"

    @pytest.mark.asyncio
    async def test_chat_progress_updates_agent_lines_in_place(self):
        handle = RecordingHandle(MessageContent())
        progress = ChatProgress(handle, result_preview=10)

        await progress.agent("math_agent", "started")
        await progress.tool("add_numbers", "started")
        await progress.tool("add_numbers", "completed", "a fairly long result")
        await progress.agent("math_agent", "completed", "1 iterations")

        assert handle.text.splitlines() == [
            "✅ **math_agent** done - 1 iterations",
            "  → add_numbers: a fairl...",
        ]

    @pytest.mark.asyncio
    async def test_chat_progress_keeps_the_latest_lines(self):
        handle = RecordingHandle(MessageContent())
        progress = ChatProgress(handle, max_lines=2)

        for i in range(5):
            await progress.message(f"step {i}")

        assert handle.text.splitlines() == ["  step 3", "  step 4"]

    @pytest.mark.asyncio
    async def test_failing_target_is_skipped(self):
        seen = []

        class Broken(ProgressTarget):
            async def agent(self, name, status, message=None):
                raise RuntimeError("broken")

            async def tool(self, name, status, result=None):
                pass

            async def message(self, text):
                pass

            async def error(self, error):
                pass

        class Recording(Broken):
            async def agent(self, name, status, message=None):
                seen.append((name, status))

        progress = Progress().add_target(Broken()).add_target(Recording())
        await progress.agent("a", "started")

        assert seen == [("a", "started")]


@pytest.mark.asyncio
async def test_output_without_targets_still_tracks_blocks():
    message = await Output([]).send_message(MessageContent())

    block = message.create_block(BlockContent(type="agent", name="math_agent"))
    block.state = NodeState.COMPLETED
    child = block.add_child(BlockContent(type="tool", name="add_numbers"))

    assert block.state is NodeState.COMPLETED
    assert child.content.name == "add_numbers"
    await message.close()
