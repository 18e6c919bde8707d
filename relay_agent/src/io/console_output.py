# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Terminal output with ``rich``: a live block tree and a live call view."""

import logging

from typing import Optional

from rich.console import Console, Group
from rich.errors import LiveError
from rich.live import Live
from rich.markdown import Markdown
from rich.text import Text
from rich.tree import Tree

from .types import Block, BlockHandle, MessageContent, MessageHandle, OutputTarget
from .call_renderer import STATE_STYLES, CallRenderer
from .formatting import format_name, status_indicator
from ..callgraph.node import CallNode, NodeKind, NodeState
from ..types.tool_types import FileOutput

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _block_label(block: Block, verbose: bool) -> Text:
    content = block.content
    state = block.effective_state()
    label = Text(f"{status_indicator(state)} ", style=STATE_STYLES[state])
    label.append(format_name(content.name, content.type), style="bold")
    detail = content.error or content.summary
    if detail is None and content.type == NodeKind.AGENT.value:
        detail = content.task
    if detail is None and verbose and content.result is not None:
        detail = str(content.result)
    if detail:
        label.append(f": {detail}")
    return label


def _add_block(tree: Tree, block: Block, verbose: bool) -> None:
    content = block.content
    if content.type == NodeKind.TEXT.value:
        tree.add(Markdown(content.text or ""))
        return
    if content.type == NodeKind.FILE.value:
        tree.add(Text(f"📎 {content.filename or content.name}", style="magenta"))
        return
    if content.type == NodeKind.ERROR.value:
        tree.add(Text(f"✖ Error: {content.error}", style="bold red"))
        return
    branch = tree.add(_block_label(block, verbose))
    if verbose and content.thinking:
        branch.add(Text(content.thinking, style="dim italic"))
    for child in block.children:
        _add_block(branch, child, verbose)


class ConsoleMessageHandle(MessageHandle):
    """Re-renders the whole message into a ``rich`` Live region on every change."""

    def __init__(self, console: Console, content: MessageContent, verbose: bool = False):
        super().__init__()
        self.console = console
        self.verbose = verbose
        self.texts: list[str] = [content.text] if content.text else []
        self.files: list[str] = [f.filename for f in content.files]
        self._live: Optional[Live] = Live(self._renderable(), console=console, refresh_per_second=8, transient=False)
        self._printed = False
        try:
            self._live.start()
        except LiveError:
            # Another live region owns the terminal; print once on close instead
            logger.debug("Console already has a live display, deferring output to close")
            self._live = None

    def _renderable(self) -> Group:
        tree = Tree(Text("relay_agent", style="bold blue"), hide_root=True)
        for block in self.blocks:
            _add_block(tree, block, self.verbose)
        parts = [Markdown(text) for text in self.texts]
        parts.append(tree)
        parts.extend(Text(f"📎 {name}", style="magenta") for name in self.files)
        return Group(*parts)

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self._renderable())

    def append(self, text: str) -> None:
        self.texts.append(text)
        self._refresh()

    def replace_with(self, text: str) -> None:
        self.texts = [text]
        self._refresh()

    def add_photo(self, file: FileOutput) -> None:
        self.files.append(file.filename)
        self._refresh()

    def add_file(self, file: FileOutput) -> None:
        self.files.append(file.filename)
        self._refresh()

    def clear(self) -> None:
        self.texts = []
        self.files = []
        self.blocks = []
        self._refresh()

    def on_block_change(self, handle: BlockHandle) -> None:
        self._refresh()

    async def close(self) -> None:
        if self._live is not None:
            self._live.update(self._renderable())
            self._live.stop()
            self._live = None
        elif not self._printed:
            self.console.print(self._renderable())
        self._printed = True


class ConsoleOutput(OutputTarget):
    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose

    async def send_message(self, content: MessageContent) -> ConsoleMessageHandle:
        return ConsoleMessageHandle(self.console, content, self.verbose)


class LiveCallView:
    """Streams a job's call tree (reasoning, output, nested calls) to the terminal."""

    def __init__(self, root: CallNode, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.renderer = CallRenderer(root, verbose=verbose, on_change=self._refresh)
        self._live: Optional[Live] = None

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self.renderer.render())

    def start(self) -> "LiveCallView":
        self._live = Live(self.renderer.render(), console=self.console, refresh_per_second=8)
        self._live.start()
        return self

    def stop(self) -> None:
        if self._live is not None:
            self._live.update(self.renderer.render())
            self._live.stop()
            self._live = None
        self.renderer.dispose()

    def __enter__(self) -> "LiveCallView":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()
