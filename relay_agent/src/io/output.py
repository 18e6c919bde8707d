# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Broadcasting one logical message to several output targets."""

import asyncio
import logging

from typing import Iterable

from .types import BlockContent, BlockHandle, BlockState, MessageContent, MessageHandle, OutputTarget
from ..callgraph.node import NodeState
from ..types.tool_types import FileOutput

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class CompositeBlockHandle:
    """The same block on every target. It works with no targets at all."""

    def __init__(self, handles: list[BlockHandle], content: BlockContent, state: BlockState):
        self.handles = handles
        self._content = content
        self._state = state

    @property
    def id(self) -> str:
        return self.handles[0].id if self.handles else ""

    @property
    def state(self) -> BlockState:
        return self._state

    @state.setter
    def state(self, value: BlockState) -> None:
        self._state = value
        for handle in self.handles:
            handle.state = value

    @property
    def content(self) -> BlockContent:
        return self._content

    @content.setter
    def content(self, value: BlockContent) -> None:
        self._content = value
        for handle in self.handles:
            handle.content = value.copy()

    def add_child(self, content: BlockContent, state: BlockState = NodeState.IN_PROGRESS) -> "CompositeBlockHandle":
        handles = [h.add_child(content.copy(), state) for h in self.handles]
        return CompositeBlockHandle(handles, content, state)


class CompositeMessageHandle:
    def __init__(self, handles: list[MessageHandle]):
        self.handles = handles

    def append(self, text: str) -> None:
        for handle in self.handles:
            handle.append(text)

    def replace_with(self, text: str) -> None:
        for handle in self.handles:
            handle.replace_with(text)

    def add_photo(self, file: FileOutput) -> None:
        for handle in self.handles:
            handle.add_photo(file)

    def add_file(self, file: FileOutput) -> None:
        for handle in self.handles:
            handle.add_file(file)

    def clear(self) -> None:
        for handle in self.handles:
            handle.clear()

    def create_block(
        self, content: BlockContent, state: BlockState = NodeState.IN_PROGRESS
    ) -> CompositeBlockHandle:
        handles = [h.create_block(content.copy(), state) for h in self.handles]
        return CompositeBlockHandle(handles, content, state)

    async def close(self) -> None:
        results = await asyncio.gather(*(h.close() for h in self.handles), return_exceptions=True)
        for handle, result in zip(self.handles, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to close {type(handle).__name__}: {result}")


class Output:
    """Fan-out over every configured output target."""

    def __init__(self, targets: Iterable[OutputTarget]):
        self.targets = list(targets)

    async def send_message(self, content: MessageContent) -> CompositeMessageHandle:
        handles = [await target.send_message(content) for target in self.targets]
        return CompositeMessageHandle(handles)

    async def send_files(self, files: list[FileOutput]) -> None:
        """Send files as standalone messages: images as photos, the rest as documents."""
        if not files:
            return
        handle = await self.send_message(MessageContent())
        for file in files:
            if file.is_image:
                handle.add_photo(file)
            else:
                handle.add_file(file)
        await handle.close()
