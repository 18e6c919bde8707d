# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Target-neutral message and block types shared by every output target."""

from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import uuid4
from typing import Any, Callable, Optional
from datetime import datetime
from dataclasses import dataclass, field, replace

from ..callgraph.node import CallNode, NodeKind, NodeState
from ..types.tool_types import FileOutput

BlockState = NodeState


def _block_id() -> str:
    return uuid4().hex[:7]


@dataclass
class BlockContent:
    """What a block shows. ``type`` is one of the ``NodeKind`` values."""

    type: str
    name: str = ""
    task: Optional[str] = None
    input: Any = None
    result: Any = None
    error: Optional[str] = None
    summary: Optional[str] = None
    text: Optional[str] = None
    filename: Optional[str] = None
    thinking: Optional[str] = None

    @classmethod
    def from_node(cls, node: CallNode) -> "BlockContent":
        if node.kind is NodeKind.TEXT:
            return cls(type=node.kind.value, name=node.name, text=str(node.output or ""))
        if node.kind is NodeKind.FILE:
            filename = node.output.get("filename") if isinstance(node.output, dict) else node.name
            return cls(type=node.kind.value, name=node.name, filename=filename)
        if node.kind is NodeKind.ERROR:
            return cls(type=node.kind.value, name=node.name, error=node.error)
        return cls(
            type=node.kind.value,
            name=node.name,
            task=node.task if node.kind is NodeKind.AGENT else None,
            input=node.input,
            result=node.output,
            error=node.error,
            summary=node.summary,
            thinking=node.reasoning.text or None,
        )

    def copy(self, **changes) -> "BlockContent":
        return replace(self, **changes)


@dataclass
class Block:
    id: str
    content: BlockContent
    state: BlockState = NodeState.IN_PROGRESS
    children: list["Block"] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def effective_state(self) -> BlockState:
        """Error anywhere below wins, then anything unfinished, then our own state."""
        if self.state is NodeState.ERROR:
            return NodeState.ERROR
        pending = False
        for child in self.children:
            child_state = child.effective_state()
            if child_state is NodeState.ERROR:
                return NodeState.ERROR
            if child_state is NodeState.IN_PROGRESS:
                pending = True
        return NodeState.IN_PROGRESS if pending else self.state


@dataclass
class MessageContent:
    text: str = ""
    files: list[FileOutput] = field(default_factory=list)


class BlockHandle:
    """A live handle onto one block of a message.

    Setting ``state`` or ``content`` and adding children notify the owning
    message through ``on_change``, which decides how (and when) to re-render.
    """

    def __init__(self, block: Block, on_change: Callable[["BlockHandle"], None]):
        self.block = block
        self._on_change = on_change

    @property
    def id(self) -> str:
        return self.block.id

    @property
    def state(self) -> BlockState:
        return self.block.state

    @state.setter
    def state(self, value: BlockState) -> None:
        self.block.state = value
        if value.is_terminal and self.block.completed_at is None:
            self.block.completed_at = datetime.now()
        self._on_change(self)

    @property
    def content(self) -> BlockContent:
        return self.block.content

    @content.setter
    def content(self, value: BlockContent) -> None:
        self.block.content = value
        self._on_change(self)

    def add_child(self, content: BlockContent, state: BlockState = NodeState.IN_PROGRESS) -> "BlockHandle":
        child = Block(id=_block_id(), content=content, state=state)
        if state.is_terminal:
            child.completed_at = child.started_at
        self.block.children.append(child)
        handle = BlockHandle(child, self._on_change)
        self._on_change(handle)
        return handle


class MessageHandle(ABC):
    """One logical message on one target.

    Mutations are synchronous and may be applied lazily (debounced or queued);
    ``close`` flushes whatever is still pending.
    """

    def __init__(self):
        self.blocks: list[Block] = []

    @abstractmethod
    def append(self, text: str) -> None:
        pass

    @abstractmethod
    def replace_with(self, text: str) -> None:
        pass

    @abstractmethod
    def add_photo(self, file: FileOutput) -> None:
        pass

    @abstractmethod
    def add_file(self, file: FileOutput) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    def create_block(
        self, content: BlockContent, state: BlockState = NodeState.IN_PROGRESS
    ) -> BlockHandle:
        block = Block(id=_block_id(), content=content, state=state)
        if state.is_terminal:
            block.completed_at = block.started_at
        self.blocks.append(block)
        handle = BlockHandle(block, self.on_block_change)
        self.on_block_change(handle)
        return handle

    def on_block_change(self, handle: BlockHandle) -> None:
        """Called after any block of this message changed."""
        pass

    async def close(self) -> None:
        pass


class OutputTarget(ABC):
    """Somewhere messages can be sent: a chat, the console, the job store."""

    @abstractmethod
    async def send_message(self, content: MessageContent) -> MessageHandle:
        pass
