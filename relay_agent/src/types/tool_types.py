# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from __future__ import annotations

import os
import json
import inspect
import mimetypes

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from pydantic import BaseModel, Field

from ..callgraph.node import CallNode, NodeKind
from ..callgraph.tree import CallTree

if TYPE_CHECKING:
    from ..io.progress import Progress


class ToolKind(str, Enum):
    """How a tool is backed. Resolved once when an agent is constructed."""

    FUNCTION = "function"
    SDK = "sdk"
    AGENT = "agent"


class FileOutput(BaseModel):
    """A file produced by a tool, delivered to the user outside the conversation."""

    filename: str
    data: bytes
    mime_type: str = "application/octet-stream"

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @classmethod
    def from_path(cls, path: Path | str) -> "FileOutput":
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            filename=path.name,
            data=path.read_bytes(),
            mime_type=mime_type or "application/octet-stream",
        )


class ToolResult(BaseModel):
    """Represents the result of a tool execution."""

    tool_name: str
    success: bool = True
    duration: float = 0.0
    output: Any = None
    errors: str | None = None
    files: list[FileOutput] = Field(default_factory=list)
    invocation_id: str = Field(default_factory=lambda: os.urandom(4).hex())

    def to_content(self) -> str:
        """Serialise the result for the model conversation. Files are never included."""
        if self.errors is not None:
            return json.dumps({"error": self.errors})
        if isinstance(self.output, str):
            return self.output
        if self.output is None:
            if self.files:
                return json.dumps({"files": [f.filename for f in self.files]})
            return json.dumps({"success": self.success})
        return json.dumps(self.output, default=str)

    def __str__(self):
        return self.to_content()


@dataclass
class ToolContext:
    """Per-job context handed to every tool execution.

    Tools receive a copy bound to their own call node (see ``for_node``), so
    nested agents attach their sub-calls under the right parent.
    """

    job_id: str
    chat_id: str | None = None
    user: str | None = None
    progress: "Progress | None" = None
    attach_file: Callable[[FileOutput], Awaitable[None] | None] | None = None
    tree: CallTree | None = None
    node: CallNode | None = None
    state: dict[str, Any] = field(default_factory=dict)

    def for_node(self, node: CallNode) -> "ToolContext":
        return replace(self, node=node)

    async def send_file(self, file: FileOutput) -> bool:
        """Forward a file to the registered output callback, if there is one."""
        if self.attach_file is None:
            return False
        result = self.attach_file(file)
        if inspect.isawaitable(result):
            await result
        return True


class ToolInterface(ABC):
    """Abstract interface for anything an agent can call."""

    name: str
    description: str
    kind: ToolKind

    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the tool's input object."""
        pass

    @abstractmethod
    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> ToolResult:
        """Validate ``tool_input`` and run the tool.

        Expected failures come back as a ``ToolResult`` with ``errors`` set.
        Anything raised is a programming or contract error and is turned into
        an ``is_error`` result by the calling agent.
        """
        pass

    def open_node(self, tree: CallTree, parent: CallNode, tool_input: dict[str, Any]) -> CallNode:
        """Create the call node this invocation runs under."""
        return tree.add_child(parent, NodeKind.TOOL, self.name, input=tool_input)

    def native_definition(self) -> dict[str, Any] | None:
        """A provider-native declaration that replaces the generic one, if any."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, kind={self.kind.value})"
