# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Nodes of a job's execution call tree.

A node is either an agent turn, a tool call, or a leaf of content (text, file
or error). Nodes only ever gain children and move through exactly one terminal
transition; the tree that owns them (``CallTree``) enforces both.
"""

from enum import Enum
from typing import Any, Iterator, Optional
from datetime import datetime
from dataclasses import dataclass, field

from ..events.delta_stream import DeltaStream, Signal


class NodeKind(str, Enum):
    AGENT = "agent"
    TOOL = "tool"
    TEXT = "text"
    FILE = "file"
    ERROR = "error"


class NodeState(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not NodeState.IN_PROGRESS


@dataclass(eq=False)
class CallNode:
    """
    Represents one call in the execution tree.

    Besides the persisted fields, each node carries live channels that
    renderers subscribe to: ``reasoning`` and ``output`` text streams, a
    ``log`` signal of human readable lines, and a ``call`` signal that fires
    with each direct sub-call as it starts.
    """

    # Core identity
    id: str
    kind: NodeKind
    name: str
    parent_id: Optional[str] = None
    children: list["CallNode"] = field(default_factory=list)

    # Execution state
    state: NodeState = NodeState.IN_PROGRESS
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    # Call-specific data
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    summary: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    # Live channels
    reasoning: DeltaStream = field(default=None, repr=False)
    stream: DeltaStream = field(default=None, repr=False)
    log: Signal[str] = field(default=None, repr=False)
    call: Signal["CallNode"] = field(default=None, repr=False)

    def __post_init__(self):
        if self.reasoning is None:
            self.reasoning = DeltaStream(f"{self.name}.reasoning")
        if self.stream is None:
            self.stream = DeltaStream(f"{self.name}.output")
        if self.log is None:
            self.log = Signal(f"{self.name}.log")
        if self.call is None:
            self.call = Signal(f"{self.name}.call")

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Calculate execution duration if completed."""
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def task(self) -> Optional[str]:
        """The natural-language request for agent nodes, if there is one."""
        if isinstance(self.input, str):
            return self.input
        if isinstance(self.input, dict) and isinstance(self.input.get("input"), str):
            return self.input["input"]
        return None

    def iter_descendants(self) -> Iterator["CallNode"]:
        """Depth-first iteration over every node below this one."""
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def effective_state(self) -> NodeState:
        """The state a renderer should show.

        Error anywhere in the subtree wins, then any unfinished descendant,
        then the node's own state.
        """
        if self.state is NodeState.ERROR:
            return NodeState.ERROR
        in_progress = False
        for node in self.iter_descendants():
            if node.state is NodeState.ERROR:
                return NodeState.ERROR
            if node.state is NodeState.IN_PROGRESS:
                in_progress = True
        if in_progress:
            return NodeState.IN_PROGRESS
        return self.state

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "state": self.state.value,
            "effective_state": self.effective_state().value,
            "input": self.input,
            "output": self.output,
            "error": self.error,
            "summary": self.summary,
            "reasoning": self.reasoning.text or None,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration_seconds,
            "children": [c.to_dict() for c in self.children],
        }
