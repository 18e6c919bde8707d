# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""The per-job call tree.

All mutations go through ``CallTree`` so that the tree stays append-only and
every change is announced on ``node_added`` / ``node_updated`` for output
targets to mirror.
"""

import logging

from uuid import uuid4
from typing import Any, Dict, Iterator, Optional
from datetime import datetime

from .node import CallNode, NodeKind, NodeState
from ..events.delta_stream import Signal

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class CallTree:
    """
    Append-only tree of the calls made while executing one job.

    Nodes are added under an existing parent and never removed or reordered.
    Each node moves from ``in_progress`` to a terminal state at most once;
    later attempts are ignored and reported as ``False``.
    """

    def __init__(self, job_id: str, root_name: str, root_input: Any = None):
        self.job_id = job_id
        self.nodes: Dict[str, CallNode] = {}
        # (parent, child)
        self.node_added: Signal[tuple[Optional[CallNode], CallNode]] = Signal("tree.node_added")
        self.node_updated: Signal[CallNode] = Signal("tree.node_updated")

        self.root = CallNode(
            id=self._new_id(), kind=NodeKind.AGENT, name=root_name, input=root_input
        )
        self.nodes[self.root.id] = self.root

    def _new_id(self) -> str:
        while True:
            node_id = uuid4().hex[:8]
            if node_id not in self.nodes:
                return node_id

    # Structure ===============================================================

    def add_child(
        self,
        parent: CallNode,
        kind: NodeKind,
        name: str,
        input: Any = None,
        state: NodeState = NodeState.IN_PROGRESS,
        output: Any = None,
    ) -> CallNode:
        """Append a new node as the last child of ``parent``."""
        if parent.id not in self.nodes:
            raise ValueError(f"Node {parent.id} does not belong to job {self.job_id}")

        node = CallNode(
            id=self._new_id(),
            kind=kind,
            name=name,
            parent_id=parent.id,
            input=input,
            output=output,
            state=state,
        )
        if state.is_terminal:
            node.completed_at = node.started_at
        self.nodes[node.id] = node
        parent.children.append(node)
        logger.debug(f"[{self.job_id}] {kind.value} node {node.id} ({name}) under {parent.id}")
        self.node_added.emit((parent, node))
        return node

    def add_text(self, parent: CallNode, text: str) -> CallNode:
        return self.add_child(
            parent, NodeKind.TEXT, "text", state=NodeState.COMPLETED, output=text
        )

    def add_file(self, parent: CallNode, filename: str, mime_type: str | None = None) -> CallNode:
        return self.add_child(
            parent,
            NodeKind.FILE,
            filename,
            state=NodeState.COMPLETED,
            output={"filename": filename, "mime_type": mime_type},
        )

    def add_error(self, parent: CallNode, message: str) -> CallNode:
        node = self.add_child(parent, NodeKind.ERROR, "error", state=NodeState.ERROR)
        node.error = message
        return node

    # Transitions =============================================================

    def complete(self, node: CallNode, output: Any = None) -> bool:
        """Mark ``node`` completed. Returns False if it was already terminal."""
        if node.is_terminal:
            logger.warning(f"[{self.job_id}] ignoring completion of terminal node {node.id}")
            return False
        node.output = output
        node.state = NodeState.COMPLETED
        node.completed_at = datetime.now()
        node.reasoning.end()
        node.stream.end()
        self.node_updated.emit(node)
        return True

    def fail(self, node: CallNode, error: str | BaseException) -> bool:
        """Mark ``node`` as errored. Returns False if it was already terminal."""
        if node.is_terminal:
            logger.warning(f"[{self.job_id}] ignoring failure of terminal node {node.id}")
            return False
        node.error = str(error) or type(error).__name__
        node.state = NodeState.ERROR
        node.completed_at = datetime.now()
        node.reasoning.end()
        node.stream.end()
        self.node_updated.emit(node)
        return True

    def set_summary(self, node: CallNode, summary: str) -> None:
        """Attach a generated summary. May arrive after the terminal transition."""
        node.summary = summary
        self.node_updated.emit(node)

    def touch(self, node: CallNode) -> None:
        """Announce a change to a node's live fields (e.g. streamed text)."""
        self.node_updated.emit(node)

    # Queries =================================================================

    def get_node(self, node_id: str) -> Optional[CallNode]:
        return self.nodes.get(node_id)

    def iter_dfs(self, start: Optional[CallNode] = None) -> Iterator[CallNode]:
        start = start or self.root
        yield start
        yield from start.iter_descendants()

    def get_ancestors(self, node: CallNode) -> list[CallNode]:
        """Ancestors of ``node``, nearest first."""
        ancestors = []
        current = node
        while current.parent_id is not None:
            current = self.nodes[current.parent_id]
            ancestors.append(current)
        return ancestors

    def get_execution_metrics(self) -> dict[str, Any]:
        """Aggregate counts and timing over the whole tree."""
        counts = {kind.value: 0 for kind in NodeKind}
        failed = 0
        for node in self.nodes.values():
            counts[node.kind.value] += 1
            if node.state is NodeState.ERROR:
                failed += 1
        return {
            "nodes": len(self.nodes),
            "by_kind": counts,
            "failed": failed,
            "duration": self.root.duration_seconds,
        }

    def to_dict(self) -> dict[str, Any]:
        return self.root.to_dict()
