# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Mirrors a job's call tree into the blocks of an output message."""

import logging

from typing import TYPE_CHECKING, Any, Optional

from .types import BlockContent
from ..callgraph.node import CallNode, NodeKind
from ..callgraph.tree import CallTree
from ..events.delta_stream import SubscriptionGroup

if TYPE_CHECKING:
    from ..oversight.summarizer import Summarizer

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class TreeBridge:
    """
    Keeps one block per call node in sync with the tree.

    New nodes become child blocks of their parent's block; every update
    rewrites the block's content and state. Finished tool calls and nested
    agents get a short summary from the summarizer when one is configured.
    """

    def __init__(self, tree: CallTree, message: Any, summarizer: Optional["Summarizer"] = None):
        self.tree = tree
        self.message = message
        self.summarizer = summarizer
        self._handles: dict[str, Any] = {}
        self._summarized: set[str] = set()
        self._group = SubscriptionGroup()

        root = tree.root
        self._handles[root.id] = message.create_block(BlockContent.from_node(root), root.state)
        self._watch(root)
        for node in tree.iter_dfs():
            if node is not root:
                self._on_node_added((tree.get_node(node.parent_id), node))

        self._group.subscribe(tree.node_added, self._on_node_added)
        self._group.subscribe(tree.node_updated, self._on_node_updated)

    def handle_for(self, node: CallNode) -> Any:
        return self._handles.get(node.id)

    def _watch(self, node: CallNode) -> None:
        if node.kind is NodeKind.AGENT:
            self._group.subscribe(node.reasoning.ended, lambda _=None, n=node: self._on_node_updated(n))

    def _on_node_added(self, event: tuple[Optional[CallNode], CallNode]) -> None:
        parent, node = event
        if node.id in self._handles:
            return
        parent_handle = self._handles.get(parent.id) if parent is not None else None
        if parent_handle is None:
            logger.warning(f"[{self.tree.job_id}] no block for parent of {node.id}, skipping")
            return
        self._handles[node.id] = parent_handle.add_child(BlockContent.from_node(node), node.state)
        self._watch(node)
        self._maybe_summarize(node)

    def _on_node_updated(self, node: CallNode) -> None:
        handle = self._handles.get(node.id)
        if handle is None:
            return
        handle.content = BlockContent.from_node(node)
        if handle.state is not node.state:
            handle.state = node.state
        self._maybe_summarize(node)

    def _maybe_summarize(self, node: CallNode) -> None:
        if self.summarizer is None or node.summary or node.id in self._summarized:
            return
        if not node.is_terminal or node.is_root:
            return
        if node.kind not in (NodeKind.AGENT, NodeKind.TOOL):
            return
        self._summarized.add(node.id)
        self.summarizer.schedule(node, self.tree)

    def dispose(self) -> None:
        self._group.close()
