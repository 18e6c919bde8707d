# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Live view of a call tree built from each node's streaming channels.

Unlike the block formatter, which only sees finished state, a ``NodeView``
follows a node's reasoning and output as they stream, along with its log
lines and nested calls in the order they happened.
"""

import logging

from typing import Callable, Optional, Union

from rich.text import Text
from rich.tree import Tree

from .formatting import format_name, status_indicator
from ..callgraph.node import CallNode, NodeKind, NodeState
from ..events.delta_stream import SubscriptionGroup

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

STATE_STYLES = {
    NodeState.IN_PROGRESS: "cyan",
    NodeState.COMPLETED: "green",
    NodeState.ERROR: "red",
}

Step = Union[str, "NodeView"]


class NodeView:
    def __init__(self, node: CallNode, renderer: "CallRenderer"):
        self.node = node
        self.renderer = renderer
        self.reasoning = ""
        self.output = ""
        self.steps: list[Step] = []

        group = renderer.group
        group.subscribe(node.reasoning.started, self._on_reasoning_started)
        group.subscribe(node.reasoning.delta, self._on_reasoning)
        group.subscribe(node.stream.started, self._on_output_started)
        group.subscribe(node.stream.delta, self._on_output)
        group.subscribe(node.stream.ended, lambda _: renderer.changed())
        group.subscribe(node.log, self._on_log)
        group.subscribe(node.call, self._on_call)

        # Calls that started before we subscribed
        for child in node.children:
            if child.kind in (NodeKind.AGENT, NodeKind.TOOL):
                self.steps.append(renderer.view_for(child))

    @property
    def resolved(self) -> bool:
        return self.node.is_terminal

    @property
    def collapsed(self) -> bool:
        """Finished nested calls shrink to one line once they have a summary."""
        if self.node.is_root or not self.resolved:
            return False
        return self.renderer.verbose or bool(self.node.summary)

    def _on_reasoning_started(self, _) -> None:
        if self.reasoning:
            self.reasoning += "\n"
        self.renderer.changed()

    def _on_reasoning(self, chunk: str) -> None:
        self.reasoning += chunk
        self.renderer.changed()

    def _on_output_started(self, _) -> None:
        # Each model turn replaces the visible answer
        self.output = ""
        self.renderer.changed()

    def _on_output(self, chunk: str) -> None:
        self.output += chunk
        self.renderer.changed()

    def _on_log(self, line: str) -> None:
        self.steps.append(line)
        self.renderer.changed()

    def _on_call(self, child: CallNode) -> None:
        view = self.renderer.view_for(child)
        if view not in self.steps:
            self.steps.append(view)
        self.renderer.changed()

    def label(self) -> Text:
        node = self.node
        state = node.effective_state()
        name = format_name(node.name, node.kind.value)
        label = Text(f"{status_indicator(state)} ", style=STATE_STYLES[state])
        label.append(name, style="bold")
        if self.collapsed:
            detail = node.summary
        elif node.error:
            detail = node.error
        else:
            detail = node.task if node.kind is NodeKind.AGENT else None
        if detail:
            label.append(f": {detail}")
        return label

    def render_into(self, tree: Tree) -> None:
        branch = tree.add(self.label())
        if self.collapsed:
            return
        if self.reasoning and (self.renderer.verbose or not self.resolved):
            branch.add(Text(_tail(self.reasoning), style="dim italic"))
        for step in self.steps:
            if isinstance(step, NodeView):
                step.render_into(branch)
            else:
                branch.add(Text(step, style="dim"))
        if self.output:
            branch.add(Text(self.output))

    def to_lines(self, depth: int = 0) -> list[str]:
        """Plain-text rendering, mainly for logs and tests."""
        indent = "  " * depth
        lines = [indent + self.label().plain]
        if self.collapsed:
            return lines
        for step in self.steps:
            if isinstance(step, NodeView):
                lines.extend(step.to_lines(depth + 1))
            else:
                lines.append(f"{indent}  {step}")
        if self.output:
            lines.append(f"{indent}  {self.output}")
        return lines


def _tail(text: str, limit: int = 300) -> str:
    return text if len(text) <= limit else "..." + text[-limit:]


class CallRenderer:
    """
    Subscribes to every node reachable from ``root`` and keeps a ``NodeView``
    per node. ``on_change`` is called after each event; ``dispose`` releases
    every subscription.
    """

    def __init__(
        self,
        root: CallNode,
        verbose: bool = False,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.verbose = verbose
        self.on_change = on_change
        self.group = SubscriptionGroup()
        self._views: dict[str, NodeView] = {}
        self.root = self.view_for(root)

    def view_for(self, node: CallNode) -> NodeView:
        view = self._views.get(node.id)
        if view is None:
            view = NodeView(node, self)
            self._views[node.id] = view
        return view

    def changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def render(self) -> Tree:
        tree = Tree(Text("Job", style="bold blue"), hide_root=True)
        self.root.render_into(tree)
        return tree

    def to_text(self) -> str:
        return "\n".join(self.root.to_lines())

    def dispose(self) -> None:
        self.group.close()
