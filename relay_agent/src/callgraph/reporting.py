# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Module for generating execution reports from call trees."""

import textwrap

from typing import Optional

from .node import CallNode, NodeKind
from .tree import CallTree
from ..llm.metering import get_total_usage


def _format_duration(seconds: Optional[float]) -> str:
    """Format duration in seconds to a readable string."""
    if seconds is None:
        return "N/A"
    return f"{seconds:.1f}s"


def _format_value(value, limit: int = 80) -> str:
    if value is None:
        return ""
    text = str(value).replace("\n", " ").strip()
    return textwrap.shorten(text, width=limit, placeholder="...")


def _format_node(node: CallNode, depth: int, lines: list[str]) -> None:
    indent = "  " * depth
    state = node.effective_state().value
    if node.kind in (NodeKind.AGENT, NodeKind.TOOL):
        header = f"{indent}{node.kind.value} {node.name} [{state}] {_format_duration(node.duration_seconds)}"
        lines.append(header)
        if node.input is not None:
            lines.append(f"{indent}  in:  {_format_value(node.input)}")
        if node.error:
            lines.append(f"{indent}  err: {_format_value(node.error)}")
        elif node.output is not None:
            lines.append(f"{indent}  out: {_format_value(node.output)}")
        if node.summary:
            lines.append(f"{indent}  sum: {node.summary}")
    elif node.kind is NodeKind.ERROR:
        lines.append(f"{indent}error: {_format_value(node.error, 120)}")
    else:
        lines.append(f"{indent}{node.kind.value}: {_format_value(node.output, 120)}")

    for child in node.children:
        _format_node(child, depth + 1, lines)


def generate_execution_tree(tree: CallTree) -> str:
    """Render the whole tree as an indented plain-text report."""
    lines: list[str] = [f"Job {tree.job_id}"]
    _format_node(tree.root, 0, lines)
    return "\n".join(lines)


def generate_execution_report(tree: CallTree) -> str:
    """Execution tree followed by aggregate metrics and token usage."""
    metrics = tree.get_execution_metrics()
    by_kind = ", ".join(f"{k}={v}" for k, v in metrics["by_kind"].items() if v)
    parts = [
        generate_execution_tree(tree),
        "",
        f"Nodes: {metrics['nodes']} ({by_kind})",
        f"Failed: {metrics['failed']}",
        f"Duration: {_format_duration(metrics['duration'])}",
        f"Tokens: {get_total_usage()}",
    ]
    return "\n".join(parts)
