# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Rendering blocks to text, shared by the chat and console targets."""

import re
import html

from typing import Any, Iterable, Optional

from .types import Block
from ..callgraph.node import NodeKind, NodeState

INDENT = "  "

STATUS_ICONS = {
    NodeState.COMPLETED: "✓",
    NodeState.ERROR: "✖",
    NodeState.IN_PROGRESS: "...",
}


def to_camel_case(name: str) -> str:
    """``add_numbers`` -> ``AddNumbers``. Already-cased names are kept."""
    parts = [p for p in re.split(r"[_\-\s]+", name) if p]
    return "".join(p[:1].upper() + p[1:] for p in parts)


def format_name(name: str, kind: str = NodeKind.TOOL.value) -> str:
    formatted = to_camel_case(name)
    if kind == NodeKind.AGENT.value and formatted.endswith("Agent") and len(formatted) > len("Agent"):
        formatted = formatted[: -len("Agent")]
    return formatted


def status_indicator(state: NodeState) -> str:
    return STATUS_ICONS[state]


def _preview(value: Any, limit: int = 80) -> str:
    text = value if isinstance(value, str) else str(value)
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _is_master(block: Block) -> bool:
    return block.content.type == NodeKind.AGENT.value and "master" in block.content.name.lower()


def format_block(block: Block, depth: int = 0, verbose: bool = False) -> list[str]:
    """Render one block and its children as markdown lines."""
    content = block.content
    state = block.effective_state()
    icon = status_indicator(state)
    prefix = INDENT * depth

    if _is_master(block):
        lines = []
        for child in block.children:
            lines.extend(format_block(child, depth, verbose))
        return lines

    if content.type == NodeKind.AGENT.value:
        label = content.summary or content.task or ""
        if not content.summary and label:
            label = _preview(label)
        head = f"{format_name(content.name, content.type)}: {label}".rstrip(": ")
        lines = [f"{prefix}{head} {icon}"]
        if verbose and content.thinking:
            lines.append(f"{prefix}{INDENT}_{_preview(content.thinking, 200)}_")
        for child in block.children:
            lines.extend(format_block(child, depth + 1, verbose))
        return lines

    if content.type == NodeKind.TOOL.value:
        detail = content.error or content.summary
        if detail is None and verbose and content.result is not None:
            detail = _preview(content.result)
        name = f"**{format_name(content.name)}**"
        line = f"{prefix}└ {name}: {detail} {icon}" if detail else f"{prefix}└ {name} {icon}"
        lines = [line]
        for child in block.children:
            lines.extend(format_block(child, depth + 1, verbose))
        return lines

    if content.type == NodeKind.TEXT.value:
        text = content.text or ""
        if not depth:
            return [text]
        return [f"{prefix}{line}" for line in text.splitlines()] or [prefix]

    if content.type == NodeKind.FILE.value:
        return [f"{prefix}📎 {content.filename or content.name}"]

    if content.type == NodeKind.ERROR.value:
        return [f"{prefix}{status_indicator(NodeState.ERROR)} Error: {content.error or 'unknown error'}"]

    return []


def format_blocks(
    blocks: Iterable[Block],
    verbose: bool = False,
    job_link: Optional[str] = None,
) -> str:
    """Render a whole message. With a link, a header says whether work is still running."""
    blocks = list(blocks)
    lines: list[str] = []
    if job_link:
        running = any(b.effective_state() is NodeState.IN_PROGRESS for b in blocks)
        label = "Processing..." if running else "Job Details"
        lines.append(f"[{label}]({job_link})")
    for block in blocks:
        lines.extend(format_block(block, 0, verbose))
    return "\n".join(lines)


# Markdown -> chat HTML =======================================================

_FENCE_RE = re.compile(r"```(?:[\w+-]*)\n?(.*?)```", re.DOTALL)
_CODE_RE = re.compile(r"`([^`\n]+)`")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*", re.DOTALL)
_ITALIC_RE = re.compile(r"(?<![\w*])([*_])(?![\s*_])(.+?)(?<![\s*_])\1(?![\w*])")
_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^\s)]+)\)")


def _link(url: str, label: str) -> str:
    href = url.replace('"', "&quot;")
    return f'<a href="{href}">{label}</a>'


def markdown_to_chat_html(text: str) -> str:
    """Convert the small markdown subset the agents produce into chat HTML.

    Everything is escaped first; code spans and fences are lifted out before
    inline formatting so their contents stay literal.
    """
    placeholders: list[str] = []

    def stash(rendered: str) -> str:
        placeholders.append(rendered)
        return f"\x00{len(placeholders) - 1}\x00"

    escaped = html.escape(text, quote=False)
    escaped = _FENCE_RE.sub(lambda m: stash(f"<pre>{m.group(1).rstrip()}</pre>"), escaped)
    escaped = _CODE_RE.sub(lambda m: stash(f"<code>{m.group(1)}</code>"), escaped)
    escaped = _LINK_RE.sub(lambda m: stash(_link(m.group(2), m.group(1))), escaped)
    escaped = _BOLD_RE.sub(r"<b>\1</b>", escaped)
    escaped = _ITALIC_RE.sub(r"<i>\2</i>", escaped)

    return re.sub(r"\x00(\d+)\x00", lambda m: placeholders[int(m.group(1))], escaped)
